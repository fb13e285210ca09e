"""
Binding generation for vfio-user-sys.

This module turns the library's public header into a Python ctypes module:
- Header binder interface and parse options
- libclang-backed binder
- ctypes source emitter
- Generation and atomic write of the binding file

The libclang binder is imported lazily by the orchestrator so that code
substituting its own binder does not need libclang installed.
"""

from .binder import BindingWriteError, BindOptions, GenerateFailure, IHeaderBinder
from .declarations import HeaderDeclarations
from .emitter import CtypesEmitter
from .generator import BindingGenerator

__all__ = [
    "BindOptions",
    "BindingGenerator",
    "BindingWriteError",
    "CtypesEmitter",
    "GenerateFailure",
    "HeaderDeclarations",
    "IHeaderBinder",
]
