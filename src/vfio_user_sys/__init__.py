"""
vfio-user-sys: build libvfio-user and generate Python bindings for it.

The pipeline resolves paths, emits linker directives, probes native
dependencies, builds the library with meson and writes a ctypes binding
module generated from libvfio-user.h.
"""

__version__ = "0.1.0"

from .errors import VfioUserSysError  # noqa: E402

__all__ = ["VfioUserSysError", "__version__"]
