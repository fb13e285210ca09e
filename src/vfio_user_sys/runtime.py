"""
Runtime loading of generated bindings.

Generated binding modules declare functions as ForeignFunction descriptors.
They stay unbound until a library is attached:

    module = load_bindings(out_dir / "bindings.py")
    library = open_library(out_dir / "build" / "lib", "vfio-user", ArtifactMode.SHARED)
    bind(module, library)
    ctx = module.vfu_create_ctx(...)
"""

import ctypes
import ctypes.util
import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, List, Optional, Sequence, Union

from .build.artifact_mode import ArtifactMode
from .errors import VfioUserSysError

DEFAULT_MODULE_NAME = "vfio_user_bindings"


class LibraryLoadError(VfioUserSysError):
    """Raised when the native library or the bindings cannot be loaded."""
    pass


class ForeignFunction:
    """A C function declared by generated bindings, resolved on bind()."""

    def __init__(self, name: str, restype: Any, argtypes: Sequence[Any], variadic: bool = False):
        self.name = name
        self.restype = restype
        self.argtypes = list(argtypes)
        self.variadic = variadic
        self._function: Optional[Any] = None

    @property
    def bound(self) -> bool:
        return self._function is not None

    def bind(self, library: Any) -> None:
        """
        Attach to a symbol in a loaded library.

        Raises:
            LibraryLoadError: If the library does not export the symbol
        """
        try:
            function = getattr(library, self.name)
        except AttributeError as e:
            raise LibraryLoadError(f"Export not found: {self.name}") from e
        function.restype = self.restype
        if not self.variadic:
            function.argtypes = self.argtypes
        self._function = function

    def __call__(self, *args: Any) -> Any:
        if self._function is None:
            raise LibraryLoadError(
                f"{self.name} is not bound to a library; call vfio_user_sys.runtime.bind() first"
            )
        return self._function(*args)

    def __repr__(self) -> str:
        state = "bound" if self.bound else "unbound"
        return f"<ForeignFunction {self.name} ({state})>"


def shared_library_names(name: str) -> List[str]:
    """Candidate file names for a shared library on this platform."""
    if sys.platform == "win32":
        return [f"{name}.dll", f"lib{name}.dll"]
    if sys.platform == "darwin":
        return [f"lib{name}.dylib"]
    return [f"lib{name}.so"]


def open_library(
    artifact_dir: Optional[Union[str, Path]],
    name: str,
    mode: ArtifactMode,
) -> ctypes.CDLL:
    """
    Load the shared library matching an artifact mode.

    Args:
        artifact_dir: Directory the pipeline built into (may be None for ANY)
        name: Library name without lib prefix or suffix
        mode: Artifact mode the bindings were generated for

    Returns:
        Loaded ctypes.CDLL

    Raises:
        LibraryLoadError: For static-only builds, or if nothing loadable is found
    """
    if mode is ArtifactMode.STATIC:
        raise LibraryLoadError(
            f"lib{name} was built as a static archive only; "
            + "it cannot be loaded at runtime, link it into an extension instead"
        )

    candidates: List[str] = []
    if artifact_dir is not None:
        for filename in shared_library_names(name):
            path = Path(artifact_dir) / filename
            if path.exists():
                candidates.append(str(path))

    if mode is ArtifactMode.ANY:
        found = ctypes.util.find_library(name)
        if found:
            candidates.append(found)

    if not candidates:
        raise LibraryLoadError(f"No shared lib{name} found (mode: {mode.value})")

    errors = []
    for candidate in candidates:
        try:
            return ctypes.CDLL(candidate)
        except OSError as e:
            errors.append(f"{candidate}: {e}")
    raise LibraryLoadError(f"Failed to load lib{name}:\n" + "\n".join(errors))


def load_bindings(binding_path: Union[str, Path], module_name: str = DEFAULT_MODULE_NAME) -> ModuleType:
    """
    Import a generated binding module from its file.

    Raises:
        LibraryLoadError: If the file is missing or cannot be imported
    """
    binding_path = Path(binding_path)
    if not binding_path.is_file():
        raise LibraryLoadError(f"Bindings not found: {binding_path}")

    spec = importlib.util.spec_from_file_location(module_name, binding_path)
    if spec is None or spec.loader is None:
        raise LibraryLoadError(f"Cannot import bindings from {binding_path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        del sys.modules[module_name]
        raise LibraryLoadError(f"Bindings in {binding_path} failed to import: {e}") from e
    return module


def bind(module: ModuleType, library: Any) -> int:
    """
    Attach every ForeignFunction in a binding module to a library.

    Returns:
        Number of functions bound
    """
    count = 0
    for value in vars(module).values():
        if isinstance(value, ForeignFunction):
            value.bind(library)
            count += 1
    return count
