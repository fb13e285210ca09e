"""Filesystem layout for a pipeline run.

Layout:
    <source_root>/                  # vendored libvfio-user checkout
    └── include/libvfio-user.h      # public header

    <output_dir>/                   # $VFIO_USER_SYS_OUT_DIR
    ├── build/                      # meson build directory
    │   └── lib/                    # compiled libvfio-user.{a,so}
    └── bindings.py                 # generated ctypes declarations

Everything written by the pipeline lives under output_dir.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from ..config.project_config import DEFAULT_HEADER
from ..errors import VfioUserSysError

OUT_DIR_ENV = "VFIO_USER_SYS_OUT_DIR"

BUILD_DIRNAME = "build"
# libvfio-user's meson.build places the library under lib/
ARTIFACT_SUBDIR = "lib"
BINDINGS_FILENAME = "bindings.py"


class PathError(VfioUserSysError):
    """Raised when the output directory cannot be determined or used."""
    pass


@dataclass(frozen=True)
class PathSet:
    """Every location a pipeline run reads from or writes to."""

    source_root: Path
    header_path: Path
    output_dir: Path
    build_dir: Path
    artifact_dir: Path
    binding_output_path: Path


class PathResolver:
    """Derives a PathSet from the source root and the output directory."""

    def __init__(self, source_root: Union[str, Path], header_relpath: str = DEFAULT_HEADER):
        """
        Args:
            source_root: Root of the vendored library source tree
            header_relpath: Public header, relative to source_root
        """
        self.source_root = Path(source_root)
        self.header_relpath = header_relpath

    def resolve(
        self,
        output_dir: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> PathSet:
        """
        Compute all paths for this run.

        Args:
            output_dir: Explicit output directory; when None it is read from
                the VFIO_USER_SYS_OUT_DIR environment variable
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Fully populated PathSet

        Raises:
            PathError: If the output directory is unset or not usable
        """
        if output_dir is None:
            if environ is None:
                environ = os.environ
            output_dir = environ.get(OUT_DIR_ENV, "").strip()
            if not output_dir:
                raise PathError(
                    f"{OUT_DIR_ENV} is not set; cannot determine the output directory"
                )

        out_path = Path(output_dir).absolute()
        if out_path.exists():
            if not out_path.is_dir():
                raise PathError(f"Output path is not a directory: {out_path}")
            if not os.access(out_path, os.R_OK | os.X_OK):
                raise PathError(f"Output directory is not readable: {out_path}")

        source_root = self.source_root.absolute()
        build_dir = out_path / BUILD_DIRNAME

        return PathSet(
            source_root=source_root,
            header_path=source_root / self.header_relpath,
            output_dir=out_path,
            build_dir=build_dir,
            artifact_dir=build_dir / ARTIFACT_SUBDIR,
            binding_output_path=out_path / BINDINGS_FILENAME,
        )
