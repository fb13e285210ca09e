"""Native library build.

Defines the interface for the external build system and the meson-backed
implementation used for libvfio-user.

Design:
    - INativeBuilder is the seam tests substitute with a fake
    - MesonBuilder configures (or reconfigures) the build directory, then
      compiles; meson keeps repeated builds in the same directory incremental
    - Any failure is a BuildFailure carrying meson's own output verbatim
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import VfioUserSysError
from .artifact_mode import ArtifactMode
from .command_runner import CommandError, run_command
from .paths import PathSet

DEFAULT_LIBRARY_OPTION = "default_library"


class BuildFailure(VfioUserSysError):
    """Raised when the native library cannot be built."""
    pass


class INativeBuilder(ABC):
    """Interface for the external native build system."""

    @abstractmethod
    def build(self, paths: PathSet, mode: ArtifactMode) -> Path:
        """Build the library from paths.source_root into paths.build_dir.

        Args:
            paths: Resolved paths for this run
            mode: Artifact mode to produce (never ANY)

        Returns:
            Directory containing the compiled artifact(s)

        Raises:
            BuildFailure: If the build system fails
        """
        pass


class MesonBuilder(INativeBuilder):
    """Builds the library with meson.

    Runs:
        meson setup [--reconfigure] <build_dir> <source_root> -Ddefault_library=<mode> [-Dk=v ...]
        meson compile -C <build_dir>
    """

    def __init__(
        self,
        options: Optional[Dict[str, str]] = None,
        meson: str = "meson",
    ):
        """
        Args:
            options: Extra meson project options (must not set default_library)
            meson: meson executable
        """
        self.options = dict(options or {})
        self.meson = meson

    def is_configured(self, build_dir: Path) -> bool:
        """Whether build_dir already holds a meson configuration."""
        return (build_dir / "meson-private" / "coredata.dat").exists()

    def setup_command(self, paths: PathSet, mode: ArtifactMode) -> List[str]:
        """
        Build the meson setup command line.

        Raises:
            BuildFailure: If the mode does not build or extra options try to
                override default_library
        """
        if mode.default_library is None:
            raise BuildFailure(f"Artifact mode {mode.name} does not build a library")
        if DEFAULT_LIBRARY_OPTION in self.options:
            raise BuildFailure(
                f"{DEFAULT_LIBRARY_OPTION} is controlled by the static/shared flags "
                + "and cannot be set as a meson option"
            )

        cmd = [self.meson, "setup"]
        if self.is_configured(paths.build_dir):
            cmd.append("--reconfigure")
        cmd.extend([str(paths.build_dir), str(paths.source_root)])
        cmd.append(f"-D{DEFAULT_LIBRARY_OPTION}={mode.default_library}")
        for key in sorted(self.options):
            cmd.append(f"-D{key}={self.options[key]}")
        return cmd

    def compile_command(self, paths: PathSet) -> List[str]:
        """Build the meson compile command line."""
        return [self.meson, "compile", "-C", str(paths.build_dir)]

    def build(self, paths: PathSet, mode: ArtifactMode) -> Path:
        if not paths.source_root.is_dir():
            raise BuildFailure(f"Source tree not found: {paths.source_root}")

        setup_cmd = self.setup_command(paths, mode)

        try:
            paths.build_dir.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BuildFailure(
                f"Couldn't create build directory {paths.build_dir.parent}: {e}"
            ) from e

        try:
            run_command(setup_cmd)
            run_command(self.compile_command(paths))
        except CommandError as e:
            raise BuildFailure(str(e)) from e

        if not paths.artifact_dir.is_dir():
            raise BuildFailure(
                f"Build finished but artifact directory is missing: {paths.artifact_dir}"
            )

        logging.info(f"Built {mode.value} library in {paths.artifact_dir}")
        return paths.artifact_dir
