"""
vfio-user-sys.ini configuration parser.

This module reads the optional project file that tells the pipeline where the
vendored library lives, which native dependencies to probe and which extra
meson options to pass. Every key is optional; a project without the file gets
the built-in libvfio-user layout.

Example vfio-user-sys.ini:
    [library]
    name = vfio-user
    source_root = libvfio-user
    header = include/libvfio-user.h

    [dependencies]
    json-c = 0.11
    cmocka =

    [meson]
    tran-pipe = true
"""

import configparser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..dependencies.requirements import DEFAULT_REQUIREMENTS, DependencyRequirement
from ..errors import VfioUserSysError

CONFIG_FILENAME = "vfio-user-sys.ini"

DEFAULT_LIBRARY_NAME = "vfio-user"
DEFAULT_SOURCE_ROOT = "libvfio-user"
DEFAULT_HEADER = "include/libvfio-user.h"


class ConfigError(VfioUserSysError):
    """Exception raised for vfio-user-sys.ini configuration errors."""
    pass


@dataclass(frozen=True)
class LibraryConfig:
    """Static description of the wrapped native library."""

    name: str = DEFAULT_LIBRARY_NAME
    source_root: Path = Path(DEFAULT_SOURCE_ROOT)
    header: str = DEFAULT_HEADER
    requirements: Tuple[DependencyRequirement, ...] = DEFAULT_REQUIREMENTS
    meson_options: Dict[str, str] = field(default_factory=dict)


class ProjectConfig:
    """
    Parser for vfio-user-sys.ini files.

    Usage:
        config = ProjectConfig.load(Path("."))
        library = config.get_library_config()
    """

    def __init__(self, ini_path: Optional[Path], project_dir: Path):
        """
        Initialize the parser.

        Args:
            ini_path: Path to the ini file, or None to use defaults only
            project_dir: Directory relative paths are resolved against

        Raises:
            ConfigError: If the file exists but cannot be parsed
        """
        self.ini_path = ini_path
        self.project_dir = project_dir
        self.config = configparser.ConfigParser(
            allow_no_value=True, interpolation=configparser.ExtendedInterpolation()
        )
        # Package names such as "json-c" are case sensitive
        self.config.optionxform = str  # type: ignore[assignment]

        if ini_path is None:
            return

        try:
            self.config.read(ini_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigError(f"Failed to parse {ini_path}: {e}") from e

    @classmethod
    def load(cls, project_dir: Path) -> "ProjectConfig":
        """
        Load vfio-user-sys.ini from a project directory if present.

        Args:
            project_dir: Project root

        Returns:
            ProjectConfig (backed by defaults when the file is absent)
        """
        project_dir = Path(project_dir).resolve()
        ini_path = project_dir / CONFIG_FILENAME
        if not ini_path.exists():
            return cls(None, project_dir)
        return cls(ini_path, project_dir)

    def _items(self, section: str) -> List[Tuple[str, Optional[str]]]:
        # Interpolation happens on access, so read eagerly to catch its errors
        try:
            return list(self.config[section].items())
        except configparser.Error as e:
            raise ConfigError(f"Invalid value in [{section}] of {self.ini_path}: {e}") from e

    def get_requirements(self) -> Tuple[DependencyRequirement, ...]:
        """
        Dependencies to probe.

        Returns:
            Requirements from [dependencies], or the built-in list when the
            section is missing

        Example:
            For
                [dependencies]
                json-c = 0.11
                cmocka =
            Returns: (json-c >= 0.11, cmocka)
        """
        if "dependencies" not in self.config:
            return DEFAULT_REQUIREMENTS

        requirements = []
        for name, value in self._items("dependencies"):
            min_version = (value or "").strip() or None
            requirements.append(DependencyRequirement(name, min_version))
        return tuple(requirements)

    def get_meson_options(self) -> Dict[str, str]:
        """
        Extra meson project options.

        Returns:
            Mapping of option name to value from the [meson] section
        """
        if "meson" not in self.config:
            return {}

        options = {}
        for key, value in self._items("meson"):
            if value is None or not value.strip():
                raise ConfigError(f"meson option '{key}' in {self.ini_path} has no value")
            options[key] = value.strip()
        return options

    def get_library_config(self) -> LibraryConfig:
        """
        Assemble the full library description.

        Returns:
            LibraryConfig with the source root resolved against the project dir
        """
        section = dict(self._items("library")) if "library" in self.config else {}

        name = (section.get("name") or DEFAULT_LIBRARY_NAME).strip()
        source_root = Path((section.get("source_root") or DEFAULT_SOURCE_ROOT).strip())
        header = (section.get("header") or DEFAULT_HEADER).strip()

        if not name:
            raise ConfigError("[library] name must not be empty")
        if Path(header).is_absolute():
            raise ConfigError(
                f"[library] header must be relative to source_root, got {header}"
            )

        if not source_root.is_absolute():
            source_root = self.project_dir / source_root

        return LibraryConfig(
            name=name,
            source_root=source_root,
            header=header,
            requirements=self.get_requirements(),
            meson_options=self.get_meson_options(),
        )
