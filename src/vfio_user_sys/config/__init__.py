"""Configuration parsing modules for vfio-user-sys."""

from .build_config import BuildConfiguration
from .project_config import ConfigError, LibraryConfig, ProjectConfig

__all__ = [
    "BuildConfiguration",
    "ConfigError",
    "LibraryConfig",
    "ProjectConfig",
]
