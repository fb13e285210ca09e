"""
Build system components for vfio-user-sys.

This module provides the build-and-bind pipeline including:
- Path resolution for the source tree and output directory
- Artifact mode selection (static / shared / both / any)
- Native build with meson
- Linker directive emission
- Pipeline orchestration
"""

from .artifact_mode import ArtifactMode, select_artifact_mode
from .command_runner import CommandError, run_command
from .linker_config import LinkerConfigurator
from .native_builder import BuildFailure, INativeBuilder, MesonBuilder
from .orchestrator import BuildOrchestrator, PipelineResult
from .paths import PathError, PathResolver, PathSet

__all__ = [
    "ArtifactMode",
    "BuildFailure",
    "BuildOrchestrator",
    "CommandError",
    "INativeBuilder",
    "LinkerConfigurator",
    "MesonBuilder",
    "PathError",
    "PathResolver",
    "PathSet",
    "PipelineResult",
    "run_command",
    "select_artifact_mode",
]
