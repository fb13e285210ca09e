"""Artifact mode selection.

Maps the two configuration flags onto the kind of library to build and the
kind of library the linker is told to use:

    want_static  want_shared  mode    meson default_library  link kind
    -----------  -----------  ------  ---------------------  ---------
    True         True         BOTH    both                   static
    True         False        STATIC  static                 static
    False        True         SHARED  shared                 dylib
    False        False        ANY     (no build)             (unqualified)

When both kinds are built the static one is linked, so the result never
depends on which file the linker happens to find first.
"""

from enum import Enum
from typing import Optional

from ..config.build_config import BuildConfiguration


class ArtifactMode(Enum):
    """Library artifact kind(s) produced and linked by a run."""

    STATIC = "static"
    SHARED = "shared"
    BOTH = "both"
    ANY = "any"

    @property
    def requires_build(self) -> bool:
        """ANY links against a library already on the system link path."""
        return self is not ArtifactMode.ANY

    @property
    def default_library(self) -> Optional[str]:
        """Value for meson's default_library option (None when not building)."""
        if self is ArtifactMode.ANY:
            return None
        return self.value

    @property
    def link_kind(self) -> Optional[str]:
        """Link kind qualifier for the link-lib directive."""
        if self in (ArtifactMode.STATIC, ArtifactMode.BOTH):
            return "static"
        if self is ArtifactMode.SHARED:
            return "dylib"
        return None


def select_artifact_mode(want_static: bool, want_shared: bool) -> ArtifactMode:
    """
    Derive the artifact mode from the configuration flags.

    Args:
        want_static: Build a static archive
        want_shared: Build a shared object

    Returns:
        ArtifactMode for the flag combination
    """
    if want_static and want_shared:
        return ArtifactMode.BOTH
    if want_static:
        return ArtifactMode.STATIC
    if want_shared:
        return ArtifactMode.SHARED
    return ArtifactMode.ANY


def mode_for(config: BuildConfiguration) -> ArtifactMode:
    """Artifact mode for a BuildConfiguration."""
    return select_artifact_mode(config.want_static, config.want_shared)
