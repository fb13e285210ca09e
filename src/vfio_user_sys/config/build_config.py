"""
Build configuration flags.

The artifact flags are read exactly once at process entry and then passed
explicitly to every component. Nothing downstream looks at the environment
for them again.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

STATIC_ENV = "VFIO_USER_SYS_BUILD_STATIC"
SHARED_ENV = "VFIO_USER_SYS_BUILD_SHARED"

_TRUTHY = {"1", "true", "yes", "on"}


def parse_flag(value: Optional[str]) -> bool:
    """
    Interpret an environment flag value.

    Args:
        value: Raw environment value (None when unset)

    Returns:
        True for 1/true/yes/on (case-insensitive), False otherwise
    """
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class BuildConfiguration:
    """Which library artifacts this run should produce."""

    want_static: bool = False
    want_shared: bool = False

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        want_static: Optional[bool] = None,
        want_shared: Optional[bool] = None,
    ) -> "BuildConfiguration":
        """
        Build configuration from environment flags.

        Explicit arguments (e.g. from CLI flags) take precedence over the
        environment; passing None defers to the environment.

        Args:
            environ: Environment mapping (defaults to os.environ)
            want_static: Override for the static flag
            want_shared: Override for the shared flag

        Returns:
            Immutable BuildConfiguration
        """
        if environ is None:
            environ = os.environ

        if want_static is None:
            want_static = parse_flag(environ.get(STATIC_ENV))
        if want_shared is None:
            want_shared = parse_flag(environ.get(SHARED_ENV))

        return cls(want_static=want_static, want_shared=want_shared)
