"""Native dependency requirements probed before building libvfio-user."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class DependencyRequirement:
    """A pkg-config package and the oldest version that will do."""

    name: str
    min_version: Optional[str] = None

    def describe(self) -> str:
        """Human readable form, e.g. 'json-c >= 0.11'."""
        if self.min_version:
            return f"{self.name} >= {self.min_version}"
        return self.name


# libvfio-user links json-c for its socket transport and uses cmocka for its
# unit tests; meson refuses to configure without either.
DEFAULT_REQUIREMENTS: Tuple[DependencyRequirement, ...] = (
    DependencyRequirement("json-c", "0.11"),
    DependencyRequirement("cmocka"),
)
