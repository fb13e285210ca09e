"""Native dependency discovery for vfio-user-sys."""

from .pkg_config import (
    DependencyNotFoundError,
    IDependencyResolver,
    PkgConfigResolver,
    ResolvedDependency,
)
from .probe import DependencyProbe, ProbeResult, ProbeWarning
from .requirements import DEFAULT_REQUIREMENTS, DependencyRequirement

__all__ = [
    "DEFAULT_REQUIREMENTS",
    "DependencyNotFoundError",
    "DependencyProbe",
    "DependencyRequirement",
    "IDependencyResolver",
    "PkgConfigResolver",
    "ProbeResult",
    "ProbeWarning",
    "ResolvedDependency",
]
