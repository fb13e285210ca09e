"""Dependency probing.

Each requirement is queried once, in order. A missing dependency is a soft
failure: the probe reports a ProbeWarning and moves on, since meson may still
find the package by other means or fail later with a clearer message.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .pkg_config import DependencyNotFoundError, IDependencyResolver, ResolvedDependency
from .requirements import DependencyRequirement


@dataclass(frozen=True)
class ProbeWarning:
    """Non-fatal diagnostic for a dependency that could not be resolved."""

    requirement: DependencyRequirement
    reason: str

    @property
    def message(self) -> str:
        return f"Could not find {self.requirement.describe()}, build may fail"


@dataclass
class ProbeResult:
    """Outcome of probing one requirement."""

    requirement: DependencyRequirement
    resolved: Optional[ResolvedDependency] = None
    warning: Optional[ProbeWarning] = None

    @property
    def found(self) -> bool:
        return self.resolved is not None


class DependencyProbe:
    """Queries a resolver for every requirement in a list."""

    def __init__(self, resolver: IDependencyResolver):
        self.resolver = resolver

    def probe(self, requirement: DependencyRequirement) -> ProbeResult:
        """
        Probe a single requirement.

        Args:
            requirement: Dependency to look up

        Returns:
            ProbeResult; never raises for a missing dependency
        """
        try:
            resolved = self.resolver.resolve(requirement)
        except DependencyNotFoundError as e:
            logging.debug(f"Probe failed for {requirement.describe()}: {e}")
            return ProbeResult(requirement, warning=ProbeWarning(requirement, str(e)))

        logging.info(f"Found {resolved.name} {resolved.version}")
        return ProbeResult(requirement, resolved=resolved)

    def probe_all(
        self,
        requirements: Iterable[DependencyRequirement],
        on_warning: Optional[Callable[[ProbeWarning], None]] = None,
    ) -> List[ProbeResult]:
        """
        Probe every requirement sequentially, in order.

        Args:
            requirements: Dependencies to look up
            on_warning: Called with each ProbeWarning as soon as it is raised,
                before the next requirement is queried

        Returns:
            One ProbeResult per requirement
        """
        results = []
        for requirement in requirements:
            result = self.probe(requirement)
            if result.warning is not None and on_warning is not None:
                on_warning(result.warning)
            results.append(result)
        return results
