"""pkg-config dependency resolver.

Resolving a package registers its link flags as directives, the way the
resolver rather than the caller owns that side effect:

    -L/usr/lib/x86_64-linux-gnu  ->  link-search=/usr/lib/x86_64-linux-gnu
    -ljson-c                     ->  link-lib=json-c
"""

import shlex
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from ..directives import DirectiveEmitter
from ..errors import VfioUserSysError
from .requirements import DependencyRequirement


class DependencyNotFoundError(VfioUserSysError):
    """Raised when a dependency is missing or older than required."""
    pass


@dataclass
class ResolvedDependency:
    """A dependency the resolver found."""

    name: str
    version: str
    libs: List[str] = field(default_factory=list)
    cflags: List[str] = field(default_factory=list)


class IDependencyResolver(ABC):
    """Interface for system dependency resolvers."""

    @abstractmethod
    def resolve(self, requirement: DependencyRequirement) -> ResolvedDependency:
        """Resolve a requirement and register its link flags.

        Args:
            requirement: Package name and optional minimum version

        Returns:
            ResolvedDependency with version and flags

        Raises:
            DependencyNotFoundError: If it cannot be satisfied
        """
        pass


class PkgConfigResolver(IDependencyResolver):
    """Resolves dependencies by running the pkg-config binary."""

    def __init__(self, emitter: Optional[DirectiveEmitter] = None, pkg_config: str = "pkg-config"):
        """
        Args:
            emitter: Directive sink for link flags (None disables registration)
            pkg_config: pkg-config executable
        """
        self.emitter = emitter
        self.pkg_config = pkg_config

    def _query(self, args: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.pkg_config, *args],
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise DependencyNotFoundError(f"{self.pkg_config} executable not found") from e

    def _query_output(self, args: List[str], requirement: DependencyRequirement) -> str:
        result = self._query(args)
        if result.returncode != 0:
            raise DependencyNotFoundError(
                f"pkg-config {' '.join(args)} failed for {requirement.name}: "
                + result.stderr.strip()
            )
        return result.stdout.strip()

    def resolve(self, requirement: DependencyRequirement) -> ResolvedDependency:
        exists_args = ["--exists"]
        if requirement.min_version:
            exists_args.append(f"--atleast-version={requirement.min_version}")
        exists_args.append(requirement.name)

        result = self._query(exists_args)
        if result.returncode != 0:
            detail = result.stderr.strip()
            message = f"{requirement.describe()} not found"
            if detail:
                message += f": {detail}"
            raise DependencyNotFoundError(message)

        version = self._query_output(["--modversion", requirement.name], requirement)
        libs = shlex.split(self._query_output(["--libs", requirement.name], requirement))
        cflags = shlex.split(self._query_output(["--cflags", requirement.name], requirement))

        resolved = ResolvedDependency(
            name=requirement.name,
            version=version,
            libs=libs,
            cflags=cflags,
        )
        self._register(resolved)
        return resolved

    def _register(self, resolved: ResolvedDependency) -> None:
        if self.emitter is None:
            return
        for flag in resolved.libs:
            if flag.startswith("-L") and len(flag) > 2:
                self.emitter.link_search(flag[2:])
            elif flag.startswith("-l") and len(flag) > 2:
                self.emitter.link_lib(flag[2:])
