"""Header binder interface.

A header binder turns a C header into the text of a Python module. The
pipeline only depends on this interface, so tests can substitute a fake and
never need libclang.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Tuple

from ..errors import VfioUserSysError

InvalidationCallback = Callable[[Path], None]


class GenerateFailure(VfioUserSysError):
    """Raised when bindings cannot be generated from the header."""
    pass


class BindingWriteError(GenerateFailure):
    """Raised when generated bindings cannot be written to disk."""
    pass


@dataclass(frozen=True)
class BindOptions:
    """Parse request handed to a header binder.

    Attributes:
        header_path: Header to parse
        allowlist_file: Only declarations from this file (and what they
            reach) are emitted
        parse_all_comments: Keep plain /* */ comments, not just doc comments
        clang_args: Extra compiler arguments (include dirs, defines)
        invalidation_callback: Called with every file the parse depended on
    """

    header_path: Path
    allowlist_file: Path
    parse_all_comments: bool = True
    clang_args: Tuple[str, ...] = ()
    invalidation_callback: Optional[InvalidationCallback] = field(
        default=None, compare=False
    )

    def notify(self, path: Path) -> None:
        if self.invalidation_callback is not None:
            self.invalidation_callback(path)


class IHeaderBinder(ABC):
    """Interface for header parsers/generators."""

    @abstractmethod
    def generate(self, options: BindOptions) -> str:
        """Parse the header and return the generated module text.

        Args:
            options: Parse request

        Returns:
            Python source text

        Raises:
            GenerateFailure: If the header cannot be parsed
        """
        pass
