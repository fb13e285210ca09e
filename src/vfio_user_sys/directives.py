"""Build directives.

Directives are the only channel from this pipeline to the enclosing build
process. Each one is written to stdout as a single prefixed line, e.g.

    vfio-user-sys:link-search=/out/build/lib
    vfio-user-sys:link-lib=static=vfio-user
    vfio-user-sys:rerun-if-changed=/src/libvfio-user/include/libvfio-user.h
    vfio-user-sys:warning=Could not find cmocka, build may fail

Lines without the prefix (tool output, summaries) are ignored by consumers.
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, TextIO, Union

DIRECTIVE_PREFIX = "vfio-user-sys:"

LINK_SEARCH = "link-search"
LINK_LIB = "link-lib"
RERUN_IF_CHANGED = "rerun-if-changed"
WARNING = "warning"


@dataclass(frozen=True)
class Directive:
    """A single key=value directive."""

    key: str
    value: str

    def render(self, prefix: str = DIRECTIVE_PREFIX) -> str:
        return f"{prefix}{self.key}={self.value}"


class DirectiveEmitter:
    """Records directives and writes them to a stream as they are emitted.

    rerun-if-changed entries are de-duplicated: the header can be reported by
    both the linker configuration step and the header parser, but the consumer
    sees it once.
    """

    def __init__(self, stream: Optional[TextIO] = None, prefix: str = DIRECTIVE_PREFIX):
        self.stream = stream
        self.prefix = prefix
        self.directives: List[Directive] = []
        self._watched: set = set()

    def _emit(self, key: str, value: str) -> None:
        directive = Directive(key, value)
        self.directives.append(directive)
        stream = self.stream if self.stream is not None else sys.stdout
        stream.write(directive.render(self.prefix) + "\n")
        stream.flush()

    def link_search(self, path: Union[str, Path]) -> None:
        self._emit(LINK_SEARCH, str(path))

    def link_lib(self, name: str, kind: Optional[str] = None) -> None:
        """Emit a link-lib directive; kind None leaves the choice to the linker."""
        value = f"{kind}={name}" if kind else name
        self._emit(LINK_LIB, value)

    def rerun_if_changed(self, path: Union[str, Path]) -> None:
        key = str(path)
        if key in self._watched:
            return
        self._watched.add(key)
        self._emit(RERUN_IF_CHANGED, key)

    def warning(self, message: str) -> None:
        # Multi-line messages would break the line protocol
        for line in message.splitlines() or [""]:
            self._emit(WARNING, line)

    def values(self, key: str) -> List[str]:
        """All values emitted so far for a directive key, in order."""
        return [d.value for d in self.directives if d.key == key]
