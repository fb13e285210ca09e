"""Linker configuration.

Emits the directives the downstream link step consumes: where to search for
the library, which kind of library to link, and which file invalidates the
whole pipeline when it changes.
"""

from ..directives import DirectiveEmitter
from .artifact_mode import ArtifactMode
from .paths import PathSet


class LinkerConfigurator:
    """Emits link-search, link-lib and rerun-if-changed directives."""

    def __init__(self, emitter: DirectiveEmitter, library_name: str):
        """
        Args:
            emitter: Directive sink
            library_name: Library name without lib prefix or suffix
        """
        self.emitter = emitter
        self.library_name = library_name

    def configure(self, paths: PathSet, mode: ArtifactMode) -> None:
        """
        Emit linker directives for the selected artifact mode.

        Args:
            paths: Resolved paths for this run
            mode: Selected artifact mode
        """
        self.emitter.link_search(paths.artifact_dir)
        self.emitter.link_lib(self.library_name, mode.link_kind)
        self.emitter.rerun_if_changed(paths.header_path)
