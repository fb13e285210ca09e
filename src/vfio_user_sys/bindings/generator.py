"""Binding generation.

Builds the parse request for the library's public header, runs the header
binder and writes the result to the binding output path.

The file on disk is either the complete output of this run or absent: text is
written to a temporary sibling and moved into place, and when generation
fails any binding file left by an earlier run is removed so a stale surface
cannot outlive a broken header.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from ..directives import DirectiveEmitter
from .binder import BindingWriteError, BindOptions, GenerateFailure, IHeaderBinder

if TYPE_CHECKING:
    from ..build.paths import PathSet


class BindingGenerator:
    """Runs a header binder and writes the generated module."""

    def __init__(
        self,
        binder: IHeaderBinder,
        emitter: Optional[DirectiveEmitter] = None,
        clang_args: Sequence[str] = (),
    ):
        """
        Args:
            binder: Header parser/generator
            emitter: Receives rerun-if-changed for every file the parse used
            clang_args: Extra compiler arguments for the parse
        """
        self.binder = binder
        self.emitter = emitter
        self.clang_args = tuple(clang_args)

    def build_options(self, paths: "PathSet") -> BindOptions:
        """Parse request for the header in paths."""
        callback = self.emitter.rerun_if_changed if self.emitter is not None else None
        return BindOptions(
            header_path=paths.header_path,
            allowlist_file=paths.header_path,
            parse_all_comments=True,
            clang_args=self.clang_args,
            invalidation_callback=callback,
        )

    def generate(self, paths: "PathSet") -> Path:
        """
        Generate bindings and write them to paths.binding_output_path.

        Args:
            paths: Resolved paths for this run

        Returns:
            Path of the written binding file

        Raises:
            GenerateFailure: If the header is missing or cannot be parsed
            BindingWriteError: If the output cannot be written
        """
        try:
            text = self._generate_text(paths)
            write_atomic(paths.binding_output_path, text)
        except GenerateFailure:
            remove_stale(paths.binding_output_path)
            raise

        logging.info(f"Wrote bindings: {paths.binding_output_path}")
        return paths.binding_output_path

    def _generate_text(self, paths: "PathSet") -> str:
        header = paths.header_path
        if not header.is_file():
            raise GenerateFailure(f"Header not found: {header}")
        if not os.access(header, os.R_OK):
            raise GenerateFailure(f"Header is not readable: {header}")

        try:
            return self.binder.generate(self.build_options(paths))
        except GenerateFailure:
            raise
        except Exception as e:
            raise GenerateFailure(f"Unable to generate bindings for {header}: {e}") from e


def write_atomic(path: Path, text: str) -> None:
    """
    Replace path with text in one step.

    Raises:
        BindingWriteError: If the directory cannot be created or written
    """
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise BindingWriteError(f"Couldn't write bindings to {path}: {e}") from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def remove_stale(path: Path) -> None:
    """Delete a binding file from an earlier run, if any."""
    try:
        path.unlink()
        logging.warning(f"Removed stale bindings: {path}")
    except (FileNotFoundError, NotADirectoryError):
        pass
