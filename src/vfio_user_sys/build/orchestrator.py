"""
Build orchestration for vfio-user-sys.

This module sequences the whole build-and-bind pipeline and owns its failure
policy. Components raise their own errors; only this module decides which are
fatal:
- Path resolution (PathError: fatal)
- Linker directives and header invalidation
- Dependency probing (ProbeWarning: logged and emitted, never fatal)
- Native build with meson (BuildFailure: fatal)
- Binding generation (GenerateFailure / BindingWriteError: fatal)
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from ..bindings.binder import GenerateFailure, IHeaderBinder
from ..bindings.generator import BindingGenerator, remove_stale
from ..config import BuildConfiguration, LibraryConfig
from ..dependencies import (
    DependencyProbe,
    IDependencyResolver,
    PkgConfigResolver,
    ProbeResult,
    ProbeWarning,
)
from ..directives import Directive, DirectiveEmitter
from .artifact_mode import ArtifactMode, mode_for
from .linker_config import LinkerConfigurator
from .native_builder import BuildFailure, INativeBuilder, MesonBuilder
from .paths import PathError, PathResolver, PathSet


@dataclass
class PipelineResult:
    """Result of a complete pipeline run."""

    success: bool
    mode: ArtifactMode
    paths: Optional[PathSet] = None
    probes: List[ProbeResult] = field(default_factory=list)
    built: bool = False
    binding_path: Optional[Path] = None
    directives: List[Directive] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    message: str = ""
    error: Optional[Exception] = None
    elapsed: float = 0.0


class BuildOrchestrator:
    """
    Orchestrates building libvfio-user and generating its bindings.

    Phases, strictly in order and single-threaded:
    1. Resolve paths
    2. Emit linker directives and the header invalidation directive
    3. Probe native dependencies (soft failures)
    4. Build the library, unless the mode is ANY
    5. Generate and write the bindings

    Example usage:
        orchestrator = BuildOrchestrator(
            BuildConfiguration.from_env(),
            ProjectConfig.load(Path(".")).get_library_config(),
        )
        result = orchestrator.run()
        if result.success:
            print(f"Bindings: {result.binding_path}")
    """

    def __init__(
        self,
        config: BuildConfiguration,
        library: LibraryConfig,
        builder: Optional[INativeBuilder] = None,
        resolver: Optional[IDependencyResolver] = None,
        binder: Optional[IHeaderBinder] = None,
        emitter: Optional[DirectiveEmitter] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Artifact flags, read once at process entry
            library: Library layout, dependencies and meson options
            builder: Native build system (default: meson)
            resolver: Dependency resolver (default: pkg-config)
            binder: Header binder (default: libclang)
            emitter: Directive sink (default: stdout)
        """
        self.config = config
        self.library = library
        self.emitter = emitter or DirectiveEmitter()
        self.builder = builder or MesonBuilder(options=library.meson_options)
        self.resolver = resolver or PkgConfigResolver(self.emitter)
        self._binder = binder

    @property
    def binder(self) -> IHeaderBinder:
        if self._binder is None:
            # libclang is only needed when no binder was supplied
            from ..bindings.clang_binder import ClangHeaderBinder

            self._binder = ClangHeaderBinder()
        return self._binder

    def run(self, output_dir: Optional[Union[str, Path]] = None) -> PipelineResult:
        """
        Execute the pipeline.

        Args:
            output_dir: Output directory; None reads VFIO_USER_SYS_OUT_DIR

        Returns:
            PipelineResult; on a fatal error success is False and message
            holds the originating error text unchanged
        """
        start_time = time.time()
        mode = mode_for(self.config)
        result = PipelineResult(success=False, mode=mode)
        logging.info(f"Artifact mode: {mode.value}")

        try:
            # Phase 1: Resolve paths
            resolver = PathResolver(self.library.source_root, self.library.header)
            paths = resolver.resolve(output_dir)
            result.paths = paths
            logging.debug(f"Paths: {paths}")

            # Phase 2: Linker directives
            LinkerConfigurator(self.emitter, self.library.name).configure(paths, mode)

            # Phase 3: Dependency probes
            def report(warning: ProbeWarning) -> None:
                result.warnings.append(warning.message)
                logging.warning(warning.message)
                self.emitter.warning(warning.message)

            result.probes = DependencyProbe(self.resolver).probe_all(
                self.library.requirements, on_warning=report
            )

            # Phase 4: Native build
            if mode.requires_build:
                logging.info(f"Building {self.library.name} ({mode.default_library})...")
                self.builder.build(paths, mode)
                result.built = True
            else:
                logging.info(
                    f"No build requested; linking against a system {self.library.name}"
                )

            # Phase 5: Bindings
            generator = BindingGenerator(
                self.binder, self.emitter, clang_args=self._probe_clang_args(result.probes)
            )
            result.binding_path = generator.generate(paths)

        except (PathError, BuildFailure, GenerateFailure) as e:
            logging.error(str(e))
            # Bindings from an earlier run would not match a failed build
            if result.paths is not None:
                remove_stale(result.paths.binding_output_path)
            result.message = str(e)
            result.error = e
            result.directives = list(self.emitter.directives)
            result.elapsed = time.time() - start_time
            return result

        result.success = True
        result.message = "Bindings generated"
        result.directives = list(self.emitter.directives)
        result.elapsed = time.time() - start_time
        return result

    @staticmethod
    def _probe_clang_args(probes: List[ProbeResult]) -> List[str]:
        """Include dirs and defines from resolved dependencies, deduplicated."""
        args: List[str] = []
        for probe in probes:
            if probe.resolved is None:
                continue
            for flag in probe.resolved.cflags:
                if flag.startswith(("-I", "-D", "-U")) and flag not in args:
                    args.append(flag)
        return args
