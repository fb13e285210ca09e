"""
Unit tests for BuildOrchestrator.

Tests the complete pipeline with substituted collaborators:
- Artifact mode and linker directives
- Dependency probing as soft failures
- Conditional native build
- Binding generation and failure policy
"""

import io
import os
import re
from pathlib import Path
from typing import List
from unittest.mock import patch

import pytest

from vfio_user_sys.bindings import BindOptions, CtypesEmitter, GenerateFailure, IHeaderBinder
from vfio_user_sys.bindings.declarations import FunctionDecl, HeaderDeclarations, ParamDecl
from vfio_user_sys.build import ArtifactMode, BuildFailure, BuildOrchestrator, INativeBuilder, MesonBuilder
from vfio_user_sys.build.paths import OUT_DIR_ENV, PathSet
from vfio_user_sys.config import BuildConfiguration, LibraryConfig
from vfio_user_sys.dependencies import (
    DependencyNotFoundError,
    DependencyRequirement,
    IDependencyResolver,
    ResolvedDependency,
)
from vfio_user_sys.directives import DirectiveEmitter

HEADER = """\
#include <stdint.h>

typedef struct vfu_ctx vfu_ctx_t;

/* Create a context. */
vfu_ctx_t *vfu_create_ctx(int trans, const char *path, int flags, void *pvt, int dev_type);

int vfu_realize_ctx(vfu_ctx_t *vfu_ctx);

void vfu_destroy_ctx(vfu_ctx_t *vfu_ctx);
"""

_PROTOTYPE = re.compile(r"^[\w\s\*]+?\b(\w+)\(([^)]*)\);", re.MULTILINE)


class FakeBinder(IHeaderBinder):
    """Emits one int-returning ForeignFunction per prototype in the header."""

    def __init__(self):
        self.calls: List[BindOptions] = []

    def generate(self, options: BindOptions) -> str:
        self.calls.append(options)
        options.notify(options.header_path)
        text = options.header_path.read_text()
        functions = [
            FunctionDecl(
                name,
                "ctypes.c_int",
                [ParamDecl(f"arg{i}", "ctypes.c_void_p") for i, _ in enumerate(params.split(","))],
            )
            for name, params in _PROTOTYPE.findall(text)
        ]
        return CtypesEmitter().render(
            HeaderDeclarations(options.header_path.name, functions=functions)
        )


class FailingBinder(IHeaderBinder):
    def generate(self, options: BindOptions) -> str:
        raise GenerateFailure(f"{options.header_path}:3: unknown type name 'vfu_ctx_t'")


class FakeBuilder(INativeBuilder):
    """Records builds and drops a fake artifact into the artifact dir."""

    def __init__(self):
        self.calls: List[ArtifactMode] = []

    def build(self, paths: PathSet, mode: ArtifactMode) -> Path:
        self.calls.append(mode)
        paths.artifact_dir.mkdir(parents=True, exist_ok=True)
        (paths.artifact_dir / "libvfio-user.a").write_bytes(b"!<arch>\n")
        return paths.artifact_dir


class FakeResolver(IDependencyResolver):
    """Finds only the packages it was given."""

    def __init__(self, available=None):
        self.available = available or {}
        self.queried: List[str] = []

    def resolve(self, requirement: DependencyRequirement) -> ResolvedDependency:
        self.queried.append(requirement.name)
        if requirement.name not in self.available:
            raise DependencyNotFoundError(f"{requirement.describe()} not found")
        return self.available[requirement.name]


# Test fixtures

@pytest.fixture
def library(tmp_path):
    source_root = tmp_path / "libvfio-user"
    (source_root / "include").mkdir(parents=True)
    (source_root / "include" / "libvfio-user.h").write_text(HEADER)
    return LibraryConfig(source_root=source_root)


@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / "out"


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def all_found():
    return FakeResolver(
        {
            "json-c": ResolvedDependency("json-c", "0.17", ["-ljson-c"], ["-I/usr/include/json-c"]),
            "cmocka": ResolvedDependency("cmocka", "1.1.7", ["-lcmocka"], []),
        }
    )


def make_orchestrator(library, stream, want_static=False, want_shared=False, **kwargs):
    kwargs.setdefault("builder", FakeBuilder())
    kwargs.setdefault("resolver", FakeResolver())
    kwargs.setdefault("binder", FakeBinder())
    return BuildOrchestrator(
        BuildConfiguration(want_static=want_static, want_shared=want_shared),
        library,
        emitter=DirectiveEmitter(stream),
        **kwargs,
    )


class TestPipelineModes:
    """Mode selection drives the build and the link directive."""

    @pytest.mark.parametrize(
        "want_static,want_shared,mode,link",
        [
            (True, True, ArtifactMode.BOTH, "static=vfio-user"),
            (True, False, ArtifactMode.STATIC, "static=vfio-user"),
            (False, True, ArtifactMode.SHARED, "dylib=vfio-user"),
        ],
    )
    def test_building_modes(self, library, out_dir, stream, want_static, want_shared, mode, link):
        builder = FakeBuilder()
        orchestrator = make_orchestrator(library, stream, want_static, want_shared, builder=builder)

        result = orchestrator.run(out_dir)

        assert result.success, result.message
        assert result.mode is mode
        assert result.built
        assert builder.calls == [mode]
        assert orchestrator.emitter.values("link-lib")[0] == link

    def test_any_mode_never_builds(self, library, out_dir, stream):
        builder = FakeBuilder()
        orchestrator = make_orchestrator(library, stream, builder=builder)

        result = orchestrator.run(out_dir)

        assert result.success
        assert result.mode is ArtifactMode.ANY
        assert not result.built
        assert builder.calls == []
        assert orchestrator.emitter.values("link-lib") == ["vfio-user"]
        assert result.binding_path.is_file()
        assert [d.key for d in result.directives[:3]] == [
            "link-search",
            "link-lib",
            "rerun-if-changed",
        ]


class TestDependencyProbing:
    """Probe failures are warnings, never fatal."""

    def test_failed_probe_continues(self, library, out_dir, stream):
        resolver = FakeResolver(
            {"cmocka": ResolvedDependency("cmocka", "1.1.7")}
        )
        builder = FakeBuilder()
        orchestrator = make_orchestrator(
            library, stream, want_static=True, builder=builder, resolver=resolver
        )

        result = orchestrator.run(out_dir)

        assert result.success
        assert resolver.queried == ["json-c", "cmocka"]
        assert builder.calls == [ArtifactMode.STATIC]
        assert result.warnings == ["Could not find json-c >= 0.11, build may fail"]
        assert [p.found for p in result.probes] == [False, True]
        assert "vfio-user-sys:warning=Could not find json-c >= 0.11, build may fail" in (
            stream.getvalue().splitlines()
        )

    def test_all_probes_fail(self, library, out_dir, stream):
        orchestrator = make_orchestrator(library, stream)
        result = orchestrator.run(out_dir)

        assert result.success
        assert len(result.warnings) == 2
        assert orchestrator.emitter.values("warning") == result.warnings

    def test_probe_cflags_reach_the_binder(self, library, out_dir, stream, all_found):
        binder = FakeBinder()
        orchestrator = make_orchestrator(library, stream, resolver=all_found, binder=binder)

        orchestrator.run(out_dir)

        assert binder.calls[0].clang_args == ("-I/usr/include/json-c",)


class TestBindingGeneration:
    """Binding output and failure policy."""

    def test_output_is_byte_identical_across_runs(self, library, out_dir, stream):
        first = make_orchestrator(library, stream, want_shared=True).run(out_dir)
        first_text = first.binding_path.read_bytes()
        second = make_orchestrator(library, io.StringIO(), want_shared=True).run(out_dir)

        assert second.binding_path.read_bytes() == first_text

    def test_rerun_if_changed_is_exactly_the_header(self, library, out_dir, stream):
        orchestrator = make_orchestrator(library, stream)
        result = orchestrator.run(out_dir)

        assert orchestrator.emitter.values("rerun-if-changed") == [str(result.paths.header_path)]

    def test_parse_request(self, library, out_dir, stream):
        binder = FakeBinder()
        result = make_orchestrator(library, stream, binder=binder).run(out_dir)

        options = binder.calls[0]
        assert options.header_path == result.paths.header_path
        assert options.allowlist_file == result.paths.header_path
        assert options.parse_all_comments is True

    def test_missing_header_writes_nothing(self, library, out_dir, stream):
        (library.source_root / "include" / "libvfio-user.h").unlink()
        binder = FakeBinder()

        result = make_orchestrator(library, stream, binder=binder).run(out_dir)

        assert not result.success
        assert "Header not found" in result.message
        assert binder.calls == []
        assert not (out_dir / "bindings.py").exists()

    def test_parse_failure_removes_stale_bindings(self, library, out_dir, stream):
        out_dir.mkdir()
        (out_dir / "bindings.py").write_text("# from an earlier run\n")

        result = make_orchestrator(library, stream, binder=FailingBinder()).run(out_dir)

        assert not result.success
        assert result.message.endswith("unknown type name 'vfu_ctx_t'")
        assert isinstance(result.error, GenerateFailure)
        assert not (out_dir / "bindings.py").exists()


class TestFailurePolicy:
    """Fatal errors stop the run with the original message."""

    def test_build_failure_is_fatal(self, library, out_dir, stream):
        class BrokenBuilder(INativeBuilder):
            def build(self, paths, mode):
                raise BuildFailure("meson.build:12: ERROR: Dependency \"json-c\" not found")

        binder = FakeBinder()
        result = make_orchestrator(
            library, stream, want_static=True, builder=BrokenBuilder(), binder=binder
        ).run(out_dir)

        assert not result.success
        assert result.message == "meson.build:12: ERROR: Dependency \"json-c\" not found"
        assert binder.calls == []
        assert not (out_dir / "bindings.py").exists()

    def test_build_failure_removes_earlier_bindings(self, library, out_dir, stream):
        class BrokenBuilder(INativeBuilder):
            def build(self, paths, mode):
                raise BuildFailure("ninja: build stopped: subcommand failed.")

        out_dir.mkdir()
        (out_dir / "bindings.py").write_text("# from an earlier run\n")

        result = make_orchestrator(
            library, stream, want_shared=True, builder=BrokenBuilder()
        ).run(out_dir)

        assert not result.success
        assert isinstance(result.error, BuildFailure)
        assert not (out_dir / "bindings.py").exists()

    def test_uncreatable_build_dir_is_a_build_failure(self, library, tmp_path, stream):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        result = make_orchestrator(
            library, stream, want_static=True, builder=MesonBuilder(), resolver=FakeResolver()
        ).run(blocker / "out")

        assert not result.success
        assert isinstance(result.error, BuildFailure)
        assert "Couldn't create build directory" in result.message
        assert result.directives

    def test_missing_output_dir_is_fatal(self, library, stream):
        with patch.dict(os.environ, {}, clear=True):
            result = make_orchestrator(library, stream).run()

        assert not result.success
        assert OUT_DIR_ENV in result.message
        assert stream.getvalue() == ""

    def test_output_dir_from_environment(self, library, out_dir, stream):
        with patch.dict(os.environ, {OUT_DIR_ENV: str(out_dir)}):
            result = make_orchestrator(library, stream).run()

        assert result.success
        assert result.binding_path == out_dir / "bindings.py"


class TestEndToEnd:
    """Static configuration through the real meson builder."""

    def test_static_build_with_three_functions(self, library, out_dir, stream, all_found):
        commands = []

        def fake_meson(cmd, cwd=None, env=None):
            commands.append(cmd)
            if cmd[1] == "compile":
                artifact_dir = out_dir / "build" / "lib"
                artifact_dir.mkdir(parents=True)
                (artifact_dir / "libvfio-user.a").write_bytes(b"!<arch>\n")

        orchestrator = make_orchestrator(
            library, stream, want_static=True, builder=MesonBuilder(), resolver=all_found
        )
        with patch("vfio_user_sys.build.native_builder.run_command", side_effect=fake_meson):
            result = orchestrator.run(out_dir)

        assert result.success, result.message
        assert "-Ddefault_library=static" in commands[0]
        assert (out_dir / "build" / "lib" / "libvfio-user.a").is_file()
        assert f"vfio-user-sys:link-search={out_dir / 'build' / 'lib'}" in stream.getvalue()
        assert orchestrator.emitter.values("link-lib")[0] == "static=vfio-user"

        bindings = result.binding_path.read_text()
        assert bindings.count("= ForeignFunction(") == 3
        for name in ("vfu_create_ctx", "vfu_realize_ctx", "vfu_destroy_ctx"):
            assert f'{name} = ForeignFunction("{name}"' in bindings
