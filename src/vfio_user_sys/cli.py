"""
Command-line interface for vfio-user-sys.

This module provides the `vfio-user-sys` CLI tool that builds libvfio-user and
generates its Python bindings. Build directives go to stdout, logs to stderr.
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from vfio_user_sys import __version__
from vfio_user_sys.build import BuildOrchestrator, PathError, PathResolver
from vfio_user_sys.cli_utils import ErrorFormatter, PathValidator, setup_logging
from vfio_user_sys.config import BuildConfiguration, ConfigError, ProjectConfig


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    project_dir: Path
    out_dir: Optional[Path] = None
    static: bool = False
    shared: bool = False
    verbose: bool = False


@dataclass
class PathsArgs:
    """Arguments for the paths command."""

    project_dir: Path
    out_dir: Optional[Path] = None
    verbose: bool = False


def build_command(args: BuildArgs) -> None:
    """Build libvfio-user and generate bindings.

    Examples:
        vfio-user-sys build                        # Use VFIO_USER_SYS_OUT_DIR
        vfio-user-sys build --out-dir out          # Explicit output directory
        vfio-user-sys build --static               # Build the static archive
        vfio-user-sys build --static --shared      # Build both artifacts
    """
    setup_logging(args.verbose)
    PathValidator.validate_project_dir(args.project_dir)

    try:
        library = ProjectConfig.load(args.project_dir).get_library_config()
        # Flags only ever turn a mode on; unset flags defer to the environment
        config = BuildConfiguration.from_env(
            want_static=True if args.static else None,
            want_shared=True if args.shared else None,
        )

        orchestrator = BuildOrchestrator(config, library)
        result = orchestrator.run(args.out_dir)

        if result.success:
            ErrorFormatter.print_success(f"Bindings generated ({result.mode.value})")
            print(f"Bindings: {result.binding_path}", file=sys.stderr)
            for warning in result.warnings:
                ErrorFormatter.print_warning(warning)
            print(f"Build time: {result.elapsed:.2f}s", file=sys.stderr)
            sys.exit(0)
        else:
            ErrorFormatter.print_error("Build failed!", result.message)
            sys.exit(1)

    except ConfigError as e:
        ErrorFormatter.print_error("Configuration error", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def paths_command(args: PathsArgs) -> None:
    """Print the resolved path layout without building anything.

    Examples:
        vfio-user-sys paths --out-dir out
    """
    setup_logging(args.verbose)
    PathValidator.validate_project_dir(args.project_dir)

    try:
        library = ProjectConfig.load(args.project_dir).get_library_config()
        paths = PathResolver(library.source_root, library.header).resolve(args.out_dir)
    except (ConfigError, PathError) as e:
        ErrorFormatter.print_error("Error", str(e))
        sys.exit(1)

    print(f"source_root:         {paths.source_root}")
    print(f"header_path:         {paths.header_path}")
    print(f"output_dir:          {paths.output_dir}")
    print(f"build_dir:           {paths.build_dir}")
    print(f"artifact_dir:        {paths.artifact_dir}")
    print(f"binding_output_path: {paths.binding_output_path}")
    sys.exit(0)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vfio-user-sys",
        description="Build libvfio-user and generate Python bindings",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vfio-user-sys {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build the library and generate bindings",
    )
    build_parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    build_parser.add_argument(
        "-o",
        "--out-dir",
        type=Path,
        default=None,
        help="Output directory (default: $VFIO_USER_SYS_OUT_DIR)",
    )
    build_parser.add_argument(
        "--static",
        action="store_true",
        help="Build the static library (same as VFIO_USER_SYS_BUILD_STATIC=1)",
    )
    build_parser.add_argument(
        "--shared",
        action="store_true",
        help="Build the shared library (same as VFIO_USER_SYS_BUILD_SHARED=1)",
    )
    build_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose build output",
    )

    # Paths command
    paths_parser = subparsers.add_parser(
        "paths",
        help="Show where the pipeline reads and writes",
    )
    paths_parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    paths_parser.add_argument(
        "-o",
        "--out-dir",
        type=Path,
        default=None,
        help="Output directory (default: $VFIO_USER_SYS_OUT_DIR)",
    )
    paths_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """vfio-user-sys - libvfio-user build and bindings tool."""
    parser = create_parser()
    parsed_args = parser.parse_args(argv)

    if parsed_args.command == "build":
        build_command(
            BuildArgs(
                project_dir=parsed_args.project_dir,
                out_dir=parsed_args.out_dir,
                static=parsed_args.static,
                shared=parsed_args.shared,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "paths":
        paths_command(
            PathsArgs(
                project_dir=parsed_args.project_dir,
                out_dir=parsed_args.out_dir,
                verbose=parsed_args.verbose,
            )
        )
    else:
        parser.print_help()
        sys.exit(2)


if __name__ == "__main__":
    main()
