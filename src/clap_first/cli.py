"""
Command-line interface for clap_first.

Usage:
    clap-first build <target> [--release] [--bundle-id ID] [--formats LIST]
                              [--clean] [--install] [-o DIR] [-v]
    clap-first formats
    clap-first cache
    clap-first clean [--project-root DIR]
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Optional

from clap_first import __version__
from clap_first.core.cache import (
    CLAP_WRAPPER_URL,
    clap_wrapper_dir,
    is_populated,
    list_cache_entries,
    resolve_cache_dir,
    resolve_revision,
)
from clap_first.core.cleanup import clean
from clap_first.core.config import DEFAULT_BUNDLE_ID, build_root_for
from clap_first.core.host import current_platform
from clap_first.core.pipeline import Pipeline
from clap_first.errors import ClapFirstError, ValidationError
from clap_first.formats import get_format, list_formats

# Conventional shell exit code for SIGINT
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="clap-first",
        description="Build CLAP, VST3 and AUv2 plugins from a Rust CLAP crate",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Debug build of every format the host supports
  clap-first build gain-example

  # Release build of CLAP and VST3 only, installed for the current user
  clap-first build gain-example --release --formats clap,vst3 --install

  # List plugin formats and which ones this host can build
  clap-first formats

  # Show the shared dependency cache
  clap-first cache

Exit codes:
  0 success, 2 validation, 3 compile, 4 artifact missing, 5 packaging,
  6 install, 7 cleanup, 130 interrupted
""",
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"clap-first {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build a crate as plugin bundles",
        description="Compile the crate, bridge its CLAP entry and package bundles.",
    )
    build_parser.add_argument(
        "target",
        help="Cargo package to build as a static library",
    )
    build_parser.add_argument(
        "--release",
        action="store_true",
        help="Release profile (default: debug)",
    )
    build_parser.add_argument(
        "--bundle-id",
        default=DEFAULT_BUNDLE_ID,
        help=f"Reverse-DNS bundle identifier (default: {DEFAULT_BUNDLE_ID})",
    )
    build_parser.add_argument(
        "--formats",
        help=f"Comma-separated formats: {', '.join(list_formats())} "
        "(default: every format the host supports)",
    )
    build_parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove previous build state first",
    )
    build_parser.add_argument(
        "--install",
        action="store_true",
        help="Install bundles into the user plugin directories (not on Windows)",
    )
    build_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Bundle output directory (default: target/clap-first/plugins/<profile>)",
    )
    build_parser.add_argument(
        "--project-root",
        type=Path,
        help="Cargo workspace root (default: current directory)",
    )
    build_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show build output in real-time",
    )

    # formats command
    subparsers.add_parser(
        "formats",
        help="List plugin formats",
        description="Show all plugin formats and whether this host can build them.",
    )

    # cache command
    subparsers.add_parser(
        "cache",
        help="Show the shared dependency cache",
        description="Show the cache directory and fetched clap-wrapper revisions.",
    )

    # clean command
    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove clap-first build state",
        description="Delete everything under <project>/target/clap-first.",
    )
    clean_parser.add_argument(
        "--project-root",
        type=Path,
        help="Cargo workspace root (default: current directory)",
    )
    clean_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="List removed entries",
    )

    return parser


def _print_error(e: ClapFirstError, verbose: bool = False) -> None:
    print(f"Error: {e}", file=sys.stderr)
    # Streamed output was already shown in verbose mode
    if e.diagnostics and not verbose:
        print(e.diagnostics.rstrip(), file=sys.stderr)


def cmd_build(args: argparse.Namespace) -> int:
    """Handle the build command."""
    raw = {
        "target": args.target,
        "release": args.release,
        "bundle_id": args.bundle_id,
        "formats": args.formats,
        "clean": args.clean,
        "install": args.install,
        "output": args.output,
        "project_root": args.project_root,
        "verbose": args.verbose,
    }

    try:
        pipeline = Pipeline.from_options(raw)
    except ValidationError as e:
        print("Configuration errors:", file=sys.stderr)
        for err in e.errors:
            print(f"  - {err}", file=sys.stderr)
        return e.exit_code

    config = pipeline.config
    try:
        result = pipeline.run()
    except KeyboardInterrupt:
        print(f"Interrupted ({pipeline.state.value})", file=sys.stderr)
        return EXIT_INTERRUPTED
    except ClapFirstError as e:
        _print_error(e, verbose=config.verbose)
        return e.exit_code

    print("Build successful!")
    for plugin_format, bundle in result.bundles.items():
        print(f"  {get_format(plugin_format).cmake_name}: {bundle}")
    if result.installed:
        print("Installed:")
        for path in result.installed:
            print(f"  {path}")
    else:
        print(f"Plugins are available in: {config.output_dir}")
    return 0


def cmd_formats(args: argparse.Namespace) -> int:
    """Handle the formats command."""
    host = current_platform()
    for name in list_formats():
        fmt = get_format(name)
        status = "" if fmt.supports(host) else "  (macOS only)"
        print(f"{name:<6} {fmt.cmake_name:<5} {fmt.extension}{status}")
    return 0


def cmd_cache(args: argparse.Namespace) -> int:
    """Handle the cache command."""
    env_cache = os.environ.get("CLAP_FIRST_CACHE_DIR")
    cache_dir = resolve_cache_dir()
    if env_cache:
        print(f"Cache directory: {cache_dir}  (CLAP_FIRST_CACHE_DIR)")
    else:
        print(f"Cache directory: {cache_dir}")
    print()

    revision = resolve_revision()
    pinned = clap_wrapper_dir(revision, cache_dir)
    print(f"clap-wrapper {revision} ({CLAP_WRAPPER_URL}):")
    print(f"  Path: {pinned}")
    print(f"  Status: {'present' if is_populated(pinned, revision) else 'not fetched'}")
    print()

    entries = list_cache_entries(cache_dir)
    print("Fetched revisions:")
    if entries:
        for rev, path in entries:
            print(f"  {rev}  ({path})")
    else:
        print("  (none)")
    return 0


def cmd_clean(args: argparse.Namespace) -> int:
    """Handle the clean command."""
    project_root = (args.project_root or Path.cwd()).resolve()
    build_root = build_root_for(project_root)

    try:
        removed = clean(build_root, verbose=args.verbose)
    except ClapFirstError as e:
        _print_error(e)
        return e.exit_code

    if removed:
        print(f"Removed {len(removed)} entries from {build_root}")
    else:
        print(f"Nothing to clean in {build_root}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "build": cmd_build,
        "formats": cmd_formats,
        "cache": cmd_cache,
        "clean": cmd_clean,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
