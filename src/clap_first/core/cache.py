"""
Shared dependency cache.

Provides an OS-appropriate cache path for the clap-wrapper checkout and for
CPM's source cache, so every clap-first invocation on a machine shares one
copy of the fetched SDKs.

Several invocations may populate the cache at the same time. Entries are
content-addressed by revision and only ever appear through an atomic
rename of a fully written directory, so a reader either sees a complete
checkout or nothing.
"""

import os
import platform
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from clap_first.core.runner import diagnostics_of, run_command
from clap_first.errors import PackagingError

# Pinned clap-wrapper revision (tag or branch accepted by git clone --branch)
CLAP_WRAPPER_REVISION = "v0.12.1"
CLAP_WRAPPER_URL = "https://github.com/free-audio/clap-wrapper.git"

# Written inside a checkout once it is complete
REVISION_MARKER = ".clap-first-revision"


def get_cache_dir() -> Path:
    """Return the OS-appropriate shared cache directory.

    - macOS:   ~/Library/Caches/clap-first/
    - Linux:   $XDG_CACHE_HOME/clap-first/ (defaults to ~/.cache/)
    - Windows: %LOCALAPPDATA%/clap-first/
    """
    system = platform.system()
    if system == "Darwin":
        base = Path.home() / "Library" / "Caches"
    elif system == "Windows":
        local = os.environ.get("LOCALAPPDATA")
        base = Path(local) if local else Path.home() / "AppData" / "Local"
    else:
        xdg = os.environ.get("XDG_CACHE_HOME")
        base = Path(xdg) if xdg else Path.home() / ".cache"

    return base / "clap-first"


def resolve_cache_dir() -> Path:
    """Cache directory, honouring the CLAP_FIRST_CACHE_DIR override."""
    env_cache = os.environ.get("CLAP_FIRST_CACHE_DIR")
    if env_cache:
        return Path(env_cache)
    return get_cache_dir()


def resolve_revision() -> str:
    """clap-wrapper revision, honouring CLAP_FIRST_CLAP_WRAPPER_REV."""
    return os.environ.get("CLAP_FIRST_CLAP_WRAPPER_REV") or CLAP_WRAPPER_REVISION


def cpm_cache_dir(cache_dir: Optional[Path] = None) -> Path:
    """Directory handed to CPM as CPM_SOURCE_CACHE."""
    return (cache_dir or resolve_cache_dir()) / "cpm"


def clap_wrapper_dir(revision: str, cache_dir: Optional[Path] = None) -> Path:
    """Content-addressed checkout path for a clap-wrapper revision."""
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", revision)
    return (cache_dir or resolve_cache_dir()) / f"clap-wrapper-{safe}"


def is_populated(checkout: Path, revision: str) -> bool:
    """Whether checkout holds a complete clone of revision."""
    marker = checkout / REVISION_MARKER
    if not marker.is_file():
        return False
    return marker.read_text(encoding="utf-8").strip() == revision


def ensure_clap_wrapper(
    revision: Optional[str] = None,
    cache_dir: Optional[Path] = None,
    verbose: bool = False,
) -> Path:
    """Ensure clap-wrapper is checked out at revision, cloning if necessary.

    Safe to call from concurrent invocations: each one clones into its own
    temporary sibling and renames it into place; a loser of the race
    discards its clone and uses the winner's.

    Args:
        revision: Tag or branch to check out (default: pinned revision).
        cache_dir: Cache root (default: resolve_cache_dir()).
        verbose: Print progress and stream git output.

    Returns:
        Path to the clap-wrapper source tree.

    Raises:
        PackagingError: If git is missing, the clone fails or the cache
            directory cannot be written.
    """
    revision = revision or resolve_revision()
    cache_dir = cache_dir or resolve_cache_dir()
    dest = clap_wrapper_dir(revision, cache_dir)

    if is_populated(dest, revision):
        return dest

    if dest.exists():
        raise PackagingError(
            f"Cache entry {dest} exists but is incomplete. "
            "Remove it and re-run the build."
        )

    if not shutil.which("git"):
        raise PackagingError(
            "git is required to fetch clap-wrapper. Install git and ensure it is on PATH."
        )

    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{dest.name}.", dir=cache_dir))
    except OSError as e:
        raise PackagingError(f"Cannot create cache directory {cache_dir}: {e}") from e

    try:
        clone_dir = staging / "src"
        if verbose:
            print(f"Cloning clap-wrapper {revision} from {CLAP_WRAPPER_URL} ...")
        result = run_command(
            [
                "git",
                "clone",
                "--depth",
                "1",
                "--branch",
                revision,
                CLAP_WRAPPER_URL,
                str(clone_dir),
            ],
            verbose=verbose,
        )
        if result.returncode != 0:
            raise PackagingError(
                f"Failed to clone clap-wrapper {revision}",
                diagnostics=diagnostics_of(result),
            )

        try:
            (clone_dir / REVISION_MARKER).write_text(revision + "\n", encoding="utf-8")
            os.rename(clone_dir, dest)
        except OSError as e:
            # Another invocation renamed its clone into place first
            if not is_populated(dest, revision):
                raise PackagingError(
                    f"Failed to store clap-wrapper in cache: {e}"
                ) from e
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    return dest


def list_cache_entries(cache_dir: Optional[Path] = None) -> list[tuple[str, Path]]:
    """List complete clap-wrapper checkouts as (revision, path) pairs."""
    cache_dir = cache_dir or resolve_cache_dir()
    if not cache_dir.is_dir():
        return []
    entries = []
    for d in sorted(cache_dir.iterdir()):
        if not d.is_dir() or not d.name.startswith("clap-wrapper-"):
            continue
        marker = d / REVISION_MARKER
        if marker.is_file():
            entries.append((marker.read_text(encoding="utf-8").strip(), d))
    return entries
