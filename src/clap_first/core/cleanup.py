"""
Build state cleanup.

Only ever deletes entries strictly beneath a designated build root. Every
entry is checked before removal, both lexically and after resolving
symlinks, and symlinks themselves are unlinked rather than followed.
"""

import os
import shutil
from pathlib import Path
from typing import Iterable, Optional

from clap_first.errors import CleanupError


def is_within(path: Path, root: Path) -> bool:
    """Whether path lies strictly beneath root (root itself excluded)."""
    try:
        relative = path.relative_to(root)
    except ValueError:
        return False
    return relative != Path(".") and ".." not in relative.parts


class CleanupManager:
    """Remove prior-run build content under a build root."""

    def __init__(self, build_root: Path | str, verbose: bool = False):
        """
        Initialize with the directory cleanup is confined to.

        Args:
            build_root: The only tree this manager may delete from.
            verbose: Print each removed entry.

        Raises:
            CleanupError: If build_root is a filesystem root or a home directory.
        """
        root = Path(os.path.abspath(Path(build_root).expanduser()))
        if root == Path(root.anchor) or root.resolve() == Path.home().resolve():
            raise CleanupError(f"Refusing to use {root} as a build root")
        self.build_root = root
        self.verbose = verbose

    def _check_lexical(self, entry: Path) -> None:
        if not is_within(Path(os.path.abspath(entry)), self.build_root):
            raise CleanupError(
                f"Refusing to delete {entry}: not inside build root {self.build_root}"
            )

    def _check(self, entry: Path) -> None:
        self._check_lexical(entry)
        if not entry.is_symlink():
            resolved_root = self.build_root.resolve()
            if not is_within(entry.resolve(), resolved_root):
                raise CleanupError(
                    f"Refusing to delete {entry}: resolves outside build root "
                    f"{resolved_root}"
                )

    def _remove(self, entry: Path) -> None:
        self._check(entry)
        try:
            if entry.is_symlink() or not entry.is_dir():
                entry.unlink()
            else:
                shutil.rmtree(entry)
        except OSError as e:
            raise CleanupError(f"Failed to remove {entry}: {e}") from e
        if self.verbose:
            print(f"Removed {entry}")

    def clean(self, subdirs: Optional[Iterable[Path | str]] = None) -> list[Path]:
        """
        Remove build content under the root.

        Args:
            subdirs: Entries (relative to the root, or absolute) to remove.
                If None, every entry directly under the root is removed.

        Returns:
            Paths that were removed.

        Raises:
            CleanupError: On containment violations or filesystem errors.
        """
        if not self.build_root.exists():
            return []
        if not self.build_root.is_dir() or self.build_root.is_symlink():
            raise CleanupError(f"Build root {self.build_root} is not a directory")

        if subdirs is None:
            entries = sorted(self.build_root.iterdir())
        else:
            entries = []
            for sub in subdirs:
                sub = Path(sub)
                entry = sub if sub.is_absolute() else self.build_root / sub
                # Containment is checked before existence
                self._check_lexical(entry)
                if entry.exists() or entry.is_symlink():
                    entries.append(entry)

        # Validate everything before deleting anything
        for entry in entries:
            self._check(entry)

        removed = []
        for entry in entries:
            self._remove(entry)
            removed.append(entry)
        return removed


def clean(build_root: Path | str, verbose: bool = False) -> list[Path]:
    """Remove everything strictly beneath build_root."""
    return CleanupManager(build_root, verbose=verbose).clean()
