"""
Install finished bundles into user plugin directories.

Each format has its own conventional directory; the mapping lives on the
format classes. Windows installs are not supported and are rejected before
anything touches the filesystem.
"""

import shutil
from pathlib import Path
from typing import Iterable, Optional

from clap_first.core.host import HostPlatform
from clap_first.errors import InstallError, UnsupportedPlatform
from clap_first.formats import format_for_bundle


class Installer:
    """Copy bundles to per-format user plugin directories."""

    def __init__(self, home: Optional[Path] = None, verbose: bool = False):
        """
        Initialize installer.

        Args:
            home: User home directory (default: Path.home()).
            verbose: Print each installed bundle.
        """
        self.home = Path(home) if home is not None else Path.home()
        self.verbose = verbose

    def destination_for(self, bundle: Path, host: HostPlatform) -> Path:
        """
        Install path for a bundle on host.

        Raises:
            InstallError: If the bundle's format is unknown or has no
                install location on host.
        """
        fmt = format_for_bundle(bundle)
        if fmt is None:
            raise InstallError(f"Cannot determine plugin format of {bundle}")
        directory = fmt.install_dir(host, self.home)
        if directory is None:
            raise InstallError(
                f"No {fmt.cmake_name} install location on {host.value}"
            )
        return directory / bundle.name

    def install(self, bundles: Iterable[Path], host: HostPlatform) -> list[Path]:
        """
        Copy every bundle into its format's plugin directory.

        Existing bundles of the same name are replaced.

        Args:
            bundles: Bundle paths (files or directories).
            host: Platform being installed on.

        Returns:
            Installed paths, in input order.

        Raises:
            UnsupportedPlatform: On Windows (nothing is written).
            InstallError: If a bundle is missing or copying fails.
        """
        if host.is_windows:
            raise UnsupportedPlatform(
                "Installing plugins is not supported on Windows. "
                "Copy the bundles from the output directory manually."
            )

        # Plan everything first so a bad bundle fails before any write
        plan = []
        for bundle in bundles:
            bundle = Path(bundle)
            if not bundle.exists():
                raise InstallError(f"Bundle not found: {bundle}")
            plan.append((bundle, self.destination_for(bundle, host)))

        installed = []
        for bundle, dest in plan:
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                if dest.is_symlink() or dest.is_file():
                    dest.unlink()
                elif dest.is_dir():
                    shutil.rmtree(dest)

                if bundle.is_dir():
                    shutil.copytree(bundle, dest, symlinks=True)
                else:
                    shutil.copy2(bundle, dest)
            except OSError as e:
                raise InstallError(f"Failed to install {bundle.name} to {dest}: {e}") from e

            if self.verbose:
                print(f"Installed {bundle.name} -> {dest}")
            installed.append(dest)

        return installed
