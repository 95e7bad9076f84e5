"""
CLAP format.

The canonical format: clap-wrapper builds the .clap directly from the
bridging unit, the other formats are derived from it.
"""

from pathlib import Path
from typing import Optional

from clap_first.core.host import HostPlatform
from clap_first.formats.base import Format, PluginFormat


class ClapFormat(Format):
    """CLAP plugin format."""

    name = "clap"
    cmake_name = "CLAP"

    @property
    def plugin_format(self) -> PluginFormat:
        return PluginFormat.CLAP

    @property
    def extension(self) -> str:
        """Get the bundle extension for CLAP plugins."""
        return ".clap"

    def install_dir(self, host: HostPlatform, home: Path) -> Optional[Path]:
        """CLAP user directory: ~/Library/Audio/Plug-Ins/CLAP or ~/.clap."""
        if host.is_apple:
            return home / "Library" / "Audio" / "Plug-Ins" / "CLAP"
        if host.is_windows:
            return None
        return home / ".clap"
