"""
VST3 format.

clap-wrapper fetches the VST3 SDK itself and wraps the CLAP entry into a
.vst3 bundle (a directory on every platform).
"""

from pathlib import Path
from typing import Optional

from clap_first.core.host import HostPlatform
from clap_first.formats.base import Format, PluginFormat


class Vst3Format(Format):
    """VST3 plugin format."""

    name = "vst3"
    cmake_name = "VST3"

    @property
    def plugin_format(self) -> PluginFormat:
        return PluginFormat.VST3

    @property
    def extension(self) -> str:
        """Get the bundle extension for VST3 plugins."""
        return ".vst3"

    def install_dir(self, host: HostPlatform, home: Path) -> Optional[Path]:
        """VST3 user directory: ~/Library/Audio/Plug-Ins/VST3 or ~/.vst3."""
        if host.is_apple:
            return home / "Library" / "Audio" / "Plug-Ins" / "VST3"
        if host.is_windows:
            return None
        return home / ".vst3"
