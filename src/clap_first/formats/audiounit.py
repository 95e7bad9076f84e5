"""
AudioUnit (AUv2) format.

macOS only. clap-wrapper builds a .component bundle against the system
AudioToolbox/AudioUnit frameworks, so the native build must have
Objective-C/C++ enabled.
"""

from pathlib import Path
from typing import Optional

from clap_first.core.host import HostPlatform
from clap_first.formats.base import Format, PluginFormat


class AudioUnitFormat(Format):
    """AudioUnit v2 plugin format."""

    name = "auv2"
    cmake_name = "AUV2"
    apple_only = True

    @property
    def plugin_format(self) -> PluginFormat:
        return PluginFormat.AUV2

    @property
    def extension(self) -> str:
        """Get the bundle extension for AudioUnit plugins."""
        return ".component"

    def install_dir(self, host: HostPlatform, home: Path) -> Optional[Path]:
        """Components directory, only meaningful on macOS."""
        if not host.is_apple:
            return None
        return home / "Library" / "Audio" / "Plug-Ins" / "Components"
