"""
Abstract base class for plugin format implementations.

A format knows how clap-wrapper names it, what its bundles look like on disk
and where a user-scoped install puts them. Nothing here builds anything:
packaging is a single clap-wrapper call made by the native build stage.
"""

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional

from clap_first.core.host import HostPlatform


class PluginFormat(Enum):
    """Host plugin formats clap-wrapper can emit from a CLAP entry."""

    CLAP = "clap"
    VST3 = "vst3"
    AUV2 = "auv2"

    def __str__(self) -> str:
        return self.value


# Accepted spellings on the command line
FORMAT_ALIASES: dict[str, PluginFormat] = {
    "clap": PluginFormat.CLAP,
    "vst3": PluginFormat.VST3,
    "vst": PluginFormat.VST3,
    "auv2": PluginFormat.AUV2,
    "au": PluginFormat.AUV2,
}


def parse_format(name: str) -> PluginFormat:
    """
    Parse a user-supplied format name.

    Args:
        name: Case-insensitive format name or alias (e.g. 'CLAP', 'au').

    Returns:
        Matching PluginFormat.

    Raises:
        ValueError: If the name is not recognized.
    """
    key = name.strip().lower()
    if key not in FORMAT_ALIASES:
        available = ", ".join(f.value for f in PluginFormat)
        raise ValueError(f"Unknown plugin format: '{name}'. Available: {available}")
    return FORMAT_ALIASES[key]


class Format(ABC):
    """Abstract base class for plugin format implementations."""

    # Registry key, matches PluginFormat.value
    name: str = "base"

    # Name passed in clap-wrapper's PLUGIN_FORMATS list
    cmake_name: str = ""

    # Only buildable on macOS
    apple_only: bool = False

    @property
    @abstractmethod
    def plugin_format(self) -> PluginFormat:
        """The PluginFormat this implementation handles."""
        ...

    @property
    @abstractmethod
    def extension(self) -> str:
        """Bundle extension (e.g. '.clap', '.component')."""
        ...

    @abstractmethod
    def install_dir(self, host: HostPlatform, home: Path) -> Optional[Path]:
        """
        User-scoped plugin directory for this format.

        Args:
            host: Platform the bundle is installed on.
            home: User home directory.

        Returns:
            Directory path, or None if the format has no location on host.
        """
        pass

    def supports(self, host: HostPlatform) -> bool:
        """Whether clap-wrapper can produce this format on host."""
        return host.is_apple or not self.apple_only

    def target_suffix(self) -> str:
        """Suffix clap-wrapper appends to the per-format CMake target."""
        return self.name
