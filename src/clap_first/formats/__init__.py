"""
Plugin format implementations for clap_first.

The FORMAT_REGISTRY provides dynamic lookup of formats by name, so the
config layer, the native build and the installer all agree on one
description of each format.
"""

from pathlib import Path
from typing import Optional, Type, Union

from clap_first.core.host import HostPlatform
from clap_first.formats.base import Format, PluginFormat, parse_format
from clap_first.formats.clap import ClapFormat
from clap_first.formats.vst3 import Vst3Format
from clap_first.formats.audiounit import AudioUnitFormat


# Registry mapping format names to their implementation classes.
# Order is the order clap-wrapper receives PLUGIN_FORMATS in.
FORMAT_REGISTRY: dict[str, Type[Format]] = {
    "clap": ClapFormat,
    "vst3": Vst3Format,
    "auv2": AudioUnitFormat,
}


def get_format(name: Union[str, PluginFormat]) -> Format:
    """
    Get a format instance by name or enum member.

    Args:
        name: Format identifier or alias (e.g. 'clap', 'au') or PluginFormat.

    Returns:
        Format instance.

    Raises:
        ValueError: If the format is not recognized.
    """
    if isinstance(name, PluginFormat):
        key = name.value
    else:
        key = parse_format(name).value
    return FORMAT_REGISTRY[key]()


def list_formats() -> list[str]:
    """
    List all format names in packaging order.

    Returns:
        List of format identifiers.
    """
    return list(FORMAT_REGISTRY.keys())


def is_valid_format(name: str) -> bool:
    """
    Check if a format name (or alias) is valid.

    Args:
        name: Format identifier to check.

    Returns:
        True if the name parses to a registered format.
    """
    try:
        parse_format(name)
    except ValueError:
        return False
    return True


def supported_formats(host: HostPlatform) -> list[PluginFormat]:
    """Formats clap-wrapper can produce on host, in packaging order."""
    return [
        cls().plugin_format
        for cls in FORMAT_REGISTRY.values()
        if cls().supports(host)
    ]


def ordered(formats) -> list[PluginFormat]:
    """Sort a collection of PluginFormat into registry order."""
    order = list_formats()
    return sorted(formats, key=lambda f: order.index(f.value))


def format_for_bundle(path: Path) -> Optional[Format]:
    """Return the format whose extension matches path, if any."""
    for cls in FORMAT_REGISTRY.values():
        fmt = cls()
        if path.name.endswith(fmt.extension):
            return fmt
    return None


__all__ = [
    "Format",
    "PluginFormat",
    "ClapFormat",
    "Vst3Format",
    "AudioUnitFormat",
    "FORMAT_REGISTRY",
    "get_format",
    "list_formats",
    "is_valid_format",
    "parse_format",
    "supported_formats",
    "ordered",
    "format_for_bundle",
]
