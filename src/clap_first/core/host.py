"""
Host operating system detection.

Components take the host explicitly instead of probing it themselves, so a
test can ask for a Windows or macOS pipeline while running on Linux.
"""

import platform
from enum import Enum


class HostPlatform(Enum):
    """OS family the build runs on."""

    APPLE = "apple"
    WINDOWS = "windows"
    LINUX = "linux"

    @property
    def is_apple(self) -> bool:
        return self is HostPlatform.APPLE

    @property
    def is_windows(self) -> bool:
        return self is HostPlatform.WINDOWS


def current_platform() -> HostPlatform:
    """Return the HostPlatform of the running interpreter.

    Unknown Unix-likes (BSDs etc.) are treated as Linux: same static
    library naming and no AUv2.
    """
    system = platform.system()
    if system == "Darwin":
        return HostPlatform.APPLE
    if system == "Windows":
        return HostPlatform.WINDOWS
    return HostPlatform.LINUX
