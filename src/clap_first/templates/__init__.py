"""
Template access utilities for clap_first.

Templates are bundled with the package and accessed via these utilities.
"""

from pathlib import Path


def get_templates_dir() -> Path:
    """
    Get the path to the templates directory.

    Returns:
        Path to the templates directory within the package.
    """
    return Path(__file__).parent


def get_cmake_templates_dir() -> Path:
    """
    Get the path to the native build templates.

    Returns:
        Path to the cmake/ templates directory.
    """
    return get_templates_dir() / "cmake"


def list_cmake_templates() -> list[Path]:
    """
    List all native build template files.

    Returns:
        List of paths to template files.
    """
    cmake_dir = get_cmake_templates_dir()
    if not cmake_dir.is_dir():
        return []
    return sorted(cmake_dir.glob("*"))
