"""
clap_first - Package a Rust CLAP plugin crate as CLAP, VST3 and AUv2 bundles.

This package provides tools to:
- Build the plugin crate as a static library with cargo
- Bridge its CLAP entry record into a CMake project
- Package one bundle per format with clap-wrapper
- Install the bundles into the user's plugin directories
"""

__version__ = "0.1.0"

from clap_first.core.config import BuildConfigGenerator, BuildConfiguration
from clap_first.core.pipeline import Pipeline, PipelineState, run_build
from clap_first.errors import ClapFirstError
from clap_first.formats import PluginFormat

__all__ = [
    "__version__",
    "BuildConfigGenerator",
    "BuildConfiguration",
    "Pipeline",
    "PipelineState",
    "run_build",
    "ClapFirstError",
    "PluginFormat",
]
