"""
Core modules for clap_first.
"""

from clap_first.core.config import BuildConfigGenerator, BuildConfiguration
from clap_first.core.artifact import ArtifactBuilder, ArtifactResolver
from clap_first.core.native import NativeBuildInvoker
from clap_first.core.installer import Installer
from clap_first.core.cleanup import CleanupManager
from clap_first.core.pipeline import Pipeline

__all__ = [
    "BuildConfigGenerator",
    "BuildConfiguration",
    "ArtifactBuilder",
    "ArtifactResolver",
    "NativeBuildInvoker",
    "Installer",
    "CleanupManager",
    "Pipeline",
]
