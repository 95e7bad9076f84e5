"""
Custom exceptions for clap_first.

Every error carries the pipeline stage it belongs to and the exit code the
CLI reports for it, so scripts can tell a bad invocation from a broken
toolchain.
"""

from typing import Optional


class ClapFirstError(Exception):
    """Base exception for clap_first errors."""

    stage: str = "pipeline"
    exit_code: int = 1

    def __init__(self, message: str, diagnostics: Optional[str] = None):
        super().__init__(message)
        self.message = message
        # Raw toolchain output, reported verbatim
        self.diagnostics = diagnostics

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class ValidationError(ClapFirstError):
    """Error validating configuration or inputs."""

    stage = "validation"
    exit_code = 2

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class CompileError(ClapFirstError):
    """Core crate or bridging unit failed to compile."""

    stage = "compile"
    exit_code = 3


class ArtifactNotFound(ClapFirstError):
    """Compiled static library missing where it was expected."""

    stage = "resolve"
    exit_code = 4


class PackagingError(ClapFirstError):
    """External packaging routine failed or emitted the wrong bundles."""

    stage = "packaging"
    exit_code = 5


class InstallError(ClapFirstError):
    """Error copying bundles into plugin directories."""

    stage = "install"
    exit_code = 6


class UnsupportedPlatform(InstallError):
    """Install requested on a platform where it is not supported."""

    pass


class CleanupError(ClapFirstError):
    """Error removing build state."""

    stage = "clean"
    exit_code = 7


class TemplateError(ClapFirstError):
    """Error accessing or processing templates."""

    stage = "native"
    exit_code = 5
