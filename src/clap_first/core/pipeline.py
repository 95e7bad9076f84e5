"""
Per-invocation build pipeline.

Runs the stages strictly in order:

    CONFIGURED -> BUILT -> RESOLVED -> PACKAGED -> (INSTALLED | DONE)

Any error stops the pipeline in the failure state for the stage that raised
it and is re-raised to the caller. An interrupt does the same, using the
failure state of the stage that was running, and never reaches install.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from clap_first.core.artifact import ArtifactBuilder, ArtifactResolver, BuildArtifact
from clap_first.core.cleanup import clean
from clap_first.core.config import BuildConfigGenerator, BuildConfiguration
from clap_first.core.host import HostPlatform
from clap_first.core.installer import Installer
from clap_first.core.native import NativeBuildInvoker
from clap_first.errors import (
    ArtifactNotFound,
    ClapFirstError,
    CleanupError,
    CompileError,
    InstallError,
    PackagingError,
    TemplateError,
    ValidationError,
)
from clap_first.formats import PluginFormat


class PipelineState(Enum):
    """Where an invocation is, or where it stopped."""

    CONFIGURED = "configured"
    BUILT = "built"
    RESOLVED = "resolved"
    PACKAGED = "packaged"
    INSTALLED = "installed"
    DONE = "done"

    VALIDATION_FAILED = "validation-failed"
    CLEAN_FAILED = "clean-failed"
    COMPILE_FAILED = "compile-failed"
    ARTIFACT_MISSING = "artifact-missing"
    PACKAGING_FAILED = "packaging-failed"
    INSTALL_FAILED = "install-failed"

    @property
    def is_failure(self) -> bool:
        return self.value.endswith("-failed") or self is PipelineState.ARTIFACT_MISSING

    @property
    def is_terminal(self) -> bool:
        return self.is_failure or self in (PipelineState.INSTALLED, PipelineState.DONE)


# Legal forward transitions
TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.CONFIGURED: frozenset({PipelineState.BUILT}),
    PipelineState.BUILT: frozenset({PipelineState.RESOLVED}),
    PipelineState.RESOLVED: frozenset({PipelineState.PACKAGED}),
    PipelineState.PACKAGED: frozenset({PipelineState.INSTALLED, PipelineState.DONE}),
}

# Most specific class first
_ERROR_STATES: tuple[tuple[type, PipelineState], ...] = (
    (ValidationError, PipelineState.VALIDATION_FAILED),
    (CleanupError, PipelineState.CLEAN_FAILED),
    (CompileError, PipelineState.COMPILE_FAILED),
    (ArtifactNotFound, PipelineState.ARTIFACT_MISSING),
    (TemplateError, PipelineState.PACKAGING_FAILED),
    (PackagingError, PipelineState.PACKAGING_FAILED),
    (InstallError, PipelineState.INSTALL_FAILED),
)


# Error raised for a filesystem or spawn failure in each stage
_STAGE_ERRORS: dict[PipelineState, type] = {
    PipelineState.CLEAN_FAILED: CleanupError,
    PipelineState.COMPILE_FAILED: CompileError,
    PipelineState.ARTIFACT_MISSING: ArtifactNotFound,
    PipelineState.PACKAGING_FAILED: PackagingError,
    PipelineState.INSTALL_FAILED: InstallError,
}


def failure_state_for(error: ClapFirstError) -> Optional[PipelineState]:
    """Failure state matching an error type, if any."""
    for error_type, state in _ERROR_STATES:
        if isinstance(error, error_type):
            return state
    return None


@dataclass
class PipelineResult:
    """Outcome of a completed pipeline."""

    state: PipelineState
    config: BuildConfiguration
    artifact: Optional[BuildArtifact] = None
    bundles: dict[PluginFormat, Path] = field(default_factory=dict)
    installed: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.state.is_failure

    def __repr__(self) -> str:
        formats = ", ".join(f.value for f in self.bundles)
        return f"PipelineResult({self.state.value}: [{formats}])"


class Pipeline:
    """Run one build invocation through every stage."""

    def __init__(
        self,
        config: BuildConfiguration,
        builder: Optional[ArtifactBuilder] = None,
        invoker: Optional[NativeBuildInvoker] = None,
        installer: Optional[Installer] = None,
    ):
        """
        Initialize pipeline for a validated configuration.

        Args:
            config: The invocation's configuration.
            builder: Core builder (default: cargo in config.project_root).
            invoker: Native build stage (default: shared cache, pinned revision).
            installer: Installer (default: current user's home).
        """
        self.config = config
        self.builder = builder or ArtifactBuilder(
            config.project_root, host=config.host, verbose=config.verbose
        )
        self.invoker = invoker or NativeBuildInvoker()
        self.installer = installer or Installer(verbose=config.verbose)
        self.state = PipelineState.CONFIGURED
        self.history: list[PipelineState] = [self.state]
        # Failure state of the running stage
        self._stage_failure = PipelineState.COMPILE_FAILED

    @classmethod
    def from_options(
        cls,
        raw: Mapping[str, Any],
        host: Optional[HostPlatform] = None,
        **kwargs: Any,
    ) -> "Pipeline":
        """
        Validate raw options and create a pipeline.

        Raises:
            ValidationError: Before anything is built.
        """
        config = BuildConfigGenerator(host).generate(raw)
        return cls(config, **kwargs)

    def _advance(self, new_state: PipelineState) -> None:
        allowed = TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(
                f"Illegal pipeline transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    def _fail(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)

    def _log(self, message: str) -> None:
        if self.config.verbose:
            print(message)

    def run(self) -> PipelineResult:
        """
        Execute every stage.

        Returns:
            PipelineResult in state INSTALLED or DONE.

        Raises:
            ClapFirstError: The first stage failure (state set accordingly).
                An OSError escaping a stage is re-raised as that stage's
                error.
            KeyboardInterrupt: If interrupted (state set to the running
                stage's failure state).
        """
        if self.state is not PipelineState.CONFIGURED:
            raise RuntimeError("A pipeline can only be run once")

        try:
            return self._run_stages()
        except ClapFirstError as e:
            self._fail(failure_state_for(e) or self._stage_failure)
            raise
        except KeyboardInterrupt:
            self._fail(self._stage_failure)
            raise
        except OSError as e:
            self._fail(self._stage_failure)
            raise _STAGE_ERRORS[self._stage_failure](str(e)) from e

    def _run_stages(self) -> PipelineResult:
        config = self.config
        result = PipelineResult(state=self.state, config=config)

        if config.clean:
            self._stage_failure = PipelineState.CLEAN_FAILED
            self._log(f"Cleaning {config.build_root} ...")
            clean(config.build_root, verbose=config.verbose)

        self._stage_failure = PipelineState.COMPILE_FAILED
        self._log(f"Building core library '{config.target.name}' ({config.profile}) ...")
        handle = self.builder.build(config.target)
        self._advance(PipelineState.BUILT)

        self._stage_failure = PipelineState.ARTIFACT_MISSING
        artifact = ArtifactResolver(handle.target_dir).resolve_artifact(handle)
        result.artifact = artifact
        self._log(f"Found static library: {artifact.path}")
        self._advance(PipelineState.RESOLVED)

        self._stage_failure = PipelineState.PACKAGING_FAILED
        bundles = self.invoker.invoke(config, artifact)
        missing = config.formats - set(bundles)
        if missing:
            names = ", ".join(sorted(f.value for f in missing))
            raise PackagingError(f"No bundle produced for: {names}")
        result.bundles = bundles
        self._advance(PipelineState.PACKAGED)

        if config.install:
            self._stage_failure = PipelineState.INSTALL_FAILED
            result.installed = self.installer.install(bundles.values(), config.host)
            self._advance(PipelineState.INSTALLED)
        else:
            self._advance(PipelineState.DONE)

        result.state = self.state
        return result


def run_build(
    raw: Mapping[str, Any],
    host: Optional[HostPlatform] = None,
    **kwargs: Any,
) -> PipelineResult:
    """Validate options and run a pipeline to completion."""
    return Pipeline.from_options(raw, host=host, **kwargs).run()
