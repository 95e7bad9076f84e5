"""Pytest configuration and fixtures for clap_first tests."""

import subprocess
from pathlib import Path
from typing import Callable, Optional

import pytest

from clap_first.core.artifact import ArtifactHandle, static_lib_filename
from clap_first.core.config import BuildConfigGenerator, BuildConfiguration, BuildTarget
from clap_first.core.host import HostPlatform
from clap_first.formats import PluginFormat, get_format


def write_static_lib(path: Path) -> Path:
    """Write a minimal ar archive (magic only) at path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"!<arch>\n")
    return path


def completed(
    cmd: list[str], returncode: int = 0, stdout: str = "", stderr: str = ""
) -> subprocess.CompletedProcess:
    """CompletedProcess as returned by run_command."""
    return subprocess.CompletedProcess(
        args=cmd, returncode=returncode, stdout=stdout, stderr=stderr
    )


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Empty cargo workspace root."""
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "Cargo.toml").write_text('[workspace]\nmembers = ["plugins/*"]\n')
    return root


@pytest.fixture
def make_config(project_root: Path) -> Callable[..., BuildConfiguration]:
    """Factory for validated configurations rooted in project_root."""

    def _make(host: HostPlatform = HostPlatform.LINUX, **options) -> BuildConfiguration:
        options.setdefault("target", "gain-example")
        options.setdefault("project_root", project_root)
        return BuildConfigGenerator(host).generate(options)

    return _make


class FakeBuilder:
    """ArtifactBuilder stand-in that writes the library cargo would produce."""

    def __init__(
        self,
        project_root: Path,
        host: HostPlatform,
        write_library: bool = True,
        error: Optional[Exception] = None,
    ):
        self.project_root = project_root
        self.host = host
        self.write_library = write_library
        self.error = error
        self.calls: list[BuildTarget] = []

    def build(self, target: BuildTarget) -> ArtifactHandle:
        self.calls.append(target)
        if self.error is not None:
            raise self.error
        target_dir = self.project_root / "target"
        if self.write_library:
            subdir = "universal" if self.host.is_apple else ""
            write_static_lib(
                target_dir
                / subdir
                / target.profile.value
                / static_lib_filename(target.lib_name, self.host)
            )
        return ArtifactHandle(
            target=target, host=self.host, target_dir=target_dir, version="0.1.0"
        )


class FakeInvoker:
    """NativeBuildInvoker stand-in that emits one bundle per format."""

    def __init__(self, error: Optional[Exception] = None, skip: tuple = ()):
        self.error = error
        self.skip = set(skip)
        self.calls = []

    def invoke(self, config: BuildConfiguration, artifact) -> dict:
        self.calls.append((config, artifact))
        if self.error is not None:
            raise self.error
        config.output_dir.mkdir(parents=True, exist_ok=True)
        bundles = {}
        for plugin_format in config.ordered_formats():
            if plugin_format in self.skip:
                continue
            fmt = get_format(plugin_format)
            bundle = config.output_dir / f"{config.target.name}{fmt.extension}"
            if plugin_format is PluginFormat.CLAP:
                bundle.write_bytes(b"clap")
            else:
                (bundle / "Contents").mkdir(parents=True, exist_ok=True)
                (bundle / "Contents" / "Info.plist").write_text(config.bundle_id)
            bundles[plugin_format] = bundle
        return bundles


@pytest.fixture
def fake_builder() -> type:
    return FakeBuilder


@pytest.fixture
def fake_invoker() -> type:
    return FakeInvoker
