"""Tests for clap_first.core.installer module."""

from pathlib import Path

import pytest

from clap_first.core.host import HostPlatform
from clap_first.core.installer import Installer
from clap_first.errors import InstallError, UnsupportedPlatform


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def bundles(tmp_path: Path) -> list[Path]:
    out = tmp_path / "out"
    out.mkdir()
    clap = out / "gain-example.clap"
    clap.write_bytes(b"clap v1")
    vst3 = out / "gain-example.vst3"
    (vst3 / "Contents").mkdir(parents=True)
    (vst3 / "Contents" / "Info.plist").write_text("v1")
    return [clap, vst3]


class TestDestinations:
    """Tests for destination_for()."""

    def test_linux(self, home: Path):
        installer = Installer(home=home)
        assert installer.destination_for(Path("x.clap"), HostPlatform.LINUX) == (
            home / ".clap" / "x.clap"
        )
        assert installer.destination_for(Path("x.vst3"), HostPlatform.LINUX) == (
            home / ".vst3" / "x.vst3"
        )

    def test_macos(self, home: Path):
        installer = Installer(home=home)
        dest = installer.destination_for(Path("x.component"), HostPlatform.APPLE)
        assert dest == home / "Library" / "Audio" / "Plug-Ins" / "Components" / "x.component"

    def test_unknown_format(self, home: Path):
        with pytest.raises(InstallError, match="Cannot determine"):
            Installer(home=home).destination_for(Path("x.dll"), HostPlatform.LINUX)

    def test_auv2_on_linux(self, home: Path):
        with pytest.raises(InstallError, match="No AUV2 install location"):
            Installer(home=home).destination_for(Path("x.component"), HostPlatform.LINUX)


class TestInstall:
    """Tests for install()."""

    def test_linux_install(self, home: Path, bundles: list[Path]):
        installed = Installer(home=home).install(bundles, HostPlatform.LINUX)

        assert installed == [
            home / ".clap" / "gain-example.clap",
            home / ".vst3" / "gain-example.vst3",
        ]
        assert installed[0].read_bytes() == b"clap v1"
        assert (installed[1] / "Contents" / "Info.plist").read_text() == "v1"

    def test_macos_install(self, home: Path, bundles: list[Path]):
        installed = Installer(home=home).install(bundles, HostPlatform.APPLE)
        plugins = home / "Library" / "Audio" / "Plug-Ins"
        assert installed == [
            plugins / "CLAP" / "gain-example.clap",
            plugins / "VST3" / "gain-example.vst3",
        ]

    def test_reinstall_replaces(self, home: Path, bundles: list[Path]):
        """Test installing twice leaves only the newest bundle contents."""
        installer = Installer(home=home)
        installer.install(bundles, HostPlatform.LINUX)

        clap, vst3 = bundles
        clap.write_bytes(b"clap v2")
        (vst3 / "Contents" / "Info.plist").write_text("v2")
        (vst3 / "Contents" / "Resources").mkdir()
        installed = installer.install(bundles, HostPlatform.LINUX)

        assert installed[0].read_bytes() == b"clap v2"
        assert (installed[1] / "Contents" / "Info.plist").read_text() == "v2"
        assert (installed[1] / "Contents" / "Resources").is_dir()

    def test_stale_files_removed(self, home: Path, bundles: list[Path]):
        stale = home / ".vst3" / "gain-example.vst3" / "Contents" / "old.bin"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"")
        Installer(home=home).install(bundles, HostPlatform.LINUX)
        assert not stale.exists()

    def test_windows_unsupported(self, home: Path, bundles: list[Path]):
        """Test Windows is rejected with nothing written."""
        with pytest.raises(UnsupportedPlatform) as exc_info:
            Installer(home=home).install(bundles, HostPlatform.WINDOWS)
        assert exc_info.value.exit_code == 6
        assert list(home.iterdir()) == []

    def test_missing_bundle_writes_nothing(self, home: Path, bundles: list[Path]):
        with pytest.raises(InstallError, match="Bundle not found"):
            Installer(home=home).install(
                [bundles[0], bundles[0].parent / "gone.vst3"], HostPlatform.LINUX
            )
        assert list(home.iterdir()) == []

    def test_empty(self, home: Path):
        assert Installer(home=home).install([], HostPlatform.LINUX) == []
