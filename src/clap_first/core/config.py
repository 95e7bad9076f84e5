"""
Build configuration for clap_first.

Turns raw invocation options (as parsed by the CLI, or a plain dict) into an
immutable BuildConfiguration. Validation happens here, before any build
step, so a bad invocation never spawns a toolchain.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from clap_first.core.host import HostPlatform, current_platform
from clap_first.errors import ValidationError
from clap_first.formats import (
    PluginFormat,
    get_format,
    ordered,
    parse_format,
    supported_formats,
)

DEFAULT_BUNDLE_ID = "org.free-audio.rust-gain-example"

# Directory under <project>/target that clap-first owns
BUILD_ROOT_NAME = "clap-first"

_BUNDLE_ID_RE = re.compile(r"^[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)+$")
_PACKAGE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


class Profile(Enum):
    """Cargo build profile."""

    DEBUG = "debug"
    RELEASE = "release"

    @property
    def cmake_config(self) -> str:
        """Matching CMake --config value."""
        return "Release" if self is Profile.RELEASE else "Debug"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BuildTarget:
    """A cargo package built as a static library."""

    name: str
    profile: Profile = Profile.DEBUG

    @property
    def lib_name(self) -> str:
        """Library name cargo uses for output files (dashes become underscores)."""
        return self.name.replace("-", "_")


def build_root_for(project_root: Path) -> Path:
    """The directory tree clap-first may create and delete."""
    return project_root / "target" / BUILD_ROOT_NAME


@dataclass(frozen=True)
class BuildConfiguration:
    """Validated, immutable plan for one invocation."""

    target: BuildTarget
    formats: frozenset[PluginFormat]
    bundle_id: str
    project_root: Path
    output_dir: Path
    host: HostPlatform
    install: bool = False
    clean: bool = False
    verbose: bool = False

    @property
    def profile(self) -> Profile:
        return self.target.profile

    @property
    def build_root(self) -> Path:
        return build_root_for(self.project_root)

    @property
    def cmake_source_dir(self) -> Path:
        """Where the generated CMake project is written."""
        return self.build_root / "cmake-src"

    @property
    def cmake_build_dir(self) -> Path:
        return self.build_root / "cmake-build"

    @property
    def staging_dir(self) -> Path:
        """clap-wrapper's ASSET_OUTPUT_DIRECTORY."""
        return self.build_root / "cmake-assets"

    def ordered_formats(self) -> list[PluginFormat]:
        """Requested formats in packaging order."""
        return ordered(self.formats)


def _normalize(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {key.replace("-", "_"): value for key, value in raw.items()}


class BuildConfigGenerator:
    """Parse and validate invocation options into a BuildConfiguration."""

    def __init__(self, host: Optional[HostPlatform] = None):
        """
        Initialize generator for a host platform.

        Args:
            host: Platform to validate against (default: the running host).
        """
        self.host = host if host is not None else current_platform()

    def generate(self, raw: Mapping[str, Any]) -> BuildConfiguration:
        """
        Build a configuration from raw options.

        Recognized keys ('-' and '_' are interchangeable): target, profile,
        release, bundle_id, formats, clean, install, output, project_root,
        verbose.

        Args:
            raw: Option mapping (e.g. vars() of an argparse namespace).

        Returns:
            Validated BuildConfiguration.

        Raises:
            ValidationError: Listing every problem found.
        """
        options = _normalize(raw)
        errors: list[str] = []

        target_name = str(options.get("target") or "").strip()
        if not target_name:
            errors.append("A target package name is required.")
        elif not _PACKAGE_NAME_RE.match(target_name):
            errors.append(
                f"Target '{target_name}' is not a valid cargo package name. "
                "Must start with a letter/underscore and contain only "
                "alphanumeric characters, dashes and underscores."
            )

        profile = self._parse_profile(options, errors)
        formats = self._parse_formats(options.get("formats"), errors)

        bundle_id = options.get("bundle_id")
        if bundle_id is None:
            bundle_id = DEFAULT_BUNDLE_ID
        bundle_id = str(bundle_id).strip()
        if not bundle_id:
            errors.append("Bundle identifier must not be empty.")
        elif not _BUNDLE_ID_RE.match(bundle_id):
            errors.append(
                f"Bundle identifier '{bundle_id}' is not a reverse-DNS string "
                "(e.g. com.example.gain)."
            )

        project_root = Path(options.get("project_root") or Path.cwd())
        project_root = project_root.expanduser().resolve()

        output = options.get("output") or options.get("output_dir")
        if output:
            output_dir = Path(output).expanduser().resolve()
        else:
            output_dir = build_root_for(project_root) / "plugins" / profile.value
        if output_dir.exists() and not output_dir.is_dir():
            errors.append(f"Output path {output_dir} exists and is not a directory.")

        if errors:
            raise ValidationError("Invalid build configuration", errors=errors)

        return BuildConfiguration(
            target=BuildTarget(name=target_name, profile=profile),
            formats=frozenset(formats),
            bundle_id=bundle_id,
            project_root=project_root,
            output_dir=output_dir,
            host=self.host,
            install=bool(options.get("install", False)),
            clean=bool(options.get("clean", False)),
            verbose=bool(options.get("verbose", False)),
        )

    def _parse_profile(self, options: dict[str, Any], errors: list[str]) -> Profile:
        profile = options.get("profile")
        if profile is None:
            return Profile.RELEASE if options.get("release") else Profile.DEBUG
        if isinstance(profile, Profile):
            return profile
        try:
            return Profile(str(profile).lower())
        except ValueError:
            errors.append(
                f"Profile must be one of {[p.value for p in Profile]}, got '{profile}'"
            )
            return Profile.DEBUG

    def _parse_formats(
        self, value: Optional[Any], errors: list[str]
    ) -> list[PluginFormat]:
        if value is None:
            return supported_formats(self.host)

        names: Iterable[Any]
        if isinstance(value, str):
            names = [n for n in re.split(r"[,\s]+", value) if n]
        else:
            names = list(value)

        formats: list[PluginFormat] = []
        seen_errors = len(errors)
        for name in names:
            if isinstance(name, PluginFormat):
                fmt = name
            else:
                try:
                    fmt = parse_format(str(name))
                except ValueError as e:
                    errors.append(str(e))
                    continue
            if fmt not in formats:
                formats.append(fmt)

        if not formats and len(errors) == seen_errors:
            errors.append("At least one plugin format is required.")

        for fmt in formats:
            if not get_format(fmt).supports(self.host):
                errors.append(
                    f"Format {fmt.value.upper()} can only be built on macOS "
                    f"(host is {self.host.value})."
                )

        return ordered(formats)
