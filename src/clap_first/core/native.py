"""
Native build stage: bridge the core library and package it with clap-wrapper.

Generates a small CMake project from the bundled templates, compiles the
bridging unit against the core static library, then runs clap-wrapper's
make_clapfirst_plugins once per requested format and collects the bundles.
"""

import re
import shutil
from pathlib import Path
from string import Template
from typing import Optional

from clap_first import __version__
from clap_first.core.artifact import BuildArtifact, is_static_library
from clap_first.core.bridge import render_bridge_source, verify_bridge_source
from clap_first.core.cache import (
    cpm_cache_dir,
    ensure_clap_wrapper,
    resolve_cache_dir,
    resolve_revision,
)
from clap_first.core.cleanup import CleanupManager
from clap_first.core.config import BuildConfiguration
from clap_first.core.runner import diagnostics_of, run_command
from clap_first.errors import (
    ArtifactNotFound,
    CompileError,
    PackagingError,
    TemplateError,
)
from clap_first.formats import Format, PluginFormat, format_for_bundle, get_format
from clap_first.templates import get_cmake_templates_dir

# CPM.cmake release downloaded by the generated project
CPM_VERSION = "0.40.2"
CPM_SHA256 = "C8CDC32C03816538CE22781ED72964DC864B2A34A310D3B7104812A5CA2D835D"

OSX_DEPLOYMENT_TARGET = "15.4"

# CMake target of the bridging unit
BRIDGE_TARGET = "clap_entry"


def cmake_version(version: str) -> str:
    """Reduce a crate version to what CMake's project(VERSION) accepts."""
    match = re.match(r"^\d+(\.\d+){0,3}", version)
    return match.group(0) if match else "0.0.0"


def _write_if_changed(path: Path, content: str) -> None:
    """Write text, leaving mtime alone if nothing changed."""
    if path.is_file() and path.read_text(encoding="utf-8") == content:
        return
    path.write_text(content, encoding="utf-8")


def _remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree if present."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def find_bundles(directory: Path, fmt: Format) -> list[Path]:
    """
    Find bundles of fmt anywhere under directory.

    Does not descend into bundles. Multi-config generators nest output as
    <FORMAT>/<Config>/, so the search is recursive.
    """
    if not directory.is_dir():
        return []
    found = []
    for entry in sorted(directory.iterdir()):
        if entry.name.endswith(fmt.extension):
            found.append(entry)
        elif entry.is_dir() and not entry.is_symlink() and format_for_bundle(entry) is None:
            found.extend(find_bundles(entry, fmt))
    return found


class NativeBuildInvoker:
    """Drive CMake to compile the bridge and emit one bundle per format."""

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        revision: Optional[str] = None,
    ):
        """
        Initialize invoker.

        Args:
            cache_dir: Shared dependency cache (default: resolve_cache_dir()).
            revision: clap-wrapper revision (default: resolve_revision()).
        """
        self.cache_dir = Path(cache_dir) if cache_dir else resolve_cache_dir()
        self.revision = revision or resolve_revision()

    def invoke(
        self, config: BuildConfiguration, artifact: BuildArtifact
    ) -> dict[PluginFormat, Path]:
        """
        Bridge and package the artifact.

        Args:
            config: Validated build configuration.
            artifact: Resolved core static library.

        Returns:
            Mapping of each requested format to its bundle in the output
            directory.

        Raises:
            ArtifactNotFound: If the artifact vanished (nothing is spawned).
            CompileError: If configuring or compiling the bridge fails.
            PackagingError: If clap-wrapper fails or a bundle is missing.
        """
        if not is_static_library(artifact.path):
            raise ArtifactNotFound(
                f"Static library missing or invalid before native build: {artifact.path}"
            )

        if not shutil.which("cmake"):
            raise CompileError(
                "cmake is required for the native build. "
                "Install CMake and ensure it is on PATH."
            )

        self.generate_project(config)

        wrapper_dir = ensure_clap_wrapper(
            self.revision, self.cache_dir, verbose=config.verbose
        )

        # Stale bundles from an earlier run must not be collected
        CleanupManager(config.build_root).clean([config.staging_dir])
        try:
            config.cmake_build_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CompileError(
                f"Cannot create CMake build directory {config.cmake_build_dir}: {e}"
            ) from e

        self.configure(config, artifact, wrapper_dir)

        if config.verbose:
            print("Compiling bridging unit ...")
        result = self._build_target(config, BRIDGE_TARGET)
        if result.returncode != 0:
            raise CompileError(
                "Bridging unit failed to compile",
                diagnostics=diagnostics_of(result),
            )

        for plugin_format in config.ordered_formats():
            fmt = get_format(plugin_format)
            if config.verbose:
                print(f"Packaging {fmt.cmake_name} ...")
            result = self._build_target(config, self.format_target(config, fmt))
            if result.returncode != 0:
                raise PackagingError(
                    f"clap-wrapper failed to package {fmt.cmake_name}",
                    diagnostics=diagnostics_of(result),
                )

        return self.collect_bundles(config)

    # -------------------------------------------------------------------------
    # Project generation
    # -------------------------------------------------------------------------

    def generate_project(self, config: BuildConfiguration) -> Path:
        """
        Materialize the CMake project under the build root.

        Returns:
            The CMake source directory.

        Raises:
            TemplateError: If a template is missing or the bridge source does
                not match the entry contract. Also if the project cannot be
                written.
        """
        templates_dir = get_cmake_templates_dir()
        if not templates_dir.is_dir():
            raise TemplateError(f"CMake templates not found at {templates_dir}")

        header = templates_dir / "clap_entry.h"
        if not header.exists():
            raise TemplateError(f"Bridge header not found at {header}")

        bridge_source = render_bridge_source(templates_dir / "clap_entry.cpp.template")
        verify_bridge_source(bridge_source)

        source_dir = config.cmake_source_dir
        try:
            source_dir.mkdir(parents=True, exist_ok=True)
            self._generate_cmakelists(
                templates_dir / "CMakeLists.txt.template",
                source_dir / "CMakeLists.txt",
                config,
            )
            _write_if_changed(source_dir / "clap_entry.cpp", bridge_source)
            _write_if_changed(
                source_dir / "clap_entry.h", header.read_text(encoding="utf-8")
            )
        except OSError as e:
            raise TemplateError(f"Failed to write CMake project to {source_dir}: {e}") from e

        return source_dir

    def _generate_cmakelists(
        self,
        template_path: Path,
        output_path: Path,
        config: BuildConfiguration,
    ) -> None:
        """Generate CMakeLists.txt from template."""
        if not template_path.exists():
            raise TemplateError(f"CMakeLists.txt template not found at {template_path}")

        template = Template(template_path.read_text(encoding="utf-8"))
        content = template.safe_substitute(
            clapfirst_version=__version__,
            cpm_version=CPM_VERSION,
            cpm_sha256=CPM_SHA256,
            clap_wrapper_revision=self.revision,
            osx_deployment_target=OSX_DEPLOYMENT_TARGET,
            plugin_formats=" ".join(
                get_format(f).cmake_name for f in config.ordered_formats()
            ),
        )
        _write_if_changed(output_path, content)

    # -------------------------------------------------------------------------
    # CMake invocation
    # -------------------------------------------------------------------------

    def configure_args(
        self,
        config: BuildConfiguration,
        artifact: BuildArtifact,
        wrapper_dir: Path,
    ) -> list[str]:
        """CMake configure command line."""
        args = [
            "cmake",
            "-S",
            config.cmake_source_dir.as_posix(),
            "-B",
            config.cmake_build_dir.as_posix(),
            f"-DCMAKE_BUILD_TYPE={config.profile.cmake_config}",
            f"-DPROJECT_NAME={config.target.name}",
            f"-DBUNDLE_VERSION={cmake_version(artifact.version)}",
            f"-DSTATIC_LIB_FILE={artifact.path.as_posix()}",
            f"-DBUNDLE_ID={config.bundle_id}",
            f"-DPLUGIN_OUTPUT_DIR={config.staging_dir.as_posix()}",
            f"-DCPM_SOURCE_CACHE={cpm_cache_dir(self.cache_dir).as_posix()}",
            f"-DCPM_clap-wrapper_SOURCE={wrapper_dir.as_posix()}",
        ]
        if artifact.native_libraries:
            libs = ";".join(p.as_posix() for p in artifact.native_libraries)
            args.append(f"-DNATIVE_LIBRARIES={libs}")
        return args

    def configure(
        self,
        config: BuildConfiguration,
        artifact: BuildArtifact,
        wrapper_dir: Path,
    ) -> None:
        """
        Configure the CMake build.

        Raises:
            CompileError: If configuration fails.
        """
        if config.verbose:
            print("Configuring CMake build ...")
        result = run_command(
            self.configure_args(config, artifact, wrapper_dir),
            cwd=config.build_root,
            verbose=config.verbose,
        )
        if result.returncode != 0:
            raise CompileError(
                "CMake configuration failed",
                diagnostics=diagnostics_of(result),
            )

    def format_target(self, config: BuildConfiguration, fmt: Format) -> str:
        """CMake target clap-wrapper creates for one format."""
        return f"{config.target.name}_{fmt.target_suffix()}"

    def _build_target(self, config: BuildConfiguration, target: str):
        return run_command(
            [
                "cmake",
                "--build",
                config.cmake_build_dir.as_posix(),
                "--config",
                config.profile.cmake_config,
                "--target",
                target,
            ],
            cwd=config.build_root,
            verbose=config.verbose,
        )

    # -------------------------------------------------------------------------
    # Output collection
    # -------------------------------------------------------------------------

    def collect_bundles(self, config: BuildConfiguration) -> dict[PluginFormat, Path]:
        """
        Copy exactly one bundle per requested format into the output directory.

        Bundles of this plugin left in the output directory by earlier runs
        for other formats are removed, so it only ever holds this run's.

        Raises:
            PackagingError: If a format produced zero or several bundles, or
                the output directory cannot be updated.
        """
        selected: dict[PluginFormat, Path] = {}
        for plugin_format in config.ordered_formats():
            fmt = get_format(plugin_format)
            found = find_bundles(config.staging_dir, fmt)
            if len(found) != 1:
                names = ", ".join(p.name for p in found) or "none"
                raise PackagingError(
                    f"Expected one {fmt.cmake_name} bundle in {config.staging_dir}, "
                    f"found {len(found)} ({names})"
                )
            selected[plugin_format] = found[0]

        try:
            config.output_dir.mkdir(parents=True, exist_ok=True)
            for entry in self.stale_bundles(config.output_dir, selected.values()):
                _remove_path(entry)
        except OSError as e:
            raise PackagingError(
                f"Failed to prepare output directory {config.output_dir}: {e}"
            ) from e

        bundles: dict[PluginFormat, Path] = {}
        for plugin_format, source in selected.items():
            dest = config.output_dir / source.name
            try:
                _remove_path(dest)
                if source.is_dir():
                    shutil.copytree(source, dest, symlinks=True)
                else:
                    shutil.copy2(source, dest)
            except OSError as e:
                raise PackagingError(f"Failed to copy {source.name} to {dest}: {e}") from e
            bundles[plugin_format] = dest

        return bundles

    def stale_bundles(self, output_dir: Path, current) -> list[Path]:
        """
        Bundles in output_dir named like the current ones but not among them.

        Only bundles sharing a plugin name with this run are considered, so
        unrelated plugins in a shared output directory are left alone.
        """
        current_names = {p.name for p in current}
        stems = set()
        for path in current:
            fmt = format_for_bundle(path)
            if fmt is not None:
                stems.add(path.name[: -len(fmt.extension)])
        stale = []
        for entry in sorted(output_dir.iterdir()):
            fmt = format_for_bundle(entry)
            if fmt is None or entry.name in current_names:
                continue
            if entry.name[: -len(fmt.extension)] in stems:
                stale.append(entry)
        return stale
