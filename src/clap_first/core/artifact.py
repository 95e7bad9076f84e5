"""
Core artifact build and resolution.

ArtifactBuilder drives cargo to compile the plugin crate as a static
library (two architectures merged with lipo on macOS). ArtifactResolver
computes where that library must be and refuses to continue if it is not
there, which catches output-path drift between toolchain versions.
"""

import json
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from clap_first.core.config import BuildTarget, Profile
from clap_first.core.host import HostPlatform, current_platform
from clap_first.core.runner import diagnostics_of, run_command
from clap_first.errors import ArtifactNotFound, CompileError

# Architectures merged into the macOS universal archive
APPLE_TRIPLES = ("x86_64-apple-darwin", "aarch64-apple-darwin")

# Leading bytes of files accepted as static libraries
_AR_MAGIC = (b"!<arch>\n", b"!<thin>\n")
_FAT_MAGIC = (b"\xca\xfe\xba\xbe", b"\xca\xfe\xba\xbf")


@dataclass(frozen=True)
class ArtifactHandle:
    """What a successful cargo build reports, before the path is resolved."""

    target: BuildTarget
    host: HostPlatform
    # Workspace target directory reported by cargo metadata
    target_dir: Path
    version: str = "0.0.0"
    native_libraries: tuple[Path, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class BuildArtifact:
    """A compiled core static library."""

    path: Path
    host: HostPlatform
    profile: Profile
    # Crate version, forwarded as the bundle version
    version: str = "0.0.0"
    # Native libraries cargo linked the crate against
    native_libraries: tuple[Path, ...] = field(default_factory=tuple)

    def __repr__(self) -> str:
        return f"BuildArtifact({self.host.value}/{self.profile.value} -> {self.path})"


def static_lib_filename(lib_name: str, host: HostPlatform) -> str:
    """Static library file name: name.lib on Windows, libname.a elsewhere."""
    if host.is_windows:
        return f"{lib_name}.lib"
    return f"lib{lib_name}.a"


def is_static_library(path: Path) -> bool:
    """Whether path is an ar archive or a Mach-O universal archive."""
    if not path.is_file():
        return False
    with open(path, "rb") as f:
        head = f.read(8)
    return head in _AR_MAGIC or head[:4] in _FAT_MAGIC


def parse_native_libraries(
    output: str, crate_name: str, host: HostPlatform
) -> list[Path]:
    """
    Collect native library files the crate links against.

    Scans cargo --verbose output for the rustc invocation of crate_name and
    takes every ``-L native=<dir>`` search path on it, then lists the
    library files inside those directories.

    Args:
        output: Combined cargo stdout/stderr.
        crate_name: Package name (dashes allowed).
        host: Platform the libraries are for.

    Returns:
        Sorted list of library file paths.
    """
    marker = f"--crate-name {crate_name.replace('-', '_')}"
    search_dirs: set[Path] = set()

    for line in output.splitlines():
        if marker not in line:
            continue
        for part in line.split("-L native=")[1:]:
            end = len(part)
            for i, ch in enumerate(part):
                if ch.isspace() or ch == "`":
                    end = i
                    break
            candidate = Path(part[:end].strip("\"'"))
            if candidate.is_dir():
                search_dirs.add(candidate)

    libraries = []
    for directory in sorted(search_dirs):
        for path in sorted(directory.iterdir()):
            if not path.is_file():
                continue
            if host.is_windows:
                if path.suffix in (".lib", ".dll"):
                    libraries.append(path)
            elif path.suffix in (".a", ".so") or ".dylib" in path.name:
                libraries.append(path)
    return libraries


class ArtifactResolver:
    """Compute and check the on-disk location of core static libraries."""

    def __init__(self, target_dir: Path | str):
        """
        Initialize resolver with cargo's target directory.

        Args:
            target_dir: Workspace target directory (usually <project>/target).
        """
        self.target_dir = Path(target_dir)

    def expected_path(
        self,
        target: Union[BuildTarget, str],
        profile: Profile,
        host: HostPlatform,
        triple: Optional[str] = None,
    ) -> Path:
        """
        Where cargo (or lipo) writes the static library.

        Args:
            target: Build target or package name.
            profile: Build profile.
            host: Platform the library is built for.
            triple: Cross target triple; 'universal' for the lipo output.

        Returns:
            Absolute path (not checked for existence).
        """
        lib_name = target.lib_name if isinstance(target, BuildTarget) else (
            BuildTarget(name=target).lib_name
        )
        base = self.target_dir
        if triple:
            base = base / triple
        return (base / profile.value / static_lib_filename(lib_name, host)).resolve()

    def resolve(
        self,
        target: Union[BuildTarget, str],
        profile: Profile,
        host: HostPlatform,
    ) -> Path:
        """
        Resolve the static library the native build will link.

        On macOS this is the universal archive; elsewhere the native-arch
        library.

        Raises:
            ArtifactNotFound: If the file is missing or not a static library.
        """
        triple = "universal" if host.is_apple else None
        path = self.expected_path(target, profile, host, triple=triple)
        return self.check(path)

    def resolve_artifact(self, handle: ArtifactHandle) -> BuildArtifact:
        """
        Resolve a build handle into the artifact the native stage consumes.

        Raises:
            ArtifactNotFound: If the library is missing or invalid.
        """
        path = self.resolve(handle.target, handle.target.profile, handle.host)
        return BuildArtifact(
            path=path,
            host=handle.host,
            profile=handle.target.profile,
            version=handle.version,
            native_libraries=handle.native_libraries,
        )

    def check(self, path: Path) -> Path:
        """
        Assert path is an existing static library.

        Raises:
            ArtifactNotFound: If the check fails.
        """
        if not path.exists():
            raise ArtifactNotFound(f"Static library file not found: {path}")
        if not is_static_library(path):
            raise ArtifactNotFound(f"Not a static library: {path}")
        return path


class ArtifactBuilder:
    """Build the core crate as a static library with cargo."""

    def __init__(
        self,
        project_root: Path | str,
        host: Optional[HostPlatform] = None,
        verbose: bool = False,
    ):
        """
        Initialize builder for a cargo workspace.

        Args:
            project_root: Workspace root (where cargo is run).
            host: Platform to build for (default: the running host).
            verbose: Print progress and stream toolchain output.
        """
        self.project_root = Path(project_root).resolve()
        self.host = host if host is not None else current_platform()
        self.verbose = verbose

    def _run(self, cmd: list[str], what: str):
        tool = cmd[0]
        if not shutil.which(tool):
            raise CompileError(
                f"{tool} is required to {what}. Install it and ensure it is on PATH."
            )
        result = run_command(cmd, cwd=self.project_root, verbose=self.verbose)
        if result.returncode != 0:
            raise CompileError(
                f"Failed to {what} (exit code {result.returncode})",
                diagnostics=diagnostics_of(result),
            )
        return result

    def locate(self, target: BuildTarget) -> tuple[str, Path]:
        """
        Find the package in the workspace.

        Returns:
            Tuple of (package version, workspace target directory).

        Raises:
            CompileError: If cargo metadata fails or the package is missing.
        """
        cmd = ["cargo", "metadata", "--format-version", "1", "--no-deps"]
        if not shutil.which("cargo"):
            raise CompileError(
                "cargo is required to build the core library. "
                "Install Rust and ensure cargo is on PATH."
            )
        # Never streamed: the JSON goes to stdout
        result = run_command(cmd, cwd=self.project_root)
        if result.returncode != 0:
            raise CompileError(
                "Failed to read cargo workspace metadata",
                diagnostics=diagnostics_of(result),
            )
        try:
            metadata = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise CompileError(f"Invalid cargo metadata output: {e}") from e

        for package in metadata.get("packages", []):
            if package.get("name") == target.name:
                return package.get("version", "0.0.0"), Path(metadata["target_directory"])

        available = ", ".join(sorted(p["name"] for p in metadata.get("packages", [])))
        raise CompileError(
            f"Package '{target.name}' not found in workspace. Available: {available}"
        )

    def build(self, target: BuildTarget) -> ArtifactHandle:
        """
        Build the target's static library for the host.

        Blocks until every toolchain process has exited. The returned handle
        still has to be resolved (ArtifactResolver.resolve_artifact).

        Args:
            target: Package and profile to build.

        Returns:
            ArtifactHandle describing the build.

        Raises:
            CompileError: If any toolchain step fails (diagnostics verbatim).
            CompileError: Also if a per-architecture slice is missing (macOS).
        """
        version, target_dir = self.locate(target)

        if self.host.is_apple:
            native_libs = self._build_universal(target, ArtifactResolver(target_dir))
        else:
            if self.verbose:
                print(f"Building static library for '{target.name}' ...")
            result = self._run(self._cargo_args(target), "build the core library")
            native_libs = parse_native_libraries(
                result.stdout + result.stderr, target.name, self.host
            )

        if self.verbose:
            print(f"Found {len(native_libs)} native libraries to link")
            for lib in native_libs:
                print(f"  - {lib}")

        return ArtifactHandle(
            target=target,
            host=self.host,
            target_dir=target_dir,
            version=version,
            native_libraries=tuple(native_libs),
        )

    def _cargo_args(self, target: BuildTarget, triple: Optional[str] = None) -> list[str]:
        args = ["cargo", "build", "--verbose"]
        if target.profile is Profile.RELEASE:
            args.append("--release")
        if triple:
            args.extend(["--target", triple])
        args.extend(["-p", target.name])
        return args

    def _build_universal(
        self, target: BuildTarget, resolver: ArtifactResolver
    ) -> list[Path]:
        """Build every Apple triple and merge them with lipo."""
        self._run(["rustup", "target", "add", *APPLE_TRIPLES], "add Apple targets")

        native_libs: set[Path] = set()
        slices = []
        for triple in APPLE_TRIPLES:
            if self.verbose:
                print(f"Building for {triple} ...")
            result = self._run(
                self._cargo_args(target, triple), f"build the core library for {triple}"
            )
            native_libs.update(
                parse_native_libraries(result.stdout + result.stderr, target.name, self.host)
            )
            slice_path = resolver.expected_path(target, target.profile, self.host, triple)
            # lipo needs every slice; a missing one means cargo did not build it
            try:
                slices.append(resolver.check(slice_path))
            except ArtifactNotFound as e:
                raise CompileError(
                    f"cargo did not produce the {triple} slice: {e.message}"
                ) from e

        universal = resolver.expected_path(
            target, target.profile, self.host, triple="universal"
        )
        try:
            universal.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CompileError(
                f"Cannot create universal output directory {universal.parent}: {e}"
            ) from e

        if self.verbose:
            print(f"Creating universal binary with lipo: {universal}")
        self._run(
            ["lipo", "-create", *(str(s) for s in slices), "-output", str(universal)],
            "create universal binary",
        )
        if self.verbose:
            info = self._run(["lipo", "-info", str(universal)], "inspect universal binary")
            print(f"Universal binary info: {info.stdout.strip()}")

        return sorted(native_libs)
