"""Tests for packaging consistency and template inclusion."""

from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

import clap_first
from clap_first.templates import list_cmake_templates


REPO_ROOT = Path(__file__).resolve().parent.parent
PYPROJECT = REPO_ROOT / "pyproject.toml"
TEMPLATES_DIR = REPO_ROOT / "src" / "clap_first" / "templates"

# Files the native build materializes
EXPECTED_TEMPLATES = {"CMakeLists.txt.template", "clap_entry.cpp.template", "clap_entry.h"}


class TestVersionConsistency:
    """Ensure __version__ and pyproject.toml stay in sync."""

    def test_version_matches_pyproject(self):
        with open(PYPROJECT, "rb") as f:
            meta = tomllib.load(f)
        assert clap_first.__version__ == meta["project"]["version"]


class TestTemplateInclusion:
    """Ensure template data files are present in the source tree."""

    def test_templates_dir_exists(self):
        assert TEMPLATES_DIR.is_dir()

    def test_source_tree_templates(self):
        actual = {p.name for p in (TEMPLATES_DIR / "cmake").iterdir()}
        assert EXPECTED_TEMPLATES.issubset(actual)

    def test_all_templates_present(self):
        actual = {p.name for p in list_cmake_templates()}
        assert EXPECTED_TEMPLATES.issubset(actual), (
            f"Missing templates: {EXPECTED_TEMPLATES - actual}"
        )

    def test_templates_not_empty(self):
        for path in list_cmake_templates():
            assert path.stat().st_size > 0, f"Template {path.name} is empty"


class TestEntryPoint:
    """Ensure the CLI entry point is importable."""

    def test_cli_main_importable(self):
        from clap_first.cli import main  # noqa: F401

    def test_cli_create_parser_importable(self):
        from clap_first.cli import create_parser  # noqa: F401

    def test_public_api(self):
        for name in ("Pipeline", "PipelineState", "BuildConfigGenerator", "run_build"):
            assert hasattr(clap_first, name)
