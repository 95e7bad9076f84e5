"""Tests for the CLAP entry record layout and bridge source generation."""

import ctypes
import shutil
import subprocess
from pathlib import Path

import pytest

from clap_first.core.bridge import (
    CORE_SYMBOL,
    ENTRY_FIELDS,
    EXPORT_SYMBOL,
    BridgeEntryPoint,
    ClapVersion,
    declared_fields,
    describe_layout,
    layout_mismatches,
    layouts_match,
    render_bridge_source,
    render_declarations,
    render_layout_asserts,
    target_layout,
    verify_bridge_source,
)
from clap_first.errors import TemplateError
from clap_first.templates import get_cmake_templates_dir

POINTER_SIZE = ctypes.sizeof(ctypes.c_void_p)

# Skip conditions
_cxx = shutil.which("clang++") or shutil.which("g++")

_skip_no_compiler = pytest.mark.skipif(_cxx is None, reason="C++ compiler required")


@pytest.fixture
def bridge_template() -> Path:
    return get_cmake_templates_dir() / "clap_entry.cpp.template"


class TestLayout:
    """Tests for the ctypes description of the entry record."""

    def test_version_layout(self):
        layout = describe_layout(ClapVersion)
        assert [f.name for f in layout] == ["major", "minor", "revision"]
        assert [f.offset for f in layout] == [0, 4, 8]
        assert ctypes.sizeof(ClapVersion) == 12

    def test_entry_field_order(self):
        """Test that version comes first, then init, deinit, get_factory."""
        layout = describe_layout(BridgeEntryPoint)
        assert [f.name for f in layout] == [
            "version.major",
            "version.minor",
            "version.revision",
            "init",
            "deinit",
            "get_factory",
        ]

    def test_entry_offsets(self):
        """Test function pointers are pointer-aligned after the version."""
        offsets = {f.name: f.offset for f in describe_layout(BridgeEntryPoint)}
        first = ((12 + POINTER_SIZE - 1) // POINTER_SIZE) * POINTER_SIZE
        assert offsets["init"] == first
        assert offsets["deinit"] == first + POINTER_SIZE
        assert offsets["get_factory"] == first + 2 * POINTER_SIZE
        assert ctypes.sizeof(BridgeEntryPoint) == first + 3 * POINTER_SIZE

    def test_function_pointer_sizes(self):
        for field in describe_layout(BridgeEntryPoint)[3:]:
            assert field.size == POINTER_SIZE
            assert field.type_name.startswith("fn(")

    def test_function_signatures(self):
        names = {f.name: f.type_name for f in describe_layout(BridgeEntryPoint)}
        assert names["deinit"] == "fn() -> void"
        assert names["init"].startswith("fn(c_char_p)")


class TestLayoutComparison:
    """Tests for comparing two record layouts."""

    def test_identical(self):
        assert layouts_match(BridgeEntryPoint, BridgeEntryPoint)
        assert layout_mismatches(BridgeEntryPoint, BridgeEntryPoint) == []

    def test_reordered_fields(self):
        """Test that swapping two function pointers is caught."""

        class Swapped(ctypes.Structure):
            _fields_ = [
                ("version", ClapVersion),
                ("deinit", ctypes.CFUNCTYPE(None)),
                ("init", ctypes.CFUNCTYPE(ctypes.c_bool, ctypes.c_char_p)),
                ("get_factory", ctypes.CFUNCTYPE(ctypes.c_void_p, ctypes.c_char_p)),
            ]

        assert not layouts_match(BridgeEntryPoint, Swapped)

    def test_missing_field(self):
        class Short(ctypes.Structure):
            _fields_ = [(f.name, f.ctype) for f in ENTRY_FIELDS[:-1]]

        problems = layout_mismatches(BridgeEntryPoint, Short)
        assert any("field count differs" in p for p in problems)
        assert any("record size differs" in p for p in problems)

    def test_compare_described_layouts(self):
        layout = describe_layout(BridgeEntryPoint)
        assert layouts_match(layout, describe_layout(BridgeEntryPoint))


class TestRendering:
    """Tests for C++ generated from the field tables."""

    def test_declarations(self):
        source = render_declarations()
        assert "struct clap_version {" in source
        assert "struct clap_plugin_entry {" in source
        assert "bool (*init)(const char *plugin_path);" in source
        assert source.index("struct clap_version") < source.index(
            "struct clap_plugin_entry"
        )

    def test_declared_field_order(self):
        source = render_declarations()
        assert declared_fields(source, "clap_plugin_entry") == [
            "version",
            "init",
            "deinit",
            "get_factory",
        ]
        assert declared_fields(source, "clap_version") == ["major", "minor", "revision"]

    def test_declared_fields_missing_struct(self):
        assert declared_fields("int x;", "clap_plugin_entry") is None

    def test_target_layout_matches_ctypes(self):
        """Test the computed layout for this interpreter agrees with ctypes."""
        layout = target_layout(BridgeEntryPoint, POINTER_SIZE)
        for field in ENTRY_FIELDS:
            assert layout.offsets[field.name] == getattr(BridgeEntryPoint, field.name).offset
        assert layout.size == ctypes.sizeof(BridgeEntryPoint)

    def test_target_layout_per_pointer_size(self):
        """Test offsets follow the target's pointer size, not the interpreter's."""
        narrow = target_layout(BridgeEntryPoint, 4)
        wide = target_layout(BridgeEntryPoint, 8)
        assert narrow.offsets == {"version": 0, "init": 12, "deinit": 16, "get_factory": 20}
        assert narrow.size == 24
        assert wide.offsets == {"version": 0, "init": 16, "deinit": 24, "get_factory": 32}
        assert wide.size == 40
        assert target_layout(ClapVersion, 4) == target_layout(ClapVersion, 8)

    def test_layout_asserts_select_on_pointer_size(self):
        asserts = render_layout_asserts()
        assert "sizeof(void *) == 4 || sizeof(void *) == 8" in asserts
        assert "offsetof(clap_plugin_entry, version) == 0," in asserts
        assert (
            "offsetof(clap_plugin_entry, init) == (sizeof(void *) == 8 ? 16 : 12)"
            in asserts
        )
        assert "sizeof(clap_plugin_entry) == (sizeof(void *) == 8 ? 40 : 24)" in asserts
        assert "sizeof(clap_version) == 12," in asserts

    def test_render_bridge_source(self, bridge_template: Path):
        source = render_bridge_source(bridge_template)
        assert "$" not in source
        assert f"extern const clap_plugin_entry {CORE_SYMBOL};" in source
        assert f"{EXPORT_SYMBOL} = {CORE_SYMBOL};" in source
        assert "#include <cstddef>" in source
        verify_bridge_source(source)

    def test_render_missing_template(self, tmp_path: Path):
        with pytest.raises(TemplateError, match="not found"):
            render_bridge_source(tmp_path / "missing.template")


class TestVerification:
    """Tests for checking bridge sources against the record."""

    def test_reordered_source_rejected(self):
        source = render_declarations().replace(
            "  bool (*init)(const char *plugin_path);\n  void (*deinit)();",
            "  void (*deinit)();\n  bool (*init)(const char *plugin_path);",
        )
        with pytest.raises(TemplateError, match="clap_plugin_entry"):
            verify_bridge_source(source)

    def test_missing_struct_rejected(self):
        with pytest.raises(TemplateError):
            verify_bridge_source("struct clap_version { uint32_t major; };")


@_skip_no_compiler
class TestCompile:
    """Compile the generated bridge so the static_asserts run for real."""

    def test_bridge_compiles(self, bridge_template: Path, tmp_path: Path):
        source = tmp_path / "clap_entry.cpp"
        source.write_text(render_bridge_source(bridge_template))
        shutil.copy(bridge_template.parent / "clap_entry.h", tmp_path / "clap_entry.h")

        result = subprocess.run(
            [_cxx, "-std=c++17", "-fsyntax-only", "-I", str(tmp_path), str(source)],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0, result.stderr
