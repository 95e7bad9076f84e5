"""
The CLAP entry record shared across the cargo/CMake seam.

The Rust core exports a ``clap_plugin_entry`` under a non-standard symbol
(``rust_clap_entry``); the bridging unit compiled by CMake re-exports the
same bytes as ``clap_entry`` for clap-wrapper. Both sides must agree on the
record layout exactly, so the layout is described once here:

- as ctypes structures, which give field order, sizes and offsets for the
  host ABI;
- as C++ declarations rendered from the same field table, with
  static_asserts pinning every offset. The asserted offsets are computed
  from the field table for each target pointer size, so a 32-bit
  interpreter driving a 64-bit toolchain (or the reverse) checks the
  target's layout, not its own.
"""

import ctypes
import re
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Any, Optional

from clap_first.errors import TemplateError

# Symbol exported by the core static library
CORE_SYMBOL = "rust_clap_entry"
# Symbol clap-wrapper looks up in the bridging unit
EXPORT_SYMBOL = "clap_entry"

# Target pointer sizes the rendered layout asserts cover, narrowest first
POINTER_SIZES = (4, 8)


@dataclass(frozen=True)
class FieldSpec:
    """One field of a contract struct."""

    name: str
    ctype: Any
    # C++ declarator; {name} is replaced by the field name
    cdecl: str

    def render(self) -> str:
        return self.cdecl.format(name=self.name) + ";"


VERSION_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("major", ctypes.c_uint32, "uint32_t {name}"),
    FieldSpec("minor", ctypes.c_uint32, "uint32_t {name}"),
    FieldSpec("revision", ctypes.c_uint32, "uint32_t {name}"),
)


class ClapVersion(ctypes.Structure):
    """clap_version_t: major, minor, revision."""

    _fields_ = [(f.name, f.ctype) for f in VERSION_FIELDS]


InitFn = ctypes.CFUNCTYPE(ctypes.c_bool, ctypes.c_char_p)
DeinitFn = ctypes.CFUNCTYPE(None)
GetFactoryFn = ctypes.CFUNCTYPE(ctypes.c_void_p, ctypes.c_char_p)

ENTRY_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("version", ClapVersion, "clap_version {name}"),
    FieldSpec("init", InitFn, "bool (*{name})(const char *plugin_path)"),
    FieldSpec("deinit", DeinitFn, "void (*{name})()"),
    FieldSpec(
        "get_factory", GetFactoryFn, "const void *(*{name})(const char *factory_id)"
    ),
)


class BridgeEntryPoint(ctypes.Structure):
    """clap_plugin_entry_t: version, init, deinit, get_factory."""

    _fields_ = [(f.name, f.ctype) for f in ENTRY_FIELDS]


# (C++ struct name, ctypes class, field table), dependencies first
CONTRACT_STRUCTS: tuple[tuple[str, Any, tuple[FieldSpec, ...]], ...] = (
    ("clap_version", ClapVersion, VERSION_FIELDS),
    ("clap_plugin_entry", BridgeEntryPoint, ENTRY_FIELDS),
)


# -----------------------------------------------------------------------------
# Layout introspection
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldLayout:
    """Flattened description of one scalar field."""

    name: str
    type_name: str
    offset: int
    size: int


def _type_name(ctype: Any) -> str:
    if hasattr(ctype, "_argtypes_"):
        args = ", ".join(_type_name(a) for a in ctype._argtypes_)
        restype = ctype._restype_
        result = "void" if restype is None else _type_name(restype)
        return f"fn({args}) -> {result}"
    return ctype.__name__


def describe_layout(struct: Any, prefix: str = "", base: int = 0) -> tuple[FieldLayout, ...]:
    """
    Flatten a ctypes Structure into ordered scalar field layouts.

    Nested structures are expanded with dotted names ('version.major'),
    offsets are absolute from the start of the outer record.

    Args:
        struct: ctypes.Structure subclass.

    Returns:
        Tuple of FieldLayout in declaration order.
    """
    layout: list[FieldLayout] = []
    for name, ctype in struct._fields_:
        descriptor = getattr(struct, name)
        offset = base + descriptor.offset
        if isinstance(ctype, type) and issubclass(ctype, ctypes.Structure):
            layout.extend(describe_layout(ctype, f"{prefix}{name}.", offset))
        else:
            layout.append(
                FieldLayout(
                    name=f"{prefix}{name}",
                    type_name=_type_name(ctype),
                    offset=offset,
                    size=ctypes.sizeof(ctype),
                )
            )
    return tuple(layout)


def layout_mismatches(expected: Any, actual: Any) -> list[str]:
    """
    Compare two record layouts field by field.

    Args:
        expected: ctypes Structure class (or a describe_layout() result).
        actual: ctypes Structure class (or a describe_layout() result).

    Returns:
        Human-readable differences (empty if identical).
    """
    left = expected if isinstance(expected, tuple) else describe_layout(expected)
    right = actual if isinstance(actual, tuple) else describe_layout(actual)

    problems = []
    if len(left) != len(right):
        problems.append(f"field count differs: {len(left)} != {len(right)}")
    for a, b in zip(left, right):
        if a != b:
            problems.append(f"{a} != {b}")
    if not isinstance(expected, tuple) and not isinstance(actual, tuple):
        if ctypes.sizeof(expected) != ctypes.sizeof(actual):
            problems.append(
                f"record size differs: {ctypes.sizeof(expected)} != {ctypes.sizeof(actual)}"
            )
    return problems


def layouts_match(expected: Any, actual: Any) -> bool:
    """Whether two records are field-for-field identical."""
    return not layout_mismatches(expected, actual)


@dataclass(frozen=True)
class TargetLayout:
    """Offsets, size and alignment of a contract struct on some target."""

    offsets: dict[str, int]
    size: int
    alignment: int


def _align_up(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


def _size_and_alignment(ctype: Any, pointer_size: int) -> tuple[int, int]:
    if hasattr(ctype, "_argtypes_") or ctype in (ctypes.c_void_p, ctypes.c_char_p):
        return pointer_size, pointer_size
    if isinstance(ctype, type) and issubclass(ctype, ctypes.Structure):
        layout = target_layout(ctype, pointer_size)
        return layout.size, layout.alignment
    # Fixed-width scalars are naturally aligned on every supported target
    size = ctypes.sizeof(ctype)
    return size, size


def target_layout(struct: Any, pointer_size: int) -> TargetLayout:
    """
    Compute a contract struct's C layout for a target pointer size.

    Uses the field tables and natural alignment, independent of the ABI of
    the running interpreter.

    Args:
        struct: ctypes.Structure subclass listed in CONTRACT_STRUCTS.
        pointer_size: sizeof(void *) on the target, in bytes.

    Returns:
        TargetLayout for that target.
    """
    fields = next(f for _, s, f in CONTRACT_STRUCTS if s is struct)
    offsets = {}
    offset = 0
    alignment = 1
    for f in fields:
        size, field_alignment = _size_and_alignment(f.ctype, pointer_size)
        offset = _align_up(offset, field_alignment)
        offsets[f.name] = offset
        offset += size
        alignment = max(alignment, field_alignment)
    return TargetLayout(offsets, _align_up(offset, alignment), alignment)


# -----------------------------------------------------------------------------
# C++ rendering
# -----------------------------------------------------------------------------


def render_declarations() -> str:
    """Render the C++ struct declarations for the contract."""
    blocks = []
    for cname, _, fields in CONTRACT_STRUCTS:
        lines = [f"struct {cname} {{"]
        lines.extend(f"  {f.render()}" for f in fields)
        lines.append("};")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def _pointer_expr(values: dict[int, int]) -> str:
    """C++ constant for a value that depends on the target's pointer size."""
    narrow, wide = (values[size] for size in POINTER_SIZES)
    if narrow == wide:
        return str(narrow)
    return f"(sizeof(void *) == {POINTER_SIZES[1]} ? {wide} : {narrow})"


def render_layout_asserts() -> str:
    """
    Render static_asserts pinning the C++ layout to the field tables.

    The expected offsets are computed for every supported pointer size and
    selected by the compiler with sizeof(void *), so they hold for the
    compile target rather than for the interpreter running clap-first.
    """
    layouts = {size: {} for size in POINTER_SIZES}
    for size in POINTER_SIZES:
        for cname, struct, _ in CONTRACT_STRUCTS:
            layouts[size][cname] = target_layout(struct, size)

    lines = [
        "static_assert("
        + " || ".join(f"sizeof(void *) == {size}" for size in POINTER_SIZES)
        + ', "unsupported pointer size");'
    ]
    for cname, _, fields in CONTRACT_STRUCTS:
        record_size = {s: layouts[s][cname].size for s in POINTER_SIZES}
        lines.append(
            f"static_assert(sizeof({cname}) == {_pointer_expr(record_size)}, "
            f'"{cname} size drifted from the entry contract");'
        )
        for f in fields:
            offset = {s: layouts[s][cname].offsets[f.name] for s in POINTER_SIZES}
            lines.append(
                f"static_assert(offsetof({cname}, {f.name}) == {_pointer_expr(offset)}, "
                f'"{cname}.{f.name} offset drifted from the entry contract");'
            )
    return "\n".join(lines)


def render_bridge_source(template_path: Path) -> str:
    """
    Render clap_entry.cpp from its template.

    Args:
        template_path: Path to clap_entry.cpp.template.

    Returns:
        C++ source text.

    Raises:
        TemplateError: If the template is missing.
    """
    if not template_path.exists():
        raise TemplateError(f"Bridge template not found at {template_path}")

    template = Template(template_path.read_text(encoding="utf-8"))
    return template.safe_substitute(
        entry_declarations=render_declarations(),
        layout_asserts=render_layout_asserts(),
        core_symbol=CORE_SYMBOL,
        export_symbol=EXPORT_SYMBOL,
    )


def declared_fields(source: str, struct_name: str) -> Optional[list[str]]:
    """
    Field names of a struct declared in C/C++ source, in order.

    Only handles the declarator shapes the contract uses (plain members and
    function pointers).

    Returns:
        List of field names, or None if the struct is not declared.
    """
    match = re.search(
        rf"struct\s+{re.escape(struct_name)}\s*\{{(.*?)\}};", source, re.DOTALL
    )
    if match is None:
        return None

    names = []
    for decl in match.group(1).split(";"):
        decl = decl.strip()
        if not decl:
            continue
        fn_ptr = re.search(r"\(\s*\*\s*(\w+)\s*\)", decl)
        if fn_ptr:
            names.append(fn_ptr.group(1))
        else:
            names.append(re.findall(r"\w+", decl)[-1])
    return names


def verify_bridge_source(source: str) -> None:
    """
    Check that rendered bridge source declares the contract fields in order.

    Raises:
        TemplateError: If a struct is missing or its fields differ.
    """
    for cname, _, fields in CONTRACT_STRUCTS:
        found = declared_fields(source, cname)
        expected = [f.name for f in fields]
        if found != expected:
            raise TemplateError(
                f"Bridge source declares {cname} as {found}, expected {expected}"
            )
