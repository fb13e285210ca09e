"""ctypes source emitter.

Renders HeaderDeclarations as a Python module. Output is a pure function of
the declarations: no timestamps or absolute paths, so regenerating from an
unchanged header gives byte-identical text.

Module layout:
    1. constants (macros)
    2. enums (constants plus a type alias)
    3. struct/union class shells
    4. typedef aliases
    5. _fields_ assignments (after all shells, so records can refer to each other)
    6. functions as ForeignFunction descriptors
"""

import keyword
import re
from typing import List

from .declarations import (
    EnumDecl,
    FunctionDecl,
    HeaderDeclarations,
    RecordDecl,
    TypedefDecl,
)

RUNTIME_MODULE = "vfio_user_sys.runtime"

_COMMENT_MARKERS = re.compile(r"^(/\*+!?|\*+/|\*(?!/)|///?<?|//!)\s?")


def python_name(name: str) -> str:
    """Make a C identifier safe to use as a Python name."""
    if keyword.iskeyword(name):
        return name + "_"
    return name


def comment_lines(comment: str, indent: str = "") -> List[str]:
    """Turn a raw C comment into Python '#' comment lines.

    Args:
        comment: Raw comment text including /* */ or // markers
        indent: Prefix for every produced line

    Returns:
        Comment lines, without trailing blank lines
    """
    lines = []
    for raw in comment.splitlines():
        line = raw.strip()
        if line.endswith("*/"):
            line = line[:-2].rstrip()
        line = _COMMENT_MARKERS.sub("", line).rstrip()
        lines.append(f"{indent}# {line}".rstrip())

    while lines and lines[0].strip() == "#":
        lines.pop(0)
    while lines and lines[-1].strip() == "#":
        lines.pop()
    return lines


class CtypesEmitter:
    """Renders parsed declarations into a ctypes module."""

    def __init__(self, runtime_module: str = RUNTIME_MODULE):
        self.runtime_module = runtime_module

    def render(self, decls: HeaderDeclarations) -> str:
        """
        Render a complete module.

        Args:
            decls: Declarations parsed from the header

        Returns:
            Python source text ending with a single newline
        """
        out: List[str] = []
        out.append(f'"""ctypes declarations generated from {decls.header_name}.')
        out.append("")
        out.append("Do not edit: this file is regenerated on every build.")
        out.append('"""')
        out.append("")
        out.append("import ctypes")
        out.append("")
        out.append(f"from {self.runtime_module} import ForeignFunction")

        if decls.constants:
            out.append("")
            out.append("")
            for const in decls.constants:
                out.extend(comment_lines(const.comment))
                out.append(f"{python_name(const.name)} = {const.value}")

        for enum in decls.enums:
            out.append("")
            out.append("")
            out.extend(self._render_enum(enum))

        for record in decls.records:
            out.append("")
            out.append("")
            out.extend(self._render_record_shell(record))

        if decls.typedefs:
            out.append("")
            out.append("")
            for typedef in decls.typedefs:
                out.extend(self._render_typedef(typedef))

        for record in self.fields_order(decls.records):
            out.append("")
            out.append("")
            out.extend(self._render_record_fields(record))

        for function in decls.functions:
            out.append("")
            out.append("")
            out.extend(self._render_function(function))

        return "\n".join(out) + "\n"

    @staticmethod
    def fields_order(records: List[RecordDecl]) -> List[RecordDecl]:
        """Order non-opaque records so by-value members are completed first.

        ctypes finalizes a Structure the first time it is embedded, so its
        _fields_ must already be set. Source order is kept otherwise.
        """
        by_name = {r.name: r for r in records if not r.opaque}
        ordered: List[RecordDecl] = []
        visiting: set = set()
        done: set = set()

        def visit(record: RecordDecl) -> None:
            if record.name in done or record.name in visiting:
                return
            visiting.add(record.name)
            for dep in record.value_deps:
                if dep in by_name:
                    visit(by_name[dep])
            visiting.discard(record.name)
            done.add(record.name)
            ordered.append(record)

        for record in records:
            if not record.opaque:
                visit(record)
        return ordered

    def _render_enum(self, enum: EnumDecl) -> List[str]:
        lines = comment_lines(enum.comment)
        if enum.name:
            lines.append(f"{python_name(enum.name)} = {enum.ctype}")
        for name, value in enum.constants:
            lines.append(f"{python_name(name)} = {value}")
        return lines

    def _render_record_shell(self, record: RecordDecl) -> List[str]:
        lines = comment_lines(record.comment)
        lines.append(f"class {python_name(record.name)}({record.base_class}):")
        if record.packed:
            lines.append("    _pack_ = 1")
        else:
            lines.append("    pass")
        return lines

    def _render_typedef(self, typedef: TypedefDecl) -> List[str]:
        name = python_name(typedef.name)
        if name == typedef.ctype:
            # typedef struct foo foo;
            return []
        lines = comment_lines(typedef.comment)
        lines.append(f"{name} = {typedef.ctype}")
        return lines

    def _render_record_fields(self, record: RecordDecl) -> List[str]:
        name = python_name(record.name)
        lines = []
        anonymous = [f.name for f in record.fields if f.anonymous]
        if anonymous:
            names = ", ".join(f'"{n}"' for n in anonymous)
            lines.append(f"{name}._anonymous_ = [{names}]")

        if not record.fields:
            lines.append(f"{name}._fields_ = []")
            return lines

        lines.append(f"{name}._fields_ = [")
        for fld in record.fields:
            lines.extend(comment_lines(fld.comment, indent="    "))
            if fld.bit_width is not None:
                lines.append(f'    ("{fld.name}", {fld.ctype}, {fld.bit_width}),')
            else:
                lines.append(f'    ("{fld.name}", {fld.ctype}),')
        lines.append("]")
        return lines

    def _render_function(self, function: FunctionDecl) -> List[str]:
        lines = comment_lines(function.comment)
        argtypes = ", ".join(p.ctype for p in function.params)
        call = f'ForeignFunction("{function.name}", {function.restype}, [{argtypes}]'
        if function.variadic:
            call += ", variadic=True"
        call += ")"
        lines.append(f"{python_name(function.name)} = {call}")
        return lines
