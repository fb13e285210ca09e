"""Parsed header declarations.

A small, parser-independent model of what a C header declares. Types are
already rendered as Python ctypes expressions (e.g. "ctypes.c_uint32",
"ctypes.POINTER(vfu_ctx)", "None" for void) so the emitter only has to lay
them out.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass
class Constant:
    """Integer constant from an object-like macro."""

    name: str
    value: int
    comment: str = ""


@dataclass
class EnumDecl:
    """C enum; constants are emitted as module-level integers."""

    name: Optional[str]
    ctype: str
    constants: List[Tuple[str, int]] = field(default_factory=list)
    comment: str = ""


@dataclass
class FieldDecl:
    """Struct or union member."""

    name: str
    ctype: str
    bit_width: Optional[int] = None
    anonymous: bool = False
    comment: str = ""


@dataclass
class RecordDecl:
    """Struct or union. Opaque records have no fields."""

    name: str
    kind: str = "struct"
    fields: List[FieldDecl] = field(default_factory=list)
    opaque: bool = False
    packed: bool = False
    comment: str = ""
    # Records embedded by value; their _fields_ must be set first
    value_deps: List[str] = field(default_factory=list)

    @property
    def base_class(self) -> str:
        return "ctypes.Union" if self.kind == "union" else "ctypes.Structure"


@dataclass
class TypedefDecl:
    """Type alias."""

    name: str
    ctype: str
    comment: str = ""


@dataclass
class ParamDecl:
    """Function parameter."""

    name: str
    ctype: str


@dataclass
class FunctionDecl:
    """Function prototype."""

    name: str
    restype: str
    params: List[ParamDecl] = field(default_factory=list)
    variadic: bool = False
    comment: str = ""


@dataclass
class HeaderDeclarations:
    """Everything extracted from one allowlisted header."""

    header_name: str
    constants: List[Constant] = field(default_factory=list)
    enums: List[EnumDecl] = field(default_factory=list)
    records: List[RecordDecl] = field(default_factory=list)
    typedefs: List[TypedefDecl] = field(default_factory=list)
    functions: List[FunctionDecl] = field(default_factory=list)
