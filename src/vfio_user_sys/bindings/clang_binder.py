"""libclang-backed header binder.

Parses a C header with libclang and renders ctypes declarations.

Allowlisting works on declarations, not text: everything declared in the
allowlisted header is emitted, plus every record, enum and typedef those
declarations reach (e.g. struct iovec from <sys/uio.h>), transitively.
Unrelated system declarations pulled in by includes are dropped.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Set

from clang.cindex import (
    CursorKind,
    Diagnostic,
    Index,
    TranslationUnit,
    TranslationUnitLoadError,
    TypeKind,
)

from .binder import BindOptions, GenerateFailure, IHeaderBinder
from .declarations import (
    Constant,
    EnumDecl,
    FieldDecl,
    FunctionDecl,
    HeaderDeclarations,
    ParamDecl,
    RecordDecl,
    TypedefDecl,
)
from .emitter import CtypesEmitter, python_name

PRIMITIVES: Dict[TypeKind, str] = {
    TypeKind.VOID: "None",
    TypeKind.BOOL: "ctypes.c_bool",
    TypeKind.CHAR_S: "ctypes.c_char",
    TypeKind.CHAR_U: "ctypes.c_char",
    TypeKind.SCHAR: "ctypes.c_byte",
    TypeKind.UCHAR: "ctypes.c_ubyte",
    TypeKind.WCHAR: "ctypes.c_wchar",
    TypeKind.CHAR16: "ctypes.c_uint16",
    TypeKind.CHAR32: "ctypes.c_uint32",
    TypeKind.SHORT: "ctypes.c_short",
    TypeKind.USHORT: "ctypes.c_ushort",
    TypeKind.INT: "ctypes.c_int",
    TypeKind.UINT: "ctypes.c_uint",
    TypeKind.LONG: "ctypes.c_long",
    TypeKind.ULONG: "ctypes.c_ulong",
    TypeKind.LONGLONG: "ctypes.c_longlong",
    TypeKind.ULONGLONG: "ctypes.c_ulonglong",
    TypeKind.INT128: "(ctypes.c_ubyte * 16)",
    TypeKind.UINT128: "(ctypes.c_ubyte * 16)",
    TypeKind.FLOAT: "ctypes.c_float",
    TypeKind.DOUBLE: "ctypes.c_double",
    TypeKind.LONGDOUBLE: "ctypes.c_longdouble",
}

# Typedefs with a direct ctypes equivalent are never emitted as aliases
FIXED_WIDTH_TYPEDEFS: Dict[str, str] = {
    "int8_t": "ctypes.c_int8",
    "int16_t": "ctypes.c_int16",
    "int32_t": "ctypes.c_int32",
    "int64_t": "ctypes.c_int64",
    "uint8_t": "ctypes.c_uint8",
    "uint16_t": "ctypes.c_uint16",
    "uint32_t": "ctypes.c_uint32",
    "uint64_t": "ctypes.c_uint64",
    "size_t": "ctypes.c_size_t",
    "ssize_t": "ctypes.c_ssize_t",
    "intptr_t": "ctypes.c_ssize_t",
    "uintptr_t": "ctypes.c_size_t",
    "ptrdiff_t": "ctypes.c_ssize_t",
    "wchar_t": "ctypes.c_wchar",
}

_RECORD_KINDS = (CursorKind.STRUCT_DECL, CursorKind.UNION_DECL)
_INT_LITERAL = re.compile(r"^(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)[uUlL]*$")


def _is_unnamed(cursor) -> bool:
    spelling = cursor.spelling or ""
    return not spelling or "(unnamed" in spelling or "(anonymous" in spelling


def _decl_key(cursor) -> str:
    usr = cursor.get_usr()
    if usr:
        return usr
    loc = cursor.location
    return f"{loc.file}:{loc.line}:{loc.column}:{cursor.kind.name}"


def _parse_int_literal(text: str) -> Optional[int]:
    match = _INT_LITERAL.match(text)
    if not match:
        return None
    digits = match.group(1)
    if digits[:2] in ("0x", "0X"):
        return int(digits, 16)
    if len(digits) > 1 and digits[0] == "0":
        return int(digits, 8)
    return int(digits)


class _DeclarationCollector:
    """Walks one translation unit and collects allowlisted declarations."""

    def __init__(self, allowlist_file: Path):
        self.allowlist_file = allowlist_file.resolve()
        self.decls = HeaderDeclarations(header_name=allowlist_file.name)
        self._records: Dict[str, str] = {}  # decl key -> emitted name
        self._typedefs: Dict[str, str] = {}
        self._enums: Dict[str, str] = {}
        self._functions: Set[str] = set()
        self._anon_counter = 0

    def in_allowlist(self, cursor) -> bool:
        file = cursor.location.file
        return file is not None and Path(file.name).resolve() == self.allowlist_file

    def collect(self, tu) -> HeaderDeclarations:
        for cursor in tu.cursor.get_children():
            if not self.in_allowlist(cursor):
                continue

            kind = cursor.kind
            if kind == CursorKind.FUNCTION_DECL:
                self._add_function(cursor)
            elif kind in _RECORD_KINDS:
                # Unnamed records are emitted under the typedef or field that names them
                if not _is_unnamed(cursor):
                    self._require_record(cursor)
            elif kind == CursorKind.ENUM_DECL:
                self._require_enum(cursor)
            elif kind == CursorKind.TYPEDEF_DECL:
                self._require_typedef(cursor)
            elif kind == CursorKind.MACRO_DEFINITION:
                self._add_macro(cursor)

        return self.decls

    # Declarations

    def _add_function(self, cursor) -> None:
        if cursor.spelling in self._functions:
            return
        self._functions.add(cursor.spelling)

        params = []
        for index, arg in enumerate(cursor.get_arguments()):
            params.append(ParamDecl(arg.spelling or f"arg{index}", self.convert(arg.type)))

        variadic = (
            cursor.type.kind == TypeKind.FUNCTIONPROTO
            and cursor.type.is_function_variadic()
        )
        self.decls.functions.append(
            FunctionDecl(
                name=cursor.spelling,
                restype=self.convert(cursor.result_type),
                params=params,
                variadic=variadic,
                comment=cursor.raw_comment or "",
            )
        )

    def _add_macro(self, cursor) -> None:
        tokens = [t.spelling for t in cursor.get_tokens()]
        if len(tokens) == 2:
            value = _parse_int_literal(tokens[1])
        elif len(tokens) == 3 and tokens[1] == "-":
            value = _parse_int_literal(tokens[2])
            value = -value if value is not None else None
        else:
            return
        if value is None:
            return
        self.decls.constants.append(Constant(tokens[0], value, cursor.raw_comment or ""))

    def _require_enum(self, cursor) -> str:
        """Emit an enum once; returns the ctypes expression for its type."""
        definition = cursor.get_definition() or cursor
        key = _decl_key(definition)
        if key in self._enums:
            return self._enums[key]

        ctype = self.convert(definition.enum_type)
        name = None if _is_unnamed(definition) else python_name(definition.spelling)
        self._enums[key] = name or ctype

        constants = [
            (child.spelling, child.enum_value)
            for child in definition.get_children()
            if child.kind == CursorKind.ENUM_CONSTANT_DECL
        ]
        self.decls.enums.append(
            EnumDecl(name=name, ctype=ctype, constants=constants,
                     comment=definition.raw_comment or "")
        )
        return self._enums[key]

    def _require_record(self, cursor, name_hint: Optional[str] = None) -> str:
        """Emit a struct/union once; returns its Python class name."""
        definition = cursor.get_definition() or cursor
        key = _decl_key(definition)
        if key in self._records:
            return self._records[key]

        if _is_unnamed(definition):
            if name_hint is None:
                self._anon_counter += 1
                name_hint = f"_anon{self._anon_counter}"
            name = python_name(name_hint)
        else:
            name = python_name(definition.spelling)

        # Register before converting fields so self-referencing pointers resolve
        self._records[key] = name
        record = RecordDecl(
            name=name,
            kind="union" if definition.kind == CursorKind.UNION_DECL else "struct",
            opaque=not definition.is_definition(),
            comment=definition.raw_comment or "",
        )
        self.decls.records.append(record)

        if not record.opaque:
            self._fill_record(definition, record)
        return name

    def _fill_record(self, definition, record: RecordDecl) -> None:
        children = list(definition.get_children())
        referenced = {
            _decl_key(child.type.get_declaration())
            for child in children
            if child.kind == CursorKind.FIELD_DECL
        }

        anon_members = 0
        for child in children:
            if child.kind == CursorKind.PACKED_ATTR:
                record.packed = True
            elif child.kind in _RECORD_KINDS and _is_unnamed(child) \
                    and _decl_key(child) not in referenced:
                # C11 anonymous struct/union member
                anon_members += 1
                member = f"_anon{anon_members}"
                class_name = self._require_record(child, f"{record.name}{member}")
                record.fields.append(
                    FieldDecl(member, class_name, anonymous=True,
                              comment=child.raw_comment or "")
                )
                record.value_deps.append(class_name)
            elif child.kind == CursorKind.FIELD_DECL:
                value_deps: List[str] = []
                ctype = self.convert(
                    child.type,
                    name_hint=f"{record.name}_{child.spelling}",
                    value_deps=value_deps,
                )
                width = child.get_bitfield_width() if child.is_bitfield() else None
                record.fields.append(
                    FieldDecl(child.spelling, ctype, bit_width=width,
                              comment=child.raw_comment or "")
                )
                record.value_deps.extend(value_deps)

    def _require_typedef(self, cursor) -> str:
        """Emit a typedef once; returns the name to refer to it by."""
        name = cursor.spelling
        if name in FIXED_WIDTH_TYPEDEFS:
            return FIXED_WIDTH_TYPEDEFS[name]

        key = _decl_key(cursor)
        if key in self._typedefs:
            return self._typedefs[key]

        underlying = cursor.underlying_typedef_type
        # typedef struct { ... } name; gives the unnamed record the typedef's name
        ctype = self.convert(underlying, name_hint=name)
        alias = python_name(name)
        self._typedefs[key] = alias
        self.decls.typedefs.append(TypedefDecl(alias, ctype, cursor.raw_comment or ""))
        return alias

    # Types

    def convert(self, ctype, name_hint: Optional[str] = None,
                value_deps: Optional[List[str]] = None) -> str:
        """Render a clang type as a ctypes expression.

        Args:
            ctype: clang.cindex.Type
            name_hint: Name for an unnamed record/enum reached directly
            value_deps: Collects records embedded by value (not via pointer)

        Returns:
            ctypes expression string
        """
        kind = ctype.kind

        if kind in PRIMITIVES:
            return PRIMITIVES[kind]

        if kind == TypeKind.ELABORATED:
            return self.convert(ctype.get_named_type(), name_hint, value_deps)

        if kind == TypeKind.TYPEDEF:
            declaration = ctype.get_declaration()
            if declaration.spelling in FIXED_WIDTH_TYPEDEFS:
                return FIXED_WIDTH_TYPEDEFS[declaration.spelling]
            alias = self._require_typedef(declaration)
            if value_deps is not None:
                canonical = ctype.get_canonical()
                if canonical.kind == TypeKind.RECORD:
                    value_deps.append(self._require_record(canonical.get_declaration()))
            return alias

        if kind == TypeKind.RECORD:
            name = self._require_record(ctype.get_declaration(), name_hint)
            if value_deps is not None:
                value_deps.append(name)
            return name

        if kind == TypeKind.ENUM:
            return self._require_enum(ctype.get_declaration())

        if kind == TypeKind.POINTER:
            return self._convert_pointer(ctype.get_pointee())

        if kind == TypeKind.CONSTANTARRAY:
            element = self.convert(ctype.get_array_element_type(), name_hint, value_deps)
            return f"({element} * {ctype.get_array_size()})"

        if kind == TypeKind.INCOMPLETEARRAY:
            if value_deps is None:
                # Parameter position: decays to a pointer
                return self._convert_pointer(ctype.get_array_element_type())
            element = self.convert(ctype.get_array_element_type(), name_hint, value_deps)
            return f"({element} * 0)"

        if kind in (TypeKind.FUNCTIONPROTO, TypeKind.FUNCTIONNOPROTO):
            return self._convert_function(ctype)

        logging.warning(f"Unsupported C type '{ctype.spelling}', using ctypes.c_void_p")
        return "ctypes.c_void_p"

    def _convert_pointer(self, pointee) -> str:
        canonical = pointee.get_canonical()
        if canonical.kind == TypeKind.VOID:
            return "ctypes.c_void_p"
        if canonical.kind in (TypeKind.CHAR_S, TypeKind.CHAR_U) \
                and pointee.kind != TypeKind.TYPEDEF:
            return "ctypes.c_char_p"
        if canonical.kind in (TypeKind.FUNCTIONPROTO, TypeKind.FUNCTIONNOPROTO):
            if pointee.kind == TypeKind.TYPEDEF:
                # Pointer to a function typedef: the alias is already a CFUNCTYPE
                return self.convert(pointee)
            return self._convert_function(canonical)
        return f"ctypes.POINTER({self.convert(pointee)})"

    def _convert_function(self, ftype) -> str:
        restype = self.convert(ftype.get_result())
        if ftype.kind == TypeKind.FUNCTIONPROTO:
            args = [self.convert(arg) for arg in ftype.argument_types()]
        else:
            args = []
        return f"ctypes.CFUNCTYPE({', '.join([restype] + args)})"


class ClangHeaderBinder(IHeaderBinder):
    """Generates ctypes bindings with libclang."""

    def __init__(self, emitter: Optional[CtypesEmitter] = None):
        self.emitter = emitter or CtypesEmitter()

    def parse_args(self, options: BindOptions) -> List[str]:
        """Compiler arguments for the parse."""
        args = ["-x", "c", "-std=gnu11"]
        if options.parse_all_comments:
            # Keep plain /* */ explanations, not only /** */ doc comments
            args.append("-fparse-all-comments")
        args.extend(options.clang_args)
        return args

    def parse(self, options: BindOptions) -> HeaderDeclarations:
        """
        Parse the header into declarations.

        Args:
            options: Parse request

        Returns:
            HeaderDeclarations for the allowlisted file

        Raises:
            GenerateFailure: If libclang cannot load or parse the header
        """
        header = Path(options.header_path)
        logging.info(f"Parsing: {header}")

        try:
            tu = Index.create().parse(
                str(header),
                args=self.parse_args(options),
                options=TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD
                | TranslationUnit.PARSE_SKIP_FUNCTION_BODIES,
            )
        except TranslationUnitLoadError as e:
            raise GenerateFailure(f"Unable to parse {header}: {e}") from e

        errors = [
            f"{diag.location.file}:{diag.location.line}: {diag.spelling}"
            for diag in tu.diagnostics
            if diag.severity >= Diagnostic.Error
        ]
        if errors:
            raise GenerateFailure(
                f"Unable to generate bindings for {header}:\n" + "\n".join(errors)
            )

        options.notify(header)
        for inclusion in tu.get_includes():
            options.notify(Path(inclusion.include.name))

        decls = _DeclarationCollector(Path(options.allowlist_file)).collect(tu)
        logging.info(
            f"  Found: {len(decls.functions)} functions, "
            f"{len(decls.records)} records, "
            f"{len(decls.enums)} enums, "
            f"{len(decls.typedefs)} typedefs, "
            f"{len(decls.constants)} constants"
        )
        return decls

    def generate(self, options: BindOptions) -> str:
        return self.emitter.render(self.parse(options))
