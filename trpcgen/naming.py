"""Identifier and import-path helpers shared by the parser and the templates."""

from __future__ import annotations

import os

GO_KEYWORDS = frozenset(
    {
        "break", "case", "chan", "const", "continue", "default", "defer",
        "else", "fallthrough", "for", "func", "go", "goto", "if", "import",
        "interface", "map", "package", "range", "return", "select", "struct",
        "switch", "type", "var",
    }
)

# Whole-string replacements applied before camel-casing.
_UPPERCASE_ACRONYMS = {"ID": "id"}

_WORD_SEPARATORS = frozenset(" _-.")


def _is_upper(c: str) -> bool:
    return "A" <= c <= "Z"


def _is_lower(c: str) -> bool:
    return "a" <= c <= "z"


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


def valid_go_package(package: str) -> str:
    """Return a usable Go package name for a protobuf package or go_package value.

    An explicit name after ``;`` wins; otherwise the last path segment is used
    with dots and dashes turned into underscores.
    """
    if ";" in package:
        return package.rsplit(";", 1)[1]
    last = package.rsplit("/", 1)[-1]
    return last.replace(".", "_").replace("-", "_")


def explode_import(import_path: str) -> tuple[str, str]:
    """Split an import spec into ``(import_name, import_path)``."""
    if ";" in import_path:
        path, name = import_path.rsplit(";", 1)
        return name, path
    return valid_go_package(import_path), import_path


def is_go_keyword(name: str) -> bool:
    """Tell whether ``name`` is a reserved Go keyword."""
    return name in GO_KEYWORDS


def _to_delimited(s: str, delimiter: str) -> str:
    s = s.strip()
    out: list[str] = []
    for i, original in enumerate(s):
        v_is_cap = _is_upper(original)
        v_is_low = _is_lower(original)
        v = original.lower() if v_is_cap else original
        if i + 1 < len(s):
            nxt = s[i + 1]
            v_is_num = _is_digit(v)
            next_is_cap = _is_upper(nxt)
            next_is_low = _is_lower(nxt)
            next_is_num = _is_digit(nxt)
            if (
                (v_is_cap and (next_is_low or next_is_num))
                or (v_is_low and (next_is_cap or next_is_num))
                or (v_is_num and (next_is_cap or next_is_low))
            ):
                if v_is_cap and next_is_low and i > 0 and _is_upper(s[i - 1]):
                    out.append(delimiter)
                out.append(v)
                if v_is_low or v_is_num or next_is_num:
                    out.append(delimiter)
                continue
        out.append(delimiter if v in _WORD_SEPARATORS else v)
    return "".join(out)


def to_snake(s: str) -> str:
    """Convert ``s`` to snake_case."""
    return _to_delimited(s, "_")


def _to_camel(s: str, init_upper: bool) -> str:
    s = s.strip()
    if not s:
        return s
    s = _UPPERCASE_ACRONYMS.get(s, s)
    out: list[str] = []
    cap_next = init_upper
    for i, c in enumerate(s):
        c_is_cap = _is_upper(c)
        c_is_low = _is_lower(c)
        if cap_next:
            if c_is_low:
                c = c.upper()
        elif i == 0 and c_is_cap:
            c = c.lower()
        if c_is_cap or c_is_low:
            out.append(c)
            cap_next = False
        elif _is_digit(c):
            out.append(c)
            cap_next = True
        else:
            cap_next = c in _WORD_SEPARATORS
    return "".join(out)


def to_camel(s: str) -> str:
    """Convert ``s`` to UpperCamelCase."""
    return _to_camel(s, True)


def to_lower_camel(s: str) -> str:
    """Convert ``s`` to lowerCamelCase."""
    return _to_camel(s, False)


def trim_right(cutset: str, s: str) -> str:
    """Cut ``s`` at the last occurrence of ``cutset``, keeping what comes before."""
    if cutset and cutset in s:
        return s.rsplit(cutset, 1)[0]
    return s


def base_name_without_ext(path: str) -> str:
    """Return the file name of ``path`` without its final extension."""
    return os.path.splitext(os.path.basename(path))[0]