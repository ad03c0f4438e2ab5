"""RESTful path templates compiled into regular expressions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_META = set("\\.+*?()|[]{}^$")


def _quote_meta(s: str) -> str:
    return "".join("\\" + c if c in _META else c for c in s)


@dataclass
class TemplateRE:
    """The regular expression derived from a path template and its statistics."""

    expression: str
    literal_count: int = 0
    var_names: list[str] = field(default_factory=list)
    var_count: int = 0
    tokens: list[str] = field(default_factory=list)


@dataclass
class PathExpression:
    """A compiled REST path expression."""

    literal_count: int
    var_names: list[str]
    var_count: int
    matcher: re.Pattern
    source: str
    tokens: list[str]


def tokenize_path(path: str) -> list[str]:
    """Split a URL path on slashes, ignoring leading and trailing ones."""
    if path == "/":
        return []
    return path.strip("/").split("/")


def template_to_re(template: str) -> TemplateRE:
    """Convert a RESTful path template into a regular expression."""
    parts = ["^"]
    literal_count = 0
    var_names: list[str] = []
    tokens = tokenize_path(template)
    for each in tokens:
        if not each:
            continue
        parts.append("/")
        if not each.startswith("{"):
            literal_count += len(each.encode("utf-8"))
            parts.append(_quote_meta(each))
            continue
        colon = each.find(":")
        if colon != -1:
            var_name = each[1:colon].strip()
            param_expr = each[colon + 1 : len(each) - 1].strip()
            parts.append("(.*)" if param_expr == "*" else f"({param_expr})")
        else:
            var_name = each[1 : len(each) - 1].strip()
            parts.append("([^/]+?)")
        var_names.append(var_name)
    expression = "".join(parts).rstrip("/") + "(/.*)?$"
    return TemplateRE(expression, literal_count, var_names, len(var_names), tokens)


def compile_path_expression(path: str) -> PathExpression:
    """Parse ``path`` into a compiled expression; raise ValueError if it is invalid."""
    tre = template_to_re(path)
    try:
        matcher = re.compile(tre.expression)
    except re.error as exc:
        raise ValueError(f"invalid path expression {tre.expression!r}: {exc}") from exc
    return PathExpression(
        tre.literal_count, tre.var_names, tre.var_count, matcher, tre.expression, tre.tokens
    )