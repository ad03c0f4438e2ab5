"""Parsing of ``@alias=`` annotations in RPC comments."""

from __future__ import annotations

MARKER = "@alias="


class AliasError(ValueError):
    """An alias annotation is malformed or conflicting."""


class AnnotationNotFound(AliasError):
    """Neither comment carries an alias annotation."""

    def __init__(self, message: str = "annotation //@alias= not found") -> None:
        super().__init__(message)


def not_double_commented(prefix: str) -> bool:
    """Tell whether the text before the marker does not comment it out a second time."""
    parts = prefix.split("//")
    return len(parts) <= 2 or "\n" in parts[-2]


def parse_alias(comment: str) -> str:
    """Extract the alias from a raw comment; raise AliasError if none is valid."""
    if MARKER not in comment:
        raise AliasError(f"annotation alias {MARKER} not found in raw comment {comment}")
    parts = comment.split(MARKER)
    if len(parts) != 2:
        raise AliasError(
            f"raw comment {comment} can be split by annotation alias {MARKER} "
            f"into {len(parts)} parts, expect 2"
        )
    if not not_double_commented(parts[0]):
        raise AliasError(f"candidate alias {parts[0]} is double commented")
    alias = parts[1].strip()
    if not alias:
        raise AliasError(f"invalid alias after trim space: {comment}")
    cut = min((i for i in (alias.find(" "), alias.find("\n")) if i != -1), default=-1)
    if cut > 0:
        alias = alias[:cut]
    return alias.strip(" \"'")


def parse_comment(leading: str, trailing: str) -> str:
    """Choose the alias from leading and trailing comments.

    Raises AnnotationNotFound when neither has one and AliasError when both
    have different ones.
    """
    try:
        leading_alias: str | None = parse_alias(leading)
    except AliasError:
        leading_alias = None
    try:
        trailing_alias: str | None = parse_alias(trailing)
    except AliasError:
        trailing_alias = None

    if leading_alias is None and trailing_alias is None:
        raise AnnotationNotFound()
    if (
        leading_alias is not None
        and trailing_alias is not None
        and leading_alias != trailing_alias
    ):
        raise AliasError("leading and trailing aliases conflict")
    return leading_alias if leading_alias is not None else trailing_alias


def parse_alias_comment(leading: str, trailing: str) -> str | None:
    """Return the alias from the comments, or None when there is none."""
    try:
        alias = parse_comment(leading, trailing)
    except AnnotationNotFound:
        return None
    return alias or None