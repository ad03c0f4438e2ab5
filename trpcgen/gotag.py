"""Injecting custom struct tags, declared as proto field options, into *.pb.go files."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterator
from dataclasses import dataclass

from .descriptor import FileDescriptor, MessageDesc, SourceFile
from .fill import get_pb_package
from .naming import base_name_without_ext, to_camel
from .plugin import Option, Plugin

log = logging.getLogger(__name__)

_INJECT = re.compile(r"`.+`\Z")
_TAGS = re.compile(r'[\w_]+:"[^"]+"', re.ASCII)
_PROTOBUF_TAG_NAME = re.compile(r'protobuf:"[\w_\-,]+name=([\w_\-]+)', re.ASCII)
_STRUCT_DECL = re.compile(r"^type\s+(\w+)\s+struct\s*\{", re.MULTILINE)
_FIELD_TAG = re.compile(r"(`[^`]*`)\s*(?://[^\n]*)?$")


@dataclass(frozen=True)
class GoTagItem:
    """One ``key:"value"`` entry of a struct tag; ``value`` keeps its quotes."""

    key: str
    value: str


@dataclass(frozen=True)
class TextArea:
    """The span of a struct field (0-based, end exclusive) and its tags."""

    start_pos: int
    end_pos: int
    current_tag: str
    new_tag: str


def parse_tag_items(tag: str) -> list[GoTagItem]:
    """Split a struct tag into its items."""
    items = []
    for t in _TAGS.findall(tag):
        key, value = t.split(":", 1)
        items.append(GoTagItem(key, value))
    return items


def override_tag_items(current: list[GoTagItem], new: list[GoTagItem]) -> list[GoTagItem]:
    """Replace items of ``current`` by same-keyed items of ``new``; append the rest of ``new``."""
    remaining = list(new)
    result = []
    for item in current:
        match = next((i for i, n in enumerate(remaining) if n.key == item.key), None)
        if match is None:
            result.append(item)
        else:
            result.append(remaining.pop(match))
    return result + remaining


def format_tag_items(items: list[GoTagItem]) -> str:
    """Join tag items back into a struct tag."""
    return " ".join(f"{item.key}:{item.value}" for item in items)


def protobuf_tag_name(tag: str) -> str:
    """Return the field name recorded in the ``protobuf`` tag, or an empty string."""
    match = _PROTOBUF_TAG_NAME.search(tag)
    return match.group(1) if match else ""


def fmt_go_tag_key(*args: str) -> str:
    """Join struct and field names with ``_`` and camel-case the result."""
    return to_camel("_".join(a for a in args if a))


def opt_tags_from_source(fd: SourceFile) -> dict[str, str]:
    """Map ``MessageField`` keys to the custom Go tags declared on message fields."""
    tags: dict[str, str] = {}

    def scan(msg: MessageDesc, prefix: str) -> None:
        for nested in msg.nested_types:
            scan(nested, fmt_go_tag_key(prefix, msg.name))
        for f in msg.fields:
            if f.go_tag:
                tags[fmt_go_tag_key(prefix, msg.name, f.name)] = f.go_tag

    for msg in fd.message_types:
        scan(msg, "")
    return tags


def _struct_body_end(source: str, start: int) -> int:
    depth = 1
    i = start
    n = len(source)
    while i < n:
        c = source[i]
        if c == "`":
            i = source.find("`", i + 1)
            if i == -1:
                return n
        elif c == '"':
            i += 1
            while i < n and source[i] != '"':
                i += 2 if source[i] == "\\" else 1
        elif source.startswith("//", i):
            i = source.find("\n", i)
            if i == -1:
                return n
        elif source.startswith("/*", i):
            i = source.find("*/", i + 2)
            if i == -1:
                return n
            i += 1
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return n


def _iter_tagged_fields(source: str) -> Iterator[tuple[str, int, int, str]]:
    for decl in _STRUCT_DECL.finditer(source):
        body_start = decl.end()
        body_end = _struct_body_end(source, body_start)
        for line in re.finditer(r"[^\n]+", source[body_start:body_end]):
            text = line.group(0)
            stripped = text.lstrip()
            if not stripped or stripped.startswith("//"):
                continue
            tag = _FIELD_TAG.search(text)
            if tag is None or not text[: tag.start(1)].strip():
                continue
            offset = body_start + line.start()
            start = offset + len(text) - len(stripped)
            end = offset + tag.end(1)
            yield decl.group(1), start, end, tag.group(1)[1:-1]


def tag_areas_from_source(source: str, new_tags: dict[str, str]) -> list[TextArea]:
    """Find the struct fields of Go ``source`` whose tags are to be replaced."""
    areas = []
    for struct_name, start, end, current in _iter_tagged_fields(source):
        field_name = protobuf_tag_name(current)
        if not field_name:
            continue
        new_tag = new_tags.get(fmt_go_tag_key(struct_name, field_name))
        if new_tag is None:
            continue
        areas.append(TextArea(start, end, current, new_tag))
    return areas


def inject_tags(source: str, areas: list[TextArea]) -> str:
    """Rewrite the tags of the given areas; areas are applied from the end backwards."""
    for area in reversed(areas):
        expr = source[area.start_pos : area.end_pos]
        log.debug("inject custom tag %r to expression %r", area.new_tag, expr)
        merged = override_tag_items(
            parse_tag_items(area.current_tag), parse_tag_items(area.new_tag)
        )
        replacement = f"`{format_tag_items(merged)}`"
        expr = _INJECT.sub(lambda _m: replacement, expr)
        source = source[: area.start_pos] + expr + source[area.end_pos :]
    return source


class GoTag(Plugin):
    """Adds custom struct tags from proto field options to the generated *.pb.go."""

    def name(self) -> str:
        return "gotag"

    def check(self, fd: FileDescriptor | None, opt: Option) -> bool:
        return opt.language == "go" and opt.gotag

    def run(self, fd: FileDescriptor | None, opt: Option) -> None:
        tags = opt_tags_from_source(fd.fd) if fd and fd.fd else {}
        if not tags:
            return
        pbname = base_name_without_ext(fd.file_path) + ".pb.go"
        if opt.rpc_only:
            pbfile = os.path.join(opt.output_dir, pbname)
        else:
            import_path = get_pb_package(fd, "go_package")
            pbfile = os.path.join(opt.output_dir, "stub", import_path, pbname)
        self.replace_tags(pbfile, tags)

    def replace_tags(self, pbfile: str, tags: dict[str, str]) -> None:
        """Rewrite ``pbfile`` with the custom tags merged in."""
        os.lstat(pbfile)
        with open(pbfile, encoding="utf-8") as f:
            source = f.read()
        areas = tag_areas_from_source(source, tags)
        with open(pbfile, "w", encoding="utf-8") as f:
            f.write(inject_tags(source, areas))
        if areas:
            log.debug("file %r is injected with custom tags", pbfile)