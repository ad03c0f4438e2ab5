"""Turning parsed IDL files into descriptors ready for code generation."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from google.protobuf import descriptor_pb2, json_format
from google.protobuf.message import DecodeError

from .descriptor import (
    FieldDesc,
    FileDescriptor,
    MessageDesc,
    MethodDesc,
    ServiceDesc,
    SourceFile,
)
from .fill import (
    fill_app_server_name,
    fill_dependencies,
    fill_file_options,
    fill_imports,
    fill_package_name,
    fill_rpc_message_types,
    fill_services,
)
from .naming import explode_import

log = logging.getLogger(__name__)

# Files whose versioned go_package is accepted without --multi-version.
EXEMPTION_PROTOS = (
    "trpc.proto",
    "trpc_options.proto",
    "validate.proto",
    "swagger.proto",
    "annotations.proto",
    "http.proto",
)

_MULTI_VERSION = re.compile(r"^.*/v\d$", re.ASCII)

# Field numbers in descriptor.proto used to find method comments.
_FILE_SERVICE_FIELD = 6
_SERVICE_METHOD_FIELD = 2


class ParseError(ValueError):
    """An IDL file cannot be read or does not meet the project's requirements."""


@dataclass
class ParseOptions:
    """Switches that steer how an IDL file is turned into a descriptor."""

    alias_on: bool = False
    alias_as_client_rpc_name: bool = False
    language: str = "go"
    rpc_only: bool = False
    multi_version: bool = False
    app_name: str = ""
    server_name: str = ""


def check_requirements(fd: SourceFile, options: ParseOptions) -> None:
    """Raise ParseError unless ``fd`` declares a service (or rpc_only is set)
    and, without multi_version, uses no versioned go_package."""
    if not fd.services and not options.rpc_only:
        raise ParseError("service missing")
    if not options.multi_version:
        check_multi_version(fd)


def load_imports(fd: SourceFile) -> list[tuple[str, str]]:
    """Return ``(import_path, file_name)`` for ``fd`` and all its dependencies, depth first."""
    _, import_path = explode_import(fd.go_package())
    result = [(import_path, fd.name)]
    for dep in fd.dependencies:
        result.extend(load_imports(dep))
    return result


def check_multi_version(fd: SourceFile) -> None:
    """Raise ParseError if a go_package in the import tree ends with a version such as ``/v2``."""
    for import_path, file_name in load_imports(fd):
        if any(name in file_name for name in EXEMPTION_PROTOS):
            continue
        if _MULTI_VERSION.match(import_path):
            raise ParseError(
                f'proto: {file_name}, not supported: go_package="{import_path}"'
                "see: trpc --multi-version param"
            )


def locate_file(name: str, dirs: Iterable[str] | None) -> str:
    """Return the absolute path of ``name`` found in one of ``dirs`` or the working directory."""
    search = list(dirs or ())
    for directory in search:
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)
    if os.path.isfile(name):
        return os.path.abspath(name)
    raise FileNotFoundError(f"{name} not found in {search}")


def convert_file_descriptor(
    protofile: str,
    protodirs: list[str] | None,
    fd: SourceFile,
    options: ParseOptions | None = None,
) -> FileDescriptor:
    """Check ``fd`` against the requirements and build the generation descriptor."""
    options = options or ParseOptions()
    check_requirements(fd, options)

    nfd = FileDescriptor(fd=fd)
    fill_dependencies(fd, nfd)
    fill_package_name(fd, nfd)
    fill_file_options(fd, nfd)
    fill_imports(fd, nfd)
    fill_services(fd, nfd, options.alias_on, options.alias_as_client_rpc_name)
    fill_app_server_name(fd, nfd, options.app_name, options.server_name)
    fill_rpc_message_types(fd, nfd)

    nfd.relative_file_path = protofile
    if os.path.isabs(protofile):
        nfd.file_path = protofile
    else:
        try:
            nfd.file_path = locate_file(protofile, protodirs)
        except FileNotFoundError as exc:
            raise ParseError(f"locate file err: {exc}") from exc
    return nfd


def _message_from_proto(msg: descriptor_pb2.DescriptorProto, scope: str) -> MessageDesc:
    full_name = f"{scope}.{msg.name}" if scope else msg.name
    return MessageDesc(
        name=msg.name,
        full_name=full_name,
        fields=[FieldDesc(name=f.name) for f in msg.field],
        nested_types=[_message_from_proto(n, full_name) for n in msg.nested_type],
    )


def _iter_messages(messages: Iterable[MessageDesc]) -> Iterator[MessageDesc]:
    for msg in messages:
        yield msg
        yield from _iter_messages(msg.nested_types)


def _type_definers(files: Iterable[SourceFile]) -> dict[str, SourceFile]:
    definers: dict[str, SourceFile] = {}

    def visit(f: SourceFile) -> None:
        for msg in _iter_messages(f.message_types):
            definers.setdefault(msg.full_name, f)
        for dep in f.dependencies:
            visit(dep)

    for f in files:
        visit(f)
    return definers


def _method_comments(
    file_proto: descriptor_pb2.FileDescriptorProto,
) -> dict[tuple[int, int], tuple[str, str]]:
    comments = {}
    for loc in file_proto.source_code_info.location:
        path = tuple(loc.path)
        if len(path) == 4 and path[0] == _FILE_SERVICE_FIELD and path[2] == _SERVICE_METHOD_FIELD:
            comments[(path[1], path[3])] = (loc.leading_comments, loc.trailing_comments)
    return comments


def source_file_from_proto(
    file_proto: descriptor_pb2.FileDescriptorProto, known: dict[str, SourceFile]
) -> SourceFile:
    """Convert a FileDescriptorProto; its dependencies must already be in ``known``.

    Custom method options (aliases, swagger and HTTP rules) are not decoded.
    """
    deps = []
    for dep_name in file_proto.dependency:
        try:
            deps.append(known[dep_name])
        except KeyError:
            raise ParseError(
                f"dependency {dep_name} of {file_proto.name} not found"
            ) from None

    options = (
        json_format.MessageToDict(file_proto.options, preserving_proto_field_name=True)
        if file_proto.HasField("options")
        else None
    )
    package = file_proto.package
    sf = SourceFile(
        name=file_proto.name,
        package=package,
        options=options,
        dependencies=deps,
        message_types=[_message_from_proto(m, package) for m in file_proto.message_type],
    )

    own_types = {m.full_name for m in _iter_messages(sf.message_types)}
    definers = _type_definers(deps)
    comments = _method_comments(file_proto)

    def defining_file(type_name: str) -> SourceFile | None:
        return None if type_name in own_types else definers.get(type_name)

    for s_idx, service in enumerate(file_proto.service):
        methods = []
        for m_idx, method in enumerate(service.method):
            input_type = method.input_type.lstrip(".")
            output_type = method.output_type.lstrip(".")
            leading, trailing = comments.get((s_idx, m_idx), ("", ""))
            methods.append(
                MethodDesc(
                    name=method.name,
                    input_type=input_type,
                    output_type=output_type,
                    input_file=defining_file(input_type),
                    output_file=defining_file(output_type),
                    client_streaming=method.client_streaming,
                    server_streaming=method.server_streaming,
                    leading_comments=leading,
                    trailing_comments=trailing,
                )
            )
        sf.services.append(ServiceDesc(name=service.name, methods=methods))
    return sf


def load_descriptor_set(
    descriptor_set_file: str, protofile: str, options: ParseOptions | None = None
) -> FileDescriptor:
    """Read a serialized FileDescriptorSet and build the descriptor of ``protofile`` in it."""
    try:
        data = Path(descriptor_set_file).read_bytes()
    except OSError as exc:
        raise ParseError(f"load descriptor_set_in err: {exc}") from exc
    file_set = descriptor_pb2.FileDescriptorSet()
    try:
        file_set.ParseFromString(data)
    except DecodeError as exc:
        raise ParseError(f"decode descriptor_set_in err: {exc}") from exc

    protos = {f.name: f for f in file_set.file}
    known: dict[str, SourceFile] = {}

    def build(name: str, chain: frozenset[str]) -> SourceFile:
        if name in known:
            return known[name]
        if name in chain:
            raise ParseError(f"import cycle through {name}")
        if name not in protos:
            raise ParseError(f"dependency {name} not found in {descriptor_set_file}")
        proto = protos[name]
        for dep in proto.dependency:
            build(dep, chain | {name})
        known[name] = source_file_from_proto(proto, known)
        return known[name]

    for name in protos:
        build(name, frozenset())

    if protofile not in known:
        raise ParseError(
            f"protofile {protofile} not found in descriptor_set_in file {descriptor_set_file}"
        )
    return convert_file_descriptor(
        os.path.join(os.getcwd(), protofile), None, known[protofile], options
    )