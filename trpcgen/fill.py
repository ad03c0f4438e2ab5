"""Filling a FileDescriptor from a parsed IDL file."""

from __future__ import annotations

import copy
import logging
from typing import Any

from .alias import parse_alias_comment
from .descriptor import (
    FileDescriptor,
    HttpRule,
    ImportDesc,
    MethodDesc,
    RESTfulAPIContent,
    RESTfulAPIInfo,
    RPCDescriptor,
    ServiceDesc,
    ServiceDescriptor,
    SourceFile,
    SwaggerDescriptor,
    SwaggerParamDescriptor,
)
from .naming import explode_import, is_go_keyword, trim_right, valid_go_package
from .pathexpr import compile_path_expression

log = logging.getLogger(__name__)

TRPC_NAME = "trpc"
_PLACEHOLDER_NAMES = ("proto", TRPC_NAME)


class DescriptorError(ValueError):
    """The IDL description cannot be turned into a generation descriptor."""


def check_go_keyword(file: str, go_package: str, pkg_name: str) -> None:
    """Raise DescriptorError if ``pkg_name`` is a Go keyword."""
    if is_go_keyword(pkg_name):
        raise DescriptorError(
            f"please do not use go keyword `{pkg_name}` as package name in "
            f"go_package `{go_package}`, file: `{file}`"
        )


def fill_dependencies(fd: SourceFile, nfd: FileDescriptor) -> None:
    """Record import paths and Go package names of ``fd`` and its dependencies.

    All maps are filled even when a go_package uses a Go keyword; the
    offending names are reported afterwards in one DescriptorError.
    """
    pb2_valid_go_pkg: dict[str, str] = {}
    pkg2_valid_go_pkg: dict[str, str] = {}
    pkg2_import_path: dict[str, str] = {}
    pb2_import_path: dict[str, str] = {}
    pb2_deps_pbs: dict[str, list[str]] = {}
    problems: list[str] = []

    def resolve(f: SourceFile) -> tuple[str, str]:
        valid, import_path = valid_go_package(f.package), f.package
        if f.options is not None:
            go_pkg = f.go_package()
            if go_pkg:
                valid, import_path = valid_go_package(go_pkg), go_pkg
                try:
                    check_go_keyword(f.name, import_path, valid)
                except DescriptorError as exc:
                    problems.append(str(exc))
        return valid, import_path

    valid, import_path = resolve(fd)
    pb2_valid_go_pkg[fd.name] = valid
    pb2_import_path[fd.name] = import_path

    def visit(f: SourceFile) -> None:
        pb2_deps_pbs[f.name] = []
        for dep in f.dependencies:
            if dep.dependencies:
                visit(dep)
            else:
                pb2_deps_pbs[dep.name] = []
            dep_valid, dep_import = resolve(dep)
            pb2_valid_go_pkg[dep.name] = dep_valid
            pkg2_import_path[dep.package] = dep_import
            pkg2_valid_go_pkg[dep.package] = dep_valid
            pb2_import_path[dep.name] = dep_import
            pb2_deps_pbs[f.name].append(dep.name)

    visit(fd)
    nfd.pb2_valid_go_pkg = pb2_valid_go_pkg
    nfd.pkg2_valid_go_pkg = pkg2_valid_go_pkg
    nfd.pkg2_import_path = pkg2_import_path
    nfd.pb2_import_path = pb2_import_path
    nfd.pb2_deps_pbs = pb2_deps_pbs
    if problems:
        raise DescriptorError("; ".join(problems))


def fill_package_name(fd: SourceFile, nfd: FileDescriptor) -> None:
    nfd.package_name = fd.package


def fill_app_server_name(
    fd: SourceFile, nfd: FileDescriptor, app_name: str = "", server_name: str = ""
) -> None:
    """Take app and server names from a ``trpc.{app}.{server}`` package; explicit names win."""
    parts = fd.package.split(".")
    if len(parts) == 3 and parts[0] == TRPC_NAME:
        nfd.app_name, nfd.server_name = parts[1], parts[2]
    if app_name:
        nfd.app_name = app_name
    if server_name:
        nfd.server_name = server_name


def _build_file_options(opts: dict[str, Any] | None) -> dict[str, Any] | None:
    if opts is None:
        return None
    return {k: v for k, v in opts.items() if v is not None}


def fill_file_options(fd: SourceFile, nfd: FileDescriptor) -> None:
    options = _build_file_options(fd.options)
    nfd.file_options = options
    if options is not None and "go_package" in options:
        go_pkg = options["go_package"]
        if isinstance(go_pkg, str):
            nfd.go_package = go_pkg
            nfd.base_go_package_name = explode_import(go_pkg)[0]
        return
    nfd.base_go_package_name = explode_import(nfd.package_name)[0]


def fill_imports(fd: SourceFile, nfd: FileDescriptor) -> None:
    nfd.imports, nfd.imports_x = get_imports(fd, nfd)


def get_imports(fd: SourceFile, nfd: FileDescriptor) -> tuple[list[str], list[ImportDesc]]:
    """Compute the import paths of the direct dependencies and unique names for them.

    Names that clash get numbered suffixes; ``trpc`` (and ``proto`` when the
    file's own package is called so) are reserved.
    """
    imports: list[str] = []
    existed: set[str] = set()
    name2path: dict[str, str] = {}

    own_name, own_path = explode_import(nfd.go_package)
    if own_name == "proto":
        name2path["proto"] = ""
    existed.add(own_path)
    name2path[TRPC_NAME] = ""

    for dep in fd.dependencies:
        try:
            pb_import = nfd.pb2_import_path[dep.name]
        except KeyError:
            raise DescriptorError(f"get import path of {dep.name} fail") from None
        if pb_import in existed:
            continue
        imports.append(pb_import)
        existed.add(pb_import)
        import_name, import_path = explode_import(pb_import)
        if import_name not in name2path:
            name2path[import_name] = import_path
            continue
        taken = name2path[import_name]
        if import_path == taken:
            continue
        if import_name in _PLACEHOLDER_NAMES and taken == "":
            seq = 1
        else:
            name2path[import_name + "1"] = taken
            del name2path[import_name]
            seq = 2
        while f"{import_name}{seq}" in name2path:
            seq += 1
        name2path[f"{import_name}{seq}"] = import_path

    imports_x = sorted(
        (
            ImportDesc(name, path)
            for name, path in name2path.items()
            if not (name in _PLACEHOLDER_NAMES and path == "")
        ),
        key=lambda d: d.name,
    )
    return imports, imports_x


def fill_services(
    fd: SourceFile, nfd: FileDescriptor, alias_mode: bool, alias_as_client_rpc_name: bool
) -> None:
    for sd in fd.services:
        nfd.services.append(
            new_service_descriptor(fd, sd, alias_mode, alias_as_client_rpc_name)
        )


def new_service_descriptor(
    fd: SourceFile, sd: ServiceDesc, alias_mode: bool, alias_as_client_rpc_name: bool
) -> ServiceDescriptor:
    nsd = ServiceDescriptor(name=sd.name)
    for method in sd.methods:
        rpc, rpcxs = new_rpc_descriptor(fd, sd, method, alias_mode, alias_as_client_rpc_name)
        nsd.rpc.append(rpc)
        nsd.rpcx.extend(rpcxs)
        nsd.method_rpc[method.name] = rpc
        nsd.method_rpcx[method.name] = rpcxs
    check_restful_api_info(nsd)
    return nsd


def _format_comment(comment: str) -> str:
    return comment.strip().replace("\n", "\n// ")


def new_rpc_descriptor(
    fd: SourceFile,
    sd: ServiceDesc,
    method: MethodDesc,
    alias_mode: bool,
    alias_as_client_rpc_name: bool,
) -> tuple[RPCDescriptor, list[RPCDescriptor]]:
    """Build the descriptor of one RPC and the extra entries its aliases need.

    The second item lists the original and alias forms of the RPC whose
    fully qualified command differs from the one the RPC finally carries.
    """
    in_file = method.input_file or fd
    out_file = method.output_file or fd
    rpc = RPCDescriptor(
        name=method.name,
        cmd=method.name,
        fully_qualified_cmd=f"/{fd.package}.{sd.name}/{method.name}",
        request_type=method.input_type,
        response_type=method.output_type,
        leading_comments=_format_comment(method.leading_comments),
        trailing_comments=_format_comment(method.trailing_comments),
        client_streaming=method.client_streaming,
        server_streaming=method.server_streaming,
        request_type_pkg_directive=in_file.package,
        response_type_pkg_directive=out_file.package,
        request_type_file_options=_build_file_options(in_file.options),
        response_type_file_options=_build_file_options(out_file.options),
    )
    if not method.protobuf:
        return rpc, []

    rpc.swagger_info = parse_swagger_info(method, rpc.leading_comments)

    # The original form goes first: an alias may replace the command of the rpc.
    rpcxs = [copy.copy(rpc)]

    alias = method.alias.strip()
    if alias:
        _add_alias(rpc, rpcxs, alias, alias_as_client_rpc_name)

    if alias_mode:
        comment_alias = parse_alias_comment(rpc.leading_comments, rpc.trailing_comments)
        if comment_alias:
            _add_alias(rpc, rpcxs, comment_alias, alias_as_client_rpc_name)

    contents = parse_rest_contents(method.http_rule) if method.http_rule else []
    rpc.restful_api_info = RESTfulAPIInfo(
        content_list=[*rpc.restful_api_info.content_list, *contents]
    )
    return rpc, deduplicate(rpcxs, rpc)


def _add_alias(
    rpc: RPCDescriptor, rpcxs: list[RPCDescriptor], alias: str, as_client_name: bool
) -> None:
    if as_client_name:
        rpc.fully_qualified_cmd = alias
    aliased = copy.copy(rpc)
    aliased.fully_qualified_cmd = alias
    rpcxs.append(aliased)


def deduplicate(rpcxs: list[RPCDescriptor], rpc: RPCDescriptor) -> list[RPCDescriptor]:
    """Keep the first of each command, dropping those equal to ``rpc``'s own."""
    seen = {rpc.fully_qualified_cmd}
    result = []
    for rpcx in rpcxs:
        if rpcx.fully_qualified_cmd not in seen:
            seen.add(rpcx.fully_qualified_cmd)
            result.append(rpcx)
    return result


def parse_swagger_info(method: MethodDesc, leading_comments: str) -> SwaggerDescriptor:
    """Build swagger information, falling back to the comments as the title."""
    alt_title = leading_comments.replace("\n", "\n// ")
    rule = method.swagger
    if rule is None:
        return SwaggerDescriptor(title=alt_title, method="post", description="")
    return SwaggerDescriptor(
        title=rule.title.strip() or alt_title,
        method=rule.method.strip() or "post",
        description=rule.description.strip(),
        params={
            p.name: SwaggerParamDescriptor(name=p.name, required=p.required, default=p.default)
            for p in rule.params
        },
    )


def parse_rest_contents(http_rule: HttpRule) -> list[RESTfulAPIContent]:
    """Turn an HTTP rule and its additional bindings into RESTful contents."""
    contents = []
    for rule in http_rule.expand():
        if rule.method is None:
            log.error("unknown RESTful httpRule: no pattern")
            raise DescriptorError("get restful api content error")
        contents.append(
            RESTfulAPIContent(
                method=rule.method,
                path_tmpl=rule.path,
                request_body=rule.body,
                response_body=rule.response_body,
            )
        )
    return contents


def check_restful_api_info(nsd: ServiceDescriptor) -> None:
    """Raise DescriptorError on an invalid or repeated RESTful path."""
    seen: set[str] = set()
    for content in (c for rpc in nsd.rpc if rpc for c in rpc.restful_api_info.content_list):
        try:
            compile_path_expression(content.path_tmpl)
        except ValueError as exc:
            raise DescriptorError(
                f"invalid RESTful http path: {content.path_tmpl}, parse error: {exc}"
            ) from exc
        key = f"{content.method}:{content.path_tmpl}"
        if key in seen:
            raise DescriptorError(f"exist repeated RESTful http path:{content}")
        seen.add(key)


def fill_rpc_message_types(fd: SourceFile, nfd: FileDescriptor) -> None:
    """Map each request and response type to the file that defines it."""
    definitions: dict[str, str] = {}
    for sd in fd.services:
        for method in sd.methods:
            for typ in (method.input_type, method.output_type):
                definitions[typ] = find_message_def_location(typ, fd)
    if definitions:
        nfd.rpc_message_type = definitions


def find_message_def_location(typ: str, fd: SourceFile) -> str:
    """Return the name of the file, ``fd`` or a direct dependency, that defines ``typ``."""
    for f in (fd, *fd.dependencies):
        if any(m.full_name == typ for m in f.message_types):
            return f.name
    raise DescriptorError(
        f"definition of message {typ} is not found in {fd.name} and its dependencies"
    )


def get_pb_package(fd: FileDescriptor, file_option: str) -> str:
    """Return the file option value (such as go_package) if set, else the package directive."""
    value = (fd.file_options or {}).get(file_option)
    if isinstance(value, str) and value:
        return value
    return fd.package_name


def get_package(fd: FileDescriptor, language: str) -> str:
    """Combine the package directive and the ``<language>_package`` option."""
    file_option = f"{language}_package"
    pb_package = get_pb_package(fd, file_option)
    if file_option in ("go_package", "cpp_package"):
        pb_package = trim_right(";", pb_package)
    else:
        log.error("unknown FileOption: %s", file_option)
    return pb_package


def check_secv_enabled(nfd: FileDescriptor) -> bool:
    """Tell whether the file imports validation rules."""
    return any(
        pkg in nfd.pkg2_valid_go_pkg for pkg in ("validate", "trpc.validate", "trpc.v2.validate")
    )