"""Descriptions of IDL files as read, and of the data handed to the templates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class HttpRule:
    """An HTTP binding of an RPC method.

    ``method`` is the HTTP verb (GET, PUT, POST, DELETE, PATCH or a custom
    kind); it is None when the rule carries no pattern.
    """

    method: str | None = None
    path: str = ""
    body: str = ""
    response_body: str = ""
    additional_bindings: list[HttpRule] = field(default_factory=list)

    def expand(self) -> list[HttpRule]:
        """Return this rule followed by all nested additional bindings, depth first."""
        rules = [self]
        for binding in self.additional_bindings:
            rules.extend(binding.expand())
        return rules


@dataclass
class SwaggerParam:
    """A parameter declared in a swagger method option."""

    name: str
    required: bool = False
    default: str = ""


@dataclass
class SwaggerRule:
    """A swagger method option."""

    title: str = ""
    description: str = ""
    method: str = ""
    params: list[SwaggerParam] = field(default_factory=list)


@dataclass
class FieldDesc:
    """A message field and the custom Go tag attached to it, if any."""

    name: str
    go_tag: str = ""


@dataclass
class MessageDesc:
    """A message type, with its nested messages."""

    name: str
    full_name: str = ""
    fields: list[FieldDesc] = field(default_factory=list)
    nested_types: list[MessageDesc] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.full_name:
            self.full_name = self.name


@dataclass
class MethodDesc:
    """An RPC method as declared in the IDL.

    ``input_file`` and ``output_file`` are the files that define the request
    and response types; None means the file that declares the method.
    ``protobuf`` is False for methods read from FlatBuffers schemas, which
    carry no method options.
    """

    name: str
    input_type: str
    output_type: str
    input_file: SourceFile | None = None
    output_file: SourceFile | None = None
    client_streaming: bool = False
    server_streaming: bool = False
    leading_comments: str = ""
    trailing_comments: str = ""
    alias: str = ""
    swagger: SwaggerRule | None = None
    http_rule: HttpRule | None = None
    protobuf: bool = True


@dataclass
class ServiceDesc:
    """A service as declared in the IDL."""

    name: str
    methods: list[MethodDesc] = field(default_factory=list)


@dataclass
class SourceFile:
    """An IDL file: its package directive, file options and contents."""

    name: str
    package: str = ""
    options: dict[str, Any] | None = None
    dependencies: list[SourceFile] = field(default_factory=list)
    services: list[ServiceDesc] = field(default_factory=list)
    message_types: list[MessageDesc] = field(default_factory=list)

    def go_package(self) -> str:
        """Return the go_package file option, or an empty string."""
        value = (self.options or {}).get("go_package")
        return value if isinstance(value, str) else ""


@dataclass
class SwaggerParamDescriptor:
    name: str
    required: bool = False
    default: str = ""


@dataclass
class SwaggerDescriptor:
    title: str = ""
    method: str = ""
    description: str = ""
    params: dict[str, SwaggerParamDescriptor] = field(default_factory=dict)


@dataclass
class RESTfulAPIContent:
    method: str
    path_tmpl: str
    request_body: str = ""
    response_body: str = ""

    def __str__(self) -> str:
        return f"{self.method} {self.path_tmpl}"


@dataclass
class RESTfulAPIInfo:
    content_list: list[RESTfulAPIContent] = field(default_factory=list)


@dataclass
class RPCDescriptor:
    """An RPC method prepared for code generation."""

    name: str = ""
    cmd: str = ""
    fully_qualified_cmd: str = ""
    request_type: str = ""
    response_type: str = ""
    leading_comments: str = ""
    trailing_comments: str = ""
    client_streaming: bool = False
    server_streaming: bool = False
    request_type_pkg_directive: str = ""
    response_type_pkg_directive: str = ""
    request_type_file_options: dict[str, Any] | None = None
    response_type_file_options: dict[str, Any] | None = None
    swagger_info: SwaggerDescriptor = field(default_factory=SwaggerDescriptor)
    restful_api_info: RESTfulAPIInfo = field(default_factory=RESTfulAPIInfo)


@dataclass
class ServiceDescriptor:
    """A service prepared for code generation, with its RPCs and their aliases."""

    name: str
    rpc: list[RPCDescriptor] = field(default_factory=list)
    rpcx: list[RPCDescriptor] = field(default_factory=list)
    method_rpc: dict[str, RPCDescriptor] = field(default_factory=dict)
    method_rpcx: dict[str, list[RPCDescriptor]] = field(default_factory=dict)


@dataclass
class ImportDesc:
    name: str
    path: str


@dataclass
class FileDescriptor:
    """Everything the templates need to know about one IDL file."""

    fd: SourceFile | None = None
    package_name: str = ""
    app_name: str = ""
    server_name: str = ""
    imports: list[str] = field(default_factory=list)
    imports_x: list[ImportDesc] = field(default_factory=list)
    file_options: dict[str, Any] | None = None
    go_package: str = ""
    base_go_package_name: str = ""
    pb2_valid_go_pkg: dict[str, str] = field(default_factory=dict)
    pkg2_valid_go_pkg: dict[str, str] = field(default_factory=dict)
    pkg2_import_path: dict[str, str] = field(default_factory=dict)
    pb2_import_path: dict[str, str] = field(default_factory=dict)
    pb2_deps_pbs: dict[str, list[str]] = field(default_factory=dict)
    services: list[ServiceDescriptor] = field(default_factory=list)
    rpc_message_type: dict[str, str] | None = None
    file_path: str = ""
    relative_file_path: str = ""