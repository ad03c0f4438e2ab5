import pytest

from trpcgen.alias import AliasError
from trpcgen.descriptor import (
    FileDescriptor,
    HttpRule,
    MessageDesc,
    MethodDesc,
    RPCDescriptor,
    ServiceDesc,
    ServiceDescriptor,
    SourceFile,
    SwaggerParam,
    SwaggerRule,
    RESTfulAPIContent,
    RESTfulAPIInfo,
)
from trpcgen.fill import (
    DescriptorError,
    check_go_keyword,
    check_restful_api_info,
    check_secv_enabled,
    deduplicate,
    fill_app_server_name,
    fill_dependencies,
    fill_file_options,
    fill_imports,
    fill_package_name,
    fill_rpc_message_types,
    fill_services,
    find_message_def_location,
    get_imports,
    get_package,
    get_pb_package,
    new_rpc_descriptor,
    new_service_descriptor,
    parse_rest_contents,
    parse_swagger_info,
)


def _prepare(fd):
    nfd = FileDescriptor(fd=fd)
    fill_dependencies(fd, nfd)
    fill_package_name(fd, nfd)
    fill_file_options(fd, nfd)
    fill_imports(fd, nfd)
    return nfd


def test_imports_suffix_not_equal_case1():
    dep2 = SourceFile(name="dep2.proto", package="dep", options={"go_package": "trpc.group/dep/dep2"})
    dep1 = SourceFile(
        name="dep1.proto",
        package="dep",
        options={"go_package": "trpc.group/dep/dep1"},
        dependencies=[dep2],
    )
    hello = SourceFile(
        name="hello.proto",
        package="hello",
        options={"go_package": "trpc.group/hello"},
        dependencies=[dep1],
    )
    nfd = _prepare(hello)
    assert len(nfd.imports_x) == 1
    assert nfd.imports_x[0].name == "dep1"
    assert nfd.imports_x[0].path == "trpc.group/dep/dep1"
    assert nfd.pb2_deps_pbs == {
        "hello.proto": ["dep1.proto"],
        "dep1.proto": ["dep2.proto"],
        "dep2.proto": [],
    }
    assert nfd.pkg2_import_path["dep"] == "trpc.group/dep/dep1"


def test_imports_suffix_not_equal_case2():
    dep1 = SourceFile(name="dep1.proto", package="dep", options={"go_package": "trpc.group/dep1/proto"})
    dep2 = SourceFile(name="dep2.proto", package="dep", options={"go_package": "trpc.group/dep2/proto"})
    hello = SourceFile(
        name="hello.proto",
        package="hello",
        options={"go_package": "trpc.group/hello"},
        dependencies=[dep1, dep2],
    )
    nfd = _prepare(hello)
    assert len(nfd.imports_x) == 2
    assert nfd.imports_x[0].name == "proto1"
    assert nfd.imports_x[0].path == "trpc.group/dep1/proto"
    assert nfd.imports_x[1].name == "proto2"
    assert nfd.imports_x[1].path == "trpc.group/dep2/proto"
    assert nfd.imports == ["trpc.group/dep1/proto", "trpc.group/dep2/proto"]


def test_imports_own_proto_placeholder_starts_at_one():
    dep = SourceFile(name="dep.proto", package="dep", options={"go_package": "trpc.group/dep/proto"})
    hello = SourceFile(
        name="hello.proto",
        package="hello",
        options={"go_package": "trpc.group/hello/proto"},
        dependencies=[dep],
    )
    nfd = _prepare(hello)
    assert [(d.name, d.path) for d in nfd.imports_x] == [("proto1", "trpc.group/dep/proto")]


def test_imports_skip_own_package_and_duplicates():
    same = SourceFile(name="same.proto", package="hello", options={"go_package": "trpc.group/hello"})
    hello = SourceFile(
        name="hello.proto",
        package="hello",
        options={"go_package": "trpc.group/hello"},
        dependencies=[same],
    )
    imports, imports_x = get_imports(hello, _prepare(hello))
    assert imports == []
    assert imports_x == []


def test_get_imports_unknown_dependency():
    dep = SourceFile(name="dep.proto", package="dep")
    hello = SourceFile(name="hello.proto", package="hello", dependencies=[dep])
    with pytest.raises(DescriptorError, match="dep.proto"):
        get_imports(hello, FileDescriptor())


def test_dependencies_without_go_package_use_package():
    dep = SourceFile(name="dep.proto", package="trpc.app.dep")
    hello = SourceFile(name="hello.proto", package="trpc.app.hello", dependencies=[dep])
    nfd = FileDescriptor()
    fill_dependencies(hello, nfd)
    assert nfd.pb2_import_path["hello.proto"] == "trpc.app.hello"
    assert nfd.pb2_valid_go_pkg["hello.proto"] == "trpc_app_hello"
    assert nfd.pkg2_valid_go_pkg["trpc.app.dep"] == "trpc_app_dep"


def test_go_keyword_package_is_rejected_after_filling():
    hello = SourceFile(name="hello.proto", package="hello", options={"go_package": "trpc.group/x/func"})
    nfd = FileDescriptor()
    with pytest.raises(DescriptorError, match="func"):
        fill_dependencies(hello, nfd)
    assert nfd.pb2_import_path["hello.proto"] == "trpc.group/x/func"


def test_check_go_keyword():
    check_go_keyword("a.proto", "trpc.group/x/hello", "hello")
    with pytest.raises(DescriptorError, match="go keyword `type`"):
        check_go_keyword("a.proto", "trpc.group/x/type", "type")


def test_fill_app_server_name():
    fd = SourceFile(name="a.proto", package="trpc.app.server")
    nfd = FileDescriptor()
    fill_app_server_name(fd, nfd, "", "")
    assert (nfd.app_name, nfd.server_name) == ("app", "server")
    fill_app_server_name(fd, nfd, "other", "")
    assert (nfd.app_name, nfd.server_name) == ("other", "server")
    nfd2 = FileDescriptor()
    fill_app_server_name(SourceFile(name="b.proto", package="a.b.c"), nfd2, "", "")
    assert (nfd2.app_name, nfd2.server_name) == ("", "")


def test_fill_file_options():
    fd = SourceFile(name="a.proto", package="trpc.app.server", options={"go_package": "trpc.group/app/server"})
    nfd = FileDescriptor()
    fill_package_name(fd, nfd)
    fill_file_options(fd, nfd)
    assert nfd.go_package == "trpc.group/app/server"
    assert nfd.base_go_package_name == "server"

    bare = SourceFile(name="b.proto", package="trpc.app.server")
    nfd2 = FileDescriptor()
    fill_package_name(bare, nfd2)
    fill_file_options(bare, nfd2)
    assert nfd2.file_options is None
    assert nfd2.base_go_package_name == "trpc_app_server"


def _method(**kwargs):
    base = dict(name="Hello", input_type="trpc.a.b.HelloReq", output_type="trpc.a.b.HelloRsp")
    base.update(kwargs)
    return MethodDesc(**base)


FD = SourceFile(name="hello.proto", package="trpc.a.b")
SD = ServiceDesc(name="Greeter")


def test_new_rpc_descriptor_basic():
    m = _method(leading_comments="  line1\nline2  ", client_streaming=True)
    rpc, rpcxs = new_rpc_descriptor(FD, SD, m, False, False)
    assert rpc.fully_qualified_cmd == "/trpc.a.b.Greeter/Hello"
    assert rpc.cmd == "Hello"
    assert rpc.leading_comments == "line1\n// line2"
    assert rpc.client_streaming is True
    assert rpc.request_type_pkg_directive == "trpc.a.b"
    assert rpc.swagger_info.method == "post"
    assert rpcxs == []


def test_alias_extension_as_client_name():
    m = _method(alias=" /api/hello ")
    rpc, rpcxs = new_rpc_descriptor(FD, SD, m, False, True)
    assert rpc.fully_qualified_cmd == "/api/hello"
    assert [r.fully_qualified_cmd for r in rpcxs] == ["/trpc.a.b.Greeter/Hello"]


def test_alias_extension_not_client_name():
    m = _method(alias="/api/hello")
    rpc, rpcxs = new_rpc_descriptor(FD, SD, m, False, False)
    assert rpc.fully_qualified_cmd == "/trpc.a.b.Greeter/Hello"
    assert [r.fully_qualified_cmd for r in rpcxs] == ["/api/hello"]


def test_alias_mode_reads_comments():
    m = _method(leading_comments="@alias=/api/hello")
    rpc, rpcxs = new_rpc_descriptor(FD, SD, m, True, False)
    assert [r.fully_qualified_cmd for r in rpcxs] == ["/api/hello"]
    _, rpcxs_off = new_rpc_descriptor(FD, SD, m, False, False)
    assert rpcxs_off == []


def test_alias_mode_conflict():
    m = _method(leading_comments="//@alias=/api/hello1", trailing_comments="//@alias=/api/hello2")
    with pytest.raises(AliasError):
        new_rpc_descriptor(FD, SD, m, True, False)


def test_non_protobuf_method_has_no_extras():
    m = _method(alias="/api/hello", protobuf=False)
    rpc, rpcxs = new_rpc_descriptor(FD, SD, m, True, True)
    assert rpc.fully_qualified_cmd == "/trpc.a.b.Greeter/Hello"
    assert rpcxs == []


def test_restful_contents_attached_only_to_rpc():
    rule = HttpRule(method="GET", path="/v1/hello", additional_bindings=[HttpRule(method="POST", path="/v1/hi", body="*")])
    m = _method(http_rule=rule, alias="/api/hello")
    rpc, rpcxs = new_rpc_descriptor(FD, SD, m, False, False)
    assert [(c.method, c.path_tmpl, c.request_body) for c in rpc.restful_api_info.content_list] == [
        ("GET", "/v1/hello", ""),
        ("POST", "/v1/hi", "*"),
    ]
    assert rpcxs[0].restful_api_info.content_list == []


def test_parse_rest_contents_unknown_method():
    with pytest.raises(DescriptorError):
        parse_rest_contents(HttpRule())


def test_parse_swagger_info():
    rule = SwaggerRule(title="  ", description=" desc ", method="", params=[SwaggerParam(name="id", required=True, default="1")])
    info = parse_swagger_info(_method(swagger=rule), "title from comment")
    assert info.title == "title from comment"
    assert info.method == "post"
    assert info.description == "desc"
    assert info.params["id"].required is True
    assert info.params["id"].default == "1"
    custom = parse_swagger_info(_method(swagger=SwaggerRule(title="T", method="get")), "x")
    assert (custom.title, custom.method) == ("T", "get")


def test_service_repeated_restful_path():
    rule = HttpRule(method="GET", path="/v1/x")
    sd = ServiceDesc(name="Greeter", methods=[_method(name="A", http_rule=rule), _method(name="B", http_rule=HttpRule(method="GET", path="/v1/x"))])
    with pytest.raises(DescriptorError, match="repeated"):
        new_service_descriptor(FD, sd, False, False)


def test_invalid_restful_path():
    nsd = ServiceDescriptor(
        name="S",
        rpc=[RPCDescriptor(restful_api_info=RESTfulAPIInfo([RESTfulAPIContent("GET", "/a/{b:[}")]))],
    )
    with pytest.raises(DescriptorError, match="invalid RESTful"):
        check_restful_api_info(nsd)


def test_fill_services():
    sd = ServiceDesc(name="Greeter", methods=[_method(name="A"), _method(name="B", alias="/api/b")])
    nfd = FileDescriptor()
    fill_services(FD, nfd, False, False)
    assert nfd.services == []
    fd = SourceFile(name="hello.proto", package="trpc.a.b", services=[sd])
    fill_services(fd, nfd, False, False)
    assert len(nfd.services) == 1
    svc = nfd.services[0]
    assert list(svc.method_rpc) == ["A", "B"]
    assert [r.fully_qualified_cmd for r in svc.rpcx] == ["/api/b"]
    assert svc.method_rpcx["A"] == []


def test_deduplicate():
    rpc = RPCDescriptor(fully_qualified_cmd="/x")
    items = [RPCDescriptor(fully_qualified_cmd=c) for c in ("/x", "/y", "/y", "/z")]
    assert [r.fully_qualified_cmd for r in deduplicate(items, rpc)] == ["/y", "/z"]


def test_rpc_message_types():
    dep = SourceFile(name="common.proto", package="common", message_types=[MessageDesc(name="Rsp", full_name="common.Rsp")])
    fd = SourceFile(
        name="hello.proto",
        package="trpc.a.b",
        dependencies=[dep],
        message_types=[MessageDesc(name="Req", full_name="trpc.a.b.Req")],
        services=[ServiceDesc(name="S", methods=[MethodDesc(name="M", input_type="trpc.a.b.Req", output_type="common.Rsp")])],
    )
    nfd = FileDescriptor()
    fill_rpc_message_types(fd, nfd)
    assert nfd.rpc_message_type == {"trpc.a.b.Req": "hello.proto", "common.Rsp": "common.proto"}
    with pytest.raises(DescriptorError, match="not found"):
        find_message_def_location("missing.Msg", fd)


def test_rpc_message_types_empty_leaves_none():
    nfd = FileDescriptor()
    fill_rpc_message_types(SourceFile(name="a.proto"), nfd)
    assert nfd.rpc_message_type is None


def test_get_pb_package_and_get_package():
    nfd = FileDescriptor(package_name="trpc.app.server", file_options={"go_package": "trpc.group/app/server;srv"})
    assert get_pb_package(nfd, "go_package") == "trpc.group/app/server;srv"
    assert get_package(nfd, "go") == "trpc.group/app/server"
    assert get_pb_package(nfd, "cpp_package") == "trpc.app.server"
    assert get_package(FileDescriptor(package_name="a.b"), "java") == "a.b"


def test_check_secv_enabled():
    assert check_secv_enabled(FileDescriptor(pkg2_valid_go_pkg={"trpc.validate": "validate"}))
    assert check_secv_enabled(FileDescriptor(pkg2_valid_go_pkg={"validate": "validate"}))
    assert not check_secv_enabled(FileDescriptor(pkg2_valid_go_pkg={"other": "other"}))