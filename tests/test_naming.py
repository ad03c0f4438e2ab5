import pytest

from trpcgen.naming import (
    base_name_without_ext,
    explode_import,
    is_go_keyword,
    to_camel,
    to_lower_camel,
    to_snake,
    trim_right,
    valid_go_package,
)


@pytest.mark.parametrize(
    "arg, want_name, want_path",
    [
        ("/tencent/common", "common", "/tencent/common"),
        ("trpc.group/tencent/common", "common", "trpc.group/tencent/common"),
        ("trpc.group/tencent/common;xyz", "xyz", "trpc.group/tencent/common"),
        ("common", "common", "common"),
        ("a.b.c.d", "a_b_c_d", "a.b.c.d"),
        ("trpc.group/hello/a.b.c.d", "a_b_c_d", "trpc.group/hello/a.b.c.d"),
        ("trpc.group/hello/a.b.c.d;xyz", "xyz", "trpc.group/hello/a.b.c.d"),
    ],
)
def test_explode_import(arg, want_name, want_path):
    assert explode_import(arg) == (want_name, want_path)


def test_valid_go_package():
    assert valid_go_package("trpc.testapp.testserver") == "trpc_testapp_testserver"
    assert valid_go_package("trpc.group/trpcprotocol/testapp/testserver") == "testserver"
    assert valid_go_package("a/b;pkg") == "pkg"


def test_is_go_keyword():
    assert is_go_keyword("func")
    assert is_go_keyword("type")
    assert not is_go_keyword("proto")


@pytest.mark.parametrize(
    "s, want",
    [
        ("HelloWorld", "hello_world"),
        ("HTTPServer", "http_server"),
        ("AnyKind of_string", "any_kind_of_string"),
        ("  already_snake ", "already_snake"),
    ],
)
def test_to_snake(s, want):
    assert to_snake(s) == want


@pytest.mark.parametrize(
    "s, want",
    [
        ("AnyKind of_string", "AnyKindOfString"),
        ("hello_world", "HelloWorld"),
        ("ID", "Id"),
        ("", ""),
    ],
)
def test_to_camel(s, want):
    assert to_camel(s) == want


def test_to_lower_camel():
    assert to_lower_camel("AnyKind of_string") == "anyKindOfString"
    assert to_lower_camel("Hello_world") == "helloWorld"


def test_trim_right():
    assert trim_right(";", "trpc.group/a/b;pkg") == "trpc.group/a/b"
    assert trim_right(";", "trpc.group/a/b") == "trpc.group/a/b"


def test_base_name_without_ext():
    assert base_name_without_ext("/a/b/hello.proto") == "hello"
    assert base_name_without_ext("x.tar.gz") == "x.tar"
    assert base_name_without_ext("noext") == "noext"