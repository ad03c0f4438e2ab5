# trpcgen

`trpcgen` turns protobuf service definitions into a descriptor that is ready
for code generation: the Go import names of every dependency, the services
with their RPCs, aliases, Swagger information and RESTful bindings, and the
files in which request and response messages are defined. It renders Jinja
templates from that descriptor and runs a chain of post-generation plugins.

## Modules

- `trpcgen.parser` — `load_descriptor_set(descriptor_set_file, protofile, options)`
  reads a serialized `FileDescriptorSet` (as written by
  `protoc --descriptor_set_out --include_imports --include_source_info`) and
  returns a `FileDescriptor` for one file in it. `ParseOptions` holds the
  switches (`alias_on`, `alias_as_client_rpc_name`, `rpc_only`,
  `multi_version`, `app_name`, `server_name`, `language`). The checks raise
  `ParseError`: a service must be present unless `rpc_only` is set, and a
  `go_package` ending in a version such as `/v2` is refused unless
  `multi_version` is set (well-known files such as `validate.proto` are
  exempt). `convert_file_descriptor` does the same for a `SourceFile` built
  by hand.
- `trpcgen.descriptor` — dataclasses for the input (`SourceFile`,
  `ServiceDesc`, `MethodDesc`, `MessageDesc`, `FieldDesc`, `HttpRule`,
  `SwaggerRule`, `SwaggerParam`) and for the generation data
  (`FileDescriptor`, `ServiceDescriptor`, `RPCDescriptor`, `ImportDesc`, ...).
- `trpcgen.fill` — the steps that fill a `FileDescriptor`. Clashing import
  names are numbered (`proto1`, `proto2`, ...), `trpc` is reserved, and a
  `go_package` whose name is a Go keyword raises `DescriptorError`, as do
  repeated or invalid RESTful paths within a service.
- `trpcgen.alias` — `parse_alias`, `parse_comment`, `parse_alias_comment`:
  an `@alias=` annotation in the leading or trailing comment of an RPC gives
  it a second command name; conflicting annotations raise `AliasError`.
- `trpcgen.pathexpr` — `template_to_re` and `compile_path_expression` turn
  path templates such as `/a/{b}/c` or `/a/{b:[a-z]+}` into regular
  expressions.
- `trpcgen.naming` — `explode_import`, `valid_go_package`, `to_snake`,
  `to_camel`, `to_lower_camel`, `trim_right`, `base_name_without_ext`.
- `trpcgen.tpl` — `generate_files(fd, output_dir, option, config)` renders
  every template under `option.assetdir` into `output_dir`, keeping the
  layout and dropping the template extension (`.tpl` by default). With a
  `TemplateConfig`, the server stub, server test stub and client stub
  templates are rendered once per service (or once per method when
  `option.per_method` is set). Templates see the fields of the
  `FileDescriptor` and of the `Option`, plus `fd`, `option`,
  `service_index`, `method_index` and `generator_version`, and the helpers
  `gopkg_simple`, `trimright`, `contains`, `lowercamelcase`, `lower`,
  `snakecase`, `replace`, `basenamewithoutext`, `dir` and `join`.
- `trpcgen.plugin`, `trpcgen.gomock`, `trpcgen.gotag`, `trpcgen.gitsync` —
  the plugins: `GoImports` runs `goimports`, `GoMock` runs `mockgen` (or
  `go generate`), `GoTag` merges custom struct tags into a `*.pb.go` file,
  `CppMove` copies proto files into a C++ project and marks its scripts
  executable, and `GitSync` pushes the generated stubs to a git repository
  over SSH, creating a tag that is incremented from the last one.
- `trpcgen.registry` — `run_plugins(fd, opt)` runs the common plugins and
  then those for `opt.language` whose `check` passes, and returns their
  names.

## Using it

```python
from trpcgen.parser import ParseOptions, load_descriptor_set
from trpcgen.plugin import Option
from trpcgen.registry import run_plugins

fd = load_descriptor_set("helloworld.pb", "helloworld.proto", ParseOptions())
for service in fd.services:
    print(service.name, [rpc.name for rpc in service.rpc])

run_plugins(fd, Option(language="go", output_dir="out"))
```

Some of the helpers are useful on their own:

```python
from trpcgen.alias import parse_alias
from trpcgen.gitsync import gen_new_tag_name
from trpcgen.naming import explode_import

explode_import("trpc.group/tencent/common;xyz")
# ('xyz', 'trpc.group/tencent/common')

parse_alias("//@alias=/api/hello")
# '/api/hello'

gen_new_tag_name("v1.2.99")
# 'v1.3.1'
```

## External tools

Some plugins start other programs: `goimports`, `mockgen` and `go` for the
Go plugins, and `git` (with `~/.ssh/id_rsa`) for `GitSync`.

## What it does not do

- There is no command-line program; the package is used as a library.
- It does not parse `.proto` text itself; it reads descriptor sets compiled
  beforehand. Custom method and field options in a descriptor set (alias
  options, Swagger rules, HTTP rules, Go tag options) are not decoded; set
  them on `MethodDesc` and `FieldDesc` when building a `SourceFile` by hand.
  Aliases in comments are read when `alias_on` is set.
- It does not read FlatBuffers schemas, write Swagger or OpenAPI documents,
  generate validation code or run `gofmt`.
- It ships no templates; `generate_files` renders the directory it is given.

## Tests

The test suite uses pytest and is installed with the `test` extra.