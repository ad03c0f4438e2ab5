"""Rendering the template tree of a language into generated source files."""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any

import jinja2

from .descriptor import FileDescriptor
from .naming import (
    base_name_without_ext,
    to_camel,
    to_lower_camel,
    to_snake,
    trim_right,
    valid_go_package,
)
from .plugin import Option

log = logging.getLogger(__name__)

# Used when no service index is given (files are split per service).
SERVICE_INDEX_DEFAULT = 0
# Used when no method index is given.
METHOD_INDEX_DEFAULT = -1
DEFAULT_TPL_FILE_EXT = ".tpl"
GENERATOR_VERSION = "0.1.0"


class TemplateError(RuntimeError):
    """A template cannot be read, rendered or written out."""


@dataclass
class TemplateConfig:
    """How the templates of one language are laid out and named."""

    language: str = ""
    lang_file_ext: str = ""
    tpl_file_ext: str = DEFAULT_TPL_FILE_EXT
    rpc_server_stub: str = ""
    rpc_server_test_stub: str = ""
    rpc_client_stub: list[str] = field(default_factory=list)
    rpc_client_stub_per_service: bool = False
    keep_orig_name: bool = False
    camel_case_name: bool = False
    separator: str = ""


@dataclass
class GenerateOptions:
    """Which service and method a split-out file is generated for."""

    service_index: int = SERVICE_INDEX_DEFAULT
    method_index: int = METHOD_INDEX_DEFAULT

    def resolved_service_index(self) -> int:
        """Return the service index, or the default when it is negative."""
        return self.service_index if self.service_index >= 0 else SERVICE_INDEX_DEFAULT

    def resolved_method_index(self) -> int:
        """Return the method index, or the default when it is negative."""
        return self.method_index if self.method_index >= 0 else METHOD_INDEX_DEFAULT


def _dir(path: str) -> str:
    return os.path.normpath(os.path.dirname(path))


# Functions offered to the templates, both as globals (called in the
# argument order shown) and as filters.
FUNC_MAP: dict[str, Callable[..., Any]] = {
    "gopkg_simple": valid_go_package,
    "trimright": trim_right,
    "contains": lambda s, substr: substr in s,
    "lowercamelcase": to_lower_camel,
    "lower": lambda s: s.lower(),
    "snakecase": to_snake,
    "replace": lambda s, old, new: s.replace(old, new),
    "basenamewithoutext": base_name_without_ext,
    "dir": _dir,
    "join": lambda elems, sep: sep.join(elems),
}

_RENDER_ERRORS = (jinja2.TemplateError, LookupError, TypeError, ValueError, AttributeError)


def build_environment(search_dir: str) -> jinja2.Environment:
    """Create a template environment loading from ``search_dir`` with the helper functions."""
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(search_dir),
        keep_trailing_newline=True,
        undefined=jinja2.StrictUndefined,
        autoescape=False,
    )
    env.filters.update(FUNC_MAP)
    env.globals.update(FUNC_MAP)
    return env


def _fields_of(obj: Any) -> dict[str, Any]:
    if obj is None or not is_dataclass(obj):
        return {}
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


def _context(fd: FileDescriptor | None, opt: Option, ext_opt: GenerateOptions) -> dict[str, Any]:
    ctx = {**_fields_of(fd), **_fields_of(opt)}
    ctx.update(
        fd=fd,
        option=opt,
        service_index=ext_opt.resolved_service_index(),
        method_index=ext_opt.resolved_method_index(),
        generator_version=GENERATOR_VERSION,
    )
    return ctx


def generate_file(
    fd: FileDescriptor | None,
    infile: str,
    outfile: str,
    opt: Option,
    ext_opt: GenerateOptions | None = None,
) -> None:
    """Render template ``infile`` for ``fd`` into ``outfile``."""
    if not os.path.isabs(opt.assetdir):
        raise TemplateError("assetdir must be absolute path")
    try:
        os.lstat(infile)
    except OSError as exc:
        raise TemplateError(f"lstat file err: {exc}") from exc

    ext_opt = ext_opt or GenerateOptions()
    env = build_environment(os.path.dirname(os.path.abspath(infile)))
    try:
        template = env.get_template(os.path.basename(infile))
    except jinja2.TemplateError as exc:
        raise TemplateError(f"template initialize err: {exc}") from exc
    try:
        rendered = template.render(_context(fd, opt, ext_opt))
    except _RENDER_ERRORS as exc:
        raise TemplateError(f"template execute err: {exc}") from exc
    log.debug("outfile:%s, genExtOption:%s", outfile, ext_opt)

    try:
        with open(outfile, "w", encoding="utf-8", newline="") as f:
            f.write(rendered)
    except OSError as exc:
        raise TemplateError(f"create file err: {exc}") from exc


def _walk(root: str) -> Iterator[tuple[str, bool]]:
    try:
        names = sorted(os.listdir(root))
    except OSError as exc:
        raise TemplateError(f"walk {root} err: {exc}") from exc
    for name in names:
        path = os.path.join(root, name)
        is_dir = stat.S_ISDIR(os.lstat(path).st_mode)
        yield path, is_dir
        if is_dir:
            yield from _walk(path)


def generate_files(
    fd: FileDescriptor | None,
    output_dir: str,
    option: Option,
    config: TemplateConfig | None,
) -> None:
    """Render every template under ``option.assetdir`` into ``output_dir``."""
    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as exc:
        raise TemplateError(f"create outputdir: {exc}") from exc
    for path, is_dir in _walk(option.assetdir):
        process_template_file(fd, path, is_dir, option, output_dir, config)


def process_template_file(
    fd: FileDescriptor | None,
    entry: str,
    is_dir: bool,
    option: Option,
    output_dir: str,
    config: TemplateConfig | None,
) -> None:
    """Mirror one entry of the template tree into ``output_dir``.

    Server, server test and client stub templates are split per service or
    method unless ``option.other_type`` is set.
    """
    log.debug("file entry srcPath:%s", entry)
    prefix = os.path.normpath(option.assetdir) + os.sep
    rel = entry.removeprefix(prefix)
    if not rel:
        return
    tpl_ext = config.tpl_file_ext if config is not None else DEFAULT_TPL_FILE_EXT
    joined = os.path.normpath(os.path.join(output_dir, rel))
    out_path = joined.removesuffix(tpl_ext) if tpl_ext else joined
    log.debug("file entry destPath: %s", out_path)

    if is_dir:
        os.makedirs(out_path, exist_ok=True)
        return

    outdir = os.path.dirname(joined)
    if config is not None and not option.other_type:
        if rel == _native(config.rpc_server_stub):
            _generate_server_stub(fd, entry, outdir, config, option)
            return
        if rel == _native(config.rpc_server_test_stub):
            _generate_server_test_stub(fd, entry, outdir, config.lang_file_ext, option)
            return
        if any(rel == _native(stub) for stub in config.rpc_client_stub):
            _generate_client_stub(fd, entry, outdir, config, option)
            return
    generate_file(fd, entry, out_path, option, None)


def _native(path: str) -> str:
    return path.replace("/", os.sep)


def _services(fd: FileDescriptor | None) -> list:
    return fd.services if fd is not None else []


def _generate_server_stub(
    fd: FileDescriptor | None, infile: str, outdir: str, config: TemplateConfig, opt: Option
) -> None:
    ext = config.lang_file_ext
    if opt.per_method:
        for s_idx, sd in enumerate(_services(fd)):
            for m_idx, method in enumerate(sd.rpc):
                base = f"{to_snake(sd.name)}_{to_snake(method.name)}.{ext}"
                generate_file(
                    fd, infile, os.path.join(outdir, base), opt, GenerateOptions(s_idx, m_idx)
                )
        return
    for s_idx, sd in enumerate(_services(fd)):
        base = f"{to_snake(sd.name)}.{ext}"
        generate_file(fd, infile, os.path.join(outdir, base), opt, GenerateOptions(s_idx, -1))


def _generate_server_test_stub(
    fd: FileDescriptor | None, entry: str, outdir: str, lang_file_ext: str, opt: Option
) -> None:
    for idx, sd in enumerate(_services(fd)):
        outfile = os.path.join(outdir, f"{to_snake(sd.name)}_test.{lang_file_ext}")
        generate_file(fd, entry, outfile, opt, GenerateOptions(idx, 0))
        log.debug("entry destPath: %s", outfile)


def _generate_client_stub(
    fd: FileDescriptor | None, infile: str, outdir: str, config: TemplateConfig, opt: Option
) -> None:
    if not config.rpc_client_stub_per_service:
        base = os.path.basename(infile)
        if config.tpl_file_ext:
            base = base.removesuffix(config.tpl_file_ext)
        generate_file(fd, infile, os.path.join(outdir, base), opt, None)
        return

    for idx, sd in enumerate(_services(fd)):
        name = to_camel(sd.name) if config.camel_case_name else to_snake(sd.name)
        if config.keep_orig_name:
            base = name + config.separator + base_name_without_ext(infile)
        else:
            base = f"{name}.{config.lang_file_ext}"
        generate_file(fd, infile, os.path.join(outdir, base), opt, GenerateOptions(idx, -1))


def generate_file_per_service(
    fd: FileDescriptor | None,
    infile: str,
    outfile: str,
    stub_name: str,
    opt: Option,
    config: TemplateConfig,
) -> None:
    """Render ``infile`` once per service into the directory of ``outfile``."""
    directory = os.path.dirname(outfile)
    for i, sd in enumerate(_services(fd)):
        if config.keep_orig_name:
            base = f"{to_camel(sd.name)}{config.separator}{stub_name}.{config.language}"
        else:
            base = f"{to_snake(sd.name)}{config.separator}.{config.language}"
        generate_file(fd, infile, os.path.join(directory, base), opt, GenerateOptions(i, 0))