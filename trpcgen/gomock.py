"""Generating gomock mocks for the generated Go stubs."""

from __future__ import annotations

import glob
import logging
import os
import shutil
import subprocess
from collections.abc import Iterator
from contextlib import contextmanager

from .descriptor import FileDescriptor
from .fill import get_pb_package
from .naming import base_name_without_ext, to_snake, trim_right, valid_go_package
from .plugin import Option, Plugin, PluginError

log = logging.getLogger(__name__)

_MOCKGEN_HINT = (
    "if the error is caused by 'go mod tidy' or 'mockgen', "
    "you may try adding '--nogomod' flag to use the outer go.mod of your project, "
    "or you can use '--mock=false' to disable go mod tidy and mockgen completely, "
    "if you are very curious, here's the explanation: Most of the errors are basically "
    "caused by the mockgen tool. Before executing mockgen, it requires running go mod tidy, "
    "which in turn needs a valid go.mod file. However, this go.mod file can have various issues, "
    "especially when your project already has an existing go.mod file. "
    "Therefore, using the '--nogomod' flag to disable the generation of "
    "a new go.mod file can solve the problem, or using the '--mock=false' flag "
    "can resolve the issue even more effectively (but there won't be any mock files generated :( )."
)


class CommandError(PluginError):
    """An external command failed."""


@contextmanager
def _working_dir(path: str) -> Iterator[None]:
    previous = os.getcwd()
    os.chdir(path)
    try:
        yield
    finally:
        os.chdir(previous)


def run_cmd(cmd: str) -> str:
    """Run a space separated command line; return its combined output or raise CommandError."""
    log.debug("run cmd: %s", cmd)
    args = [a for a in cmd.split(" ") if a]
    try:
        result = subprocess.run(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise CommandError(f"cmd exec err: {exc}, msg:") from exc
    output = result.stdout or ""
    if result.returncode != 0:
        raise CommandError(f"cmd exec err: exit status {result.returncode}, msg:{output}")
    return output


class GoMock(Plugin):
    """Runs mockgen (or go generate) over the generated Go code."""

    def name(self) -> str:
        return "mockgen"

    def check(self, fd: FileDescriptor | None, opt: Option) -> bool:
        if opt.language != "go" or not opt.mockgen or fd is None or not fd.services:
            return False
        # A missing mockgen is only reported, never fatal.
        if shutil.which("mockgen") is None:
            log.error("mockgen not found in PATH")
            return False
        return True

    def run(self, fd: FileDescriptor | None, opt: Option) -> None:
        if not opt.rpc_only and opt.mockgen:
            self._run_go_generate_all_around(opt)
            return

        with _working_dir(opt.output_dir):
            pkg_name = get_pb_package(fd, "go_package")
            if not opt.no_go_mod:
                self.ensure_go_mod(pkg_name)

            fname = base_name_without_ext(fd.file_path)
            args = [
                f"-destination={to_snake(fname)}_mock.go",
                f"-package={valid_go_package(pkg_name)}",
                f"--source={fname}.trpc.go",
            ]
            if not opt.no_go_mod:
                args.append(f"-self_package={pkg_name}")
            try:
                run_cmd("mockgen " + " ".join(args))
            except CommandError as exc:
                raise PluginError(f"go mock mockgen err: {exc}, {_MOCKGEN_HINT}") from exc

    def ensure_go_mod(self, pkg_name: str) -> None:
        """Make sure the working directory holds a go.mod for ``pkg_name``."""
        try:
            self.check_go_mod(pkg_name)
        except FileNotFoundError:
            self.init_go_mod(pkg_name)
            return
        try:
            run_cmd("go mod tidy")
        except CommandError as exc:
            raise PluginError(f"go mock ensure go mod err: {exc}") from exc

    def check_go_mod(self, mod: str) -> None:
        """Check that ./go.mod declares module ``mod``.

        Raises FileNotFoundError when there is no go.mod and PluginError when
        it declares another module or none.
        """
        prefix = "module "
        with open("go.mod", encoding="utf-8") as f:
            for line in f:
                s = line.strip()
                if not s.startswith(prefix):
                    continue
                name = s[len(prefix):]
                if name != mod:
                    raise PluginError(
                        f"the current directory already contains go.mod ({name} != {mod}), "
                        "please specify another output directory with -o"
                    )
                return
        raise PluginError("invalid go.mod")

    def init_go_mod(self, pkg: str) -> None:
        """Create a go.mod for ``pkg`` and tidy it."""
        mod = trim_right(";", pkg)
        try:
            run_cmd("go mod init " + mod)
        except CommandError as exc:
            raise PluginError(f"go mock: go mod init err: {exc}") from exc
        try:
            run_cmd("go mod tidy")
        except CommandError as exc:
            raise PluginError(f"go mock: go mod tidy err: {exc}") from exc

    @staticmethod
    def _run_go_generate_all_around(opt: Option) -> None:
        for path, _dirs, _files in os.walk(opt.output_dir):
            if not glob.glob(os.path.join(glob.escape(path), "*.go")):
                continue
            if "stub" in path:
                continue
            with _working_dir(path):
                log.debug("switch to path %s before go generate", path)
                try:
                    run_cmd("go mod tidy")
                except CommandError as exc:
                    raise PluginError(f"run go mod tidy inside go mock, err: {exc}") from exc
                try:
                    run_cmd("go generate")
                except CommandError as exc:
                    raise PluginError(f"run go generate inside go mock, err: {exc}") from exc