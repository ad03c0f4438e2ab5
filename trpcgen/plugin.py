"""Plugins run after code generation, and the options they receive."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .descriptor import FileDescriptor
from .parser import locate_file

log = logging.getLogger(__name__)


class PluginError(RuntimeError):
    """A plugin failed to do its work."""


@dataclass
class Option:
    """Command-line controlled settings of a generation run."""

    language: str = ""
    idl_type: str = ""
    other_type: str = ""
    protofile: str = ""
    protodirs: list[str] = field(default_factory=list)
    output_dir: str = ""
    assetdir: str = ""
    rpc_only: bool = False
    per_method: bool = False
    mockgen: bool = False
    no_go_mod: bool = False
    gotag: bool = False
    swagger_on: bool = False
    swagger_out: str = ""
    openapi_on: bool = False
    openapi_out: str = ""
    secv_enabled: bool = False
    sync: bool = False
    remote: str = ""
    new_tag: bool = False
    tag: str = ""


class Plugin(ABC):
    """A customised step run on the generated output."""

    @abstractmethod
    def name(self) -> str:
        """Return the plugin's name."""

    @abstractmethod
    def check(self, fd: FileDescriptor | None, opt: Option) -> bool:
        """Tell whether this plugin should run."""

    @abstractmethod
    def run(self, fd: FileDescriptor | None, opt: Option) -> None:
        """Run the plugin; raise on failure."""


class GoImports(Plugin):
    """Runs goimports over the working directory."""

    MAX_RUNS = 5

    def name(self) -> str:
        return "goimports"

    def check(self, fd: FileDescriptor | None, opt: Option) -> bool:
        return opt.language == "go"

    def run(self, fd: FileDescriptor | None, opt: Option) -> None:
        goimports = shutil.which("goimports")
        if goimports is None:
            raise PluginError("goimports not found, install it first")
        # Occasionally several passes are needed to settle duplicate imports.
        for _ in range(self.MAX_RUNS):
            self._exec(goimports, "-w")
            if not self._exec(goimports, "-d"):
                break

    @staticmethod
    def _exec(goimports: str, flag: str) -> str:
        result = subprocess.run(
            [goimports, flag, "."],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            log.error("run goimports %s . error:\n%s", flag, result.stdout)
            raise PluginError(
                f"run goimports {flag} . exited with {result.returncode}: {result.stdout}"
            )
        return result.stdout or ""


class CppMove(Plugin):
    """Copies the proto files into the generated C++ project and marks its scripts executable."""

    SCRIPTS = ("build.sh", "clean.sh", "run_client.sh", "run_server.sh")

    def name(self) -> str:
        return "cpp_move"

    def check(self, fd: FileDescriptor | None, opt: Option) -> bool:
        return opt.language == "cpp" and not opt.rpc_only

    def run(self, fd: FileDescriptor | None, opt: Option) -> None:
        log.debug("execute plugin for %s in %s", opt.language, opt.output_dir)
        pb_out_dir = os.path.join(opt.output_dir, "proto")
        for pb_file in fd.pb2_deps_pbs if fd else ():
            try:
                source = locate_file(pb_file, opt.protodirs)
            except FileNotFoundError as exc:
                log.error("locate file err: %s", exc)
                return
            target = os.path.join(pb_out_dir, pb_file)
            try:
                os.makedirs(os.path.dirname(target), exist_ok=True)
                shutil.copyfile(source, target)
            except OSError as exc:
                raise PluginError(f"file copy err: {exc}") from exc
        for script in self.SCRIPTS:
            try:
                os.chmod(os.path.join(opt.output_dir, script), 0o755)
            except OSError as exc:
                raise PluginError(f"chmod failed err: {exc}") from exc