import os
import stat
import subprocess
from unittest import mock

import pytest

from trpcgen.descriptor import FileDescriptor
from trpcgen.plugin import CppMove, GoImports, Option, PluginError


def _completed(stdout="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout)


def test_goimports_name_and_check():
    p = GoImports()
    assert p.name() == "goimports"
    assert p.check(FileDescriptor(), Option()) is False
    assert p.check(FileDescriptor(), Option(language="go")) is True


@mock.patch("shutil.which", return_value=None)
def test_goimports_missing_tool(_which):
    with pytest.raises(PluginError, match="goimports not found"):
        GoImports().run(FileDescriptor(), Option())


@mock.patch("subprocess.run", return_value=_completed())
@mock.patch("shutil.which", return_value="/usr/bin/goimports")
def test_goimports_stops_when_clean(_which, run):
    result = GoImports().run(FileDescriptor(), Option())
    assert result is None
    flags = [call.args[0][1] for call in run.call_args_list]
    assert flags == ["-w", "-d"]


@mock.patch("subprocess.run", return_value=_completed(stdout="diff"))
@mock.patch("shutil.which", return_value="/usr/bin/goimports")
def test_goimports_retries_while_diff_remains(_which, run):
    GoImports().run(FileDescriptor(), Option())
    assert run.call_count == 2 * GoImports.MAX_RUNS


@mock.patch("subprocess.run", return_value=_completed(stdout="boom", returncode=1))
@mock.patch("shutil.which", return_value="/usr/bin/goimports")
def test_goimports_failure(_which, _run):
    with pytest.raises(PluginError, match="boom"):
        GoImports().run(FileDescriptor(), Option())


def test_cpp_move_check():
    p = CppMove()
    assert p.name() == "cpp_move"
    assert p.check(None, Option(language="cpp")) is True
    assert p.check(None, Option(language="cpp", rpc_only=True)) is False
    assert p.check(None, Option(language="go")) is False


def _project(tmp_path, scripts=CppMove.SCRIPTS):
    protos = tmp_path / "protos"
    protos.mkdir()
    (protos / "hello.proto").write_text("syntax = 'proto3';")
    out = tmp_path / "out"
    out.mkdir()
    for script in scripts:
        (out / script).write_text("#!/bin/sh\n")
    fd = FileDescriptor(pb2_deps_pbs={"hello.proto": []})
    opt = Option(language="cpp", output_dir=str(out), protodirs=[str(protos)])
    return fd, opt, out


def test_cpp_move_copies_and_chmods(tmp_path):
    fd, opt, out = _project(tmp_path)
    CppMove().run(fd, opt)
    assert (out / "proto" / "hello.proto").read_text() == "syntax = 'proto3';"
    for script in CppMove.SCRIPTS:
        assert stat.S_IMODE(os.stat(out / script).st_mode) == 0o755


def test_cpp_move_missing_script(tmp_path):
    fd, opt, _ = _project(tmp_path, scripts=("build.sh",))
    with pytest.raises(PluginError, match="chmod failed"):
        CppMove().run(fd, opt)


def test_cpp_move_missing_proto_stops_quietly(tmp_path):
    fd, opt, out = _project(tmp_path)
    fd.pb2_deps_pbs = {"absent.proto": []}
    assert CppMove().run(fd, opt) is None
    assert not (out / "proto").exists()