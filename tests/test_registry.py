import os
import stat

import pytest

from trpcgen.descriptor import FileDescriptor
from trpcgen.plugin import Option, PluginError
from trpcgen.registry import default_plugins, language_plugins, run_plugins

SCRIPTS = ("build.sh", "clean.sh", "run_client.sh", "run_server.sh")


def test_default_plugins():
    assert [p.name() for p in default_plugins()] == ["sync_git"]


def test_language_plugins_go():
    assert [p.name() for p in language_plugins("go")] == ["goimports", "mockgen", "gotag"]


def test_language_plugins_cpp():
    assert [p.name() for p in language_plugins("cpp")] == ["cpp_move"]


def test_language_plugins_unknown():
    assert language_plugins("java") == []


def test_run_plugins_nothing_enabled():
    assert run_plugins(FileDescriptor(), Option()) == []


def test_run_plugins_cpp(tmp_path):
    for script in SCRIPTS:
        path = tmp_path / script
        path.write_text("#!/bin/sh\n")
        os.chmod(path, 0o644)
    opt = Option(language="cpp", output_dir=str(tmp_path))
    assert run_plugins(FileDescriptor(), opt) == ["cpp_move"]
    for script in SCRIPTS:
        assert stat.S_IMODE(os.stat(tmp_path / script).st_mode) == 0o755


def test_run_plugins_propagates_failure(tmp_path):
    opt = Option(language="cpp", output_dir=str(tmp_path))
    with pytest.raises(PluginError):
        run_plugins(FileDescriptor(), opt)


def test_run_plugins_cpp_rpc_only_skipped(tmp_path):
    opt = Option(language="cpp", rpc_only=True, output_dir=str(tmp_path))
    assert run_plugins(FileDescriptor(), opt) == []