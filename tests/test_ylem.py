"""
Tests for yvm.ylem — the proxy that runs the active compiler.
"""

import os
import sys
from unittest import mock

import pytest

from conftest import PLATFORM
from yvm.ylem import main

FAKE_YLEM = b"""#!/bin/sh
echo "fake ylem $*"
exit 7
"""


@pytest.fixture
def proxy_env(store, monkeypatch):
    monkeypatch.setenv("YVM_HOME", store.root)
    monkeypatch.setenv("YVM_TARGET_PLATFORM", PLATFORM)
    return store


class TestProxy:
    def test_passes_args_and_exit_code(self, proxy_env, make_artifact):
        path, digest = make_artifact()
        installed = proxy_env.install("0.8.1", path, digest=digest, activate=True)
        with mock.patch("yvm.ylem.subprocess.call", return_value=5) as call:
            assert main(["--bin", "contract.sol"]) == 5
        call.assert_called_once_with(
            [installed.executable, "--bin", "contract.sol"])

    def test_follows_use(self, proxy_env, make_artifact):
        for version in ("0.8.0", "0.8.1"):
            path, digest = make_artifact()
            proxy_env.install(version, path, digest=digest)
        proxy_env.use("0.8.1")
        with mock.patch("yvm.ylem.subprocess.call", return_value=0) as call:
            main([])
        assert os.path.basename(call.call_args.args[0][0]) == "ylem-0.8.1"

    @pytest.mark.skipif(sys.platform == "win32", reason="shell script binary")
    def test_runs_real_binary(self, proxy_env, make_artifact, capfd):
        path, digest = make_artifact(FAKE_YLEM)
        proxy_env.install("0.8.1", path, digest=digest, activate=True)
        assert main(["--version"]) == 7
        assert "fake ylem --version" in capfd.readouterr().out

    def test_killed_by_signal(self, proxy_env, make_artifact):
        path, digest = make_artifact()
        proxy_env.install("0.8.1", path, digest=digest, activate=True)
        with mock.patch("yvm.ylem.subprocess.call", return_value=-9):
            assert main([]) == 137


class TestProxyErrors:
    def test_no_active_version(self, proxy_env, capsys):
        assert main(["--version"]) == 1
        assert "No active ylem version" in capsys.readouterr().err

    def test_dangling_pointer(self, proxy_env, capsys):
        os.makedirs(proxy_env.root)
        with open(proxy_env.active_path, "w") as f:
            f.write("0.9.0\n")
        assert main([]) == 1
        assert "not installed" in capsys.readouterr().err

    def test_binary_cannot_start(self, proxy_env, make_artifact, capsys):
        path, digest = make_artifact()
        proxy_env.install("0.8.1", path, digest=digest, activate=True)
        with mock.patch("yvm.ylem.subprocess.call",
                        side_effect=PermissionError("denied")):
            assert main([]) == 1
        assert "cannot run" in capsys.readouterr().err
