from __future__ import annotations

import pytest

from agent_vm.util import CmdError, CmdResult, expand, shell_join
from agent_vm.util import run_cmd as _run_cmd


def test_shell_join_quotes() -> None:
    cmd = ["echo", "a b", "c'd"]
    s = shell_join(cmd)
    assert "'a b'" in s
    assert s.startswith("echo ")


def test_run_cmd_success_and_failure() -> None:
    ok = _run_cmd(["bash", "-c", "printf ok"], check=True, capture=True)
    assert ok.code == 0
    assert ok.stdout == "ok"
    bad = _run_cmd(["bash", "-c", "exit 7"], check=False, capture=True)
    assert bad.code == 7
    with pytest.raises(CmdError) as info:
        _run_cmd(["bash", "-c", "echo boom >&2; exit 9"], check=True)
    assert info.value.result.code == 9
    assert "boom" in str(info.value)


def test_run_cmd_feeds_stdin() -> None:
    res = _run_cmd(["cat"], input_text="hello\n")
    assert res.stdout == "hello\n"


def test_run_cmd_passes_argv_list(monkeypatch) -> None:
    calls = []

    class P:
        returncode = 0
        stdout = ""
        stderr = ""

    monkeypatch.setattr(
        "agent_vm.util.subprocess.run",
        lambda cmd, **kwargs: (calls.append((cmd, kwargs)) or P()),
    )
    _run_cmd(("limactl", "list"), capture=False)
    cmd, kwargs = calls[0]
    assert cmd == ["limactl", "list"]
    assert kwargs["capture_output"] is False
    assert kwargs["input"] is None


def test_expand_env(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_VM_TEST_DIR", "/tmp/agent-vm-x")
    assert expand("$AGENT_VM_TEST_DIR/state") == "/tmp/agent-vm-x/state"


def test_cmd_result_detail_prefers_stderr() -> None:
    assert CmdResult(1, "out", " err \n").detail == "err"
    assert CmdResult(1, "out\n", "").detail == "out"
    assert CmdResult(0, "", "").ok
