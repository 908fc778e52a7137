"""shell.py 命令执行器单元测试"""

from __future__ import annotations

from depforge.utils.shell import CommandResult, LocalExecutor, get_executor, set_executor


class TestLocalExecutor:
    def test_success(self, tmp_path) -> None:
        r = LocalExecutor().execute("echo hello", cwd=str(tmp_path))
        assert r.success
        assert "hello" in r.stdout

    def test_failure_returncode(self, tmp_path) -> None:
        r = LocalExecutor().execute(["false"], cwd=str(tmp_path))
        assert not r.success


class TestGlobalExecutor:
    def test_replace_and_restore(self) -> None:
        class Fake:
            def execute(self, cmd, *, cwd=".", timeout=None) -> CommandResult:
                return CommandResult(0, "fake", "")

        original = get_executor()
        try:
            set_executor(Fake())
            assert get_executor().execute("anything").stdout == "fake"
        finally:
            set_executor(original)
