"""MCP tool wrappers and startup configuration."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

import secure_tools_mcp_server as sm


@pytest.fixture
def configured(monkeypatch: pytest.MonkeyPatch, secure_tools):
    monkeypatch.setattr(sm, "tools", secure_tools)
    return secure_tools


def test_unconfigured_server_refuses(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(sm, "tools", None)
    with pytest.raises(sm.ConfigError):
        asyncio.run(sm.read_file("a.txt"))


def test_tool_wrappers_delegate(configured, work: Path):
    async def scenario():
        await sm.write_file("notes.md", "alpha\nbeta\n")
        assert await sm.read_file("notes.md") == "alpha\nbeta\n"

        diff = await sm.edit_file(
            "notes.md", [sm.EditOperation("beta", "gamma")], dry_run=False
        )
        assert "+gamma" in diff

        listing = await sm.list_directory(".")
        assert "[FILE] notes.md" in listing

        assert str(work / "notes.md") in await sm.search_files(".", "notes")
        assert "gamma" in await sm.grep_search("gamma")
        assert "notes.md:" in await sm.codebase_search("alpha")
        assert (await sm.run_terminal_command("cat notes.md")).startswith("alpha")
        assert str(work) in await sm.list_allowed_directories()

        await sm.delete_file("notes.md")

    asyncio.run(scenario())
    assert not (work / "notes.md").exists()


def test_command_timeout_defaults_to_server_setting(
    monkeypatch: pytest.MonkeyPatch, boundary
):
    monkeypatch.setattr(sm, "tools", sm.SecureTools(boundary, default_timeout=0.5))
    with pytest.raises(sm.CommandTimeout) as exc:
        asyncio.run(sm.run_terminal_command("sleep 5"))
    assert exc.value.timeout == 0.5


def test_command_timeout_argument_overrides_server_setting(
    monkeypatch: pytest.MonkeyPatch, boundary
):
    monkeypatch.setattr(sm, "tools", sm.SecureTools(boundary, default_timeout=0.2))
    out = asyncio.run(sm.run_terminal_command("sleep 0.5; echo done", timeout=10))
    assert out == "done\n"


def test_tool_errors_propagate(configured, outside: Path):
    with pytest.raises(sm.AccessDenied):
        asyncio.run(sm.read_file(str(outside / "secret.txt")))


def test_tools_registered():
    names = {t.name for t in asyncio.run(sm.mcp_server.list_tools())}
    assert names == {
        "read_file",
        "write_file",
        "list_directory",
        "search_files",
        "edit_file",
        "codebase_search",
        "grep_search",
        "run_terminal_command",
        "delete_file",
        "list_allowed_directories",
    }


# ── main() ───────────────────────────────────────────────────────────────


class TestMain:
    @pytest.fixture(autouse=True)
    def _no_transport(self, monkeypatch: pytest.MonkeyPatch):
        calls = []
        monkeypatch.setattr(sm.mcp_server, "run", lambda **kw: calls.append(kw))
        monkeypatch.setattr(sm, "tools", None)
        monkeypatch.delenv(sm.ROOTS_ENV, raising=False)
        return calls

    def test_explicit_directories(self, work: Path, _no_transport):
        sm.main([str(work), "--timeout", "5"])
        assert sm.tools is not None
        assert sm.tools.boundary.mode == "explicit-roots"
        assert sm.tools.boundary.roots == (str(work),)
        assert sm.tools.default_timeout == 5.0
        assert _no_transport == [{"transport": "stdio"}]

    def test_working_directory_default(self, work: Path, monkeypatch):
        monkeypatch.chdir(work)
        sm.main([])
        assert sm.tools.boundary.mode == "single-root"
        assert sm.tools.boundary.roots == (str(work),)

    def test_roots_from_environment(self, tmp_path: Path, monkeypatch):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()
        monkeypatch.setenv(sm.ROOTS_ENV, f"{a}{os.pathsep}{b}")
        sm.main([])
        assert sm.tools.boundary.roots == (os.path.realpath(a), os.path.realpath(b))

    def test_missing_directory_is_fatal(self, tmp_path: Path, _no_transport):
        with pytest.raises(SystemExit) as exc:
            sm.main([str(tmp_path / "missing")])
        assert exc.value.code == 1
        assert sm.tools is None
        assert _no_transport == []
