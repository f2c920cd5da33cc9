#!/usr/bin/env python3
"""MCP server exposing filesystem, search and shell tools confined to a set of directories."""

import argparse
import asyncio
import difflib
import logging
import os
import signal
import stat
import sys
import tempfile
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from mcp.server.fastmcp import FastMCP

# ── Logging (stderr only — stdout is MCP protocol) ──────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
    stream=sys.stderr,
)
log = logging.getLogger("secure-tools")

# ── Config ───────────────────────────────────────────────────────────────

DEFAULT_TIMEOUT = 30.0
MAX_OUTPUT = 50_000

DEFAULT_SEARCH_RESULTS = 50
DEFAULT_GREP_RESULTS = 100
GREP_LINES_PER_FILE = 3

# Seconds between SIGTERM and SIGKILL for a timed-out command
TERMINATE_GRACE = 3.0

# os.pathsep-separated roots, used when no directories are given on the command line
ROOTS_ENV = "SECURE_TOOLS_ROOTS"

_READ_CHUNK = 65536


# ── Errors ───────────────────────────────────────────────────────────────


class SecureToolsError(Exception):
    pass


class ConfigError(SecureToolsError):
    pass


class AccessDenied(SecureToolsError):
    pass


class NotFound(SecureToolsError):
    pass


class EditConflict(SecureToolsError):
    def __init__(self, old_text: str):
        super().__init__(f"Could not find exact match for edit:\n{old_text}")
        self.old_text = old_text


class ExecutionFailure(SecureToolsError):
    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code


class CommandTimeout(SecureToolsError):
    def __init__(self, timeout: float, stdout: str = "", stderr: str = ""):
        message = f"Command timed out after {timeout}s"
        partial = _join_output(stdout, stderr)
        if partial:
            message += f"\nPartial output:\n{_truncate(partial)}"
        super().__init__(message)
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr


# ── Helpers ──────────────────────────────────────────────────────────────


def _humanize_bytes(n: int) -> str:
    v = float(n)
    for unit in ("B", "KB", "MB"):
        if v < 1024:
            return f"{v:.0f}{unit}" if unit == "B" else f"{v:.1f}{unit}"
        v /= 1024
    return f"{v:.1f}GB"


def _truncate(text: str, limit: int = MAX_OUTPUT) -> str:
    if len(text) <= limit:
        return text
    total = _humanize_bytes(len(text.encode()))
    return (
        text[:limit]
        + f"\n[truncated — {total} total, showing first {_humanize_bytes(limit)}]"
    )


def _join_output(stdout: str, stderr: str) -> str:
    return stdout + (f"\nSTDERR:\n{stderr}" if stderr else "")


def _expand_home(path: str) -> str:
    # Only the current user's home; `~user` forms are left untouched.
    if path == "~" or path.startswith("~/"):
        return os.path.expanduser("~") + path[1:]
    return path


def _is_within(path: str, root: str) -> bool:
    """True if `path` is `root` or lies below it on a path-segment boundary."""
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def _normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n")


def _leading_ws(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def _atomic_write(path: str, text: str) -> None:
    """Replace `path` with `text` atomically (tempfile + fsync + os.replace)."""
    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        mode = 0o666 & ~_current_umask()
    fd = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        dir=os.path.dirname(path),
        delete=False,
        suffix=".tmp",
    )
    try:
        fd.write(text)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        os.chmod(fd.name, mode)
        os.replace(fd.name, path)
    except BaseException:
        fd.close()
        try:
            os.unlink(fd.name)
        except OSError:
            pass
        raise


# ── Boundary set ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class BoundarySet:
    """
    Immutable allow-list of root directories.

    `roots` holds the canonical (symlink-resolved) form of every configured
    directory.  `aliases` holds the nominal absolute spelling of any root
    that differs from its canonical form, so a request spelled through a
    symlinked ancestor still passes the nominal check.  `base_dir` is where
    relative requests are anchored.
    """

    roots: tuple[str, ...]
    base_dir: str
    mode: str = "single-root"
    aliases: tuple[str, ...] = ()

    def contains(self, path: str) -> bool:
        """Nominal containment: canonical roots plus their configured spellings."""
        return any(_is_within(path, root) for root in self.roots + self.aliases)

    def contains_real(self, path: str) -> bool:
        """Containment of an already symlink-resolved path."""
        return any(_is_within(path, root) for root in self.roots)

    @property
    def default_directory(self) -> str:
        if self.contains(self.base_dir):
            return self.base_dir
        return self.roots[0]


def build_boundary_set(
    directories: Optional[Sequence[str]] = None, cwd: Optional[str] = None
) -> BoundarySet:
    """
    Build the boundary set for one deployment.

    With no directories the process working directory (or `cwd`) becomes
    the single root and relative paths resolve against it.  With explicit
    directories every one of them is a root and relative paths resolve
    against the working directory.

    Raises:
        ConfigError: If a directory does not exist or is not a directory.
    """
    working = os.path.abspath(cwd or os.getcwd())
    if directories:
        mode = "explicit-roots"
        configured = list(directories)
    else:
        mode = "single-root"
        configured = [working]

    roots: list[str] = []
    aliases: list[str] = []
    for raw in configured:
        absolute = os.path.abspath(_expand_home(raw))
        if not os.path.isdir(absolute):
            raise ConfigError(
                f"Allowed directory does not exist or is not a directory: {raw}"
            )
        real = os.path.realpath(absolute)
        if real not in roots:
            roots.append(real)
        if absolute != real and absolute not in aliases:
            aliases.append(absolute)

    base_dir = roots[0] if mode == "single-root" else working
    return BoundarySet(
        roots=tuple(roots), base_dir=base_dir, mode=mode, aliases=tuple(aliases)
    )


# ── Path resolver ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ResolvedPath:
    path: str
    exists: bool


def resolve_path(boundary: BoundarySet, requested_path: str) -> ResolvedPath:
    """
    Resolve a caller-supplied path and check it against the boundary set.

    The nominal path is checked before any filesystem access; the realpath
    (or, for a path that does not exist yet, the parent's realpath) is
    checked again so a symlink cannot lead out of the sandbox.

    Returns:
        The realpath of an existing target, or the normalized absolute path
        of a target that does not exist yet.

    Raises:
        AccessDenied: The path, its realpath or its parent's realpath is
            outside every allowed directory.
        NotFound: The parent directory of a missing target does not exist.
    """
    if "\x00" in requested_path:
        raise AccessDenied("Access denied - path contains null bytes")

    expanded = _expand_home(requested_path)
    if os.path.isabs(expanded):
        absolute = os.path.normpath(expanded)
    else:
        absolute = os.path.normpath(os.path.join(boundary.base_dir, expanded))

    if not boundary.contains(absolute):
        log.warning(f"Denied path outside allowed directories: {absolute}")
        raise AccessDenied(
            f"Access denied - path outside allowed directories: {absolute} "
            f"not within {', '.join(boundary.roots)}"
        )

    try:
        real = os.path.realpath(absolute, strict=True)
    except OSError:
        real = None

    if real is not None:
        if not boundary.contains_real(real):
            log.warning(f"Denied symlink escape: {absolute} -> {real}")
            raise AccessDenied(
                "Access denied - symlink target outside allowed directories"
            )
        return ResolvedPath(real, exists=True)

    # Dangling symlink: writing through it would create its target.
    if os.path.islink(absolute):
        target = os.path.realpath(absolute)
        if not boundary.contains_real(target):
            log.warning(f"Denied dangling symlink escape: {absolute} -> {target}")
            raise AccessDenied(
                "Access denied - symlink target outside allowed directories"
            )

    parent = os.path.dirname(absolute)
    try:
        real_parent = os.path.realpath(parent, strict=True)
    except OSError:
        raise NotFound(f"Parent directory does not exist: {parent}") from None
    if not os.path.isdir(real_parent):
        raise NotFound(f"Parent directory does not exist: {parent}")
    if not boundary.contains_real(real_parent):
        log.warning(f"Denied parent outside allowed directories: {real_parent}")
        raise AccessDenied(
            "Access denied - parent directory outside allowed directories"
        )
    return ResolvedPath(absolute, exists=False)


# ── Safe-edit engine ─────────────────────────────────────────────────────


@dataclass
class EditOperation:
    old_text: str
    new_text: str


@dataclass
class EditResult:
    new_text: str
    diff: str


EditLike = Union[EditOperation, dict]


def _coerce_edit(edit: EditLike) -> EditOperation:
    if isinstance(edit, EditOperation):
        return edit
    return EditOperation(old_text=edit["old_text"], new_text=edit["new_text"])


def _splits_indentation(content: str, index: int, old: str) -> bool:
    """True if a match at `index` starts inside a line's leading whitespace."""
    if old[:1] not in (" ", "\t"):
        return False
    line_start = content.rfind("\n", 0, index) + 1
    prefix = content[line_start:index]
    return bool(prefix) and not prefix.strip()


def _replace_line_window(
    content: str, old: str, new: str, start_line: Optional[int] = None
) -> Optional[str]:
    """
    Replace the first run of lines equal to `old` modulo surrounding
    whitespace, re-indenting `new` to the indentation found at the match.
    With `start_line`, only the window starting on that line is tried.
    Returns None when no window matches.
    """
    old_lines = old.split("\n")
    content_lines = content.split("\n")
    width = len(old_lines)

    if start_line is None:
        starts = range(len(content_lines) - width + 1)
    else:
        starts = range(start_line, min(start_line + 1, len(content_lines) - width + 1))
    for i in starts:
        window = content_lines[i : i + width]
        if not all(o.strip() == c.strip() for o, c in zip(old_lines, window)):
            continue

        base = _leading_ws(content_lines[i])
        replacement = []
        for j, line in enumerate(new.split("\n")):
            if j == 0:
                replacement.append(base + line.lstrip())
                continue
            old_indent = _leading_ws(old_lines[j]) if j < width else ""
            new_indent = _leading_ws(line)
            if old_indent and new_indent:
                shift = max(0, len(new_indent) - len(old_indent))
                replacement.append(base + " " * shift + line.lstrip())
            else:
                replacement.append(line)

        content_lines[i : i + width] = replacement
        return "\n".join(content_lines)
    return None


def _diff_lines(text: str) -> list[str]:
    lines = text.split("\n")
    out = [line + "\n" for line in lines[:-1]]
    if lines[-1]:
        out.append(lines[-1])
    return out


def create_unified_diff(original: str, modified: str) -> str:
    out = []
    for line in difflib.unified_diff(
        _diff_lines(_normalize_line_endings(original)),
        _diff_lines(_normalize_line_endings(modified)),
        fromfile="original",
        tofile="modified",
    ):
        out.append(line)
        if not line.endswith("\n"):
            out.append("\n\\ No newline at end of file\n")
    return "".join(out)


def format_diff(diff: str) -> str:
    """Fence a diff with more backticks than any run inside it."""
    fence_len = 3
    while "`" * fence_len in diff:
        fence_len += 1
    fence = "`" * fence_len
    return f"{fence}diff\n{diff}{fence}\n\n"


def apply_edits(original_text: str, edits: Sequence[EditLike]) -> EditResult:
    """
    Apply edits in order, each against the content left by the previous one.

    Every edit is located by exact substring first, then by a line window
    compared with surrounding whitespace ignored.  An exact hit that starts
    inside a line's indentation is used only when no line window matches.

    Raises:
        EditConflict: An edit's old text matched nowhere.
    """
    content = _normalize_line_endings(original_text)
    modified = content

    for raw in edits:
        edit = _coerce_edit(raw)
        old = _normalize_line_endings(edit.old_text)
        new = _normalize_line_endings(edit.new_text)

        index = modified.find(old)
        if index != -1:
            if _splits_indentation(modified, index, old):
                # Re-indent only at the line holding the verbatim hit.
                windowed = _replace_line_window(
                    modified, old, new, start_line=modified.count("\n", 0, index)
                )
                if windowed is not None:
                    modified = windowed
                    continue
            modified = modified[:index] + new + modified[index + len(old) :]
            continue

        windowed = _replace_line_window(modified, old, new)
        if windowed is None:
            raise EditConflict(edit.old_text)
        modified = windowed

    return EditResult(
        new_text=modified, diff=format_diff(create_unified_diff(content, modified))
    )


# ── Process runner ───────────────────────────────────────────────────────


async def _drain(stream: Optional[asyncio.StreamReader], sink: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        sink.extend(chunk)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """SIGTERM the child's process group, SIGKILL it after a grace period."""
    try:
        os.killpg(proc.pid, signal.SIGTERM)
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=TERMINATE_GRACE)
    except asyncio.TimeoutError:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await proc.wait()


async def run_process(
    cmd: list[str], cwd: str, timeout: float = DEFAULT_TIMEOUT
) -> dict:
    """
    Run a command in `cwd`, which callers must already have validated.

    Returns:
        dict with stdout, stderr, exit_code and duration_ms.  A non-zero
        exit code is reported, not raised.

    Raises:
        ExecutionFailure: The process could not be spawned.
        CommandTimeout: The process outlived `timeout` and was terminated;
            carries whatever output was collected.
    """
    t0 = time.perf_counter()
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        raise ExecutionFailure(f"Failed to execute command: {e}") from e

    stdout = bytearray()
    stderr = bytearray()
    waiter = asyncio.gather(
        _drain(proc.stdout, stdout),
        _drain(proc.stderr, stderr),
        proc.wait(),
    )
    # Consume the outcome so a cancelled gather is never reported as unretrieved.
    waiter.add_done_callback(lambda f: f.cancelled() or f.exception())
    try:
        await asyncio.wait_for(waiter, timeout=timeout)
    except asyncio.TimeoutError:
        await _terminate(proc)
        log.warning(f"Timed out after {timeout}s: {cmd[0]} (cwd={cwd})")
        raise CommandTimeout(
            timeout,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        ) from None
    except BaseException:
        # Caller cancelled: the child must not outlive the request.
        waiter.cancel()
        if proc.returncode is None:
            await asyncio.shield(_terminate(proc))
        log.warning(f"Cancelled: {cmd[0]} (cwd={cwd})")
        raise

    elapsed = (time.perf_counter() - t0) * 1000
    log.info(f"{cmd[0]} exited {proc.returncode} in {elapsed:.0f}ms (cwd={cwd})")
    return {
        "stdout": stdout.decode(errors="replace"),
        "stderr": stderr.decode(errors="replace"),
        "exit_code": proc.returncode,
        "duration_ms": round(elapsed, 1),
    }


# ── Per-root search results ──────────────────────────────────────────────


@dataclass
class RootResult:
    root: str
    lines: list[str] = field(default_factory=list)
    error: Optional[str] = None


def _format_root_results(results: list[RootResult]) -> str:
    lines = [line for r in results for line in r.lines]
    errors = [f"[error] {r.root}: {r.error}" for r in results if r.error]
    if not lines and not errors:
        return "No matches found"
    return _truncate("\n".join(lines + errors))


# ── Tools ────────────────────────────────────────────────────────────────


class SecureTools:
    """Tool implementations bound to one boundary set."""

    def __init__(self, boundary: BoundarySet, default_timeout: float = DEFAULT_TIMEOUT):
        self.boundary = boundary
        self.default_timeout = default_timeout

    def resolve(self, path: str) -> ResolvedPath:
        return resolve_path(self.boundary, path)

    def _existing_file(self, path: str) -> str:
        resolved = self.resolve(path)
        if not resolved.exists:
            raise NotFound(f"File not found: {path}")
        if os.path.isdir(resolved.path):
            raise SecureToolsError(f"Not a file: {path}")
        return resolved.path

    def _existing_dir(self, path: str) -> str:
        resolved = self.resolve(path)
        if not resolved.exists:
            raise NotFound(f"Directory not found: {path}")
        if not os.path.isdir(resolved.path):
            raise SecureToolsError(f"Not a directory: {path}")
        return resolved.path

    def _search_roots(self, path: Optional[str]) -> list[str]:
        if path:
            return [self._existing_dir(path)]
        return list(self.boundary.roots)

    # ── Files ────────────────────────────────────────────────────────

    async def read_file(self, path: str) -> str:
        target = self._existing_file(path)
        with open(target, encoding="utf-8", errors="replace") as f:
            return f.read()

    async def write_file(self, path: str, content: str) -> str:
        resolved = self.resolve(path)
        if resolved.exists and os.path.isdir(resolved.path):
            raise SecureToolsError(f"Not a file: {path}")
        _atomic_write(resolved.path, content)
        size = _humanize_bytes(len(content.encode()))
        return f"Wrote {size} to {resolved.path}"

    async def list_directory(self, path: str) -> str:
        target = self._existing_dir(path)
        with os.scandir(target) as it:
            entries = sorted(it, key=lambda e: e.name)
        return "\n".join(
            f"{'[DIR]' if e.is_dir() else '[FILE]'} {e.name}" for e in entries
        )

    async def edit_file(
        self, path: str, edits: Sequence[EditLike], dry_run: bool = False
    ) -> str:
        target = self._existing_file(path)
        try:
            with open(target, encoding="utf-8", newline="") as f:
                original = f.read()
        except UnicodeDecodeError:
            raise SecureToolsError(f"Not a UTF-8 text file: {path}") from None
        result = apply_edits(original, edits)
        if not dry_run:
            _atomic_write(target, result.new_text)
            log.info(f"Applied {len(edits)} edit(s) to {target}")
        return result.diff

    async def delete_file(self, path: str) -> str:
        target = self._existing_file(path)
        os.unlink(target)
        log.info(f"Deleted {target}")
        return f"Successfully deleted file {path}"

    def list_allowed_directories(self) -> str:
        return "Allowed directories:\n" + "\n".join(self.boundary.roots)

    # ── Search ───────────────────────────────────────────────────────

    async def search_files(
        self, path: str, pattern: str, exclude_patterns: Sequence[str] = ()
    ) -> str:
        root = self._existing_dir(path)
        cmd = ["find", root, "-name", f"*{pattern}*"]
        for exclude in exclude_patterns:
            cmd.extend(["!", "-path", f"*{exclude}*"])
        result = await run_process(cmd, cwd=root, timeout=self.default_timeout)
        if result["exit_code"] != 0:
            raise ExecutionFailure(
                f"Search failed: {result['stderr'] or result['stdout']}",
                stdout=result["stdout"],
                stderr=result["stderr"],
                exit_code=result["exit_code"],
            )
        files = [line for line in result["stdout"].splitlines() if line]
        return _truncate("\n".join(files)) if files else "No matches found"

    async def _grep_root(self, root: str, cmd: list[str]) -> tuple[dict, Optional[str]]:
        """Run grep for one root; exit status 1 means no matches, not an error."""
        try:
            result = await run_process(cmd, cwd=root, timeout=self.default_timeout)
        except SecureToolsError as e:
            return {"stdout": getattr(e, "stdout", "")}, str(e)
        if result["exit_code"] > 1:
            stderr = result["stderr"].strip()
            return result, stderr or f"grep exited with status {result['exit_code']}"
        return result, None

    async def grep_search(
        self,
        pattern: str,
        path: Optional[str] = None,
        file_pattern: str = "*",
        case_sensitive: bool = False,
        max_results: int = DEFAULT_GREP_RESULTS,
    ) -> str:
        results: list[RootResult] = []
        remaining = max_results
        for root in self._search_roots(path):
            if remaining <= 0:
                break
            cmd = ["grep", "-r", "-n"]
            if not case_sensitive:
                cmd.append("-i")
            if file_pattern != "*":
                cmd.append(f"--include={file_pattern}")
            cmd.extend(["-e", pattern, "--", root])

            result, error = await self._grep_root(root, cmd)
            lines = [line for line in result["stdout"].splitlines() if line]
            lines = lines[:remaining]
            remaining -= len(lines)
            results.append(RootResult(root, lines, error))
        return _format_root_results(results)

    async def codebase_search(
        self,
        query: str,
        search_path: Optional[str] = None,
        file_types: Sequence[str] = (),
        max_results: int = DEFAULT_SEARCH_RESULTS,
    ) -> str:
        results: list[RootResult] = []
        remaining = max_results
        for root in self._search_roots(search_path):
            if remaining <= 0:
                break
            # -Z puts a NUL after the file name so names containing ':' parse.
            cmd = ["grep", "-r", "-n", "-i", "-Z", "-m", str(GREP_LINES_PER_FILE)]
            for file_type in file_types:
                ext = file_type if file_type.startswith(".") else f".{file_type}"
                cmd.append(f"--include=*{ext}")
            cmd.extend(["-e", query, "--", root])

            result, error = await self._grep_root(root, cmd)
            by_file: dict[str, list[str]] = {}
            for line in result["stdout"].splitlines():
                name, sep, hit = line.partition("\0")
                if sep:
                    by_file.setdefault(name, []).append(hit)
            entries = [
                f"{name}:\n" + "\n".join(hits) + "\n"
                for name, hits in list(by_file.items())[:remaining]
            ]
            remaining -= len(entries)
            results.append(RootResult(root, entries, error))
        return _format_root_results(results)

    # ── Commands ─────────────────────────────────────────────────────

    async def run_terminal_command(
        self,
        command: str,
        working_directory: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        if working_directory:
            cwd = self._existing_dir(working_directory)
        else:
            cwd = self.boundary.default_directory
        result = await run_process(
            ["sh", "-c", command],
            cwd=cwd,
            timeout=self.default_timeout if timeout is None else timeout,
        )
        output = _join_output(result["stdout"], result["stderr"])
        if result["exit_code"] != 0:
            raise ExecutionFailure(
                f"Command failed with exit code {result['exit_code']}:\n"
                + _truncate(output),
                stdout=result["stdout"],
                stderr=result["stderr"],
                exit_code=result["exit_code"],
            )
        return _truncate(output) or "Command completed successfully"


# ── MCP Server ───────────────────────────────────────────────────────────

mcp_server = FastMCP(
    "secure-tools",
    instructions=(
        "Filesystem, search and shell tools restricted to a fixed set of allowed "
        "directories. Use list_allowed_directories to see them. Relative paths "
        "resolve against the working directory; any path (or symlink target) "
        "outside the allowed directories is refused. Use edit_file with "
        "dry_run=true to preview a diff before writing. "
        "run_terminal_command runs `sh -c` inside an allowed directory with a timeout."
    ),
)

# Assigned once in main(); tests construct their own SecureTools.
tools: Optional[SecureTools] = None


def _tools() -> SecureTools:
    if tools is None:
        raise ConfigError("Server has no allowed directories configured")
    return tools


@mcp_server.tool()
async def read_file(path: str) -> str:
    """
    Read a UTF-8 text file inside the allowed directories.

    Args:
        path: File path, absolute or relative to the working directory.

    Returns:
        File contents.
    """
    return await _tools().read_file(path)


@mcp_server.tool()
async def write_file(path: str, content: str) -> str:
    """
    Create or overwrite a file inside the allowed directories.
    The parent directory must already exist.

    Args:
        path: File path, absolute or relative to the working directory.
        content: Full new file content.

    Returns:
        Confirmation with the written path and size.
    """
    return await _tools().write_file(path, content)


@mcp_server.tool()
async def list_directory(path: str) -> str:
    """
    List a directory inside the allowed directories.

    Args:
        path: Directory path.

    Returns:
        One entry per line, prefixed with [DIR] or [FILE].
    """
    return await _tools().list_directory(path)


@mcp_server.tool()
async def search_files(
    path: str, pattern: str, exclude_patterns: Optional[list[str]] = None
) -> str:
    """
    Find files whose names contain `pattern` below a directory.

    Args:
        path: Directory to start from.
        pattern: Substring (shell glob allowed) matched against file names.
        exclude_patterns: Substrings of paths to leave out.

    Returns:
        Matching paths, one per line, or "No matches found".
    """
    return await _tools().search_files(path, pattern, exclude_patterns or [])


@mcp_server.tool()
async def edit_file(
    path: str, edits: list[EditOperation], dry_run: bool = False
) -> str:
    """
    Apply text replacements to a file and return a git-style diff.

    Each edit's old_text is matched exactly, or line by line ignoring
    surrounding whitespace; replacement lines are re-indented to the match.
    Edits apply in order. If any edit cannot be matched nothing is written.

    Args:
        path: File to edit.
        edits: List of {old_text, new_text} replacements.
        dry_run: Return the diff without writing the file.

    Returns:
        Unified diff of the change in a fenced block.
    """
    return await _tools().edit_file(path, edits, dry_run=dry_run)


@mcp_server.tool()
async def codebase_search(
    query: str,
    search_path: Optional[str] = None,
    file_types: Optional[list[str]] = None,
    max_results: int = DEFAULT_SEARCH_RESULTS,
) -> str:
    """
    Case-insensitive content search, grouped by file (first 3 hits per file).

    Args:
        query: grep pattern.
        search_path: Directory to search; all allowed directories if omitted.
        file_types: Extensions to include, e.g. ["py", ".md"].
        max_results: Maximum number of files reported.

    Returns:
        Matches grouped by file, followed by any per-directory errors.
    """
    return await _tools().codebase_search(
        query, search_path, file_types or [], max_results
    )


@mcp_server.tool()
async def grep_search(
    pattern: str,
    path: Optional[str] = None,
    file_pattern: str = "*",
    case_sensitive: bool = False,
    max_results: int = DEFAULT_GREP_RESULTS,
) -> str:
    """
    Recursive grep over the allowed directories.

    Args:
        pattern: grep pattern.
        path: Directory to search; all allowed directories if omitted.
        file_pattern: Glob of file names to include (default "*").
        case_sensitive: Match case exactly (default false).
        max_results: Maximum number of matching lines.

    Returns:
        file:line:text matches, followed by any per-directory errors.
    """
    return await _tools().grep_search(
        pattern, path, file_pattern, case_sensitive, max_results
    )


@mcp_server.tool()
async def run_terminal_command(
    command: str,
    working_directory: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Run a shell command inside an allowed directory.

    Args:
        command: Command line passed to `sh -c`.
        working_directory: Directory to run in (default: the working directory).
        timeout: Max seconds to wait before the command is terminated
            (default: the server's --timeout, 30 unless configured).

    Returns:
        stdout, followed by stderr when present.
    """
    return await _tools().run_terminal_command(command, working_directory, timeout)


@mcp_server.tool()
async def delete_file(path: str) -> str:
    """
    Delete a file inside the allowed directories.

    Args:
        path: File to delete.

    Returns:
        Confirmation message.
    """
    return await _tools().delete_file(path)


@mcp_server.tool()
async def list_allowed_directories() -> str:
    """List the directories this server may access."""
    return _tools().list_allowed_directories()


# ── Entry point ──────────────────────────────────────────────────────────


def _roots_from_env() -> list[str]:
    return [d for d in os.environ.get(ROOTS_ENV, "").split(os.pathsep) if d]


def main(argv: Optional[list[str]] = None):
    global tools

    parser = argparse.ArgumentParser(
        prog="secure-tools-mcp",
        description="MCP tools restricted to a set of allowed directories",
    )
    parser.add_argument(
        "directories",
        nargs="*",
        help=f"Allowed directories (default: ${ROOTS_ENV}, else the working directory)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="Default command timeout in seconds (default 30)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default INFO)",
    )
    args = parser.parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    if os.name != "posix":
        log.error("Only POSIX platforms are supported")
        sys.exit(1)

    try:
        boundary = build_boundary_set(args.directories or _roots_from_env())
    except ConfigError as e:
        log.error(f"{e}")
        sys.exit(1)

    tools = SecureTools(boundary, default_timeout=args.timeout)
    log.info(f"Secure tools starting ({boundary.mode})")
    for root in boundary.roots:
        log.info(f"Allowed directory: {root}")
    mcp_server.run(transport="stdio")


if __name__ == "__main__":
    main()
