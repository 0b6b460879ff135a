"""Exploration tools for workers — glob, read and grep over the project tree.

Workers explore the codebase themselves instead of receiving a context
dump. Every tool is confined to the project root.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar

from forgeprep.llm.tiers import ToolSchema

logger = logging.getLogger(__name__)

# Directories to always skip
_SKIP_DIRS = frozenset({
    ".git", "node_modules", "__pycache__", ".venv", "venv",
    ".tox", ".mypy_cache", ".ruff_cache", ".pytest_cache",
    "dist", "build", ".eggs", "target", "vendor", ".forgeprep",
})

_BINARY_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".zip", ".tar", ".gz", ".bz2", ".xz", ".7z",
    ".pdf", ".exe", ".dll", ".so", ".dylib", ".o", ".a",
    ".pyc", ".pyo", ".class", ".jar",
    ".db", ".sqlite", ".sqlite3", ".wasm", ".lock",
})

MAX_GLOB_RESULTS = 100
MAX_GREP_MATCHES = 50
MAX_READ_BYTES = 100 * 1024


class WorkerTool(ABC):
    """A tool a worker may call while exploring.

    ``execute`` returns ``(content, is_error)``.
    """

    name: ClassVar[str] = ""

    @abstractmethod
    def get_schema(self) -> ToolSchema: ...

    @abstractmethod
    async def execute(self, args: dict[str, Any], cwd: str) -> tuple[str, bool]: ...


class GlobTool(WorkerTool):
    name = "glob"

    def get_schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Find files matching a glob pattern. Returns relative file paths.",
            parameters={
                "type": "object",
                "properties": {
                    "pattern": {
                        "type": "string",
                        "description": 'Glob pattern like "**/*.py", "src/routes/*.ts" or "*.json"',
                    },
                },
                "required": ["pattern"],
            },
        )

    async def execute(self, args: dict[str, Any], cwd: str) -> tuple[str, bool]:
        pattern = str(args.get("pattern") or "")
        if not pattern:
            return "Missing required argument: pattern", True
        try:
            matches = await asyncio.get_event_loop().run_in_executor(
                None, _glob_sync, pattern, cwd
            )
        except (ValueError, NotImplementedError) as e:
            # Absolute or otherwise unsupported patterns
            return f"Invalid glob pattern: {e}", True
        if not matches:
            return "No files found matching pattern.", False

        shown = matches[:MAX_GLOB_RESULTS]
        output = "\n".join(shown)
        if len(matches) > MAX_GLOB_RESULTS:
            output += (
                f"\n\n(Showing {MAX_GLOB_RESULTS} of {len(matches)} matches. "
                "Refine your pattern for more specific results.)"
            )
        return output, False


class ReadTool(WorkerTool):
    name = "read"

    def get_schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Read the contents of a file. Returns the file content as text.",
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the file, relative to the project root",
                    },
                },
                "required": ["path"],
            },
        )

    async def execute(self, args: dict[str, Any], cwd: str) -> tuple[str, bool]:
        rel = str(args.get("path") or "")
        if not rel:
            return "Missing required argument: path", True
        return await asyncio.get_event_loop().run_in_executor(None, _read_sync, rel, cwd)


class GrepTool(WorkerTool):
    name = "grep"

    def get_schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description=(
                "Search for a pattern in files. Returns matching lines with file "
                "paths and line numbers."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "pattern": {
                        "type": "string",
                        "description": "Regular expression to search for (case-insensitive)",
                    },
                    "path": {
                        "type": "string",
                        "description": "Optional file or directory to search in",
                    },
                },
                "required": ["pattern"],
            },
        )

    async def execute(self, args: dict[str, Any], cwd: str) -> tuple[str, bool]:
        pattern = str(args.get("pattern") or "")
        if not pattern:
            return "Missing required argument: pattern", True
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            return f"Invalid regex: {e}", True
        search_path = args.get("path")
        return await asyncio.get_event_loop().run_in_executor(
            None, _grep_sync, compiled, cwd, str(search_path) if search_path else None
        )


class ToolSet:
    """Name-to-tool mapping with dispatch.

    Example::

        tools = ToolSet([GlobTool(), ReadTool()])
        content, is_error = await tools.dispatch("read", {"path": "README.md"}, cwd)
    """

    def __init__(self, tools: list[WorkerTool] | None = None) -> None:
        self._tools: dict[str, WorkerTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: WorkerTool) -> None:
        if not tool.name:
            raise ValueError(f"{type(tool).__name__} has no 'name' class variable set")
        self._tools[tool.name] = tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def schemas(self) -> list[ToolSchema]:
        return [tool.get_schema() for tool in self._tools.values()]

    async def dispatch(self, name: str, args: dict[str, Any], cwd: str) -> tuple[str, bool]:
        """Run a tool call. Tool errors come back as ``(message, True)``."""
        tool = self._tools.get(name)
        if tool is None:
            return f"Unknown tool: {name}", True
        try:
            return await tool.execute(args, cwd)
        except OSError as e:
            return f"Tool error: {type(e).__name__}: {e}", True


def default_toolset() -> ToolSet:
    return ToolSet([GlobTool(), ReadTool(), GrepTool()])


def build_minimal_context(project_root: str) -> str:
    """Top-level listing plus a short description of the available tools."""
    root = Path(project_root)
    try:
        entries = sorted(
            f"{p.name}/" if p.is_dir() else p.name
            for p in root.iterdir()
            if not p.name.startswith(".") and p.name not in _SKIP_DIRS
        )
    except OSError as e:
        logger.warning("Could not list %s: %s", project_root, e)
        entries = []

    listing = "\n".join(entries) if entries else "(empty or unreadable)"
    return (
        "PROJECT STRUCTURE (top-level):\n"
        f"{listing}\n\n"
        "You have access to tools for exploring this codebase:\n"
        '- glob(pattern): Find files matching a glob pattern (e.g. "**/*.py", "src/**/*.tsx")\n'
        "- read(path): Read the contents of a file\n"
        "- grep(pattern, path?): Search for text patterns in files\n\n"
        "Use these tools to gather the information you need to complete the task."
    )


# ── Synchronous helpers (run in the default executor) ────────────────


def _resolve_inside(rel: str, cwd: str) -> Path | None:
    """Resolve ``rel`` against ``cwd``; ``None`` if it escapes the root."""
    root = Path(cwd).resolve()
    target = (root / rel).resolve()
    if target != root and root not in target.parents:
        return None
    return target


def _should_skip(path: Path, root: Path) -> bool:
    try:
        rel = path.relative_to(root)
    except ValueError:
        return True
    return any(part in _SKIP_DIRS for part in rel.parts)


def _glob_sync(pattern: str, cwd: str) -> list[str]:
    root = Path(cwd).resolve()
    matches: list[str] = []
    for p in root.glob(pattern):
        if p.is_file() and not _should_skip(p, root):
            matches.append(p.relative_to(root).as_posix())
    return sorted(matches)


def _read_sync(rel: str, cwd: str) -> tuple[str, bool]:
    target = _resolve_inside(rel, cwd)
    if target is None:
        return "Access denied: Path is outside project root", True
    if not target.exists():
        return f"File not found: {rel}", True
    if target.is_dir():
        return f"Path is a directory, not a file: {rel}", True

    size = target.stat().st_size
    with target.open("rb") as f:
        raw = f.read(MAX_READ_BYTES)
    content = raw.decode("utf-8", errors="replace")
    if size > MAX_READ_BYTES:
        content += f"\n\n[File truncated at {MAX_READ_BYTES} bytes. Total size: {size} bytes]"
    return content, False


def _grep_sync(compiled: re.Pattern[str], cwd: str, search_path: str | None) -> tuple[str, bool]:
    root = Path(cwd).resolve()
    base = root
    if search_path:
        resolved = _resolve_inside(search_path, cwd)
        if resolved is None:
            return "Access denied: Search path is outside project root", True
        base = resolved

    if base.is_file():
        files = [base]
    else:
        files = sorted(
            p
            for p in base.rglob("*")
            if p.is_file()
            and not _should_skip(p, root)
            and p.suffix.lower() not in _BINARY_EXTENSIONS
        )

    results: list[str] = []
    for file_path in files:
        if len(results) >= MAX_GREP_MATCHES:
            break
        rel = file_path.relative_to(root).as_posix()
        try:
            text = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        for i, line in enumerate(text.splitlines(), start=1):
            if compiled.search(line):
                results.append(f"{rel}:{i}: {line.strip()[:200]}")
                if len(results) >= MAX_GREP_MATCHES:
                    break

    if not results:
        return "No matches found.", False
    output = "\n".join(results)
    if len(results) >= MAX_GREP_MATCHES:
        output += (
            f"\n\n(Showing first {MAX_GREP_MATCHES} matches. "
            "Refine your pattern for more specific results.)"
        )
    return output, False
