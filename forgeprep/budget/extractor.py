"""File content extraction at decreasing fidelity levels.

Strategies, richest first:

1. full        the whole file
2. signatures  exports, type bodies, imports, declaration signatures and
               complete route handlers
3. truncated   a prefix cut at a structural boundary where possible
4. summary     file name, leading doc line, line count, exported names

Signature extraction is a best-effort line scanner (brace depth for
JS/TS, indentation for Python) rather than a real parser.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from forgeprep.budget.tokens import TokenCounter

logger = logging.getLogger(__name__)

FidelityLevel = Literal["full", "signatures", "truncated", "summary", "excluded"]

_JS_EXTENSIONS = frozenset({".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"})
_PY_EXTENSIONS = frozenset({".py", ".pyi"})

_FALLBACK_LINES = 50
_HEADER_MAX_CHARS = 500
_MAX_SUMMARY_EXPORTS = 10

# JS / TS
_JS_ROUTE_RE = re.compile(r"^(app|router)\.(get|post|put|patch|delete|use)\s*\(")
_JS_EXPORT_TYPE_RE = re.compile(r"^export\s+(type|interface)\s+\w+")
_JS_EXPORT_FUNC_RE = re.compile(r"^export\s+(default\s+)?(async\s+)?function\s*\*?\s*\w*")
_JS_EXPORT_CLASS_RE = re.compile(r"^export\s+(default\s+)?(abstract\s+)?class\s+\w+")
_JS_EXPORT_VAR_RE = re.compile(r"^export\s+(const|let|var)\s+\w+")
_JS_LOCAL_TYPE_RE = re.compile(r"^(type|interface)\s+\w+")
_JS_MODULE_CONST_RE = re.compile(r"^(const|let)\s+\w+\s*=")
_JS_METHOD_RE = re.compile(r"^(public|private|protected|async|static|get|set|\*)?.*\(.*\).*\{$")
_JS_EXPORT_NAME_RE = re.compile(
    r"^export\s+(?:default\s+)?(?:async\s+)?(?:abstract\s+)?"
    r"(?:const|let|var|function|class|type|interface|enum)\s+(\w+)",
    re.MULTILINE,
)

# Python
_PY_IMPORT_RE = re.compile(r"^(import|from)\s+[\w.]+")
_PY_DEF_RE = re.compile(r"^(async\s+)?def\s+(\w+)")
_PY_CLASS_RE = re.compile(r"^class\s+(\w+)")
_PY_CONST_RE = re.compile(r"^(__all__|[A-Z][A-Z0-9_]*)\s*(:[^=]*)?=")
_PY_ATTR_RE = re.compile(r"^\w+\s*(:|=)")
_PY_ROUTE_DECORATOR_RE = re.compile(
    r"^@(app|router|bp|blueprint|api)\.(get|post|put|patch|delete|route|websocket)\s*\("
)

_BRACE_BOUNDARY_RE = re.compile(r"^}\s*$")
_PY_TOP_LEVEL_RE = re.compile(r"^(async\s+def\s|def\s|class\s|@)")


@dataclass(frozen=True)
class ExtractedContent:
    """One file rendered at every fidelity level, with token estimates."""

    full: str
    signatures: str
    truncated: str
    summary: str
    tokens_full: int
    tokens_signatures: int
    tokens_truncated: int
    tokens_summary: int


@dataclass(frozen=True)
class Selection:
    content: str
    level: FidelityLevel
    tokens: int


class FileContentExtractor:
    """Renders source files at several fidelity levels.

    Usage:
        extractor = FileContentExtractor()
        extracted = await extractor.extract("src/app.ts")
        if extracted:
            choice = extractor.select_for_budget(extracted, 1200)
    """

    def __init__(self, truncate_chars: int = 3000, boundary_ratio: float = 0.8) -> None:
        self.truncate_chars = truncate_chars
        self.boundary_ratio = boundary_ratio

    async def extract(self, file_path: str | Path) -> ExtractedContent | None:
        """Read and extract ``file_path``; ``None`` when it cannot be read."""
        path = Path(file_path)
        try:
            content = await asyncio.get_event_loop().run_in_executor(
                None, lambda: path.read_text(encoding="utf-8", errors="replace")
            )
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return None
        return self.extract_text(content, str(path))

    def extract_text(self, content: str, file_path: str) -> ExtractedContent:
        """Extract every fidelity level from already-loaded ``content``."""
        ext = Path(file_path).suffix.lower()
        signatures = self.extract_signatures(content, ext)
        truncated = self.smart_truncate(content, self.truncate_chars, ext)
        summary = self.generate_summary(content, file_path, ext)
        return ExtractedContent(
            full=content,
            signatures=signatures,
            truncated=truncated,
            summary=summary,
            tokens_full=TokenCounter.estimate_code(content),
            tokens_signatures=TokenCounter.estimate_code(signatures),
            tokens_truncated=TokenCounter.estimate_code(truncated),
            tokens_summary=TokenCounter.estimate(summary),
        )

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def extract_signatures(self, content: str, ext: str) -> str:
        if ext in _JS_EXTENSIONS:
            return _js_signatures(content)
        if ext in _PY_EXTENSIONS:
            return _python_signatures(content)
        return "\n".join(content.split("\n")[:_FALLBACK_LINES])

    # ------------------------------------------------------------------
    # Truncation
    # ------------------------------------------------------------------

    def smart_truncate(self, content: str, max_chars: int, ext: str = "") -> str:
        """Cut ``content`` to about ``max_chars``, preferring a block boundary.

        The last closing boundary is used when it keeps more than
        ``boundary_ratio`` of the limit; otherwise the cut falls at the last
        whole line that fits.
        """
        if len(content) <= max_chars:
            return content

        python = ext in _PY_EXTENSIONS
        marker = "# ... (truncated)" if python else "// ... (truncated)"

        result = ""
        last_boundary = ""
        prev = ""
        for line in content.split("\n"):
            candidate = result + line + "\n"
            if len(candidate) > max_chars:
                break
            # A new top-level definition closes the previous block
            if python and result and not prev.startswith("@") and _PY_TOP_LEVEL_RE.match(line):
                last_boundary = result
            result = candidate
            prev = line
            if not python and _BRACE_BOUNDARY_RE.match(line):
                last_boundary = result

        if not result:
            # First line alone is over the limit
            return content[:max_chars] + "\n" + marker
        if len(last_boundary) > max_chars * self.boundary_ratio:
            return last_boundary + "\n" + marker
        return result + "\n" + marker

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def generate_summary(self, content: str, file_path: str, ext: str) -> str:
        name = Path(file_path).name
        line_count = TokenCounter.count_lines(content)

        if ext in _PY_EXTENSIONS:
            header = _python_docstring(content)
            description = header.strip("\"' \n").split("\n")[0].strip() if header else ""
            exports = _python_export_names(content)
        else:
            header = _jsdoc_header(content)
            description = ""
            if header:
                body = re.sub(r"^\s*\*\s?", "", header[3:-2].strip(), flags=re.MULTILINE)
                description = body.strip().split("\n")[0].strip()
            exports = _JS_EXPORT_NAME_RE.findall(content)

        export_list = ", ".join(exports[:_MAX_SUMMARY_EXPORTS])
        if len(exports) > _MAX_SUMMARY_EXPORTS:
            export_list += f" (+{len(exports) - _MAX_SUMMARY_EXPORTS} more)"

        lines = [f"File: {name}"]
        if description:
            lines.append(f"Description: {description}")
        lines.append(f"Lines: {line_count}")
        lines.append(f"Exports: {export_list}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_for_budget(self, extracted: ExtractedContent, token_budget: int) -> Selection:
        """Return the richest level whose estimate fits ``token_budget``."""
        for level, content, tokens in (
            ("full", extracted.full, extracted.tokens_full),
            ("signatures", extracted.signatures, extracted.tokens_signatures),
            ("truncated", extracted.truncated, extracted.tokens_truncated),
            ("summary", extracted.summary, extracted.tokens_summary),
        ):
            # An empty extraction carries nothing; try the next level
            if level != "full" and not content.strip():
                continue
            if tokens <= token_budget:
                return Selection(content=content, level=level, tokens=tokens)  # type: ignore[arg-type]
        return Selection(content="", level="excluded", tokens=0)


# ── JS / TS ──────────────────────────────────────────────────────────


def _brace_delta(line: str) -> int:
    return line.count("{") - line.count("}")


def _paren_delta(line: str) -> int:
    return line.count("(") - line.count(")")


def _capture_braced(lines: list[str], start: int, delta_fn=_brace_delta) -> tuple[str, int]:
    """Collect lines from ``start`` until the balance returns to zero."""
    depth = delta_fn(lines[start])
    end = start
    while depth > 0 and end + 1 < len(lines):
        end += 1
        depth += delta_fn(lines[end])
    return "\n".join(lines[start : end + 1]), end


def _jsdoc_header(content: str) -> str:
    if not content.startswith("/**"):
        return ""
    end = content.find("*/")
    if end == -1 or end >= _HEADER_MAX_CHARS:
        return ""
    return content[: end + 2]


def _js_signatures(content: str) -> str:
    lines = content.split("\n")
    out: list[str] = []
    depth = 0  # brace depth before the current line
    pending: list[str] = []  # multi-line function signature
    i = 0

    while i < len(lines):
        line = lines[i]
        stripped = line.strip()

        if pending:
            pending.append(line)
            depth += _brace_delta(line)
            if "{" in stripped:
                sig = "\n".join(pending).split("{")[0].rstrip()
                out.append(sig + " { ... }")
                pending = []
            elif stripped.endswith(";"):
                out.append("\n".join(pending))
                pending = []
            i += 1
            continue

        # Function and object bodies are skipped wholesale
        if depth > 0:
            depth = max(0, depth + _brace_delta(line))
            i += 1
            continue
        if not stripped or stripped.startswith("//"):
            i += 1
            continue

        if _JS_ROUTE_RE.match(stripped):
            block, end = _capture_braced(
                lines, i, lambda s: _brace_delta(s) + _paren_delta(s)
            )
            out.append("// Route handler:\n" + block)
            i = end + 1
            continue

        if _JS_EXPORT_TYPE_RE.match(stripped) or _JS_LOCAL_TYPE_RE.match(stripped):
            block, end = _capture_braced(lines, i)
            out.append(block)
            i = end + 1
            continue

        if _JS_EXPORT_CLASS_RE.match(stripped):
            block, end = _js_class_signature(lines, i)
            out.append(block)
            i = end + 1
            continue

        if _JS_EXPORT_FUNC_RE.match(stripped):
            if "{" in stripped:
                out.append(line.split("{")[0].rstrip() + " { ... }")
            else:
                pending = [line]
        elif _JS_EXPORT_VAR_RE.match(stripped):
            if "=>" in stripped:
                arrow = line.index("=>")
                out.append(line[: arrow + 2].rstrip() + " { ... }")
            elif "=" in stripped:
                out.append(line)
        elif stripped.startswith(("export {", "export *")):
            if "{" in stripped and "}" not in stripped:
                block, end = _capture_braced(lines, i)
                out.append(block)
                i = end + 1
                continue
            out.append(line)
        elif stripped.startswith("import "):
            if "{" in stripped and "}" not in stripped:
                block, end = _capture_braced(lines, i)
                out.append(block)
                i = end + 1
                continue
            out.append(line)
        elif _JS_MODULE_CONST_RE.match(stripped):
            # Single-line declarations only
            if "{" not in stripped or "}" in stripped:
                out.append(line)

        depth = max(0, depth + _brace_delta(line))
        i += 1

    header = _jsdoc_header(content)
    body = "\n\n".join(out)
    return f"{header}\n\n{body}" if header else body


def _js_class_signature(lines: list[str], start: int) -> tuple[str, int]:
    """Class header, fields and method signatures; bodies elided."""
    first = lines[start]
    out = [first.rstrip()]
    depth = _brace_delta(first)
    opened = "{" in first
    if opened and depth <= 0:
        return first.rstrip(), start

    i = start + 1
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        delta = _brace_delta(line)

        if depth == 1 and delta > 0 and _JS_METHOD_RE.match(stripped):
            out.append(line.rstrip()[:-1].rstrip() + " { ... }")
            depth += delta
            while depth > 1 and i + 1 < len(lines):
                i += 1
                depth += _brace_delta(lines[i])
            i += 1
            continue

        if depth <= 1 and stripped:
            out.append(line.rstrip())
        depth += delta
        opened = opened or "{" in line
        if opened and depth <= 0:
            return "\n".join(out), i
        i += 1

    return "\n".join(out), len(lines) - 1


# ── Python ───────────────────────────────────────────────────────────


def _bracket_delta(line: str) -> int:
    return (
        line.count("(") + line.count("[") + line.count("{")
        - line.count(")") - line.count("]") - line.count("}")
    )


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _statement_end(lines: list[str], start: int) -> int:
    """Last line of the statement starting at ``start`` (bracket continuation)."""
    depth = _bracket_delta(lines[start])
    end = start
    while (depth > 0 or lines[end].rstrip().endswith("\\")) and end + 1 < len(lines):
        end += 1
        depth += _bracket_delta(lines[end])
    return end


def _header_end(lines: list[str], start: int) -> int:
    """Last line of a ``def``/``class`` header."""
    depth = 0
    for j in range(start, len(lines)):
        depth += _bracket_delta(lines[j])
        if depth <= 0 and ":" in lines[j]:
            return j
    return len(lines) - 1


def _block_end(lines: list[str], header_end: int, indent: int) -> int:
    """Last line belonging to the block opened at ``header_end``."""
    last = header_end
    for j in range(header_end + 1, len(lines)):
        line = lines[j]
        if not line.strip():
            continue
        if _indent(line) <= indent:
            break
        last = j
    return last


def _python_docstring(content: str) -> str:
    text = content.lstrip()
    for quote in ('"""', "'''"):
        if text.startswith(quote):
            end = text.find(quote, 3)
            if end != -1 and end < _HEADER_MAX_CHARS:
                return text[: end + 3]
    return ""


def _python_export_names(content: str) -> list[str]:
    names: list[str] = []
    for line in content.split("\n"):
        m = _PY_DEF_RE.match(line) or _PY_CLASS_RE.match(line)
        if m:
            name = m.group(m.lastindex or 1)
            if not name.startswith("_"):
                names.append(name)
    return names


def _python_signatures(content: str) -> str:
    lines = content.split("\n")
    out: list[str] = []
    decorators: list[str] = []
    i = 0

    while i < len(lines):
        line = lines[i]
        stripped = line.strip()

        if not stripped or stripped.startswith("#") or _indent(line) > 0:
            i += 1
            continue

        if stripped.startswith("@"):
            end = _statement_end(lines, i)
            decorators.extend(lines[i : end + 1])
            i = end + 1
            continue

        if _PY_IMPORT_RE.match(stripped):
            end = _statement_end(lines, i)
            out.append("\n".join(lines[i : end + 1]).rstrip())
            i = end + 1
            continue

        if _PY_DEF_RE.match(stripped):
            sig_end = _header_end(lines, i)
            body_end = _block_end(lines, sig_end, 0)
            if any(_PY_ROUTE_DECORATOR_RE.match(d.strip()) for d in decorators):
                out.append("# Route handler:\n" + "\n".join(decorators + lines[i : body_end + 1]))
            else:
                out.append("\n".join(decorators + lines[i : sig_end + 1]) + " ...")
            decorators = []
            i = body_end + 1
            continue

        if _PY_CLASS_RE.match(stripped):
            sig_end = _header_end(lines, i)
            body_end = _block_end(lines, sig_end, 0)
            out.append(_python_class_signature(lines, i, sig_end, body_end, decorators))
            decorators = []
            i = body_end + 1
            continue

        if _PY_CONST_RE.match(stripped):
            end = _statement_end(lines, i)
            if end == i:
                out.append(line.rstrip())
            i = end + 1
            continue

        decorators = []
        i += 1

    header = _python_docstring(content)
    body = "\n\n".join(out)
    return f"{header}\n\n{body}" if header else body


def _python_class_signature(
    lines: list[str],
    start: int,
    sig_end: int,
    body_end: int,
    decorators: list[str],
) -> str:
    out = decorators + lines[start : sig_end + 1]
    body = [j for j in range(sig_end + 1, body_end + 1) if lines[j].strip()]
    if not body:
        return "\n".join(out)

    member_indent = _indent(lines[body[0]])
    pending: list[str] = []
    kept = 0
    j = sig_end + 1
    while j <= body_end:
        line = lines[j]
        stripped = line.strip()
        if not stripped or _indent(line) != member_indent:
            j += 1
            continue

        if stripped.startswith("@"):
            pending.append(line)
        elif _PY_DEF_RE.match(stripped):
            end = _header_end(lines, j)
            out.extend(pending)
            out.append("\n".join(lines[j : end + 1]) + " ...")
            pending = []
            kept += 1
            j = _block_end(lines, end, member_indent) + 1
            continue
        elif kept == 0 and stripped.startswith(('"""', "'''")):
            # Keep the docstring's first line only
            quote = stripped[:3]
            out.append(line.rstrip())
            if len(stripped) < 6 or not stripped.endswith(quote):
                out.append(" " * member_indent + quote)
                j = next(
                    (k for k in range(j + 1, body_end + 1) if quote in lines[k]),
                    body_end,
                )
            j += 1
            continue
        elif _PY_ATTR_RE.match(stripped) and _statement_end(lines, j) == j:
            out.append(line.rstrip())
            kept += 1
        else:
            pending = []
        j += 1

    if kept == 0:
        out.append(" " * member_indent + "...")
    return "\n".join(out)
