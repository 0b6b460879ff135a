"""Context store backed by JSON files under the project's .forgeprep/ directory."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any

from forgeprep.preparation.collaborators import PatternScore, StoredContext

logger = logging.getLogger(__name__)

STORE_DIR = ".forgeprep"
CONTEXTS_DIR = f"{STORE_DIR}/contexts"
PATTERNS_FILE = f"{STORE_DIR}/patterns.json"


class LocalContextStore:
    """Stores each context as ``.forgeprep/contexts/<id>.json``.

    Pattern scores are read from ``.forgeprep/patterns.json``, a JSON list of
    ``{"id", "name", "successRate", "contexts"}`` objects maintained by
    whatever tracks execution outcomes.

    Usage:
        store = LocalContextStore("/path/to/project")
        receipt = await store.store_context(text, "completion", ["context-package"])
        scores = await store.get_pattern_scores()
    """

    def __init__(self, cwd: str) -> None:
        self.root = Path(cwd)

    @property
    def contexts_dir(self) -> Path:
        return self.root / CONTEXTS_DIR

    @property
    def patterns_path(self) -> Path:
        return self.root / PATTERNS_FILE

    async def store_context(
        self, content: str, context_type: str, tags: list[str]
    ) -> StoredContext:
        record = {
            "id": uuid.uuid4().hex,
            "context_type": context_type,
            "tags": list(tags),
            "created_at": time.time(),
            "content": content,
        }
        loop = asyncio.get_event_loop()
        path = await loop.run_in_executor(None, self._write_record, record)
        logger.debug("Stored %s context at %s", context_type, path)
        return StoredContext(id=record["id"], context_type=context_type, tags=tuple(tags))

    async def get_pattern_scores(self) -> list[PatternScore]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._read_patterns)

    def load_contexts(self, limit: int = 20) -> list[dict[str, Any]]:
        """Stored records, newest first."""
        if not self.contexts_dir.exists():
            return []
        dated: list[tuple[float, Path]] = []
        for path in self.contexts_dir.glob("*.json"):
            try:
                dated.append((path.stat().st_mtime, path))
            except OSError:
                # Removed between listing and stat
                continue
        dated.sort(key=lambda item: item[0], reverse=True)

        records: list[dict[str, Any]] = []
        for _, path in dated:
            if len(records) >= limit:
                break
            try:
                records.append(json.loads(path.read_text(encoding="utf-8")))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt context record %s", path)
            except OSError as e:
                logger.warning("Skipping unreadable context record %s: %s", path, e)
        return records

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def _write_record(self, record: dict[str, Any]) -> Path:
        self.contexts_dir.mkdir(parents=True, exist_ok=True)
        out_path = self.contexts_dir / f"{record['id']}.json"
        out_path.write_text(json.dumps(record, indent=2, default=str), encoding="utf-8")
        return out_path

    def _read_patterns(self) -> list[PatternScore]:
        if not self.patterns_path.exists():
            return []
        try:
            raw = json.loads(self.patterns_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable pattern file %s", self.patterns_path)
            return []
        if not isinstance(raw, list):
            return []

        scores: list[PatternScore] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                scores.append(
                    PatternScore(
                        id=str(item["id"]),
                        name=str(item["name"]),
                        success_rate=float(item.get("successRate", item.get("success_rate", 0))),
                        contexts=tuple(item.get("contexts", ())),
                    )
                )
            except (KeyError, TypeError, ValueError):
                continue
        return scores
