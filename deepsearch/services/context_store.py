"""Per-step snapshots of a research session, kept on disk for inspection."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from loguru import logger

from deepsearch.models.session import ResearchSession

SNAPSHOT_FILES = {
    "context": "context.json",
    "bad_context": "bad_context.json",
    "keywords": "keywords.json",
    "questions": "questions.json",
}


def _write_snapshot(snapshot: dict[str, Any], directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for key, filename in SNAPSHOT_FILES.items():
        payload = json.dumps(snapshot.get(key, []), indent=2, ensure_ascii=False, default=str)
        (directory / filename).write_text(payload, encoding="utf-8")


async def store_snapshot(session: ResearchSession, directory: str | Path) -> None:
    """Write the session snapshot. Failures are logged and never interrupt research."""
    try:
        await asyncio.to_thread(_write_snapshot, session.snapshot(), Path(directory))
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to store context snapshot in {directory}: {e}")

