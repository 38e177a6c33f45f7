#!/usr/bin/env python3
"""Seed curriculum vocabulary from YAML files.

Reads every topic file in data/vocabulary/ and inserts or updates the
corresponding rows in vocabulary_words. Each file looks like:

    topic:
      id: colors
      name: Colors
    words:
      - id: color-red
        text: أحمر
        translation: Red
        sentence_text: ...

Run with: python3 -m scripts.seed_vocabulary [path ...]
"""
import asyncio
import sys
from pathlib import Path

import yaml

from core.config import settings
from core.database import get_db_session, engine, Base
from core.logging import configure_logging, get_logger
from engines.repository import sync_curriculum_words
import models  # noqa: F401

VOCAB_DIR = Path(__file__).parent.parent.parent / "data" / "vocabulary"

log = get_logger(__name__)


def load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def rows_from_topic_file(data: dict) -> list[dict]:
    """Flatten one topic file into word rows carrying their topic id."""
    topic_id = (data.get("topic") or {}).get("id")
    rows = []
    for position, word in enumerate(data.get("words") or []):
        row = dict(word)
        row.setdefault("topic_id", topic_id)
        row.setdefault("position", position)
        rows.append(row)
    return rows


async def seed(paths: list[Path]) -> int:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    created = 0
    async with get_db_session() as session:
        for path in paths:
            rows = rows_from_topic_file(load_yaml(path))
            if not rows:
                log.warning("vocabulary_file_empty", path=str(path))
                continue
            created += await sync_curriculum_words(session, rows)
        await session.commit()
    return created


async def main(argv: list[str]) -> None:
    configure_logging(level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    paths = [Path(arg) for arg in argv] or sorted(VOCAB_DIR.glob("*.yaml"))
    if not paths:
        print(f"No vocabulary files found in {VOCAB_DIR}")
        return

    created = await seed(paths)
    await engine.dispose()
    print(f"✓ Vocabulary seeding complete: {created} new words from {len(paths)} file(s)")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
