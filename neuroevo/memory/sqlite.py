"""SQLite pattern store.

Patterns are stored as JSON documents next to their embedding. Search
loads candidate embeddings and ranks them by cosine similarity in
Python. No external vector DB needed at the scale a single run touches.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import aiosqlite

from neuroevo.exceptions import PatternStoreError
from neuroevo.memory.base import PatternMemoryManager
from neuroevo.memory.vectors import cosine_similarity
from neuroevo.types import NeuralPattern, PatternId, PatternType

logger = logging.getLogger(__name__)


class SQLitePatternStore(PatternMemoryManager):
    """Pattern store backed by a single SQLite file.

    Each operation opens its own connection, so concurrent readers
    never share a cursor.
    """

    def __init__(self, db_path: str | Path):
        self._db_path = str(db_path)

    async def initialize(self) -> None:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS patterns (
                    id TEXT PRIMARY KEY,
                    name TEXT DEFAULT '',
                    type TEXT NOT NULL,
                    generation INTEGER DEFAULT 0,
                    embedding TEXT DEFAULT '[]',
                    document TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_patterns_type "
                "ON patterns(type)"
            )
            await db.commit()

    async def get_pattern(self, pattern_id: PatternId) -> NeuralPattern | None:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute(
                    "SELECT document FROM patterns WHERE id = ?", (pattern_id,)
                ) as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PatternStoreError(f"Failed to read pattern {pattern_id}: {e}") from e
        if row is None:
            return None
        return NeuralPattern.model_validate_json(row[0])

    async def find_similar_patterns(
        self, embedding: list[float], k: int
    ) -> list[NeuralPattern]:
        if k <= 0 or not embedding:
            return []
        scored: list[tuple[float, str]] = []
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute("SELECT id, embedding FROM patterns") as cursor:
                    async for row in cursor:
                        stored = json.loads(row[1])
                        if stored:
                            scored.append((cosine_similarity(embedding, stored), row[0]))
        except aiosqlite.Error as e:
            raise PatternStoreError(f"Similarity search failed: {e}") from e

        scored.sort(key=lambda item: item[0], reverse=True)
        results: list[NeuralPattern] = []
        for _, pattern_id in scored[:k]:
            pattern = await self.get_pattern(pattern_id)
            if pattern is not None:
                results.append(pattern)
        return results

    async def store_pattern(self, pattern: NeuralPattern) -> None:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    "INSERT OR REPLACE INTO patterns "
                    "(id, name, type, generation, embedding, document, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        pattern.id,
                        pattern.name,
                        pattern.type.value,
                        pattern.generation,
                        json.dumps(pattern.embedding),
                        pattern.model_dump_json(),
                        pattern.created_at.isoformat(),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PatternStoreError(f"Failed to store pattern {pattern.id}: {e}") from e
        logger.debug("Stored pattern %s (generation %d)", pattern.id, pattern.generation)

    async def get_patterns_by_type(self, pattern_type: PatternType) -> list[NeuralPattern]:
        return await self._select(
            "SELECT document FROM patterns WHERE type = ? ORDER BY created_at",
            (pattern_type.value,),
        )

    async def list_patterns(self, limit: int = 100) -> list[NeuralPattern]:
        return await self._select(
            "SELECT document FROM patterns ORDER BY created_at DESC LIMIT ?",
            (limit,),
        )

    async def delete_pattern(self, pattern_id: PatternId) -> bool:
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute("DELETE FROM patterns WHERE id = ?", (pattern_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def count(self) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM patterns") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def _select(self, sql: str, params: tuple) -> list[NeuralPattern]:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PatternStoreError(f"Pattern query failed: {e}") from e
        return [NeuralPattern.model_validate_json(row[0]) for row in rows]
