"""In-process pattern store with brute-force similarity search."""

from __future__ import annotations

from neuroevo.memory.base import PatternMemoryManager
from neuroevo.memory.vectors import cosine_similarity
from neuroevo.types import NeuralPattern, PatternId, PatternType


class InMemoryPatternStore(PatternMemoryManager):
    """Dict-backed pattern store.

    Reads never mutate shared state, so any number of concurrent
    lookups from one event loop are safe.
    """

    def __init__(self, patterns: list[NeuralPattern] | None = None) -> None:
        self._patterns: dict[PatternId, NeuralPattern] = {}
        for pattern in patterns or []:
            self._patterns[pattern.id] = pattern

    async def get_pattern(self, pattern_id: PatternId) -> NeuralPattern | None:
        return self._patterns.get(pattern_id)

    async def find_similar_patterns(
        self, embedding: list[float], k: int
    ) -> list[NeuralPattern]:
        if k <= 0 or not embedding:
            return []
        scored = [
            (cosine_similarity(embedding, p.embedding), p)
            for p in self._patterns.values()
            if p.embedding
        ]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [p for _, p in scored[:k]]

    async def store_pattern(self, pattern: NeuralPattern) -> None:
        self._patterns[pattern.id] = pattern

    async def get_patterns_by_type(self, pattern_type: PatternType) -> list[NeuralPattern]:
        return [p for p in self._patterns.values() if p.type == pattern_type]

    async def list_patterns(self, limit: int = 100) -> list[NeuralPattern]:
        return list(self._patterns.values())[:limit]

    async def delete_pattern(self, pattern_id: PatternId) -> bool:
        return self._patterns.pop(pattern_id, None) is not None

    def __len__(self) -> int:
        return len(self._patterns)
