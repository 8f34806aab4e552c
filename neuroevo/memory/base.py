"""Pattern memory — the contract between the engine and pattern storage.

The engine never owns patterns. It reads the base pattern, asks for
nearest neighbors by embedding, and writes back exactly one pattern
when a run succeeds. Any store honoring this interface can be plugged in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from neuroevo.types import NeuralPattern, PatternId, PatternType


class PatternMemoryManager(ABC):
    """Abstract base for a pattern store with a similarity index.

    Implementations must tolerate concurrent reads: a single generation
    issues many lookups at once.
    """

    @abstractmethod
    async def get_pattern(self, pattern_id: PatternId) -> NeuralPattern | None:
        """Fetch a pattern by ID, or None if unknown."""
        ...

    @abstractmethod
    async def find_similar_patterns(
        self, embedding: list[float], k: int
    ) -> list[NeuralPattern]:
        """Nearest patterns by cosine similarity, best first. May return fewer than k."""
        ...

    @abstractmethod
    async def store_pattern(self, pattern: NeuralPattern) -> None:
        """Insert or replace a pattern."""
        ...

    @abstractmethod
    async def get_patterns_by_type(self, pattern_type: PatternType) -> list[NeuralPattern]:
        """All known patterns of one semantic type."""
        ...
