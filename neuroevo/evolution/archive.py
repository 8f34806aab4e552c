"""Evolution archive — a bounded record of completed runs."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from neuroevo.types import utcnow


class ArchiveEntry(BaseModel):
    """Summary of one finished run."""

    run_id: str
    base_pattern_id: str
    pattern_id: str
    generation: int = 0
    fitness_score: float = 0.0
    improved: bool = False
    mutations: list[str] = Field(default_factory=list)
    finished_at: datetime = Field(default_factory=utcnow)


class EvolutionArchive:
    """Keeps the most recent runs, evicting the oldest past ``max_size``."""

    def __init__(self, max_size: int = 200) -> None:
        self.entries: list[ArchiveEntry] = []
        self.max_size = max_size

    def record(self, entry: ArchiveEntry) -> None:
        self.entries.append(entry)
        if len(self.entries) > self.max_size:
            self.entries = self.entries[-self.max_size:]

    def history(self, base_pattern_id: str | None = None, limit: int = 50) -> list[ArchiveEntry]:
        """Most recent first, optionally only runs started from one pattern."""
        entries = self.entries
        if base_pattern_id is not None:
            entries = [e for e in entries if e.base_pattern_id == base_pattern_id]
        return list(reversed(entries[-limit:]))

    def best(self, n: int = 5) -> list[ArchiveEntry]:
        """Top N runs by final fitness."""
        return sorted(self.entries, key=lambda e: e.fitness_score, reverse=True)[:n]

    def __len__(self) -> int:
        return len(self.entries)
