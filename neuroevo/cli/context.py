"""CLI runtime context — bridges sync CLI to the async store and engine."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Coroutine

from neuroevo.config import settings
from neuroevo.events.bus import EventBus
from neuroevo.memory.sqlite import SQLitePatternStore
from neuroevo.evolution.engine import NeuralEvolutionEngine


class NeuroevoContext:
    """Process-wide holder for the pattern store, event bus and engine."""

    _instance: NeuroevoContext | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path or settings.db_path)
        self.store = SQLitePatternStore(self.db_path)
        self.event_bus = EventBus(history_limit=settings.event_history_limit)
        self.engine = NeuralEvolutionEngine(self.store, event_bus=self.event_bus)
        self._store_initialized = False

    async def ensure_store(self) -> SQLitePatternStore:
        """Create the database on first use."""
        if not self._store_initialized:
            await self.store.initialize()
            self._store_initialized = True
        return self.store

    @classmethod
    def configure(cls, db_path: Path | None = None) -> NeuroevoContext:
        cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def get(cls) -> NeuroevoContext:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_async(coro: Coroutine) -> Any:
    """Run an async coroutine from sync CLI code."""
    return asyncio.run(coro)
