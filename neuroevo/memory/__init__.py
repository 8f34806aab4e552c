"""Pattern memory — the store and similarity index the engine reads from.

Provides:
- PatternMemoryManager: the contract every store implements
- InMemoryPatternStore: dict-backed store for tests and embedding
- SQLitePatternStore: aiosqlite-backed store used by the CLI
"""
