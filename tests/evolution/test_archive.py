"""Tests for the evolution archive."""

from neuroevo.evolution.archive import ArchiveEntry, EvolutionArchive


def _entry(run: str, base: str, fitness: float) -> ArchiveEntry:
    return ArchiveEntry(run_id=run, base_pattern_id=base, pattern_id=f"{run}-w", fitness_score=fitness)


def test_history_newest_first_and_filtered():
    archive = EvolutionArchive()
    archive.record(_entry("r1", "a", 0.3))
    archive.record(_entry("r2", "b", 0.5))
    archive.record(_entry("r3", "a", 0.4))

    assert [e.run_id for e in archive.history()] == ["r3", "r2", "r1"]
    assert [e.run_id for e in archive.history("a")] == ["r3", "r1"]
    assert archive.history("missing") == []


def test_best():
    archive = EvolutionArchive()
    for i, fitness in enumerate([0.2, 0.9, 0.5]):
        archive.record(_entry(f"r{i}", "a", fitness))
    assert [e.fitness_score for e in archive.best(2)] == [0.9, 0.5]


def test_bounded():
    archive = EvolutionArchive(max_size=2)
    for i in range(4):
        archive.record(_entry(f"r{i}", "a", 0.1))
    assert len(archive) == 2
    assert [e.run_id for e in archive.history()] == ["r3", "r2"]
