"""Tests for import statistics."""

from __future__ import annotations

from pst_graph_migration.models.stats import ImportOutcome, ImportStatistics


def test_record_keeps_totals_balanced() -> None:
    """Every record bumps total and exactly one bucket."""
    stats = ImportStatistics()
    stats.record("message", ImportOutcome.created)
    stats.record("message", ImportOutcome.skipped_existing)
    stats.record("message", ImportOutcome.errored_out)

    counters = stats.kind("message")
    assert (counters.total, counters.created, counters.skipped_existing, counters.errored_out) == (
        3,
        1,
        1,
        1,
    )
    assert stats.balanced


def test_merge_adds_per_kind() -> None:
    """Merging sums counters and creates kinds that were missing."""
    ours = ImportStatistics()
    ours.record("message", ImportOutcome.created)
    theirs = ImportStatistics()
    theirs.record("message", ImportOutcome.created)
    theirs.record("event", ImportOutcome.errored_out)

    merged = ours.merge(theirs)

    assert merged is ours
    assert ours.kind("message").created == 2
    assert ours.kind("event").errored_out == 1
    assert ours.balanced


def test_statistics_serialize_to_json() -> None:
    """Statistics round-trip through the report JSON."""
    stats = ImportStatistics()
    stats.record("contact", ImportOutcome.skipped_existing)
    restored = ImportStatistics.model_validate_json(stats.model_dump_json())
    assert restored.kind("contact").skipped_existing == 1


def test_partial_imports_count_as_errors_and_are_tracked_separately() -> None:
    """A partial outcome is an error for balancing and also has its own counter."""
    stats = ImportStatistics()
    stats.record("event", ImportOutcome.partial)
    stats.record("event", ImportOutcome.errored_out)

    other = ImportStatistics()
    other.record("event", ImportOutcome.partial)
    stats.merge(other)

    counters = stats.kind("event")
    assert (counters.total, counters.errored_out, counters.partial) == (3, 3, 2)
    assert stats.balanced
