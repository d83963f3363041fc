"""Import statistics accumulated during a migration pass."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from pst_graph_migration.models.base import AppModel


class ImportOutcome(StrEnum):
    """Result of processing a single folder or item."""

    created = "created"
    skipped_existing = "skipped_existing"
    errored_out = "errored_out"
    # Created, but part of it (event attachments) is missing; counted as an error.
    partial = "partial"


class KindCounters(AppModel):
    """Counters for one container or item kind.

    ``total`` is only ever advanced together with exactly one outcome bucket,
    so ``total == created + skipped_existing + errored_out`` always holds.
    ``partial`` is the subset of ``errored_out`` that exists in the destination
    incomplete and will be found as existing on the next run.
    """

    total: int = Field(default=0, ge=0)
    created: int = Field(default=0, ge=0)
    skipped_existing: int = Field(default=0, ge=0)
    errored_out: int = Field(default=0, ge=0)
    partial: int = Field(default=0, ge=0)

    def record(self, outcome: ImportOutcome) -> None:
        """Count one processed folder or item.

        Args:
            outcome: What happened to it.
        """
        self.total += 1
        if outcome == ImportOutcome.created:
            self.created += 1
        elif outcome == ImportOutcome.skipped_existing:
            self.skipped_existing += 1
        else:
            self.errored_out += 1
            if outcome == ImportOutcome.partial:
                self.partial += 1

    @property
    def balanced(self) -> bool:
        """Return whether the totals add up."""
        return self.total == self.created + self.skipped_existing + self.errored_out


class ImportStatistics(AppModel):
    """Per-kind counters for a reconciliation or import pass."""

    counters: dict[str, KindCounters] = Field(default_factory=dict)

    def kind(self, kind: str) -> KindCounters:
        """Return the counters for a kind, creating them on first use.

        Args:
            kind: Container or item kind.

        Returns:
            Mutable counters for that kind.
        """
        key = str(kind)
        counters = self.counters.get(key)
        if counters is None:
            counters = KindCounters()
            self.counters[key] = counters
        return counters

    def record(self, kind: str, outcome: ImportOutcome) -> None:
        """Count one processed folder or item of the given kind."""
        self.kind(kind).record(outcome)

    def merge(self, other: ImportStatistics) -> ImportStatistics:
        """Add another accumulator's counters into this one.

        Args:
            other: Statistics returned by a nested pass.

        Returns:
            This instance, for chaining.
        """
        for key, theirs in other.counters.items():
            ours = self.kind(key)
            ours.total += theirs.total
            ours.created += theirs.created
            ours.skipped_existing += theirs.skipped_existing
            ours.errored_out += theirs.errored_out
            ours.partial += theirs.partial
        return self

    @property
    def balanced(self) -> bool:
        """Return whether every kind's totals add up."""
        return all(counters.balanced for counters in self.counters.values())
