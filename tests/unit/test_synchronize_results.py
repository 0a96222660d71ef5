"""Unit tests for the RunAggregator and RunSummary."""

import asyncio
import json
from pathlib import Path

import pytest

from gh_backup.synchronize.models import OutcomeKind, SyncOutcome
from gh_backup.synchronize.results import RunAggregator


def outcome(name: str, kind: OutcomeKind, error: Exception | None = None, attempts: int = 1) -> SyncOutcome:
    """Build an outcome."""
    return SyncOutcome(repository=name, kind=kind, attempts=attempts, error=error)


@pytest.mark.asyncio
async def test_all_successful_outcomes_exit_zero() -> None:
    """Test that clones and fetches only give exit code 0."""
    aggregator = RunAggregator()
    await aggregator.record(outcome("a", OutcomeKind.CLONED))
    await aggregator.record(outcome("b", OutcomeKind.FETCHED))

    summary = await aggregator.finalize()

    assert (summary.cloned, summary.fetched, summary.failed, summary.total) == (1, 1, 0, 2)
    assert summary.failures == []
    assert summary.exit_code == 0


@pytest.mark.asyncio
async def test_any_failure_exits_one_and_keeps_detection_order() -> None:
    """Test that failures are listed in the order they were recorded."""
    aggregator = RunAggregator()
    await aggregator.record(outcome("z", OutcomeKind.FAILED, RuntimeError("first"), attempts=4))
    await aggregator.record(outcome("a", OutcomeKind.CLONED))
    await aggregator.record(outcome("m", OutcomeKind.FAILED, RuntimeError("second")))

    summary = await aggregator.finalize()

    assert summary.exit_code == 1
    assert [(failure.name, failure.error, failure.attempts) for failure in summary.failures] == [("z", "first", 4), ("m", "second", 1)]


@pytest.mark.asyncio
async def test_concurrent_records_are_all_counted() -> None:
    """Test that outcomes recorded from many tasks are all counted."""
    aggregator = RunAggregator()
    await asyncio.gather(*(aggregator.record(outcome(f"repo-{index}", OutcomeKind.FETCHED)) for index in range(100)))
    summary = await aggregator.finalize()
    assert summary.fetched == 100


@pytest.mark.asyncio
async def test_duplicate_outcome_rejected() -> None:
    """Test that a repository cannot be recorded twice."""
    aggregator = RunAggregator()
    await aggregator.record(outcome("a", OutcomeKind.CLONED))
    with pytest.raises(ValueError):
        await aggregator.record(outcome("a", OutcomeKind.FETCHED))


@pytest.mark.asyncio
async def test_record_after_finalize_rejected() -> None:
    """Test that the summary is frozen once finalized."""
    aggregator = RunAggregator()
    first = await aggregator.finalize()
    with pytest.raises(RuntimeError):
        await aggregator.record(outcome("a", OutcomeKind.CLONED))
    assert await aggregator.finalize() is first


@pytest.mark.asyncio
async def test_summary_written_as_json(tmp_path: Path) -> None:
    """Test that the run report contains the counts and failures."""
    aggregator = RunAggregator(dry_run=True)
    await aggregator.record(outcome("a", OutcomeKind.CLONED))
    await aggregator.record(outcome("b", OutcomeKind.FAILED, RuntimeError("corrupted")))
    summary = await aggregator.finalize()

    report = tmp_path / "reports" / "run.json"
    summary.write(report)

    data = json.loads(report.read_text())
    assert data["dry_run"] is True
    assert data["exit_code"] == 1
    assert data["cloned"] == 1
    assert data["failures"] == [{"repository": "b", "error": "corrupted", "attempts": 1}]
