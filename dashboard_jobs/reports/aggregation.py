"""
Aggregation of CI dashboard run records into per-application report stats.

A "run" is every record sharing a ``run_number`` (one record per spec file).
A run passes when all of its records that executed tests passed.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict

NO_TESTS = "noTests"
PASSED = "passed"
FAILED = "failed"


class RunRecord(BaseModel):
    """One record of the CI dashboard's spec-details report."""

    model_config = ConfigDict(extra="ignore")

    run_number: int | None = None
    status: str
    created_at: datetime | None = None
    project_name: str | None = None


@dataclass(frozen=True)
class AppRunStats:
    total_runs: int
    passed_runs: int
    failed_runs: int
    success_rate: float
    last_run_status: str
    last_run_at: datetime | None
    last_failed_run_at: datetime | None


@dataclass(frozen=True)
class ReportTotals:
    total_runs: int
    passed_runs: int
    failed_runs: int
    success_rate: float


def run_group_status(records: Iterable[RunRecord]) -> str:
    executed = [r for r in records if r.status != NO_TESTS]
    return PASSED if all(r.status == PASSED for r in executed) else FAILED


def _started_at(records: Sequence[RunRecord]) -> datetime | None:
    timestamps = [r.created_at for r in records if r.created_at is not None]
    return min(timestamps) if timestamps else None


def aggregate_runs(records: Iterable[RunRecord]) -> AppRunStats:
    """Compute pass/fail statistics for one application's run records."""
    runs: dict[int, list[RunRecord]] = defaultdict(list)
    for record in records:
        # Records without a run number cannot be attributed to a run
        if record.run_number is None:
            continue
        runs[record.run_number].append(record)

    passed = failed = 0
    last_failed_run_at = None
    newest_first = sorted(runs, reverse=True)

    for run_number in newest_first:
        group = runs[run_number]
        if run_group_status(group) == PASSED:
            passed += 1
        else:
            failed += 1
            if last_failed_run_at is None:
                last_failed_run_at = _started_at(group)

    if newest_first:
        latest = runs[newest_first[0]]
        last_run_status = run_group_status(latest)
        last_run_at = _started_at(latest)
    else:
        last_run_status = NO_TESTS
        last_run_at = None

    total = passed + failed
    return AppRunStats(
        total_runs=total,
        passed_runs=passed,
        failed_runs=failed,
        success_rate=passed / total if total else 0.0,
        last_run_status=last_run_status,
        last_run_at=last_run_at,
        last_failed_run_at=last_failed_run_at,
    )


def summarize(stats: Iterable[AppRunStats]) -> ReportTotals:
    total = passed = failed = 0
    for item in stats:
        total += item.total_runs
        passed += item.passed_runs
        failed += item.failed_runs

    return ReportTotals(
        total_runs=total,
        passed_runs=passed,
        failed_runs=failed,
        success_rate=passed / total if total else 0.0,
    )
