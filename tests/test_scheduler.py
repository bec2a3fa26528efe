from datetime import timedelta

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from src.scanner import ScanInProgressError
from src.scheduler import (
    DEFAULT_CRON,
    calculate_optimal_frequency,
    compute_next_scan_at,
    frequency_hours,
    frequency_to_cron,
    useful_topics_per_scan,
)
from src.scheduler.scan_scheduler import FACEBOOK_JOB_ID, PUBLISH_JOB_ID, SCAN_JOB_ID, RedactorScheduler
from src.publishing import DraftPublisher

from conftest import FIXED_NOW

TENANT = "levantatecuba"


@pytest.mark.parametrize(
    "frequency, cron",
    [
        ("manual", None),
        ("2h", "0 */2 * * *"),
        ("6h", "0 */6 * * *"),
        ("24h", "0 0 * * *"),
        (None, DEFAULT_CRON),
        ("cada rato", DEFAULT_CRON),
    ],
)
def test_frequency_to_cron(frequency, cron) -> None:
    assert frequency_to_cron(frequency) == cron


def test_frequency_hours_and_next_scan() -> None:
    assert frequency_hours("12h") == 12
    assert frequency_hours("manual") is None
    assert frequency_hours("xh") == 3
    assert compute_next_scan_at("4h", FIXED_NOW) == FIXED_NOW + timedelta(hours=4)
    assert compute_next_scan_at("manual", FIXED_NOW) is None


@pytest.mark.parametrize(
    "current, stats, expected",
    [
        ("3h", {"avgTopicsPerScan": 10, "selectionRate": 50, "approvalRate": 100}, "4h"),
        ("6h", {"avgTopicsPerScan": 10, "selectionRate": 50, "approvalRate": 100}, "6h"),
        ("3h", {"avgTopicsPerScan": 4, "selectionRate": 50, "approvalRate": 50}, "2h"),
        ("2h", {"avgTopicsPerScan": 4, "selectionRate": 50, "approvalRate": 50}, "2h"),
        ("3h", {"avgTopicsPerScan": 6, "selectionRate": 50, "approvalRate": 100}, "3h"),
        ("3h", {"avgTopicsPerScan": 0}, "3h"),
        ("12h", {"avgTopicsPerScan": 4, "selectionRate": 50, "approvalRate": 50}, "12h"),
        ("manual", {"avgTopicsPerScan": 10, "selectionRate": 100, "approvalRate": 100}, "manual"),
    ],
)
def test_optimal_frequency_moves_one_step(current, stats, expected) -> None:
    assert calculate_optimal_frequency(current, stats) == expected


def test_useful_topics_per_scan() -> None:
    assert useful_topics_per_scan({"avgTopicsPerScan": 8, "selectionRate": 25, "approvalRate": 50}) == 1.0
    assert useful_topics_per_scan({}) == 0.0


class FakeScanner:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def scan_sources(self, tenant_id, scan_type="manual"):
        self.calls.append((tenant_id, scan_type))
        if self.error:
            raise self.error
        return ["tema-1", "tema-2"]


class FakeFacebook:
    def __init__(self, result=None, error=None):
        self.result = result or {"published": False, "reason": "disabled"}
        self.error = error

    def run(self, tenant_id, now=None):
        if self.error:
            raise self.error
        return self.result


def _scheduler(db_manager, scanner=None, facebook=None):
    return RedactorScheduler(
        db_manager,
        scanner=scanner or FakeScanner(),
        draft_publisher=DraftPublisher(db_manager),
        facebook_publisher=facebook or FakeFacebook(),
        tenant_id=TENANT,
        scheduler=BackgroundScheduler(),
    )


def test_scan_job_uses_strict_mode_when_configured(db_manager) -> None:
    scanner = FakeScanner()
    scheduler = _scheduler(db_manager, scanner)

    assert scheduler.run_scan_job() == {"skipped": False, "topics": 2}
    db_manager.update_ai_config({"strict_cuba": True}, TENANT)
    scheduler.run_scan_job()

    assert scanner.calls == [(TENANT, "scheduled"), (TENANT, "cuba_estricto")]


def test_scan_job_skips_when_scan_running(db_manager) -> None:
    scanner = FakeScanner()
    db_manager.set_scanning_flag(TENANT, True)

    result = _scheduler(db_manager, scanner).run_scan_job()

    assert result == {"skipped": True, "reason": "scan_in_progress"}
    assert scanner.calls == []


def test_scan_job_reports_lock_and_errors(db_manager) -> None:
    locked = _scheduler(db_manager, FakeScanner(ScanInProgressError(TENANT)))
    assert locked.run_scan_job()["reason"] == "scan_in_progress"

    broken = _scheduler(db_manager, FakeScanner(RuntimeError("feeds caídos")))
    assert broken.run_scan_job() == {"skipped": False, "error": "feeds caídos"}


def test_publish_and_facebook_jobs_never_raise(db_manager) -> None:
    scheduler = _scheduler(db_manager, facebook=FakeFacebook(error=RuntimeError("sin red")))

    assert scheduler.run_publish_job(FIXED_NOW) == {"found": 0, "published": 0, "failed": 0, "released": 0, "skipped": 0}
    assert scheduler.run_facebook_job(FIXED_NOW) == {
        "published": False,
        "reason": "system_error",
        "error": "sin red",
    }


def test_run_once_runs_every_job(db_manager) -> None:
    result = _scheduler(db_manager).run_once()

    assert result["scan"]["topics"] == 2
    assert result["publish"]["found"] == 0
    assert result["facebook"]["reason"] == "disabled"


def test_reschedule_scan_replaces_and_removes_job(db_manager) -> None:
    scheduler = _scheduler(db_manager)

    assert scheduler.reschedule_scan("2h") == "0 */2 * * *"
    assert scheduler.scheduler.get_job(SCAN_JOB_ID) is not None
    assert scheduler.reschedule_scan("6h") == "0 */6 * * *"
    assert len([job for job in scheduler.scheduler.get_jobs() if job.id == SCAN_JOB_ID]) == 1

    assert scheduler.reschedule_scan("manual") is None
    assert scheduler.scheduler.get_job(SCAN_JOB_ID) is None
    assert scheduler.get_status()["frequency"] == "manual"


def test_start_registers_all_jobs(db_manager) -> None:
    db_manager.update_ai_config({"scan_frequency": "4h"}, TENANT)
    scheduler = _scheduler(db_manager)

    scheduler.start()
    try:
        status = scheduler.get_status()
        assert status["running"] is True
        assert status["cron"] == "0 */4 * * *"
        assert set(status["jobs"]) == {SCAN_JOB_ID, PUBLISH_JOB_ID, FACEBOOK_JOB_ID}
        assert all(next_run for next_run in status["jobs"].values())
    finally:
        scheduler.shutdown()

    assert scheduler.get_status()["running"] is False
