import os
import time
from datetime import timedelta

from scheduler import ExportCleanupScheduler, delete_file, sweep_stale_exports


def test_delete_file_tolerates_missing_files(tmp_path) -> None:
    path = tmp_path / "export.csv"
    path.write_text("x")

    assert delete_file(str(path)) is True
    assert not path.exists()
    assert delete_file(str(path)) is True


def test_sweep_only_removes_stale_files(tmp_path) -> None:
    stale = tmp_path / "old.xlsx"
    fresh = tmp_path / "new.xlsx"
    stale.write_bytes(b"old")
    fresh.write_bytes(b"new")
    two_hours_ago = time.time() - 7200
    os.utime(stale, (two_hours_ago, two_hours_ago))

    removed = sweep_stale_exports(tmp_path, max_age=timedelta(hours=1))

    assert removed == 1
    assert not stale.exists()
    assert fresh.exists()


def test_cleanup_runs_immediately_without_a_running_scheduler(tmp_path) -> None:
    path = tmp_path / "export.csv"
    path.write_text("x")

    ExportCleanupScheduler(tmp_path).schedule_cleanup(str(path))

    assert not path.exists()


def test_running_scheduler_defers_cleanup(tmp_path) -> None:
    path = tmp_path / "export.csv"
    path.write_text("x")
    cleanup = ExportCleanupScheduler(tmp_path)

    cleanup.start()
    try:
        cleanup.schedule_cleanup(str(path), delay_secs=3600)

        assert path.exists()
        job_ids = {job.id for job in cleanup.scheduler.get_jobs()}
        assert "export_sweep_hourly" in job_ids
        assert any(job_id.startswith("export_cleanup_") for job_id in job_ids)
    finally:
        cleanup.stop()
    assert not cleanup.scheduler.running
