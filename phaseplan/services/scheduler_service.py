"""
Phase Planning Platform
Scheduler Service.

Job registry and runner for the nightly batch. Nothing here keeps time:
an external trigger (the cron endpoints, ``flask run-job`` or the manual
trigger API) decides *when* a job runs. This service runs it inside the
Flask app context and keeps its history on a ScheduledJob row.

Jobs paused through the toggle API are skipped by scheduled triggers;
manual triggers pass ``force=True`` and always run.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from phaseplan.models import db
from phaseplan.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}
_job_schedules: dict[str, dict] = {}


def _daily(hour: int, minute: int) -> dict:
    return {"hour": str(hour), "minute": str(minute),
            "description": f"Daily at {hour:02d}:{minute:02d}"}


def register_job(name: str, at: str = "00:00"):
    """Register ``fn(app)`` as job ``name``, expected to run daily at ``at`` (UTC, HH:MM).

    Usage:
        @register_job("phase_snapshots", at="05:00")
        def generate_phase_snapshots(app):
            ...
    """
    hour, minute = (int(part) for part in at.split(":"))

    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        _job_schedules[name] = _daily(hour, minute)
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    return dict(_job_registry)


def job_schedule(job_name: str) -> dict:
    return dict(_job_schedules.get(job_name) or _daily(0, 0))


def _describe(job_name: str, fn: Callable) -> str:
    doc = (fn.__doc__ or "").strip()
    return doc.splitlines()[0] if doc else f"Scheduled job: {job_name}"


def _job_record(job_name: str) -> ScheduledJob | None:
    return ScheduledJob.query.filter_by(job_name=job_name).first()


class SchedulerService:
    """Runs registered jobs and persists their run history."""

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with jobs: %s", ", ".join(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job that has none yet."""
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                if _job_record(name) is not None:
                    continue
                job = ScheduledJob(
                    job_name=name,
                    description=_describe(name, fn),
                    schedule_type="cron",
                    schedule_config=job_schedule(name),
                    status="active",
                    is_enabled=True,
                )
                db.session.add(job)
                created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str, force: bool = False) -> dict:
        """
        Execute a single job by name.

        Args:
            job_name: Registered job name.
            force: Run even when the job is paused.

        Returns:
            Dict with job_name, status (success, failed, skipped, error),
            duration_ms, result and error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}
        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

        if not force and cls._is_paused(job_name):
            logger.info("Job %s is paused, skipping", job_name, extra={"job_name": job_name})
            return {"job_name": job_name, "status": "skipped", "duration_ms": 0,
                    "result": None, "error": None}

        logger.info("Job %s started", job_name, extra={"job_name": job_name})
        start = time.monotonic()
        result = None
        error = None
        status = "success"
        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed", job_name, extra={"job_name": job_name})
        duration_ms = int((time.monotonic() - start) * 1000)

        cls._record_run(job_name, status, duration_ms, result, error)
        logger.info("Job %s finished: %s", job_name, status,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def _is_paused(cls, job_name: str) -> bool:
        with cls._app.app_context():
            record = _job_record(job_name)
            return record is not None and not record.is_enabled

    @classmethod
    def _record_run(cls, job_name, status, duration_ms, result, error) -> None:
        """Best effort: a failure to write history never fails the job."""
        try:
            with cls._app.app_context():
                record = _job_record(job_name)
                if record is None:
                    return
                record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()
        except Exception:
            logger.exception("Could not store run history for job %s", job_name,
                             extra={"job_name": job_name})

    # ── Read / admin ─────────────────────────────────────────────────────

    @classmethod
    def list_jobs(cls) -> list[dict]:
        jobs = []
        for name, fn in _job_registry.items():
            record = _job_record(name)
            jobs.append({
                "job_name": name,
                "description": _describe(name, fn),
                "schedule": job_schedule(name),
                "db_record": record.to_dict() if record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        record = _job_record(job_name)
        return record.to_dict() if record else None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Pause or resume a job. Returns None when the job has no record."""
        record = _job_record(job_name)
        if not record:
            return None
        record.is_enabled = enabled
        record.status = "active" if enabled else "paused"
        db.session.commit()
        return record.to_dict()
