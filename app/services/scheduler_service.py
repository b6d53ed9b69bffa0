"""
Construction Progress Engine
Job runner.

The engine's periodic passes (risk snapshot refresh, schedule consistency
sweep) are plain functions registered with ``register_job``. A run executes
inside the Flask app context and is recorded on the job's ScheduledJob row.

There is no in-process timer: an external cron (or
``POST /api/v1/jobs/<name>/run``) calls ``run_job``. The cron fields stored
on each row document the intended cadence for that caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from flask import Flask

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobSpec:
    """A registered job: callable, intended cadence, optional enable flag."""
    name: str
    fn: Callable
    cron: dict
    enabled_flag: str | None = None

    @property
    def description(self) -> str:
        return (self.fn.__doc__ or self.name).strip()


_jobs: dict[str, JobSpec] = {}


def register_job(name: str, *, cron: dict, enabled_flag: str | None = None):
    """Register the decorated function as job *name*.

    ``enabled_flag`` names a config key that decides whether the job starts
    enabled when its row is first created.

    Usage:
        @register_job("risk_snapshot_refresh", cron={"day_of_week": "mon", "hour": "6"})
        def refresh_weekly_risk(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _jobs[name] = JobSpec(name=name, fn=fn, cron=cron, enabled_flag=enabled_flag)
        return fn
    return decorator


def _job_record(job_name: str) -> ScheduledJob:
    record = ScheduledJob.query.filter_by(job_name=job_name).first() if job_name in _jobs else None
    if record is None:
        raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
    return record


class SchedulerService:
    """Registry ↔ ScheduledJob sync, manual runs and run bookkeeping."""

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("Job runner bound with %d registered jobs", len(_jobs))

    @classmethod
    def ensure_jobs_registered(cls) -> list[str]:
        """Create the ScheduledJob row of every registered job lacking one."""
        created = []
        with cls._app.app_context():
            existing = {name for (name,) in db.session.query(ScheduledJob.job_name)}
            for spec in _jobs.values():
                if spec.name in existing:
                    continue
                enabled = bool(cls._app.config.get(spec.enabled_flag, True)) if spec.enabled_flag else True
                db.session.add(ScheduledJob(
                    job_name=spec.name,
                    description=spec.description,
                    schedule_config=spec.cron,
                    status="active" if enabled else "paused",
                    is_enabled=enabled,
                ))
                created.append(spec.name)
            if created:
                db.session.commit()
                logger.info("Registered job rows: %s", ", ".join(created))
        return created

    @classmethod
    def run_job(cls, job_name: str, *, force: bool = False) -> dict:
        """
        Run a job now and record the outcome on its row.

        A paused job is recorded as ``skipped`` unless *force* is set. A job
        that raises is recorded as ``failed``; the error is returned, not
        re-raised.

        Raises:
            NotFoundError: *job_name* is not registered.
        """
        spec = _jobs.get(job_name)
        if spec is None:
            raise NotFoundError(resource="ScheduledJob", resource_id=job_name)

        with cls._app.app_context():
            record = ScheduledJob.query.filter_by(job_name=job_name).first()
            started = time.monotonic()
            result, error = None, None

            if record is not None and not record.is_enabled and not force:
                status = "skipped"
                logger.info("Job %s is paused; skipping", job_name, extra={"job_name": job_name})
            else:
                try:
                    result = spec.fn(cls._app)
                    status = "success"
                except Exception as exc:
                    db.session.rollback()
                    status, error = "failed", str(exc)
                    logger.exception("Job %s failed", job_name, extra={"job_name": job_name})

            duration_ms = int((time.monotonic() - started) * 1000)
            if record is not None:
                record.record_run(status=status, duration_ms=duration_ms, result=result, error=error)
                db.session.commit()

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """Registered jobs with their stored state and last run."""
        records = {
            r.job_name: r
            for r in ScheduledJob.query.filter(ScheduledJob.job_name.in_(list(_jobs))).all()
        }
        return [
            {
                "job_name": name,
                "cron": spec.cron,
                "record": records[name].to_dict() if name in records else None,
            }
            for name, spec in _jobs.items()
        ]

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict:
        """Enable or pause a job. Raises NotFoundError for unknown jobs."""
        record = _job_record(job_name)
        record.is_enabled = enabled
        record.status = "active" if enabled else "paused"
        db.session.commit()
        logger.info("Job %s %s", job_name, "enabled" if enabled else "paused",
                    extra={"job_name": job_name})
        return record.to_dict()
