"""
Scheduler — one-shot or cron-driven execution of the reconciliation pipeline.

Infrastructure layer — uses APScheduler (3.x) for in-process scheduling
driven by a standard 5-field cron expression. Each run is wrapped in a
LoggingExecutionContext (timing, success/failure logging) and runs are never
overlapped: one archive is reconciled at a time.

Graceful shutdown: handles SIGINT/SIGTERM to stop the scheduler cleanly.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from railway import LoggingExecutionContext
from railway.result import Result

from acl_reconcile.domain.models import ReconcileOutcome

log = structlog.get_logger()

JOB_ID = "acl_reconcile"


def run_once(pipeline_fn: Callable[[], Result[ReconcileOutcome]]) -> Result[ReconcileOutcome]:
    """Run the pipeline within a logging context and log the outcome."""
    ctx = LoggingExecutionContext(operation="AclReconcile")
    result = ctx.execute(pipeline_fn)
    if result.is_success():
        outcome = result.value()
        log.info(
            "reconcile.completed",
            devices=len(outcome.diffs),
            out_of_sync=outcome.devices_out_of_sync,
            rejected_rows=outcome.rejected_rows,
            verified=outcome.verified,
            report=str(outcome.report_path) if outcome.report_path else None,
            uploaded=outcome.report_uri,
        )
    else:
        error = result.error()
        log.error("reconcile.failed", code=error.code.value, failure=str(error))
    return result


def create_scheduler(
    pipeline_fn: Callable[[], Result[ReconcileOutcome]],
    cron: str,
    run_on_startup: bool = True,
) -> BlockingScheduler:
    """
    Create a configured APScheduler that runs the pipeline on a cron schedule.

    Args:
        pipeline_fn: Zero-argument callable returning Result[ReconcileOutcome].
        cron: Standard 5-field cron expression (minute hour dom month dow).
        run_on_startup: If True, execute once immediately before entering the loop.

    Returns:
        A configured BlockingScheduler (call .start() to begin).
    """
    scheduler = BlockingScheduler()

    def _job() -> None:
        run_once(pipeline_fn)

    minute, hour, dom, month, dow = cron.split()
    scheduler.add_job(
        _job,
        trigger=CronTrigger(
            minute=minute,
            hour=hour,
            day=dom,
            month=month,
            day_of_week=dow,
        ),
        id=JOB_ID,
        name="ACL reconciliation",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    if run_on_startup:
        log.info("scheduler.startup_run", message="Running reconciliation immediately on startup")
        _job()

    _register_shutdown_signals(scheduler)

    return scheduler


def _register_shutdown_signals(scheduler: BlockingScheduler) -> None:
    """Register SIGINT and SIGTERM handlers for graceful shutdown."""

    def _shutdown(signum: int, frame: object) -> None:
        sig_name = signal.Signals(signum).name
        log.info("scheduler.shutdown_requested", signal=sig_name)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
