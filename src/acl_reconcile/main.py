"""
Application entry point — wires dependencies and runs the reconciliation.

Composition root: creates concrete adapters, injects them into the pipeline,
and either runs it once or hands it to the scheduler.

This is the ONLY place where concrete adapter classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Load and validate configuration from environment
  2. Configure structlog
  3. Create the blob transports and the device state source
  4. Build the pipeline with its settings
  5. Run once (exit status reflects the result) or start the scheduler
"""

from __future__ import annotations

import logging
import sys

import structlog
from railway import ErrorCode

from acl_reconcile import __version__
from acl_reconcile.adapters.device_state import HttpDeviceStateSource
from acl_reconcile.adapters.transports import default_transports
from acl_reconcile.config import AppSettings
from acl_reconcile.pipeline import ReconcilePipeline
from acl_reconcile.scheduler import create_scheduler, run_once


def configure_structlog(log_level: str = "INFO") -> None:
    """Configure structlog for human-readable console output at the given level."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def create_pipeline(settings: AppSettings) -> ReconcilePipeline:
    """Instantiate the adapters from settings and wire them into the pipeline."""
    transports = default_transports(
        timeout=settings.http_timeout_seconds,
        s3_region=settings.s3.region,
        s3_credentials_file=settings.s3.credentials_file,
        s3_profile=settings.s3.profile,
    )
    device_source = HttpDeviceStateSource(
        gateway_url=settings.gateway.url,
        timeout=settings.http_timeout_seconds,
        max_workers=settings.gateway.max_workers,
    )
    return ReconcilePipeline(
        settings=settings.reconcile,
        transports=transports,
        device_source=device_source,
    )


def main() -> None:
    """Load settings, wire dependencies, and run."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: {ErrorCode.CONFIGURATION_ERROR.value}: {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        acl_uri=settings.reconcile.acl_uri,
        devices=settings.reconcile.devices,
        cron=settings.scheduler.cron,
    )
    if settings.reconcile.no_verify:
        log.warning("app.verification_disabled", acl_uri=settings.reconcile.acl_uri)

    pipeline = create_pipeline(settings)

    if settings.scheduler.cron is None:
        result = run_once(pipeline.run)
        sys.exit(0 if result.is_success() else 1)

    scheduler = create_scheduler(
        pipeline_fn=pipeline.run,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )

    log.info("app.scheduler_starting", cron=settings.scheduler.cron)

    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
    except SystemExit:
        log.info("app.shutdown", reason="signal received")
        raise
    except Exception as e:
        log.error("app.fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
