"""
Report adapter — render ACL diffs through a Jinja2 template and persist them.

Rendering is a pure function of (timestamp, diffs, template): a fresh
Jinja2 environment is built on every call and nothing is cached globally.

The default template lists, per device in ascending device id order, only
the non-empty sections:

    Incorrect   cards on the controller whose fields differ (old -> new)
    Missing     cards in the authoritative ACL but not on the controller
    Unexpected  cards on the controller but not in the authoritative ACL

A device that is fully synchronised still prints its DEVICE header, so it
stays distinguishable from a device that was never compared at all.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

import structlog
from jinja2 import Environment, StrictUndefined
from railway import ErrorCode
from railway.result import Result

from acl_reconcile.domain.models import DeviceDiff

log = structlog.get_logger()

DEFAULT_TEMPLATE = """\
{% macro section(label, records) %}
{% if records %}
{% for record in records %}
    {{ "%-12s"|format(label ~ ":" if loop.first else "") }}{{ record }}
{% endfor %}
{% endif %}
{% endmacro %}
ACL DIFF REPORT {{ timestamp }}
{% for device_id, diff in diffs.items() %}

  DEVICE {{ device_id }}
{{ section("Incorrect", diff.updated) }}{{ section("Missing", diff.added) }}{{ section("Unexpected", diff.deleted) }}{% endfor %}
"""

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FILENAME_FORMAT = "acl-%Y-%m-%dT%H%M%S"
REPORT_SUFFIX = ".rpt"


def _environment() -> Environment:
    return Environment(
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
    )


def render(
    timestamp: datetime,
    diffs: Mapping[str, DeviceDiff],
    template: str = DEFAULT_TEMPLATE,
) -> Result[str]:
    """
    Render the diff mapping as report text.

    The mapping is passed to the template in its own iteration order (the
    diff engine already orders devices). Template syntax or evaluation errors
    return Result.failure(REPORT_ERROR).
    """
    return Result.from_computation(
        lambda: _environment()
        .from_string(template)
        .render(timestamp=timestamp.strftime(TIMESTAMP_FORMAT), diffs=dict(diffs)),
        ErrorCode.REPORT_ERROR,
        "Failed to render ACL diff report",
    )


def load_template(template_file: Path | None) -> Result[str]:
    """Read a template override, or fall back to the built-in template."""
    if template_file is None:
        return Result.success(DEFAULT_TEMPLATE)
    return Result.from_computation(
        lambda: template_file.read_text(encoding="utf-8"),
        ErrorCode.REPORT_ERROR,
        f"Could not read report template {template_file}",
    )


def report_filename(timestamp: datetime, attempt: int = 0) -> str:
    stem = timestamp.strftime(FILENAME_FORMAT)
    if attempt:
        stem = f"{stem}-{attempt}"
    return f"{stem}{REPORT_SUFFIX}"


def _write_exclusive(text: str, workdir: Path, timestamp: datetime) -> Path:
    workdir.mkdir(parents=True, exist_ok=True)
    attempt = 0
    while True:
        path = workdir / report_filename(timestamp, attempt)
        try:
            with path.open("x", encoding="utf-8") as f:
                f.write(text)
        except FileExistsError:
            attempt += 1
            continue
        return path


def write_report(text: str, workdir: Path, timestamp: datetime) -> Result[Path]:
    """
    Write the report to `workdir/acl-<timestamp>.rpt`.

    The file is created exclusively and written once. If a report with the
    same timestamp already exists a numeric suffix is added instead of
    overwriting it.
    """
    return Result.from_computation(
        lambda: _write_exclusive(text, workdir, timestamp),
        ErrorCode.REPORT_ERROR,
        f"Could not write ACL diff report to {workdir}",
    ).peek(lambda path: log.info("report.written", path=str(path), size=len(text)))
