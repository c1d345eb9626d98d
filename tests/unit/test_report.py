"""
Unit tests for the report adapter.

Test categories:
  - render: exact default layout, empty diffs, synchronised devices
  - Template overrides and template errors
  - write_report: file naming, exclusive create with numeric suffix
"""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

from railway import ErrorCode
from railway.assertions import ResultAssertions

from acl_reconcile.adapters import report
from acl_reconcile.domain.diff import compare
from acl_reconcile.domain.models import CardRecord, DeviceDiff

TIMESTAMP = datetime(2024, 5, 6, 7, 8, 9)


def _card(number: int, *doors: str) -> CardRecord:
    return CardRecord(number, date(2024, 1, 1), date(2024, 12, 31), frozenset(doors))


# ─────────────────────── render ───────────────────────


class TestRender:
    """Default report layout."""

    def test_worked_example(self) -> None:
        """
        GIVEN device 1 with one updated and one unexpected card
        AND device 2 fully synchronised
        WHEN rendered
        THEN only non-empty sections are listed and device 2 shows its header.
        """
        diffs = compare(
            {"1": [_card(1001, "doorB"), _card(1002, "doorA")], "2": [_card(2001)]},
            {"1": [_card(1001, "doorA")], "2": [_card(2001)]},
        )

        text = ResultAssertions.assert_success(report.render(TIMESTAMP, diffs))

        assert text == (
            "ACL DIFF REPORT 2024-05-06 07:08:09\n"
            "\n"
            "  DEVICE 1\n"
            "    Incorrect:  1001 doors:doorB->doorA\n"
            "    Unexpected: 1002 2024-01-01 2024-12-31 doorA\n"
            "\n"
            "  DEVICE 2\n"
        )

    def test_section_continuation_lines_are_aligned(self) -> None:
        diffs = {"3": DeviceDiff(added=(_card(1), _card(2, "a", "b")))}

        text = ResultAssertions.assert_success(report.render(TIMESTAMP, diffs))

        assert text.splitlines()[3:] == [
            "    Missing:    1 2024-01-01 2024-12-31 -",
            "                2 2024-01-01 2024-12-31 a,b",
        ]

    def test_empty_diffs(self) -> None:
        text = ResultAssertions.assert_success(report.render(TIMESTAMP, {}))
        assert text == "ACL DIFF REPORT 2024-05-06 07:08:09\n"

    def test_devices_in_mapping_order(self) -> None:
        diffs = compare({"10": [], "9": []}, {})
        text = ResultAssertions.assert_success(report.render(TIMESTAMP, diffs))
        assert text.index("DEVICE 9") < text.index("DEVICE 10")

    def test_is_pure(self) -> None:
        diffs = {"1": DeviceDiff(deleted=(_card(5),))}
        assert report.render(TIMESTAMP, diffs) == report.render(TIMESTAMP, diffs)


class TestTemplates:
    """Custom templates and template failures."""

    def test_custom_template(self) -> None:
        template = "{{ timestamp }}|{% for id, d in diffs.items() %}{{ id }}:{{ d.added|length }}{% endfor %}"
        diffs = {"1": DeviceDiff(added=(_card(1), _card(2)))}

        text = ResultAssertions.assert_success(report.render(TIMESTAMP, diffs, template))

        assert text == "2024-05-06 07:08:09|1:2"

    def test_syntax_error(self) -> None:
        result = report.render(TIMESTAMP, {}, "{% for %}")
        ResultAssertions.assert_failure(result, ErrorCode.REPORT_ERROR)

    def test_undefined_variable(self) -> None:
        result = report.render(TIMESTAMP, {}, "{{ nonsense.field }}")
        ResultAssertions.assert_failure(result, ErrorCode.REPORT_ERROR)

    def test_load_default_template(self) -> None:
        assert report.load_template(None) == report.load_template(None)
        assert ResultAssertions.assert_success(report.load_template(None)) == report.DEFAULT_TEMPLATE

    def test_load_template_file(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.j2"
        path.write_text("{{ timestamp }}", encoding="utf-8")
        assert ResultAssertions.assert_success(report.load_template(path)) == "{{ timestamp }}"

    def test_load_missing_template_file(self, tmp_path: Path) -> None:
        result = report.load_template(tmp_path / "absent.j2")
        ResultAssertions.assert_failure(result, ErrorCode.REPORT_ERROR)


# ─────────────────────── write_report ───────────────────────


class TestWriteReport:
    """Persisting the rendered report."""

    def test_filename(self) -> None:
        assert report.report_filename(TIMESTAMP) == "acl-2024-05-06T070809.rpt"
        assert report.report_filename(TIMESTAMP, 2) == "acl-2024-05-06T070809-2.rpt"

    def test_writes_file(self, tmp_path: Path) -> None:
        """
        GIVEN a missing work directory
        WHEN a report is written
        THEN the directory is created and the file holds the exact text.
        """
        workdir = tmp_path / "reports"

        path = ResultAssertions.assert_success(report.write_report("text\n", workdir, TIMESTAMP))

        assert path == workdir / "acl-2024-05-06T070809.rpt"
        assert path.read_text(encoding="utf-8") == "text\n"

    def test_never_overwrites(self, tmp_path: Path) -> None:
        """
        GIVEN a report already written for the same second
        WHEN another report is written
        THEN it gets a numeric suffix and the first file is untouched.
        """
        first = ResultAssertions.assert_success(report.write_report("one", tmp_path, TIMESTAMP))
        second = ResultAssertions.assert_success(report.write_report("two", tmp_path, TIMESTAMP))

        assert second.name == "acl-2024-05-06T070809-1.rpt"
        assert first.read_text(encoding="utf-8") == "one"
        assert second.read_text(encoding="utf-8") == "two"

    def test_unwritable_workdir(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")

        result = report.write_report("text", blocker / "reports", TIMESTAMP)

        ResultAssertions.assert_failure(result, ErrorCode.REPORT_ERROR)
