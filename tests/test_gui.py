"""Tests for the desktop front end's status text and log filtering."""

import pytest

pytest.importorskip("PySide6.QtWidgets")

from harvest_core import RunSummary, SizeEstimate, VerifyReport  # noqa: E402
from harvest_gui import filter_lines, summarize  # noqa: E402

LINES = [
    "[10:00:00] [INFO] Fetching listing",
    "[10:00:01] [ERROR] Listing fetch failed",
    "[10:00:02] [SUCCESS] Found 3 documents",
]


def test_filter_all_keeps_everything():
    assert filter_lines(LINES, "ALL") == LINES


def test_filter_by_level():
    assert filter_lines(LINES, "ERROR") == ["[10:00:01] [ERROR] Listing fetch failed"]


def test_summarize_download():
    text = summarize("download", RunSummary(downloaded=3, skipped=2, failed=1))
    assert text == "Downloaded 3, skipped 2, failed 1"


def test_summarize_estimate():
    text = summarize("estimate", SizeEstimate(total_bytes=2_500_000, counted=2, failed=0))
    assert text.startswith("Estimated total: 2.50 MB")


def test_summarize_verify_without_checksums():
    assert "No checksums found" in summarize("verify", VerifyReport(checksums_present=False))


def test_summarize_verify_problems():
    report = VerifyReport(ok=["a.pdf"], corrupted=["b.pdf"], missing=["c.pdf"],
                          problems=["b.pdf", "c.pdf"])
    assert summarize("verify", report) == "2 problems found: 1 corrupted, 1 missing"


def test_summarize_error():
    assert summarize("verify", RuntimeError("disk gone")) == "verify failed: disk gone"
