"""Tests for PDF and text report output."""

import pytest

from dutyroster.output.pdf_generator import PDFGenerator
from dutyroster.output.report import ReportGenerator
from dutyroster.scheduling.local_search_solver import LocalSearchSolver


@pytest.fixture
def solved(builder, february, fast_config):
    schedule = builder.build(february)
    result = LocalSearchSolver(fast_config).solve(schedule)
    schedule.apply_solution(result.solution)
    schedule.score = result.score
    return schedule


class TestPDFGenerator:
    """Tests for PDFGenerator."""

    def test_buffer_is_pdf(self, solved):
        buffer = PDFGenerator().generate_to_buffer(solved)
        assert buffer.read(4) == b"%PDF"

    def test_unsolved_schedule_renders(self, builder, february):
        schedule = builder.build(february)
        buffer = PDFGenerator().generate_to_buffer(schedule, include_summary=False)
        assert buffer.getvalue().startswith(b"%PDF")

    def test_writes_file(self, solved, tmp_path):
        path = tmp_path / "roster.pdf"
        PDFGenerator().generate(solved, path)
        assert path.read_bytes().startswith(b"%PDF")


class TestReportGenerator:
    """Tests for ReportGenerator."""

    def test_sections(self, solved):
        content = ReportGenerator().generate_to_string(solved)
        for heading in ("COVERAGE PER DAY", "WORKLOAD PER STAFF MEMBER", "SCORE BY RULE", "FINDINGS"):
            assert heading in content
        assert "DUTY ROSTER 2-2026" in content

    def test_day_coverage_line(self, solved):
        """February 2 is a Monday with two regular slots and one on-call slot."""
        content = ReportGenerator().generate_to_string(solved)
        assert "Day  2 Mon: 3/3  [REG 2/2, ONC 1/1]" in content

    def test_unassigned_slots_listed(self, builder, february):
        schedule = builder.build(february)
        content = ReportGenerator().generate_to_string(schedule)
        assert "Score: not solved" in content
        assert "  <- missing" in content
        assert "Unassigned: day 2 - regular (slot 1)" in content

    def test_writes_file(self, solved, tmp_path):
        path = tmp_path / "report.txt"
        content = ReportGenerator().generate(solved, path)
        assert path.read_text(encoding="utf-8") == content
