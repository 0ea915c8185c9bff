"""Tests for the command-line interface."""

import json

import pytest

from dutyroster.cli import create_sample_staff, load_config, load_staff, main
from dutyroster.domain.models import AvailabilityStatus, PeriodKey, SlotKind
from dutyroster.scheduling.local_search_solver import AcceptanceType, SolverType


class TestSampleStaff:
    """Tests for demo staff creation."""

    def test_consultations_spread(self):
        staff = create_sample_staff(PeriodKey(2, 2026), count=22, total_consultations=21)
        targets = [m.constraints.target_consultations for m in staff]
        assert sum(targets) == 21
        assert targets[-1] == 0
        assert sum(m.constraints.eligible_for_on_call for m in staff) == 11


class TestLoaders:
    """Tests for the JSON loaders."""

    def test_load_staff(self, tmp_path):
        path = tmp_path / "staff.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "id": 1,
                        "first_name": "Ana",
                        "last_names": "Ruiz",
                        "start_date": "2024-01-15",
                        "skills": ["icu"],
                        "constraints": {"min_slots": 2, "max_slots": 8},
                    },
                    {"id": 2, "first_name": "Bo", "status": "unavailable"},
                ]
            )
        )
        staff = load_staff(str(path))
        assert staff[0].full_name == "Ana Ruiz"
        assert staff[0].constraints.max_slots == 8
        assert staff[0].skills == frozenset({"icu"})
        assert staff[1].constraints is None
        assert staff[1].availability_status == AvailabilityStatus.UNAVAILABLE

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "solver": {"acceptance": "hill_climbing", "solver_type": "cpsat"},
                    "weights": {"unassigned_slot": 50},
                    "generation": {"regular_baseline": 3, "skill_by_kind": {"on_call": "icu"}},
                }
            )
        )
        config, weights, policy = load_config(str(path))
        assert config.acceptance == AcceptanceType.HILL_CLIMBING
        assert config.solver_type == SolverType.CPSAT
        assert weights.unassigned_slot == 50
        assert policy.regular_baseline_per_day() == 3
        assert policy.required_skill(SlotKind.ON_CALL) == "icu"

    def test_load_config_defaults(self):
        config, weights, policy = load_config(None)
        assert config.solver_type == SolverType.LOCAL_SEARCH
        assert weights.unassigned_slot == 100
        assert policy.regular_baseline_per_day() == 2


class TestMain:
    """Tests for the CLI entry point."""

    def test_demo(self, capsys):
        exit_code = main(["demo", "--period", "2-2026", "--count", "10", "--time-limit", "1"])
        assert exit_code == 0
        assert "Schedule 2-2026: pending_confirmation" in capsys.readouterr().out

    def test_demo_with_outputs(self, tmp_path):
        pdf = tmp_path / "roster.pdf"
        report = tmp_path / "report.txt"
        exit_code = main(
            [
                "demo",
                "--period", "2-2026",
                "--count", "10",
                "--time-limit", "1",
                "--output", str(pdf),
                "--report", str(report),
            ]
        )
        assert exit_code == 0
        assert pdf.read_bytes().startswith(b"%PDF")
        assert "COVERAGE PER DAY" in report.read_text(encoding="utf-8")

    def test_generate(self, tmp_path):
        staff_path = tmp_path / "staff.json"
        staff_path.write_text(
            json.dumps(
                [
                    {
                        "id": i,
                        "first_name": f"Doc{i}",
                        "constraints": {
                            "min_slots": 2,
                            "max_slots": 10,
                            "eligible_for_on_call": i % 2 == 0,
                        },
                    }
                    for i in range(1, 11)
                ]
            )
        )
        exit_code = main(
            [
                "generate",
                "--period", "1-2026",
                "--staff", str(staff_path),
                "--holidays", "1", "6",
                "--time-limit", "1",
            ]
        )
        assert exit_code == 0

    def test_generate_rejects_negative_time_limit(self, tmp_path, capsys):
        staff_path = tmp_path / "staff.json"
        staff_path.write_text(json.dumps([{"id": 1, "first_name": "Ana"}]))
        exit_code = main(
            [
                "generate",
                "--period", "2-2026",
                "--staff", str(staff_path),
                "--time-limit", "-5",
            ]
        )
        assert exit_code == 2
        assert "time_limit_seconds must be positive" in capsys.readouterr().err

    def test_bad_period_exit_code(self, capsys):
        assert main(["demo", "--period", "2026-02"]) == 2
        assert "Error:" in capsys.readouterr().err

    def test_no_command_prints_help(self):
        assert main([]) == 1

    def test_unknown_solver_rejected(self):
        with pytest.raises(SystemExit):
            main(["demo", "--solver", "tabu"])
