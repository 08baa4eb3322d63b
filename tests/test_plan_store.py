"""
Tests for action plan persistence.

Covers:
    - Save/load round trip (counts, progress, ordering)
    - One active plan per company
    - Persisted task and subtask mutations
"""

from datetime import date, timedelta

import pytest

from cor_audit import db, plan_store
from cor_audit.action_plan import Person, generate_action_plan
from cor_audit.errors import ContractViolation, PlanNotFoundError
from cor_audit.models import ActionPlan, ActionTask

START = date(2026, 1, 5)
PEOPLE = [Person("1", "Avery Admin", "admin"), Person("2", "Sam Supervisor", "supervisor")]


# ── Helpers ──────────────────────────────────────────────────────────────


def _gap(element, req="r", severity="major", category="form", hours=4):
    return {
        "gap_id": f"gap-e{element}_{req}",
        "requirement_id": f"e{element}_{req}",
        "requirement_description": f"Requirement {req}",
        "element_number": element,
        "element_name": f"Element {element}",
        "element_weight": 1.0,
        "element_percentage": 40,
        "severity": severity,
        "category": category,
        "description": "Only 1 of 3 required records found",
        "action_required": "Complete 2 more",
        "estimated_effort_hours": hours,
        "found_count": 0 if severity == "critical" else 1,
        "required_count": 3,
    }


def _plan(company_id="acme"):
    gaps = [_gap(1, severity="critical", category="policy"), _gap(1, req="b"), _gap(2), _gap(3, hours=12)]
    return generate_action_plan(gaps, PEOPLE, START + timedelta(days=90), company_id=company_id, start_date=START)


def _shape(plan):
    return [(p["phase_number"], [t["gap_id"] for t in p["tasks"]]) for p in plan["phases"]]


def _reload(plan_id):
    db.session.expire_all()
    return plan_store.load_plan(plan_id).to_dict()


# ── Round trip ───────────────────────────────────────────────────────────


class TestRoundTrip:
    def test_round_trip_preserves_plan(self):
        plan = _plan()
        plan_store.save_plan(plan)
        loaded = _reload(plan["id"])

        assert loaded["total_tasks"] == plan["total_tasks"] == 4
        assert loaded["progress_percentage"] == plan["progress_percentage"]
        assert _shape(loaded) == _shape(plan)
        assert loaded["target_completion_date"] == plan["target_completion_date"]
        assert loaded["projected_end_date"] == plan["projected_end_date"]
        assert loaded["fits_target"] is True

        original = plan["phases"][0]["tasks"][0]
        task = loaded["phases"][0]["tasks"][0]
        assert task["due_date"] == original["due_date"]
        assert task["assigned_to"] == original["assigned_to"]
        assert [s["title"] for s in task["subtasks"]] == [s["title"] for s in original["subtasks"]]

    def test_empty_plan_round_trip(self):
        plan = generate_action_plan([], PEOPLE, START + timedelta(days=30), company_id="acme", start_date=START)
        plan_store.save_plan(plan)
        loaded = _reload(plan["id"])
        assert loaded["phases"] == []
        assert loaded["progress_percentage"] == 100
        assert loaded["status"] == "completed"

    def test_new_plan_supersedes_active_plan(self):
        first = _plan()
        plan_store.save_plan(first)
        second = _plan()
        plan_store.save_plan(second)

        assert db.session.get(ActionPlan, first["id"]).status == "cancelled"
        assert plan_store.get_active_plan("acme").id == second["id"]
        assert ActionPlan.query.count() == 2

    def test_other_companies_untouched(self):
        other = _plan(company_id="globex")
        plan_store.save_plan(other)
        plan_store.save_plan(_plan())
        assert plan_store.get_active_plan("globex").id == other["id"]

    def test_missing_plan(self):
        with pytest.raises(PlanNotFoundError):
            plan_store.load_plan("does-not-exist")
        assert plan_store.get_active_plan("nobody") is None


# ── Mutations ────────────────────────────────────────────────────────────


class TestPersistedMutations:
    def test_complete_task(self):
        plan = _plan()
        plan_store.save_plan(plan)
        task_id = plan["phases"][0]["tasks"][0]["id"]

        result = plan_store.complete_task(plan["id"], task_id, actual_hours=3)
        assert result["completed_tasks"] == 1
        assert result["progress_percentage"] == 25

        loaded = _reload(plan["id"])
        assert loaded["completed_tasks"] == 1
        assert loaded["actual_hours"] == 3
        task = loaded["phases"][0]["tasks"][0]
        assert task["status"] == "completed"
        assert all(s["completed"] for s in task["subtasks"])
        assert db.session.get(ActionTask, task_id).actual_hours == 3

    def test_toggle_subtask(self):
        plan = _plan()
        plan_store.save_plan(plan)
        task = plan["phases"][1]["tasks"][0]

        plan_store.toggle_subtask(plan["id"], task["id"], task["subtasks"][0]["id"])
        loaded = _reload(plan["id"])
        stored = loaded["phases"][1]["tasks"][0]
        assert stored["status"] == "in_progress"
        assert stored["subtasks"][0]["completed"] is True
        assert loaded["phases"][1]["status"] == "in_progress"

    def test_all_tasks_done_completes_plan(self):
        plan = _plan()
        plan_store.save_plan(plan)
        for phase in plan["phases"]:
            for task in phase["tasks"]:
                plan_store.complete_task(plan["id"], task["id"])
        loaded = _reload(plan["id"])
        assert loaded["status"] == "completed"
        assert loaded["progress_percentage"] == 100
        assert plan_store.get_active_plan("acme") is None

    def test_cancelled_plan_rejects_changes(self):
        plan = _plan()
        plan_store.save_plan(plan)
        plan_store.cancel_plan(plan["id"])
        with pytest.raises(ContractViolation):
            plan_store.set_task_status(plan["id"], plan["phases"][0]["tasks"][0]["id"], "completed")
        assert _reload(plan["id"])["completed_tasks"] == 0

    def test_unknown_task(self):
        plan = _plan()
        plan_store.save_plan(plan)
        with pytest.raises(PlanNotFoundError):
            plan_store.complete_task(plan["id"], "missing")
