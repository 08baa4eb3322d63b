"""
Tests for the action plan generator and plan mutations.

Covers:
    - Plan shape, totals and progress invariants
    - Phase ordering, capping and dates
    - Task priority, assignment and due dates
    - Subtask templates and cap
    - Contract violations
    - Task/subtask mutations, statistics and alerts
"""

from datetime import date, timedelta

import pytest

from cor_audit.action_plan import (
    ASSIGNMENT_RULES,
    CATEGORY_ASSIGNMENT,
    POSITION_KEYWORDS,
    _KEYWORD_CATEGORIES,
    ActionPlanGenerator,
    Person,
    cancel_plan,
    categorize_gap,
    complete_subtask,
    complete_task,
    generate_action_plan,
    map_severity_to_priority,
    plan_statistics,
    set_task_status,
    tasks_needing_attention,
)
from cor_audit.errors import ContractViolation, PlanNotFoundError

START = date(2026, 1, 5)
TARGET = START + timedelta(days=90)


# ── Helpers ──────────────────────────────────────────────────────────────


def _gap(element, req="r", severity="major", hours=4, category="form", found=1, required=3,
         weight=1.0, pct=50, description=None):
    return {
        "gap_id": f"gap-elem{element}_{req}",
        "requirement_id": f"elem{element}_{req}",
        "requirement_description": f"Requirement {req}",
        "element_number": element,
        "element_name": f"Element {element}",
        "element_weight": weight,
        "element_percentage": pct,
        "severity": severity,
        "category": category,
        "description": description or f"Only {found} of {required} required records found",
        "action_required": f"Complete {required - found} more",
        "estimated_effort_hours": hours,
        "found_count": found if severity != "critical" else 0,
        "required_count": required,
    }


PEOPLE = [
    Person("1", "Avery Admin", "admin"),
    Person("2", "Sam Supervisor", "supervisor"),
    Person("3", "Ira Auditor", "internal_auditor"),
]


def _all_tasks(plan):
    return [t for p in plan["phases"] for t in p["tasks"]]


def _plan(gaps, people=PEOPLE, **kw):
    return generate_action_plan(gaps, people, TARGET, start_date=START, **kw)


# ── Generation ───────────────────────────────────────────────────────────


class TestGeneration:
    def test_empty_gap_list_is_trivially_complete(self):
        plan = _plan([])
        assert plan["phases"] == []
        assert plan["total_tasks"] == 0
        assert plan["progress_percentage"] == 100
        assert plan["status"] == "completed"
        assert plan["projected_end_date"] == START
        assert plan["fits_target"] is True

    def test_single_critical_gap(self):
        plan = _plan([_gap(1, severity="critical", category="policy")])
        assert len(plan["phases"]) == 1
        task = plan["phases"][0]["tasks"][0]
        assert task["priority"] == "critical"
        assert task["gap_id"] == "gap-elem1_r"
        assert plan["total_tasks"] == 1
        assert plan["progress_percentage"] == 0
        assert plan["status"] == "active"
        assert plan["title"] == "COR Certification Action Plan"
        assert plan["overall_goal"] == f"Achieve 80%+ COR compliance by {TARGET.isoformat()}"

    def test_phases_follow_priority_not_element_number(self):
        gaps = [
            _gap(1, weight=1.2, pct=40),
            _gap(7, severity="critical"),
            _gap(3, weight=1.2, pct=10),
        ]
        plan = _plan(gaps)
        assert [p["element_numbers"] for p in plan["phases"]] == [[7], [3], [1]]
        assert [p["phase_number"] for p in plan["phases"]] == [1, 2, 3]

    def test_phase_cap_folds_extra_elements(self):
        gaps = []
        for n in range(1, 11):
            gaps.append(_gap(n, req="a", pct=n * 5))
            gaps.append(_gap(n, req="b", severity="critical" if n % 2 else "minor", pct=n * 5))
        plan = _plan(gaps)
        assert len(plan["phases"]) == 8
        assert len(plan["phases"][-1]["element_numbers"]) == 3
        assert plan["total_tasks"] == len(gaps) == sum(p["total_tasks"] for p in plan["phases"])
        task_gaps = sorted(t["gap_id"] for t in _all_tasks(plan))
        assert task_gaps == sorted(g["gap_id"] for g in gaps)

    def test_phase_dates_and_overlap(self):
        gaps = [_gap(1, hours=40, severity="critical"), _gap(2, hours=8)]
        plan = _plan(gaps)
        first, second = plan["phases"]
        assert first["start_date"] == START
        assert first["duration_days"] == 5
        assert first["end_date"] == START + timedelta(days=5)
        assert second["start_date"] == START + timedelta(days=4)
        assert plan["projected_end_date"] == START + timedelta(days=5)

    def test_estimated_hours_aggregated(self):
        gaps = [_gap(1, hours=3), _gap(1, req="b", hours=5), _gap(2, hours=7)]
        plan = _plan(gaps)
        assert plan["estimated_hours"] == 15
        assert sum(p["estimated_hours"] for p in plan["phases"]) == 15

    def test_target_shortfall_flagged(self, caplog):
        plan = generate_action_plan([_gap(1, hours=400)], PEOPLE, START + timedelta(days=10), start_date=START)
        assert plan["fits_target"] is False
        assert "after target" in caplog.text

    def test_hours_budget(self):
        assert _plan([_gap(1, hours=10)], estimated_hours_budget=5)["within_budget"] is False
        assert _plan([_gap(1, hours=10)], estimated_hours_budget=20)["within_budget"] is True

    def test_task_due_dates_follow_cumulative_effort(self):
        gaps = [_gap(1, req="a", hours=8), _gap(1, req="b", hours=8), _gap(1, req="c", hours=8)]
        phase = _plan(gaps)["phases"][0]
        dues = [t["due_date"] for t in phase["tasks"]]
        assert dues == [START + timedelta(days=d) for d in (1, 2, 3)]
        assert all(d <= phase["end_date"] for d in dues)

    def test_tasks_sorted_by_severity_within_phase(self):
        gaps = [_gap(1, req="a", severity="minor", found=3, required=4), _gap(1, req="b", severity="critical")]
        tasks = _plan(gaps)["phases"][0]["tasks"]
        assert [t["requirement_id"] for t in tasks] == ["elem1_b", "elem1_a"]
        assert [t["sort_order"] for t in tasks] == [0, 1]


class TestPriorityAndAssignment:
    @pytest.mark.parametrize("severity,hours,priority", [
        ("critical", 1, "critical"),
        ("major", 1, "high"),
        ("minor", 4, "medium"),
        ("minor", 2, "low"),
    ])
    def test_priority_mapping(self, severity, hours, priority):
        assert map_severity_to_priority(severity, hours) == priority

    def test_critical_gap_never_low_priority(self):
        plan = _plan([_gap(n, severity="critical", hours=1) for n in range(1, 4)])
        assert all(t["priority"] in ("critical", "high") for t in _all_tasks(plan))

    def test_categorize_from_category_then_keywords(self):
        assert categorize_gap({"category": "policy"}) == "policy"
        assert categorize_gap({"category": "inspection"}) == "inspection"
        assert categorize_gap({"description": "Emergency drills conducted", "action_required": ""}) == "emergency"
        assert categorize_gap({"description": "Something else", "action_required": ""}) == "default"
        assert categorize_gap({"description": "New worker orientation completed", "action_required": ""}) == "training"
        reachable = {name for name, _ in _KEYWORD_CATEGORIES} | set(CATEGORY_ASSIGNMENT.values()) | {"default"}
        assert set(ASSIGNMENT_RULES) == reachable
        assert set(POSITION_KEYWORDS) <= reachable

    def test_role_based_assignment(self):
        plan = _plan([_gap(1, category="policy"), _gap(2, category="inspection")])
        by_element = {t["element_number"]: t for t in _all_tasks(plan)}
        assert by_element[1]["assigned_to"] == "1"
        assert by_element[2]["assigned_to"] == "2"
        assert by_element[2]["assigned_to_name"] == "Sam Supervisor"

    def test_position_match_preferred(self):
        people = PEOPLE + [Person("4", "Morgan Mechanic", "worker", position="Maintenance Lead")]
        gap = _gap(7, description="Only 1 of 3 required records found: Maintenance schedule maintained",
                   category="unknown")
        task = _all_tasks(_plan([gap], people=people))[0]
        assert task["assigned_to"] == "4"

    def test_load_is_balanced_between_candidates(self):
        gaps = [_gap(n, category="inspection", hours=8) for n in range(1, 5)]
        assignees = [t["assigned_to"] for t in _all_tasks(_plan(gaps))]
        assert sorted(assignees) == ["2", "2", "3", "3"]

    def test_no_personnel_leaves_tasks_unassigned(self, caplog):
        plan = _plan([_gap(1), _gap(2)], people=[])
        assert plan["total_tasks"] == 2
        assert all(t["assigned_to"] is None for t in _all_tasks(plan))
        assert "unassigned" in caplog.text

    def test_no_matching_role_leaves_task_unassigned(self):
        plan = _plan([_gap(1, category="policy")], people=[Person("9", "Wren Worker", "worker")])
        assert _all_tasks(plan)[0]["assigned_to"] is None

    def test_personnel_dicts_accepted(self):
        people = [{"id": 5, "first_name": "Dana", "last_name": "Lee", "role": "admin"}]
        task = _all_tasks(_plan([_gap(1, category="policy")], people=people))[0]
        assert task["assigned_to"] == "5"
        assert task["assigned_to_name"] == "Dana Lee"


class TestSubtasks:
    def _subtasks(self, gap, generator=None):
        plan = (generator or ActionPlanGenerator()).generate([gap], PEOPLE, TARGET, start_date=START)
        return _all_tasks(plan)[0]["subtasks"]

    def test_policy_template(self):
        subtasks = self._subtasks(_gap(1, category="policy", severity="critical"))
        assert len(subtasks) == 6
        assert subtasks[0]["title"] == "Review current policy (if exists)"

    def test_drill_template(self):
        titles = [s["title"] for s in self._subtasks(_gap(11, category="drill"))]
        assert "Conduct emergency drill" in titles

    def test_default_template(self):
        assert len(self._subtasks(_gap(12, category="report"))) == 4

    def test_worker_split_capped(self):
        gap = _gap(4, category="training", found=0, required=25, severity="critical",
                   description="25 workers need orientation")
        subtasks = self._subtasks(gap)
        assert len(subtasks) == 10
        assert subtasks[0]["title"] == "Complete orientation for worker 1"
        assert subtasks[-1]["title"] == "Complete for remaining 16 workers"

    def test_small_training_gap_split_per_worker(self):
        subtasks = self._subtasks(_gap(6, category="training", found=2, required=5))
        assert [s["title"] for s in subtasks] == [f"Complete training for worker {i}" for i in (1, 2, 3)]

    def test_subtask_dates_and_hours_spread_evenly(self):
        gap = _gap(1, category="policy", hours=12, severity="critical")
        plan = ActionPlanGenerator().generate([gap], PEOPLE, TARGET, start_date=START)
        task = _all_tasks(plan)[0]
        dues = [s["due_date"] for s in task["subtasks"]]
        assert dues == sorted(dues)
        assert dues[-1] == task["due_date"]
        assert all(s["estimated_hours"] == 2 for s in task["subtasks"])

    def test_custom_cap(self):
        gap = _gap(4, category="training", found=0, required=8, severity="critical")
        assert len(self._subtasks(gap, ActionPlanGenerator(max_subtasks=4))) == 4


class TestContract:
    def test_target_before_start(self):
        with pytest.raises(ContractViolation):
            generate_action_plan([_gap(1)], PEOPLE, START - timedelta(days=1), start_date=START)

    @pytest.mark.parametrize("changes", [
        {"found_count": -1},
        {"required_count": -2},
        {"found_count": 3, "required_count": 3},
        {"estimated_effort_hours": -1},
        {"severity": "urgent"},
    ])
    def test_bad_gaps_rejected(self, changes):
        gap = _gap(1)
        gap.update(changes)
        with pytest.raises(ContractViolation):
            _plan([gap])

    def test_missing_field_rejected(self):
        gap = _gap(1)
        del gap["severity"]
        with pytest.raises(ContractViolation):
            _plan([gap])

    def test_negative_budget_rejected(self):
        with pytest.raises(ContractViolation):
            _plan([_gap(1)], estimated_hours_budget=-5)


# ── Mutations ────────────────────────────────────────────────────────────


class TestMutations:
    def _plan(self):
        return _plan([_gap(1, severity="critical"), _gap(2), _gap(3), _gap(4)])

    def test_progress_tracks_completed_tasks(self):
        plan = self._plan()
        tasks = _all_tasks(plan)
        complete_task(plan, tasks[0]["id"], actual_hours=3)
        assert plan["completed_tasks"] == 1
        assert plan["progress_percentage"] == 25
        assert plan["actual_hours"] == 3
        assert all(s["completed"] for s in tasks[0]["subtasks"])
        assert plan["phases"][0]["status"] == "completed"

        for task in tasks[1:]:
            complete_task(plan, task["id"])
        assert plan["progress_percentage"] == 100
        assert plan["status"] == "completed"

    def test_subtask_completion_rolls_up(self):
        plan = self._plan()
        task = _all_tasks(plan)[1]
        first, *rest = task["subtasks"]
        complete_subtask(plan, task["id"], first["id"])
        assert task["status"] == "in_progress"
        assert plan["completed_tasks"] == 0
        for subtask in rest:
            complete_subtask(plan, task["id"], subtask["id"])
        assert task["status"] == "completed"
        assert plan["completed_tasks"] == 1
        assert plan["progress_percentage"] == plan["completed_tasks"] / plan["total_tasks"] * 100

        complete_subtask(plan, task["id"], first["id"], completed=False)
        assert task["status"] == "in_progress"
        assert plan["completed_tasks"] == 0

    def test_unknown_ids(self):
        plan = self._plan()
        with pytest.raises(PlanNotFoundError):
            complete_task(plan, "nope")
        task = _all_tasks(plan)[0]
        with pytest.raises(PlanNotFoundError):
            complete_subtask(plan, task["id"], "nope")

    def test_invalid_status(self):
        plan = self._plan()
        with pytest.raises(ContractViolation):
            set_task_status(plan, _all_tasks(plan)[0]["id"], "done")

    def test_cancelled_plan_is_frozen(self):
        plan = cancel_plan(self._plan())
        assert plan["status"] == "cancelled"
        with pytest.raises(ContractViolation):
            set_task_status(plan, _all_tasks(plan)[0]["id"], "completed")

    def test_rejected_completion_leaves_plan_untouched(self):
        plan = cancel_plan(self._plan())
        task = _all_tasks(plan)[0]
        with pytest.raises(ContractViolation):
            complete_task(plan, task["id"], actual_hours=2)
        assert [s["completed"] for s in task["subtasks"]] == [False] * len(task["subtasks"])
        assert task["status"] == "pending"
        assert task["actual_hours"] == 0

    def test_negative_actual_hours_rejected_before_changes(self):
        plan = self._plan()
        task = _all_tasks(plan)[0]
        with pytest.raises(ContractViolation):
            complete_task(plan, task["id"], actual_hours=-1)
        assert not any(s["completed"] for s in task["subtasks"])
        assert task["status"] == "pending"
        with pytest.raises(ContractViolation):
            set_task_status(plan, task["id"], "in_progress", actual_hours=-1)
        assert task["status"] == "pending"


class TestStatistics:
    def test_statistics_and_alerts(self):
        plan = _plan([_gap(1, severity="critical"), _gap(2), _gap(3)])
        tasks = _all_tasks(plan)
        set_task_status(plan, tasks[2]["id"], "blocked")

        today = tasks[0]["due_date"] + timedelta(days=1)
        stats = plan_statistics(plan, today=today)
        assert tasks[0] in stats["overdue_tasks"]
        assert stats["blocked_tasks"] == [tasks[2]]
        assert stats["status_summary"]["blocked"] == 1
        assert stats["priority_summary"]["critical"] == 1
        assert sum(stats["user_workloads"].values()) == 3

        alerts = tasks_needing_attention(plan, today=today)
        severities = {a["severity"] for a in alerts}
        assert "error" in severities
        assert any(a["message"].endswith("blocked") for a in alerts)

    def test_overloaded_assignee_alert(self):
        plan = _plan([_gap(n, req=str(i), category="policy", hours=1) for n in range(1, 4) for i in range(3)])
        alerts = tasks_needing_attention(plan, today=START)
        assert {"message": "Avery Admin has 9 open tasks (consider reassigning)", "severity": "info"} in alerts

    def test_completed_tasks_not_overdue(self):
        plan = _plan([_gap(1)])
        task = _all_tasks(plan)[0]
        complete_task(plan, task["id"])
        stats = plan_statistics(plan, today=task["due_date"] + timedelta(days=30))
        assert stats["overdue_tasks"] == []
        assert stats["user_workloads"] == {}
