"""
Action Plan Generator for COR Certification

Turns the gap list into a phased remediation plan working forward from the
start date toward a target completion date.

- Elements with gaps are worked in priority order (critical gaps, weight,
  lowest percentage) and get one phase each, up to 8 phases; remaining
  elements share the last phase.
- Every gap becomes exactly one task. Task priority follows gap severity,
  the assignee is picked from the available personnel by position keyword or
  role, and due dates follow the cumulative effort inside the phase.
- Phase dates come from the shared PhaseScheduler (8-hour days, 30% overlap
  between consecutive phases), the same one the timeline projector uses.
- Tasks are broken into subtasks from a few remediation templates.

After generation the plan is mutated only through the task/subtask helpers
at the bottom of this module, which keep the progress figures in sync.
"""

import logging
import math
import re
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from cor_audit.errors import ContractViolation, PlanNotFoundError
from cor_audit.gaps import SEVERITY_ORDER
from cor_audit.scheduling import PhaseScheduler, element_workloads, fold_into_phases

logger = logging.getLogger(__name__)

PLAN_TITLE = "COR Certification Action Plan"

TASK_STATUSES = ("pending", "in_progress", "blocked", "completed")
PLAN_STATUSES = ("active", "completed", "cancelled")
PRIORITIES = ("critical", "high", "medium", "low")

OVERLOAD_TASK_COUNT = 8
DUE_SOON_DAYS = 7

# Gap category -> preferred roles, in order of preference
ASSIGNMENT_RULES = {
    "training": ["admin", "supervisor"],
    "documentation": ["admin", "internal_auditor"],
    "policy": ["admin"],
    "equipment": ["supervisor"],
    "inspection": ["supervisor", "internal_auditor"],
    "contractor": ["admin", "supervisor"],
    "emergency": ["admin", "supervisor"],
    "forms": ["admin", "supervisor"],
    "hazard": ["supervisor", "internal_auditor"],
    "ppe": ["supervisor"],
    "default": ["admin", "supervisor"],
}

# Requirement category -> assignment category
CATEGORY_ASSIGNMENT = {
    "policy": "policy",
    "procedure": "documentation",
    "safe_work_procedure": "documentation",
    "program": "documentation",
    "plan": "documentation",
    "register": "documentation",
    "minutes": "documentation",
    "report": "documentation",
    "emergency_plan": "emergency",
    "drill": "emergency",
    "training": "training",
    "certification": "training",
    "record": "forms",
    "form": "forms",
    "inspection": "inspection",
}

# Keywords in a person's position that make them the natural owner
POSITION_KEYWORDS = {
    "training": ("training", "trainer", "learning", "human resources"),
    "documentation": ("document", "coordinator", "administrator", "compliance"),
    "policy": ("manager", "director", "owner", "president"),
    "equipment": ("maintenance", "mechanic", "equipment", "fleet", "shop"),
    "inspection": ("inspector", "auditor", "safety"),
    "contractor": ("contract", "procurement"),
    "emergency": ("emergency", "first aid", "fire"),
    "forms": ("coordinator", "administrator", "clerk"),
    "hazard": ("safety", "hazard", "foreman"),
    "ppe": ("safety", "ppe", "stores"),
}

# Keyword categorization for gaps that carry no known category
_KEYWORD_CATEGORIES = [
    ("training", ("training", "orientation", "competenc")),
    ("documentation", ("policy", "procedure", "document")),
    ("equipment", ("equipment", "maintenance", "vehicle")),
    ("inspection", ("inspection", "audit", "review")),
    ("contractor", ("contractor", "subcontractor")),
    ("emergency", ("emergency", "drill", "evacuation")),
    ("hazard", ("hazard", "risk", "jha")),
    ("ppe", ("ppe", "protective", "safety equipment")),
    ("forms", ("form",)),
]

_WORKER_COUNT = re.compile(r"(\d+)\s*workers?", re.IGNORECASE)

SUBTASK_TEMPLATES = {
    "emergency_drill": [
        "Schedule drill date and notify workers",
        "Prepare drill scenario",
        "Conduct emergency drill",
        "Complete drill evaluation form",
        "Address any issues identified",
    ],
    "policy": [
        "Review current policy (if exists)",
        "Draft new/updated policy document",
        "Review with management",
        "Obtain management signature",
        "Distribute to all workers",
        "Post in visible location",
    ],
    "inspection": [
        "Create/update inspection checklist",
        "Schedule inspections",
        "Conduct inspections",
        "Document findings",
        "Complete corrective actions",
    ],
    "hazard_assessment": [
        "Identify work activities to assess",
        "Conduct hazard identification",
        "Assess risk levels",
        "Document control measures",
        "Review with affected workers",
    ],
    "ppe": [
        "Assess PPE requirements",
        "Procure required PPE",
        "Train workers on proper use",
        "Document PPE issuance",
    ],
    "default": [
        "Review requirements",
        "Complete required action",
        "Document completion",
        "Verify effectiveness",
    ],
}


@dataclass(frozen=True)
class Person:
    id: str
    name: str
    role: str
    position: str = ""
    weekly_hours: Optional[float] = None

    @classmethod
    def from_dict(cls, data):
        name = data.get("name") or " ".join(
            p for p in (data.get("first_name"), data.get("last_name")) if p
        )
        return cls(
            id=str(data["id"]),
            name=name or str(data["id"]),
            role=data.get("role", ""),
            position=data.get("position") or "",
            weekly_hours=data.get("weekly_hours"),
        )


def _as_date(value):
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def map_severity_to_priority(severity, estimated_hours=0):
    if severity == "critical":
        return "critical"
    if severity == "major":
        return "high"
    return "medium" if estimated_hours >= 4 else "low"


def categorize_gap(gap):
    """Assignment category for a gap: from its requirement category, else keywords."""
    category = CATEGORY_ASSIGNMENT.get(gap.get("category"))
    if category:
        return category
    text = f"{gap.get('description', '')} {gap.get('action_required', '')}".lower()
    for name, keywords in _KEYWORD_CATEGORIES:
        if any(k in text for k in keywords):
            return name
    return "default"


def _validate_gap(gap):
    try:
        found = gap["found_count"]
        required = gap["required_count"]
        hours = gap["estimated_effort_hours"]
        severity = gap["severity"]
        gap["element_number"]
    except KeyError as e:
        raise ContractViolation(f"Gap is missing field {e.args[0]!r}") from None
    gap_ref = gap.get("gap_id") or gap.get("requirement_id")
    if found < 0 or required < 0:
        raise ContractViolation(f"Gap {gap_ref}: counts must not be negative")
    if found >= required:
        raise ContractViolation(f"Gap {gap_ref}: found_count {found} already meets required_count {required}")
    if hours < 0:
        raise ContractViolation(f"Gap {gap_ref}: estimated_effort_hours must not be negative")
    if severity not in SEVERITY_ORDER:
        raise ContractViolation(f"Gap {gap_ref}: unknown severity {severity!r}")


class ActionPlanGenerator:
    """Builds ActionPlan trees from gap lists.

    scheduler: PhaseScheduler shared with the timeline projector
    max_phases: phase cap, extra elements fold into the last phase
    weekly_hours_available: assumed weekly capacity per person
    max_subtasks: subtask cap per task, including the roll-up item
    catalog: optional ElementCatalog for gaps without element metadata
    """

    def __init__(self, scheduler=None, max_phases=8, weekly_hours_available=10,
                 max_subtasks=10, catalog=None):
        if max_subtasks < 2:
            raise ValueError("max_subtasks must be at least 2")
        self.scheduler = scheduler or PhaseScheduler()
        self.max_phases = max_phases
        self.weekly_hours_available = weekly_hours_available
        self.max_subtasks = max_subtasks
        self.catalog = catalog

    # ── Assignment ───────────────────────────────────────────────────

    def _capacity(self, person):
        return person.weekly_hours or self.weekly_hours_available or 1

    def determine_assignee(self, gap, personnel, load):
        category = categorize_gap(gap)
        keywords = POSITION_KEYWORDS.get(category, ())
        by_position = [
            (i, p) for i, p in enumerate(personnel)
            if p.position and any(k in p.position.lower() for k in keywords)
        ]
        if by_position:
            return self._pick(by_position, load)

        roles = ASSIGNMENT_RULES.get(category, ASSIGNMENT_RULES["default"])
        by_role = [(roles.index(p.role), i, p) for i, p in enumerate(personnel) if p.role in roles]
        if by_role:
            return self._pick([(rank * len(personnel) + i, p) for rank, i, p in by_role], load)
        return None

    def _pick(self, ranked, load):
        # least loaded relative to capacity, then preference order
        return min(ranked, key=lambda rp: (load[rp[1].id] / self._capacity(rp[1]), rp[0]))[1]

    # ── Subtasks ─────────────────────────────────────────────────────

    def subtask_titles(self, gap):
        description = gap.get("description", "").lower()
        action = gap.get("action_required", "").lower()
        requirement = gap.get("requirement_description", "").lower()
        text = f"{description} {requirement}"

        worker_match = _WORKER_COUNT.search(description)
        is_training = gap.get("category") in ("training", "certification") or any(
            k in text for k in ("orientation", "training")
        )
        if is_training:
            count = int(worker_match.group(1)) if worker_match else gap["required_count"] - gap["found_count"]
            if count > 1 or worker_match:
                noun = "orientation" if "orientation" in text else (
                    "certification" if gap.get("category") == "certification" else "training"
                )
                return self._split_instances(f"Complete {noun} for worker", count)

        if ("emergency" in text and "drill" in text) or gap.get("category") == "drill":
            return list(SUBTASK_TEMPLATES["emergency_drill"])
        if "policy" in text or "policy" in action or gap.get("category") == "policy":
            return list(SUBTASK_TEMPLATES["policy"])
        if "inspection" in text or gap.get("category") == "inspection":
            return list(SUBTASK_TEMPLATES["inspection"])
        if "hazard" in text and ("assessment" in text or "assessment" in action):
            return list(SUBTASK_TEMPLATES["hazard_assessment"])
        if "ppe" in text or "protective equipment" in text:
            return list(SUBTASK_TEMPLATES["ppe"])
        return list(SUBTASK_TEMPLATES["default"])

    def _split_instances(self, prefix, count):
        if count <= self.max_subtasks:
            return [f"{prefix} {i}" for i in range(1, count + 1)]
        shown = self.max_subtasks - 1
        titles = [f"{prefix} {i}" for i in range(1, shown + 1)]
        titles.append(f"Complete for remaining {count - shown} workers")
        return titles

    def build_subtasks(self, gap, start, due, hours):
        titles = self.subtask_titles(gap)[: self.max_subtasks]
        span = max(0, (due - start).days)
        count = len(titles)
        subtasks = []
        for i, title in enumerate(titles):
            subtasks.append({
                "id": uuid.uuid4().hex,
                "title": title,
                "completed": False,
                "due_date": start + timedelta(days=math.ceil(span * (i + 1) / count)),
                "estimated_hours": round(hours / count, 2),
                "sort_order": i,
            })
        return subtasks

    # ── Tasks and phases ─────────────────────────────────────────────

    def _task_description(self, gap):
        text = gap.get("description", "")
        requirement = gap.get("requirement_description")
        if requirement and requirement != text:
            text += f"\n\nRequirement: {requirement}"
        name = gap.get("element_name") or "Unknown"
        text += f"\n\nThis task addresses a compliance gap in Element {gap['element_number']}: {name}."
        return text

    def build_task(self, gap, sort_order, phase_start, due, personnel, load):
        hours = gap["estimated_effort_hours"]
        assignee = self.determine_assignee(gap, personnel, load)
        if assignee is not None:
            load[assignee.id] += hours
        return {
            "id": uuid.uuid4().hex,
            "gap_id": gap.get("gap_id") or f"gap-{gap.get('requirement_id')}",
            "requirement_id": gap.get("requirement_id"),
            "element_number": gap["element_number"],
            "title": gap.get("action_required") or f"Address Element {gap['element_number']} gap",
            "description": self._task_description(gap),
            "category": categorize_gap(gap),
            "severity": gap["severity"],
            "priority": map_severity_to_priority(gap["severity"], hours),
            "assigned_to": assignee.id if assignee else None,
            "assigned_to_name": assignee.name if assignee else None,
            "due_date": due,
            "estimated_hours": hours,
            "actual_hours": 0,
            "status": "pending",
            "sort_order": sort_order,
            "subtasks": self.build_subtasks(gap, phase_start, due, hours),
        }

    def _phase_name(self, groups):
        if len(groups) == 1:
            return f"Element {groups[0]['element_number']}: {groups[0]['element_name']}"
        numbers = ", ".join(str(g["element_number"]) for g in groups)
        return f"Elements {numbers}: Remaining Gaps"

    def _phase_tasks(self, groups, slot, personnel, load):
        ordered = []
        for position, group in enumerate(groups):
            for index, gap in enumerate(group["gaps"]):
                ordered.append(((position, SEVERITY_ORDER[gap["severity"]], index), gap))
        ordered.sort(key=lambda item: item[0])

        tasks = []
        cumulative = 0
        for sort_order, (_, gap) in enumerate(ordered):
            cumulative += gap["estimated_effort_hours"]
            due = slot.start_date + timedelta(days=self.scheduler.duration_days(cumulative))
            due = min(due, slot.end_date)
            tasks.append(self.build_task(gap, sort_order, slot.start_date, due, personnel, load))
        return tasks

    def generate(self, gaps, personnel, target_date, estimated_hours_budget=None,
                 company_id=None, start_date=None):
        start_date = _as_date(start_date) or date.today()
        target_date = _as_date(target_date)
        if target_date is None:
            raise ContractViolation("target_date is required")
        if target_date < start_date:
            raise ContractViolation(
                f"target_date {target_date.isoformat()} is before start date {start_date.isoformat()}"
            )
        if estimated_hours_budget is not None and estimated_hours_budget < 0:
            raise ContractViolation("estimated_hours_budget must not be negative")
        gaps = list(gaps or [])
        for gap in gaps:
            _validate_gap(gap)

        people = [p if isinstance(p, Person) else Person.from_dict(p) for p in (personnel or [])]
        load = {p.id: 0 for p in people}
        if not people and gaps:
            logger.warning(f"No personnel available for company {company_id}; all tasks will be unassigned")

        groups = element_workloads(gaps, self.catalog)
        phase_groups = fold_into_phases(groups, self.max_phases) if groups else []
        slots = self.scheduler.schedule([sum(g["hours"] for g in pg) for pg in phase_groups], start_date)

        phases = []
        for number, (pg, slot) in enumerate(zip(phase_groups, slots), start=1):
            tasks = self._phase_tasks(pg, slot, people, load)
            phases.append({
                "id": uuid.uuid4().hex,
                "phase_number": number,
                "phase_name": self._phase_name(pg),
                "description": f"Close {len(tasks)} gap{'s' if len(tasks) != 1 else ''} "
                               f"({slot.hours} estimated hours).",
                "element_numbers": [g["element_number"] for g in pg],
                "start_date": slot.start_date,
                "end_date": slot.end_date,
                "duration_days": slot.duration_days,
                "estimated_hours": slot.hours,
                "status": "pending",
                "total_tasks": len(tasks),
                "completed_tasks": 0,
                "tasks": tasks,
            })

        projected_end = start_date + timedelta(days=self.scheduler.span_days(slots))
        estimated_hours = sum(t["estimated_hours"] for p in phases for t in p["tasks"])
        plan = {
            "id": uuid.uuid4().hex,
            "company_id": company_id,
            "title": PLAN_TITLE,
            "overall_goal": f"Achieve 80%+ COR compliance by {target_date.isoformat()}",
            "start_date": start_date,
            "target_completion_date": target_date,
            "projected_end_date": projected_end,
            "fits_target": projected_end <= target_date,
            "hours_budget": estimated_hours_budget,
            "within_budget": estimated_hours_budget is None or estimated_hours <= estimated_hours_budget,
            "weekly_hours_available": self.weekly_hours_available,
            "total_tasks": 0,
            "completed_tasks": 0,
            "progress_percentage": 0.0,
            "estimated_hours": estimated_hours,
            "actual_hours": 0,
            "status": "active",
            "phases": phases,
        }
        recalculate_progress(plan)

        if not plan["fits_target"]:
            logger.warning(
                f"Action plan for company {company_id} projects completion on {projected_end.isoformat()}, "
                f"after target {target_date.isoformat()}"
            )
        logger.info(
            f"Generated action plan {plan['id']} for company {company_id}: "
            f"{len(phases)} phases, {plan['total_tasks']} tasks, {estimated_hours}h"
        )
        return plan


def generate_action_plan(gaps, personnel, target_date, estimated_hours_budget=None,
                         company_id=None, start_date=None, generator=None):
    return (generator or ActionPlanGenerator()).generate(
        gaps, personnel, target_date,
        estimated_hours_budget=estimated_hours_budget,
        company_id=company_id,
        start_date=start_date,
    )


# ── Plan mutations ───────────────────────────────────────────────────────


def _phase_status(tasks):
    if tasks and all(t["status"] == "completed" for t in tasks):
        return "completed"
    if any(t["status"] in ("in_progress", "completed") for t in tasks):
        return "in_progress"
    return "pending"


def recalculate_progress(plan):
    """Recompute task counts, progress and hours from task states."""
    total = 0
    completed = 0
    actual = 0
    for phase in plan["phases"]:
        tasks = phase["tasks"]
        phase["total_tasks"] = len(tasks)
        phase["completed_tasks"] = sum(1 for t in tasks if t["status"] == "completed")
        phase["status"] = _phase_status(tasks)
        total += phase["total_tasks"]
        completed += phase["completed_tasks"]
        actual += sum(t.get("actual_hours") or 0 for t in tasks)

    plan["total_tasks"] = total
    plan["completed_tasks"] = completed
    plan["actual_hours"] = actual
    plan["progress_percentage"] = completed / total * 100 if total else 100.0
    if plan["status"] != "cancelled":
        plan["status"] = "completed" if completed == total else "active"
    return plan


def find_task(plan, task_id):
    for phase in plan["phases"]:
        for task in phase["tasks"]:
            if task["id"] == task_id:
                return task
    raise PlanNotFoundError(f"Task {task_id} not found in plan {plan['id']}")


def _check_task_update(plan, task_id, actual_hours):
    # all checks run before anything is written
    if plan["status"] == "cancelled":
        raise ContractViolation(f"Plan {plan['id']} is cancelled")
    if actual_hours is not None and actual_hours < 0:
        raise ContractViolation("actual_hours must not be negative")
    return find_task(plan, task_id)


def set_task_status(plan, task_id, status, actual_hours=None):
    if status not in TASK_STATUSES:
        raise ContractViolation(f"Unknown task status {status!r}")
    task = _check_task_update(plan, task_id, actual_hours)
    task["status"] = status
    if actual_hours is not None:
        task["actual_hours"] = actual_hours
    return recalculate_progress(plan)


def complete_task(plan, task_id, actual_hours=None):
    task = _check_task_update(plan, task_id, actual_hours)
    for subtask in task["subtasks"]:
        subtask["completed"] = True
    return set_task_status(plan, task_id, "completed", actual_hours)


def complete_subtask(plan, task_id, subtask_id, completed=True):
    """Mark a subtask done (or not) and roll the state up to its task."""
    if plan["status"] == "cancelled":
        raise ContractViolation(f"Plan {plan['id']} is cancelled")
    task = find_task(plan, task_id)
    for subtask in task["subtasks"]:
        if subtask["id"] == subtask_id:
            subtask["completed"] = completed
            break
    else:
        raise PlanNotFoundError(f"Subtask {subtask_id} not found in task {task_id}")

    done = sum(1 for s in task["subtasks"] if s["completed"])
    if done == len(task["subtasks"]):
        task["status"] = "completed"
    elif done and task["status"] in ("pending", "completed"):
        task["status"] = "in_progress"
    elif not done and task["status"] == "completed":
        task["status"] = "pending"
    return recalculate_progress(plan)


def cancel_plan(plan):
    plan["status"] = "cancelled"
    return plan


# ── Statistics ───────────────────────────────────────────────────────────


def plan_statistics(plan, today=None):
    today = today or date.today()
    soon = today + timedelta(days=DUE_SOON_DAYS)
    tasks = [t for p in plan["phases"] for t in p["tasks"]]
    open_tasks = [t for t in tasks if t["status"] != "completed"]

    overdue = [t for t in open_tasks if _as_date(t["due_date"]) < today]
    due_soon = [t for t in open_tasks if today <= _as_date(t["due_date"]) <= soon]
    blocked = [t for t in tasks if t["status"] == "blocked"]

    workloads = {}
    for task in open_tasks:
        if task.get("assigned_to"):
            key = task.get("assigned_to_name") or task["assigned_to"]
            workloads[key] = workloads.get(key, 0) + 1

    status_summary = {s: 0 for s in TASK_STATUSES}
    priority_summary = {p: 0 for p in PRIORITIES}
    for task in tasks:
        status_summary[task["status"]] += 1
        priority_summary[task["priority"]] += 1

    return {
        "overdue_tasks": overdue,
        "due_soon": due_soon,
        "blocked_tasks": blocked,
        "user_workloads": workloads,
        "status_summary": status_summary,
        "priority_summary": priority_summary,
    }


def _plural(count, noun):
    return f"{count} {noun}{'s' if count != 1 else ''}"


def tasks_needing_attention(plan, today=None):
    stats = plan_statistics(plan, today)
    alerts = []
    if stats["overdue_tasks"]:
        alerts.append({"message": f"{_plural(len(stats['overdue_tasks']), 'task')} overdue", "severity": "error"})
    if stats["due_soon"]:
        alerts.append({"message": f"{_plural(len(stats['due_soon']), 'task')} due this week", "severity": "warning"})
    if stats["blocked_tasks"]:
        alerts.append({"message": f"{_plural(len(stats['blocked_tasks']), 'task')} blocked", "severity": "warning"})
    for user, count in stats["user_workloads"].items():
        if count > OVERLOAD_TASK_COUNT:
            alerts.append({
                "message": f"{user} has {count} open tasks (consider reassigning)",
                "severity": "info",
            })
    return alerts
