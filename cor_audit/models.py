from datetime import date, datetime, timezone

from cor_audit import db
from cor_audit.action_plan import Person


def _date(value):
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class TeamMember(db.Model):
    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(64), nullable=False, index=True)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), default="")
    email = db.Column(db.String(120))
    role = db.Column(db.String(32), nullable=False, default="worker")
    # Roles: admin, supervisor, internal_auditor, worker
    position = db.Column(db.String(128), default="")
    weekly_hours = db.Column(db.Float)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime, default=lambda: datetime.now(timezone.utc)
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name or ''}".strip()

    def to_person(self):
        return Person(
            id=str(self.id),
            name=self.full_name,
            role=self.role,
            position=self.position or "",
            weekly_hours=self.weekly_hours,
        )


class ScoreSnapshot(db.Model):
    """Cached compliance score for a company, valid until expires_at."""

    __tablename__ = "score_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    score_data = db.Column(db.JSON, nullable=False)
    calculated_at = db.Column(
        db.DateTime, default=lambda: datetime.now(timezone.utc)
    )
    expires_at = db.Column(db.DateTime, nullable=False)

    def is_expired(self, now=None):
        now = now or datetime.now(timezone.utc)
        expires = self.expires_at
        # SQLite hands back naive datetimes
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= now


class ActionPlan(db.Model):
    __tablename__ = "action_plans"

    id = db.Column(db.String(32), primary_key=True)
    company_id = db.Column(db.String(64), index=True)
    title = db.Column(db.String(256), nullable=False)
    overall_goal = db.Column(db.Text, default="")
    start_date = db.Column(db.Date, nullable=False)
    target_completion_date = db.Column(db.Date, nullable=False)
    projected_end_date = db.Column(db.Date, nullable=False)
    hours_budget = db.Column(db.Float)
    weekly_hours_available = db.Column(db.Float)
    total_tasks = db.Column(db.Integer, default=0)
    completed_tasks = db.Column(db.Integer, default=0)
    progress_percentage = db.Column(db.Float, default=0.0)
    estimated_hours = db.Column(db.Float, default=0)
    actual_hours = db.Column(db.Float, default=0)
    status = db.Column(db.String(20), default="active")
    # Status: active, completed, cancelled
    created_at = db.Column(
        db.DateTime, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    phases = db.relationship(
        "ActionPhase",
        backref="plan",
        order_by="ActionPhase.phase_number",
        cascade="all, delete-orphan",
    )

    @classmethod
    def from_dict(cls, data):
        plan = cls(
            id=data["id"],
            company_id=data.get("company_id"),
            title=data["title"],
            overall_goal=data.get("overall_goal", ""),
            start_date=_date(data["start_date"]),
            target_completion_date=_date(data["target_completion_date"]),
            projected_end_date=_date(data["projected_end_date"]),
            hours_budget=data.get("hours_budget"),
            weekly_hours_available=data.get("weekly_hours_available"),
            total_tasks=data["total_tasks"],
            completed_tasks=data["completed_tasks"],
            progress_percentage=data["progress_percentage"],
            estimated_hours=data["estimated_hours"],
            actual_hours=data.get("actual_hours", 0),
            status=data["status"],
        )
        plan.phases = [ActionPhase.from_dict(p) for p in data["phases"]]
        return plan

    def to_dict(self):
        phases = [p.to_dict() for p in self.phases]
        return {
            "id": self.id,
            "company_id": self.company_id,
            "title": self.title,
            "overall_goal": self.overall_goal,
            "start_date": self.start_date,
            "target_completion_date": self.target_completion_date,
            "projected_end_date": self.projected_end_date,
            "fits_target": self.projected_end_date <= self.target_completion_date,
            "hours_budget": self.hours_budget,
            "within_budget": self.hours_budget is None or (self.estimated_hours or 0) <= self.hours_budget,
            "weekly_hours_available": self.weekly_hours_available,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "progress_percentage": self.progress_percentage,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours,
            "status": self.status,
            "phases": phases,
        }

    def update_from_dict(self, data):
        """Copy mutable state (statuses, counts, hours) back from a plan dict."""
        self.status = data["status"]
        self.total_tasks = data["total_tasks"]
        self.completed_tasks = data["completed_tasks"]
        self.progress_percentage = data["progress_percentage"]
        self.actual_hours = data["actual_hours"]
        phases = {p["id"]: p for p in data["phases"]}
        for phase in self.phases:
            phase.update_from_dict(phases[phase.id])


class ActionPhase(db.Model):
    __tablename__ = "action_phases"

    id = db.Column(db.String(32), primary_key=True)
    plan_id = db.Column(db.String(32), db.ForeignKey("action_plans.id"), nullable=False, index=True)
    phase_number = db.Column(db.Integer, nullable=False)
    phase_name = db.Column(db.String(256), nullable=False)
    description = db.Column(db.Text, default="")
    element_numbers = db.Column(db.JSON, default=list)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    duration_days = db.Column(db.Integer, default=1)
    estimated_hours = db.Column(db.Float, default=0)
    status = db.Column(db.String(20), default="pending")
    total_tasks = db.Column(db.Integer, default=0)
    completed_tasks = db.Column(db.Integer, default=0)

    tasks = db.relationship(
        "ActionTask",
        backref="phase",
        order_by="ActionTask.sort_order",
        cascade="all, delete-orphan",
    )

    @classmethod
    def from_dict(cls, data):
        phase = cls(
            id=data["id"],
            phase_number=data["phase_number"],
            phase_name=data["phase_name"],
            description=data.get("description", ""),
            element_numbers=list(data.get("element_numbers", [])),
            start_date=_date(data["start_date"]),
            end_date=_date(data["end_date"]),
            duration_days=data.get("duration_days", 1),
            estimated_hours=data.get("estimated_hours", 0),
            status=data["status"],
            total_tasks=data["total_tasks"],
            completed_tasks=data["completed_tasks"],
        )
        phase.tasks = [ActionTask.from_dict(t) for t in data["tasks"]]
        return phase

    def to_dict(self):
        return {
            "id": self.id,
            "phase_number": self.phase_number,
            "phase_name": self.phase_name,
            "description": self.description,
            "element_numbers": list(self.element_numbers or []),
            "start_date": self.start_date,
            "end_date": self.end_date,
            "duration_days": self.duration_days,
            "estimated_hours": self.estimated_hours,
            "status": self.status,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "tasks": [t.to_dict() for t in self.tasks],
        }

    def update_from_dict(self, data):
        self.status = data["status"]
        self.total_tasks = data["total_tasks"]
        self.completed_tasks = data["completed_tasks"]
        tasks = {t["id"]: t for t in data["tasks"]}
        for task in self.tasks:
            task.update_from_dict(tasks[task.id])


class ActionTask(db.Model):
    __tablename__ = "action_tasks"

    id = db.Column(db.String(32), primary_key=True)
    phase_id = db.Column(db.String(32), db.ForeignKey("action_phases.id"), nullable=False, index=True)
    gap_id = db.Column(db.String(128))
    requirement_id = db.Column(db.String(64))
    element_number = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(512), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(32))
    severity = db.Column(db.String(20))
    priority = db.Column(db.String(20), nullable=False)
    # Priority: critical, high, medium, low
    assigned_to = db.Column(db.String(64))
    assigned_to_name = db.Column(db.String(128))
    due_date = db.Column(db.Date, nullable=False)
    estimated_hours = db.Column(db.Float, default=0)
    actual_hours = db.Column(db.Float, default=0)
    status = db.Column(db.String(20), default="pending")
    # Status: pending, in_progress, blocked, completed
    sort_order = db.Column(db.Integer, default=0)

    subtasks = db.relationship(
        "ActionSubtask",
        backref="task",
        order_by="ActionSubtask.sort_order",
        cascade="all, delete-orphan",
    )

    @classmethod
    def from_dict(cls, data):
        task = cls(
            id=data["id"],
            gap_id=data.get("gap_id"),
            requirement_id=data.get("requirement_id"),
            element_number=data["element_number"],
            title=data["title"],
            description=data.get("description", ""),
            category=data.get("category"),
            severity=data.get("severity"),
            priority=data["priority"],
            assigned_to=data.get("assigned_to"),
            assigned_to_name=data.get("assigned_to_name"),
            due_date=_date(data["due_date"]),
            estimated_hours=data["estimated_hours"],
            actual_hours=data.get("actual_hours", 0),
            status=data["status"],
            sort_order=data["sort_order"],
        )
        task.subtasks = [ActionSubtask.from_dict(s) for s in data.get("subtasks", [])]
        return task

    def to_dict(self):
        return {
            "id": self.id,
            "gap_id": self.gap_id,
            "requirement_id": self.requirement_id,
            "element_number": self.element_number,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "severity": self.severity,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "assigned_to_name": self.assigned_to_name,
            "due_date": self.due_date,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours,
            "status": self.status,
            "sort_order": self.sort_order,
            "subtasks": [s.to_dict() for s in self.subtasks],
        }

    def update_from_dict(self, data):
        self.status = data["status"]
        self.actual_hours = data.get("actual_hours", 0)
        subtasks = {s["id"]: s for s in data.get("subtasks", [])}
        for subtask in self.subtasks:
            subtask.completed = subtasks[subtask.id]["completed"]


class ActionSubtask(db.Model):
    __tablename__ = "action_subtasks"

    id = db.Column(db.String(32), primary_key=True)
    task_id = db.Column(db.String(32), db.ForeignKey("action_tasks.id"), nullable=False, index=True)
    title = db.Column(db.String(256), nullable=False)
    completed = db.Column(db.Boolean, default=False)
    due_date = db.Column(db.Date)
    estimated_hours = db.Column(db.Float, default=0)
    sort_order = db.Column(db.Integer, default=0)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data["id"],
            title=data["title"],
            completed=data.get("completed", False),
            due_date=_date(data.get("due_date")),
            estimated_hours=data.get("estimated_hours", 0),
            sort_order=data["sort_order"],
        )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "due_date": self.due_date,
            "estimated_hours": self.estimated_hours,
            "sort_order": self.sort_order,
        }
