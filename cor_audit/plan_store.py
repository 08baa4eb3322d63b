"""
Action plan persistence.

Plans are stored as a plan -> phase -> task -> subtask tree. A company has at
most one active plan: saving a new plan soft-cancels the previous one in the
same transaction. Mutations load the tree, apply the helpers from
cor_audit.action_plan, and write the recalculated state back.
"""

import logging

from cor_audit import db
from cor_audit import action_plan as plans
from cor_audit.errors import PlanNotFoundError
from cor_audit.models import ActionPlan

logger = logging.getLogger(__name__)


def save_plan(plan):
    """Persist a generated plan, superseding the company's active plan."""
    company_id = plan.get("company_id")
    superseded = ActionPlan.query.filter_by(company_id=company_id, status="active").all()
    for old in superseded:
        old.status = "cancelled"
        logger.info(f"Action plan {old.id} superseded by {plan['id']} for company {company_id}")

    record = ActionPlan.from_dict(plan)
    db.session.add(record)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return record


def get_active_plan(company_id):
    return (
        ActionPlan.query.filter_by(company_id=company_id, status="active")
        .order_by(ActionPlan.created_at.desc())
        .first()
    )


def load_plan(plan_id):
    record = db.session.get(ActionPlan, plan_id)
    if record is None:
        raise PlanNotFoundError(f"Action plan {plan_id} not found")
    return record


def _mutate(plan_id, mutation):
    record = load_plan(plan_id)
    data = record.to_dict()
    mutation(data)
    record.update_from_dict(data)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return record.to_dict()


def set_task_status(plan_id, task_id, status, actual_hours=None):
    return _mutate(plan_id, lambda plan: plans.set_task_status(plan, task_id, status, actual_hours))


def complete_task(plan_id, task_id, actual_hours=None):
    return _mutate(plan_id, lambda plan: plans.complete_task(plan, task_id, actual_hours))


def toggle_subtask(plan_id, task_id, subtask_id, completed=True):
    return _mutate(plan_id, lambda plan: plans.complete_subtask(plan, task_id, subtask_id, completed))


def cancel_plan(plan_id):
    return _mutate(plan_id, plans.cancel_plan)
