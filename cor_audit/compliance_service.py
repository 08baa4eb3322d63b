"""
Compliance service: wires the scoring pipeline to its collaborators.

- Evidence source: any callable (company_id, as_of) -> list of evidence records
- Personnel source: active TeamMember rows with a planning role
- Persistence sink: plan_store (action plans) and ScoreSnapshot (score cache)

Engine settings come from the Flask config (COR_* keys). Unexpected failures
are logged with the traceback and surfaced as a generic ComplianceError;
caller-contract violations propagate unchanged.
"""

import logging
from datetime import datetime, time, timedelta, timezone

from flask import current_app

from cor_audit import db
from cor_audit.action_plan import ActionPlanGenerator
from cor_audit.aggregator import aggregate_evidence
from cor_audit.cor_elements import DEFAULT_CATALOG
from cor_audit.errors import ComplianceError, ContractViolation
from cor_audit.gaps import GapDetector
from cor_audit.models import ScoreSnapshot, TeamMember
from cor_audit.plan_store import save_plan
from cor_audit.scheduling import PhaseScheduler
from cor_audit.scoring import ScoringEngine
from cor_audit.timeline import TimelineProjector

logger = logging.getLogger(__name__)

PLANNING_ROLES = ("admin", "supervisor", "internal_auditor")


def _scheduler():
    cfg = current_app.config
    return PhaseScheduler(
        hours_per_day=cfg.get("COR_WORKDAY_HOURS", 8),
        overlap=cfg.get("COR_PHASE_OVERLAP", 0.3),
    )


def scoring_engine():
    detector = GapDetector(expiry_lead_days=current_app.config.get("COR_EXPIRY_LEAD_DAYS", 30))
    return ScoringEngine(gap_detector=detector)


def plan_generator(catalog=None):
    cfg = current_app.config
    return ActionPlanGenerator(
        scheduler=_scheduler(),
        max_phases=cfg.get("COR_MAX_PHASES", 8),
        weekly_hours_available=cfg.get("COR_WEEKLY_HOURS_AVAILABLE", 10),
        catalog=catalog or DEFAULT_CATALOG,
    )


def timeline_projector():
    return TimelineProjector(scheduler=_scheduler(), max_entries=current_app.config.get("COR_MAX_PHASES", 8))


def _utc_now():
    return datetime.now(timezone.utc)


def _next_midnight(now):
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=timezone.utc)


# ── Scoring ──────────────────────────────────────────────────────────────


def calculate_compliance(company_id, evidence, as_of=None, catalog=None):
    """Score a company's evidence: {"element_scores": [...], "overall": {...}}."""
    try:
        engine = scoring_engine()
        aggregation = aggregate_evidence(catalog or DEFAULT_CATALOG, evidence, as_of=as_of, company_id=company_id)
        element_scores = engine.score_elements(aggregation)
        overall = engine.score_overall(
            element_scores,
            total_documents=aggregation.total_documents,
            matched_documents=aggregation.matched_documents,
        )
    except ContractViolation:
        raise
    except Exception as e:
        logger.exception(f"Compliance calculation failed for company {company_id}: {e}")
        raise ComplianceError("Failed to calculate compliance score") from e

    logger.info(
        f"Company {company_id}: {overall['overall_percentage']}% ({overall['overall_status']}), "
        f"{overall['total_gaps_count']} gaps"
    )
    return {"company_id": company_id, "element_scores": element_scores, "overall": overall}


def _cache_score(company_id, score, now):
    try:
        snapshot = ScoreSnapshot.query.filter_by(company_id=company_id).first()
        if snapshot is None:
            snapshot = ScoreSnapshot(company_id=company_id)
            db.session.add(snapshot)
        snapshot.score_data = score
        snapshot.calculated_at = now
        snapshot.expires_at = _next_midnight(now)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to cache compliance score for company {company_id}: {e}")


def get_or_calculate_score(company_id, evidence_source, as_of=None, now=None):
    """Cached score for today, recalculated after midnight.

    A score for an explicit past/future as_of date is never cached.
    """
    now = now or _utc_now()
    use_cache = current_app.config.get("COR_SCORE_CACHE_ENABLED", True) and (
        as_of is None or as_of == now.date()
    )
    if use_cache:
        snapshot = ScoreSnapshot.query.filter_by(company_id=company_id).first()
        if snapshot is not None and not snapshot.is_expired(now):
            return snapshot.score_data

    as_of = as_of or now.date()
    score = calculate_compliance(company_id, evidence_source(company_id, as_of), as_of=as_of)
    if use_cache:
        _cache_score(company_id, score, now)
    return score


def invalidate_score(company_id):
    deleted = ScoreSnapshot.query.filter_by(company_id=company_id).delete()
    db.session.commit()
    return deleted


# ── Planning ─────────────────────────────────────────────────────────────


def get_personnel(company_id):
    members = (
        TeamMember.query.filter_by(company_id=company_id, is_active=True)
        .filter(TeamMember.role.in_(PLANNING_ROLES))
        .order_by(TeamMember.id)
        .all()
    )
    return [m.to_person() for m in members]


def _all_gaps(score):
    overall = score["overall"]
    return overall["critical_gaps"] + overall["major_gaps"] + overall["minor_gaps"]


def generate_company_plan(company_id, evidence_source, target_date=None,
                          estimated_hours_budget=None, today=None, now=None):
    """Generate, persist and return a new action plan for a company.

    today defaults to the UTC date of now, the same clock the score cache uses.
    """
    now = now or _utc_now()
    today = today or now.date()
    target_date = target_date or today + timedelta(days=current_app.config.get("COR_PLAN_TARGET_DAYS", 90))
    try:
        score = get_or_calculate_score(company_id, evidence_source, as_of=today, now=now)
        plan = plan_generator().generate(
            _all_gaps(score),
            get_personnel(company_id),
            target_date,
            estimated_hours_budget=estimated_hours_budget,
            company_id=company_id,
            start_date=today,
        )
        record = save_plan(plan)
    except ContractViolation:
        raise
    except Exception as e:
        logger.exception(f"Action plan generation failed for company {company_id}: {e}")
        raise ComplianceError("Failed to generate action plan") from e
    return record.to_dict()


def project_company_timeline(company_id, evidence_source, today=None, now=None):
    now = now or _utc_now()
    today = today or now.date()
    score = get_or_calculate_score(company_id, evidence_source, as_of=today, now=now)
    return timeline_projector().project(score["overall"], score["element_scores"], today=today)
