"""
Timeline Projector

Projects when a company will be audit ready from its current scores and the
remaining gap effort, using the same PhaseScheduler and element ordering as
the action plan generator so the projected dates agree.

Milestones are placed at fixed fractions of the projected timeline:
- Critical Gaps Resolved: 30%
- Documentation Complete: 60%
- Internal Mock Audit: 85%
- Audit Ready: 100%
"""

import logging
import math
from datetime import date, timedelta
from fractions import Fraction

from cor_audit.scheduling import PhaseScheduler, element_workloads, fold_into_phases

logger = logging.getLogger(__name__)


def critical_path_status(percentage, has_critical_gaps):
    if percentage >= 100:
        return "completed"
    if has_critical_gaps:
        return "blocked"
    if percentage > 0:
        return "in_progress"
    return "pending"


def milestone_status(is_complete, is_in_progress):
    if is_complete:
        return "completed"
    if is_in_progress:
        return "upcoming"
    return "at_risk"


class TimelineProjector:
    def __init__(self, scheduler=None, max_entries=8):
        self.scheduler = scheduler or PhaseScheduler()
        self.max_entries = max_entries

    def _critical_path(self, element_scores, today):
        gaps = [g for s in element_scores for g in s.get("gaps", [])]
        groups = element_workloads(gaps)
        phase_groups = fold_into_phases(groups, self.max_entries) if groups else []
        slots = self.scheduler.schedule([sum(g["hours"] for g in pg) for pg in phase_groups], today)

        percentages = {s["element_number"]: s["percentage"] for s in element_scores}
        entries = []
        previous = None
        for pg, slot in zip(phase_groups, slots):
            lead = pg[0]
            entry_id = f"cp-{lead['element_number']}"
            if len(pg) == 1:
                task = f"Complete Element {lead['element_number']}: {lead['element_name']}"
            else:
                task = "Complete Elements " + ", ".join(str(g["element_number"]) for g in pg)
            lowest = min(percentages.get(g["element_number"], g["percentage"]) for g in pg)
            entries.append({
                "id": entry_id,
                "task": task,
                "element_number": lead["element_number"],
                "element_numbers": [g["element_number"] for g in pg],
                "dependency": previous,
                "duration": slot.duration_days,
                "start_date": slot.start_date,
                "end_date": slot.end_date,
                "status": critical_path_status(lowest, any(g["critical_count"] for g in pg)),
                "gaps_count": sum(len(g["gaps"]) for g in pg),
                "hours_needed": slot.hours,
            })
            previous = entry_id
        return entries, self.scheduler.span_days(slots)

    def _milestone_date(self, today, total_days, fraction):
        return today + timedelta(days=math.ceil(total_days * fraction))

    def project(self, overall, element_scores, today=None):
        today = today or date.today()
        element_scores = list(element_scores)
        critical_path, total_days = self._critical_path(element_scores, today)
        pct = overall["overall_percentage"]
        critical_count = overall.get("critical_gaps_count", len(overall.get("critical_gaps", [])))
        ready = overall.get("ready_for_audit", pct >= 80 and critical_count == 0)
        ready_date = today + timedelta(days=total_days)

        critical_elements = [
            s for s in element_scores if any(g["severity"] == "critical" for g in s.get("gaps", []))
        ]
        milestones = [
            {
                "id": "ms-critical",
                "name": "Critical Gaps Resolved",
                "date": self._milestone_date(today, total_days, Fraction(3, 10)),
                "status": milestone_status(critical_count == 0, pct >= 50),
                "tasks": [f"Element {s['element_number']}: {s['element_name']}" for s in critical_elements[:3]],
                "description": f"Address all {critical_count} critical gaps to establish baseline compliance.",
            },
            {
                "id": "ms-documentation",
                "name": "Documentation Complete",
                "date": self._milestone_date(today, total_days, Fraction(6, 10)),
                "status": milestone_status(pct >= 70, pct >= 50),
                "tasks": ["All policies updated", "Forms in regular use", "Training records current"],
                "description": "Complete all required documentation and establish routine completion habits.",
            },
            {
                "id": "ms-mock-audit",
                "name": "Internal Mock Audit",
                "date": self._milestone_date(today, total_days, Fraction(85, 100)),
                "status": milestone_status(pct >= 80, pct >= 70),
                "tasks": ["Self-assessment complete", "Interview practice done", "Final gaps identified"],
                "description": "Conduct internal audit simulation to identify any remaining issues.",
            },
            {
                "id": "ms-ready",
                "name": "Audit Ready",
                "date": ready_date,
                "status": milestone_status(ready, pct >= 80),
                "tasks": ["80%+ score achieved", "Zero critical gaps", "Audit package prepared"],
                "description": "Ready to schedule and pass the official COR audit.",
            },
        ]

        element_progress = [
            {
                "element": s["element_number"],
                "name": s["element_name"],
                "percentage": s["percentage"],
                "status": s["status"],
                "weight": s.get("weight", 1.0),
                "gaps_count": len(s.get("gaps", [])),
                "critical_gaps": sum(1 for g in s.get("gaps", []) if g["severity"] == "critical"),
            }
            for s in element_scores
        ]

        logger.info(f"Projected audit readiness in {total_days} days ({pct}% today)")
        return {
            "current_readiness": pct,
            "projected_ready_date": ready_date,
            "total_days_to_ready": total_days,
            "total_hours_needed": sum(e["hours_needed"] for e in critical_path),
            "critical_path": critical_path,
            "milestones": milestones,
            "element_progress": element_progress,
            "ready_for_audit": ready,
        }


def project_timeline(overall, element_scores, today=None, projector=None):
    return (projector or TimelineProjector()).project(overall, element_scores, today=today)
