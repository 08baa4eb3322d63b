"""
Compliance Scoring Engine

Turns aggregated evidence counts into a score per COR element and an overall
weighted audit-readiness score.

Per element:
- total_points = sum of the severity weights of its requirements
- earned_points = sum of weight * min(found / required, 1) (partial credit)
- percentage = round(earned / total * 100), 100 for an element with no
  requirements

Status thresholds (same for elements and the overall score):
- compliant: 80% and above
- partial: 50% to 79%
- non_compliant: below 50%

Overall: weighted mean of the element percentages using the catalog weights.
All intermediate arithmetic is exact; round_half_up() is applied only to the
published percentages.
"""

import logging
import math
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from fractions import Fraction
from types import MappingProxyType

from cor_audit.errors import ContractViolation
from cor_audit.gaps import GapDetector

logger = logging.getLogger(__name__)

SEVERITY_WEIGHTS = MappingProxyType({"critical": 10, "major": 5, "minor": 2})

COMPLIANT_THRESHOLD = 80
PARTIAL_THRESHOLD = 50


def round_half_up(value):
    """Round to the nearest integer, halves away from zero for positives."""
    if isinstance(value, Fraction):
        return math.floor(value + Fraction(1, 2))
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify_status(percentage):
    if percentage >= COMPLIANT_THRESHOLD:
        return "compliant"
    if percentage >= PARTIAL_THRESHOLD:
        return "partial"
    return "non_compliant"


def _exact(value):
    return value if isinstance(value, Fraction) else Fraction(str(value))


class ScoringEngine:
    """Scores elements and overall compliance.

    severity_weights: points per requirement severity
    gap_detector: emits the gaps attached to each element score
    recommendation_count: how many lowest-scoring elements to recommend
    """

    def __init__(self, severity_weights=SEVERITY_WEIGHTS, gap_detector=None, recommendation_count=5):
        missing = [s for s in ("critical", "major", "minor") if s not in severity_weights]
        if missing:
            raise ValueError(f"severity_weights missing {missing}")
        self.severity_weights = MappingProxyType(dict(severity_weights))
        self.gap_detector = gap_detector or GapDetector()
        self.recommendation_count = recommendation_count

    # ── Per element ──────────────────────────────────────────────────

    def _requirement_result(self, result):
        req = result.requirement
        if result.found_count < 0:
            raise ContractViolation(
                f"Requirement {req.id}: found_count must not be negative (got {result.found_count})"
            )
        points = _exact(self.severity_weights[req.severity])
        if req.min_count == 0:
            earned = points
        else:
            earned = points * min(Fraction(result.found_count, req.min_count), Fraction(1))
        return earned, {
            "requirement_id": req.id,
            "description": req.description,
            "evidence_type": req.evidence_type,
            "category": req.category,
            "severity": req.severity,
            "mandatory": req.mandatory,
            "frequency": req.frequency,
            "required_count": req.min_count,
            "found_count": result.found_count,
            "points": float(points),
            "earned_points": round(float(earned), 2),
            "met": result.found_count >= req.min_count,
            "evidence": [r.to_dict() for r in result.matched_evidence],
        }

    def score_element(self, element, results, as_of, documents=None):
        """Score one element from its requirements' aggregation results."""
        by_id = {r.requirement.id: r for r in results}
        total = Fraction(0)
        earned = Fraction(0)
        requirement_results = []
        evidence = {}
        for req in element.requirements:
            res = by_id[req.id]
            req_earned, req_result = self._requirement_result(res)
            total += _exact(self.severity_weights[req.severity])
            earned += req_earned
            requirement_results.append(req_result)
            for record in res.matched_evidence:
                evidence.setdefault((record.type, record.reference_id), record.to_dict())

        if total == 0:
            percentage = 100
        else:
            percentage = round_half_up(earned / total * 100)
        documents = documents or {}

        score = {
            "element_number": element.number,
            "element_name": element.name,
            "weight": element.weight,
            "total_points": float(total),
            "earned_points": round(float(earned), 2),
            "percentage": percentage,
            "status": classify_status(percentage),
            "evaluated_on": as_of.isoformat(),
            "documents_found": documents.get("found", 0),
            "documents_matched": documents.get("matched", len(evidence)),
            "requirements": requirement_results,
            "evidence": list(evidence.values()),
            "gaps": [],
        }
        score["gaps"] = self.gap_detector.detect_element_gaps(score)
        return score

    def score_elements(self, aggregation):
        """ElementScore for every catalog element, ordered by element number."""
        scores = []
        for element in aggregation.catalog:
            scores.append(
                self.score_element(
                    element,
                    aggregation.for_element(element.number),
                    aggregation.as_of,
                    aggregation.documents_by_element.get(element.number),
                )
            )
        return scores

    # ── Overall ──────────────────────────────────────────────────────

    def _overall_percentage(self, element_scores):
        scored = [s for s in element_scores if s["total_points"] > 0]
        if not scored:
            logger.warning("No scorable requirements in catalog; overall compliance defaults to 0%")
            return 0
        weight_sum = sum(_exact(s["weight"]) for s in element_scores)
        if weight_sum <= 0:
            logger.warning("Element weights sum to zero; overall compliance defaults to 0%")
            return 0
        weighted = sum(_exact(s["weight"]) * s["percentage"] for s in element_scores)
        return round_half_up(weighted / weight_sum)

    def _recommendations(self, element_scores, critical_count):
        needing_work = sorted(
            (s for s in element_scores if s["percentage"] < 100),
            key=lambda s: (s["percentage"], s["element_number"]),
        )
        recommendations = [
            f"Address gaps in Element {s['element_number']} ({s['element_name']}) — currently at {s['percentage']}%."
            for s in needing_work[: self.recommendation_count]
        ]
        if critical_count:
            recommendations.append(
                f"Resolve {critical_count} critical gap{'s' if critical_count != 1 else ''} before scheduling the audit."
            )
        return recommendations

    def score_overall(self, element_scores, total_documents=None, matched_documents=None):
        element_scores = list(element_scores)
        gaps = [g for s in element_scores for g in s.get("gaps", [])]
        critical = [g for g in gaps if g["severity"] == "critical"]
        major = [g for g in gaps if g["severity"] == "major"]
        minor = [g for g in gaps if g["severity"] == "minor"]

        overall_percentage = self._overall_percentage(element_scores)
        evaluated = sorted({s["evaluated_on"] for s in element_scores})

        if total_documents is None:
            total_documents = sum(s.get("documents_found", 0) for s in element_scores)
        if matched_documents is None:
            matched_documents = sum(s.get("documents_matched", 0) for s in element_scores)

        return {
            "total_documents": total_documents,
            "matched_documents": matched_documents,
            "overall_percentage": overall_percentage,
            "overall_status": classify_status(overall_percentage),
            "ready_for_audit": overall_percentage >= COMPLIANT_THRESHOLD and not critical,
            "critical_gaps": critical,
            "major_gaps": major,
            "minor_gaps": minor,
            "critical_gaps_count": len(critical),
            "major_gaps_count": len(major),
            "minor_gaps_count": len(minor),
            "total_gaps_count": len(gaps),
            "estimated_hours_to_ready": sum(g["estimated_effort_hours"] for g in gaps),
            "recommendations": self._recommendations(element_scores, len(critical)),
            "evaluated_on": evaluated[-1] if evaluated else date.today().isoformat(),
        }


def score_elements(aggregation, engine=None):
    return (engine or ScoringEngine()).score_elements(aggregation)


def score_overall(element_scores, engine=None):
    return (engine or ScoringEngine()).score_overall(element_scores)
