"""
Gap Detector

Emits one Gap for every requirement that is not fully satisfied.

Severity:
- critical: no evidence at all for a mandatory requirement
- major: some evidence, but fewer records than required (or none for an
  optional requirement)
- minor: enough records, but some expire within the lead time so fewer
  than required will still be current

Effort is looked up per requirement category and multiplied by the number of
missing records (floor 1 hour). Suggested title/folder/document type come
from the same category so remediation documents land in the right place of
the document registry.
"""

import math
from datetime import date, timedelta
from fractions import Fraction
from types import MappingProxyType

from cor_audit.errors import ContractViolation

SEVERITY_ORDER = {"critical": 0, "major": 1, "minor": 2}

# Hours to produce one missing instance of each category
EFFORT_HOURS = MappingProxyType({
    "policy": 4,
    "procedure": 6,
    "safe_work_procedure": 4,
    "program": 6,
    "plan": 8,
    "emergency_plan": 8,
    "register": 4,
    "training": 8,
    "certification": 2,
    "record": 1,
    "form": 1,
    "inspection": 2,
    "minutes": 1,
    "report": 3,
    "drill": 4,
})

# category -> (title label, registry folder, document type)
DOCUMENT_MAPPING = MappingProxyType({
    "policy": ("Policy", "POL", "POL"),
    "procedure": ("Procedure", "PRC", "PRC"),
    "safe_work_procedure": ("Safe Work Procedure", "SWP", "SWP"),
    "program": ("Program Manual", "MAN", "MAN"),
    "plan": ("Plan", "PLN", "PLN"),
    "emergency_plan": ("Emergency Response Plan", "EMR", "PLN"),
    "register": ("Register", "LEG", "REG"),
    "training": ("Training Record", "TRN", "TRN"),
    "certification": ("Certificate", "CRT", "CRT"),
    "record": ("Record", "REC", "FRM"),
    "form": ("Form", "FRM", "FRM"),
    "inspection": ("Inspection Report", "INS", "RPT"),
    "minutes": ("Meeting Minutes", "MIN", "MIN"),
    "report": ("Report", "RPT", "RPT"),
    "drill": ("Drill Report", "EMR", "RPT"),
})

DEFAULT_DOCUMENT = ("Document", "DOC", "DOC")

ACTIONS = {
    "policy": "Draft, sign and post",
    "procedure": "Write and approve",
    "safe_work_procedure": "Write and approve",
    "program": "Document",
    "plan": "Prepare",
    "emergency_plan": "Prepare and communicate",
    "register": "Compile",
    "training": "Deliver and record",
    "certification": "Obtain",
    "record": "Record",
    "form": "Complete",
    "inspection": "Conduct and document",
    "minutes": "Hold and minute",
    "report": "Prepare",
    "drill": "Conduct and evaluate",
}


class GapDetector:
    """Detects gaps from element scores.

    effort_hours: hours per missing instance, by category
    document_mapping: category -> (label, folder, document type)
    expiry_lead_days: evidence expiring within this many days is stale
    default_effort_hours: used for categories missing from effort_hours
    """

    def __init__(self, effort_hours=EFFORT_HOURS, document_mapping=DOCUMENT_MAPPING,
                 expiry_lead_days=30, default_effort_hours=4):
        if expiry_lead_days < 0:
            raise ValueError("expiry_lead_days must not be negative")
        self.effort_hours = MappingProxyType(dict(effort_hours))
        self.document_mapping = MappingProxyType(dict(document_mapping))
        self.expiry_lead_days = expiry_lead_days
        self.default_effort_hours = default_effort_hours

    def estimate_effort(self, category, missing_count):
        base = Fraction(str(self.effort_hours.get(category, self.default_effort_hours)))
        return max(1, math.ceil(base * missing_count))

    def _fresh_count(self, evidence, as_of):
        horizon = as_of + timedelta(days=self.expiry_lead_days)
        fresh = 0
        for record in evidence:
            expiry = record.get("expiry_date")
            if expiry is None or date.fromisoformat(expiry) > horizon:
                fresh += 1
        return fresh

    def _classify(self, req, as_of):
        """Return (severity, effective found count) or None when no gap."""
        found = req["found_count"]
        required = req["required_count"]
        if found < 0 or required < 0:
            raise ContractViolation(
                f"Requirement {req['requirement_id']}: counts must not be negative "
                f"(found {found}, required {required})"
            )
        if found < required:
            if found == 0 and req["mandatory"]:
                return "critical", found
            return "major", found
        if required == 0:
            return None
        fresh = self._fresh_count(req["evidence"], as_of)
        if fresh < required:
            return "minor", fresh
        return None

    def _describe(self, severity, req, found):
        required = req["required_count"]
        if severity == "critical":
            return f"No evidence found: {req['description']}"
        if severity == "major":
            return f"Only {found} of {required} required records found: {req['description']}"
        expiring = req["found_count"] - found
        return (
            f"{expiring} record{'s' if expiring != 1 else ''} expiring within "
            f"{self.expiry_lead_days} days: {req['description']}"
        )

    def _action(self, severity, req, missing):
        description = req["description"]
        if severity == "minor":
            return f"Renew expiring evidence: {description}"
        verb = ACTIONS.get(req["category"], "Provide evidence for")
        if missing > 1:
            return f"{verb} {missing} more: {description}"
        return f"{verb}: {description}"

    def detect_element_gaps(self, score):
        as_of = date.fromisoformat(score["evaluated_on"])
        gaps = []
        for req in score["requirements"]:
            classified = self._classify(req, as_of)
            if classified is None:
                continue
            severity, found = classified
            required = req["required_count"]
            missing = required - found
            label, folder, doc_type = self.document_mapping.get(req["category"], DEFAULT_DOCUMENT)
            gaps.append({
                "gap_id": f"gap-{req['requirement_id']}",
                "requirement_id": req["requirement_id"],
                "requirement_description": req["description"],
                "element_number": score["element_number"],
                "element_name": score["element_name"],
                "element_weight": score["weight"],
                "element_percentage": score["percentage"],
                "severity": severity,
                "category": req["category"],
                "description": self._describe(severity, req, found),
                "action_required": self._action(severity, req, missing),
                "estimated_effort_hours": self.estimate_effort(req["category"], missing),
                "found_count": found,
                "required_count": required,
                "suggested_title": f"{label}: {req['description']}",
                "suggested_folder": folder,
                "suggested_document_type": doc_type,
            })
        return gaps

    def detect_gaps(self, element_scores):
        """All gaps across elements, most severe first, then by element number."""
        gaps = [g for score in element_scores for g in self.detect_element_gaps(score)]
        return sorted(gaps, key=lambda g: (SEVERITY_ORDER[g["severity"]], g["element_number"]))


def detect_gaps(element_scores, detector=None):
    return (detector or GapDetector()).detect_gaps(element_scores)
