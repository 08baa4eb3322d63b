"""
COR 2020 Element Catalog

Static reference data for the 14 audit elements of the Certificate of
Recognition (COR) safety program. Every element is scored against a small
set of evidence requirements.

Each element has:
- number: 1-14, unique
- name: element title as used by the certifying partner
- weight: relative importance multiplier used for the overall score
  (management system, hazard identification and hazard control weigh most)
- description: what the auditor expects to see
- requirements: list of evidence requirements

Each requirement has:
- id: unique identifier, "elem{number}_{slug}"
- description: requirement wording
- evidence_type: which kind of evidence record satisfies it
  ("document", "form_submission", "certification", "inspection", "training")
- category: remediation category, drives effort estimates and suggested
  document metadata (policy, procedure, safe_work_procedure, program, plan,
  emergency_plan, register, training, certification, record, form,
  inspection, minutes, report, drill)
- min_count: minimum number of current records required
  (0 = informational only, always satisfied)
- frequency: daily / weekly / monthly / quarterly / annual / as_needed
- severity: "critical" / "major" / "minor", weight of the requirement in
  the element score
- mandatory: whether a total absence of evidence blocks certification
- codes: form/document codes accepted as evidence (empty = any code)

Daily and weekly requirements are evaluated against the last 90 days of
records, everything else against the last 365 days.
"""

from dataclasses import dataclass, field

from cor_audit.errors import UnknownElementError

EVIDENCE_TYPES = ("document", "form_submission", "certification", "inspection", "training")

SEVERITY_LEVELS = ("critical", "major", "minor")

FREQUENCIES = ("daily", "weekly", "monthly", "quarterly", "annual", "as_needed")

SHORT_LOOKBACK_FREQUENCIES = ("daily", "weekly")


COR_ELEMENTS = [
    {
        "number": 1,
        "name": "Health & Safety Management System",
        "weight": 1.2,
        "description": "A written, signed health and safety policy with defined roles, objectives and regular management review.",
        "requirements": [
            {
                "id": "elem1_policy",
                "description": "Written H&S Policy signed by top management",
                "evidence_type": "document",
                "category": "policy",
                "min_count": 1,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("safety_policy", "policy_acknowledgment"),
            },
            {
                "id": "elem1_roles",
                "description": "Roles & Responsibilities documented for all levels",
                "evidence_type": "document",
                "category": "procedure",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("role_responsibility_matrix",),
            },
            {
                "id": "elem1_objectives",
                "description": "H&S objectives and targets established",
                "evidence_type": "document",
                "category": "plan",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("annual_safety_plan", "safety_objectives"),
            },
            {
                "id": "elem1_mgmt_review",
                "description": "Management review meetings (quarterly)",
                "evidence_type": "form_submission",
                "category": "minutes",
                "min_count": 4,
                "frequency": "quarterly",
                "severity": "critical",
                "codes": ("management_review", "safety_meeting_minutes", "annual_review"),
            },
        ],
    },
    {
        "number": 2,
        "name": "Hazard Identification & Assessment",
        "weight": 1.2,
        "description": "Hazards are identified, assessed and reported on an ongoing basis at every active jobsite.",
        "requirements": [
            {
                "id": "elem2_daily_ha",
                "description": "Daily hazard assessments for active jobsites",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 20,
                "frequency": "daily",
                "severity": "critical",
                "codes": ("hazard_assessment", "jha_form", "job_hazard_analysis"),
            },
            {
                "id": "elem2_reporting",
                "description": "Hazard reporting system accessible to all workers",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 5,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("hazard_reporting", "hazard_report", "safety_concern"),
            },
            {
                "id": "elem2_review",
                "description": "Monthly review of hazard assessments",
                "evidence_type": "form_submission",
                "category": "report",
                "min_count": 3,
                "frequency": "monthly",
                "severity": "major",
                "codes": ("hazard_review", "ha_summary", "monthly_safety_review"),
            },
            {
                "id": "elem2_controls",
                "description": "Hazards documented with control measures",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 10,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("hazard_control", "risk_assessment", "hazard_assessment"),
            },
        ],
    },
    {
        "number": 3,
        "name": "Hazard Control",
        "weight": 1.2,
        "description": "Identified hazards are controlled using the hierarchy of controls, with written safe work practices and job procedures.",
        "requirements": [
            {
                "id": "elem3_hierarchy",
                "description": "Hierarchy of controls applied to hazards",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 10,
                "frequency": "as_needed",
                "severity": "critical",
                "codes": ("hazard_control", "control_implementation", "risk_mitigation"),
            },
            {
                "id": "elem3_swp",
                "description": "Safe work practices documented",
                "evidence_type": "document",
                "category": "safe_work_procedure",
                "min_count": 5,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("swp_form", "safe_work_practice", "sop_acknowledgment"),
            },
            {
                "id": "elem3_sjp",
                "description": "Safe job procedures for critical tasks",
                "evidence_type": "document",
                "category": "procedure",
                "min_count": 5,
                "frequency": "annual",
                "severity": "major",
                "codes": ("sjp_form", "critical_task_analysis", "task_analysis"),
            },
            {
                "id": "elem3_verification",
                "description": "Control effectiveness verified",
                "evidence_type": "inspection",
                "category": "inspection",
                "min_count": 3,
                "frequency": "monthly",
                "severity": "major",
                "codes": ("control_verification", "workplace_inspection", "safety_audit"),
            },
        ],
    },
    {
        "number": 4,
        "name": "Competency & Training",
        "weight": 1.1,
        "description": "Workers are oriented, trained and assessed as competent for the tasks they perform.",
        "requirements": [
            {
                "id": "elem4_orientation",
                "description": "New worker orientation completed",
                "evidence_type": "training",
                "category": "training",
                "min_count": 5,
                "frequency": "as_needed",
                "severity": "critical",
                "codes": ("orientation_checklist", "new_hire_orientation", "worker_orientation"),
            },
            {
                "id": "elem4_competency",
                "description": "Competency assessments for critical tasks",
                "evidence_type": "certification",
                "category": "certification",
                "min_count": 5,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("competency_assessment", "skills_verification", "training_record"),
            },
            {
                "id": "elem4_matrix",
                "description": "Training matrix maintained",
                "evidence_type": "document",
                "category": "register",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("training_matrix", "training_plan"),
            },
            {
                "id": "elem4_records",
                "description": "Training records for all workers",
                "evidence_type": "training",
                "category": "record",
                "min_count": 10,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("training_record", "training_attendance", "certification_record"),
            },
        ],
    },
    {
        "number": 5,
        "name": "Workplace Behavior",
        "weight": 1.0,
        "description": "Company safety rules are documented, communicated and enforced; safe behavior is recognized.",
        "requirements": [
            {
                "id": "elem5_rules",
                "description": "Company safety rules documented",
                "evidence_type": "document",
                "category": "policy",
                "min_count": 1,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("safety_rules", "company_rules", "safety_handbook"),
            },
            {
                "id": "elem5_communication",
                "description": "Rules communicated to all workers",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 5,
                "frequency": "annual",
                "severity": "major",
                "codes": ("rule_acknowledgment", "safety_rules_sign_off", "orientation_checklist"),
            },
            {
                "id": "elem5_enforcement",
                "description": "Progressive discipline system documented",
                "evidence_type": "document",
                "category": "procedure",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("disciplinary_action", "progressive_discipline", "rule_violation_report"),
            },
            {
                "id": "elem5_recognition",
                "description": "Safety recognition program",
                "evidence_type": "form_submission",
                "category": "record",
                "min_count": 3,
                "frequency": "monthly",
                "severity": "minor",
                "mandatory": False,
                "codes": ("safety_recognition", "worker_recognition", "safety_award"),
            },
        ],
    },
    {
        "number": 6,
        "name": "Personal Protective Equipment",
        "weight": 1.0,
        "description": "PPE needs are assessed, equipment is issued, inspected and workers are trained in its use.",
        "requirements": [
            {
                "id": "elem6_assessment",
                "description": "PPE hazard assessment conducted",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 1,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("ppe_assessment", "ppe_hazard_assessment", "ppe_matrix"),
            },
            {
                "id": "elem6_issuance",
                "description": "PPE issuance documented",
                "evidence_type": "form_submission",
                "category": "record",
                "min_count": 10,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("ppe_issuance", "ppe_sign_out", "equipment_issuance"),
            },
            {
                "id": "elem6_training",
                "description": "PPE training provided",
                "evidence_type": "training",
                "category": "training",
                "min_count": 5,
                "frequency": "annual",
                "severity": "major",
                "codes": ("ppe_training", "training_record", "ppe_orientation"),
            },
            {
                "id": "elem6_inspection",
                "description": "PPE inspection records",
                "evidence_type": "inspection",
                "category": "inspection",
                "min_count": 3,
                "frequency": "monthly",
                "severity": "major",
                "codes": ("ppe_inspection", "equipment_inspection", "pre_use_inspection"),
            },
        ],
    },
    {
        "number": 7,
        "name": "Preventative Maintenance",
        "weight": 1.0,
        "description": "Tools, equipment and vehicles are maintained on a schedule and deficiencies are corrected.",
        "requirements": [
            {
                "id": "elem7_program",
                "description": "Preventative maintenance program documented",
                "evidence_type": "document",
                "category": "program",
                "min_count": 1,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("maintenance_program", "pm_schedule", "maintenance_plan"),
            },
            {
                "id": "elem7_schedule",
                "description": "Maintenance schedule maintained",
                "evidence_type": "form_submission",
                "category": "record",
                "min_count": 3,
                "frequency": "monthly",
                "severity": "major",
                "codes": ("maintenance_log", "maintenance_schedule", "equipment_maintenance"),
            },
            {
                "id": "elem7_inspection",
                "description": "Equipment inspections documented",
                "evidence_type": "inspection",
                "category": "inspection",
                "min_count": 12,
                "frequency": "weekly",
                "severity": "major",
                "codes": ("equipment_inspection", "pre_use_inspection", "vehicle_inspection"),
            },
            {
                "id": "elem7_deficiency",
                "description": "Deficiency correction records",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 3,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("deficiency_report", "equipment_repair", "maintenance_request"),
            },
        ],
    },
    {
        "number": 8,
        "name": "Training & Communication",
        "weight": 1.0,
        "description": "A formal training program, regular toolbox talks and evaluation of training effectiveness.",
        "requirements": [
            {
                "id": "elem8_program",
                "description": "Formal training program documented",
                "evidence_type": "document",
                "category": "program",
                "min_count": 1,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("training_program", "training_plan", "annual_training_schedule"),
            },
            {
                "id": "elem8_toolbox",
                "description": "Toolbox talks conducted regularly",
                "evidence_type": "form_submission",
                "category": "minutes",
                "min_count": 12,
                "frequency": "weekly",
                "severity": "critical",
                "codes": ("toolbox_talk", "safety_talk", "tailgate_meeting"),
            },
            {
                "id": "elem8_records",
                "description": "Training records maintained",
                "evidence_type": "training",
                "category": "record",
                "min_count": 10,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("training_record", "training_attendance", "training_sign_in"),
            },
            {
                "id": "elem8_evaluation",
                "description": "Training effectiveness evaluated",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 2,
                "frequency": "annual",
                "severity": "minor",
                "mandatory": False,
                "codes": ("training_evaluation", "competency_assessment", "training_feedback"),
            },
        ],
    },
    {
        "number": 9,
        "name": "Workplace Inspections",
        "weight": 1.0,
        "description": "Scheduled workplace inspections with worker participation and tracked corrective actions.",
        "requirements": [
            {
                "id": "elem9_schedule",
                "description": "Inspection schedule maintained",
                "evidence_type": "document",
                "category": "plan",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("inspection_schedule", "inspection_plan"),
            },
            {
                "id": "elem9_workplace",
                "description": "Regular workplace inspections conducted",
                "evidence_type": "inspection",
                "category": "inspection",
                "min_count": 12,
                "frequency": "weekly",
                "severity": "critical",
                "codes": ("workplace_inspection", "site_inspection", "safety_inspection"),
            },
            {
                "id": "elem9_corrective",
                "description": "Corrective actions tracked",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 5,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("corrective_action", "inspection_corrective_action", "action_item"),
            },
            {
                "id": "elem9_participation",
                "description": "Worker participation in inspections",
                "evidence_type": "inspection",
                "category": "inspection",
                "min_count": 3,
                "frequency": "monthly",
                "severity": "major",
                "codes": ("workplace_inspection", "joint_inspection", "jhsc_inspection"),
            },
        ],
    },
    {
        "number": 10,
        "name": "Incident Investigation",
        "weight": 1.1,
        "description": "Incidents and near misses are reported, investigated for root cause and followed up.",
        "requirements": [
            {
                "id": "elem10_procedure",
                "description": "Incident investigation procedure documented",
                "evidence_type": "document",
                "category": "procedure",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("investigation_procedure", "incident_policy"),
            },
            {
                "id": "elem10_reporting",
                "description": "Incident reporting system in place",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 3,
                "frequency": "as_needed",
                "severity": "critical",
                "codes": ("incident_report", "near_miss_report", "accident_report"),
            },
            {
                "id": "elem10_investigation",
                "description": "Incidents investigated with root cause analysis",
                "evidence_type": "form_submission",
                "category": "report",
                "min_count": 2,
                "frequency": "as_needed",
                "severity": "critical",
                "codes": ("incident_investigation", "root_cause_analysis", "investigation_report"),
            },
            {
                "id": "elem10_corrective",
                "description": "Corrective actions implemented",
                "evidence_type": "form_submission",
                "category": "form",
                "min_count": 3,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("corrective_action", "incident_followup", "action_closeout"),
            },
        ],
    },
    {
        "number": 11,
        "name": "Emergency Preparedness",
        "weight": 1.1,
        "description": "A written emergency response plan, practiced through drills, with trained workers and inspected equipment.",
        "requirements": [
            {
                "id": "elem11_plan",
                "description": "Written emergency response plan",
                "evidence_type": "document",
                "category": "emergency_plan",
                "min_count": 1,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("emergency_plan", "emergency_response_plan", "erp"),
            },
            {
                "id": "elem11_drills",
                "description": "Emergency drills conducted",
                "evidence_type": "form_submission",
                "category": "drill",
                "min_count": 2,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("emergency_drill", "fire_drill_log", "evacuation_drill"),
            },
            {
                "id": "elem11_training",
                "description": "Emergency training provided",
                "evidence_type": "certification",
                "category": "certification",
                "min_count": 5,
                "frequency": "annual",
                "severity": "major",
                "codes": ("emergency_training", "first_aid_training", "fire_safety_training"),
            },
            {
                "id": "elem11_equipment",
                "description": "Emergency equipment inspected",
                "evidence_type": "inspection",
                "category": "inspection",
                "min_count": 3,
                "frequency": "monthly",
                "severity": "major",
                "codes": ("fire_extinguisher_inspection", "first_aid_inspection", "emergency_equipment"),
            },
        ],
    },
    {
        "number": 12,
        "name": "Statistics & Records",
        "weight": 1.0,
        "description": "Safety statistics and injury records are kept, retained and analyzed for trends.",
        "requirements": [
            {
                "id": "elem12_tracking",
                "description": "Safety statistics tracked",
                "evidence_type": "form_submission",
                "category": "report",
                "min_count": 3,
                "frequency": "monthly",
                "severity": "critical",
                "codes": ("safety_statistics", "monthly_stats", "kpi_report"),
            },
            {
                "id": "elem12_injury_log",
                "description": "Injury log maintained",
                "evidence_type": "form_submission",
                "category": "record",
                "min_count": 1,
                "frequency": "as_needed",
                "severity": "major",
                "codes": ("injury_log", "first_aid_log", "wsib_form_7"),
            },
            {
                "id": "elem12_trends",
                "description": "Trend analysis conducted",
                "evidence_type": "form_submission",
                "category": "report",
                "min_count": 2,
                "frequency": "quarterly",
                "severity": "minor",
                "mandatory": False,
                "codes": ("trend_analysis", "quarterly_review", "safety_metrics"),
            },
            {
                "id": "elem12_records",
                "description": "Records retention system",
                "evidence_type": "document",
                "category": "procedure",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("records_retention", "document_control"),
            },
        ],
    },
    {
        "number": 13,
        "name": "Regulatory Awareness",
        "weight": 1.0,
        "description": "Applicable legislation is identified, accessible to workers and tracked for changes.",
        "requirements": [
            {
                "id": "elem13_awareness",
                "description": "Regulatory requirements identified",
                "evidence_type": "document",
                "category": "register",
                "min_count": 1,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("compliance_checklist", "regulatory_register", "legal_requirements"),
            },
            {
                "id": "elem13_access",
                "description": "Legislation accessible to workers",
                "evidence_type": "inspection",
                "category": "inspection",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("legislation_access", "regulation_posting"),
            },
            {
                "id": "elem13_updates",
                "description": "Regulatory updates tracked",
                "evidence_type": "form_submission",
                "category": "record",
                "min_count": 2,
                "frequency": "quarterly",
                "severity": "major",
                "codes": ("regulatory_update_log", "legislation_review", "compliance_update"),
            },
            {
                "id": "elem13_compliance",
                "description": "Compliance verified",
                "evidence_type": "form_submission",
                "category": "report",
                "min_count": 1,
                "frequency": "annual",
                "severity": "major",
                "codes": ("compliance_audit", "regulatory_inspection", "compliance_review"),
            },
        ],
    },
    {
        "number": 14,
        "name": "Management System Review",
        "weight": 1.0,
        "description": "Management reviews the safety system annually, holds regular meetings and drives continuous improvement.",
        "requirements": [
            {
                "id": "elem14_review",
                "description": "Annual management system review",
                "evidence_type": "form_submission",
                "category": "report",
                "min_count": 1,
                "frequency": "annual",
                "severity": "critical",
                "codes": ("annual_review", "management_review", "system_review"),
            },
            {
                "id": "elem14_meetings",
                "description": "Regular safety meetings held",
                "evidence_type": "form_submission",
                "category": "minutes",
                "min_count": 6,
                "frequency": "monthly",
                "severity": "critical",
                "codes": ("safety_meeting_minutes", "jhsc_meeting", "safety_committee"),
            },
            {
                "id": "elem14_improvement",
                "description": "Continuous improvement documented",
                "evidence_type": "form_submission",
                "category": "plan",
                "min_count": 2,
                "frequency": "quarterly",
                "severity": "major",
                "codes": ("improvement_plan", "action_plan", "corrective_action"),
            },
            {
                "id": "elem14_commitment",
                "description": "Management commitment demonstrated",
                "evidence_type": "form_submission",
                "category": "record",
                "min_count": 2,
                "frequency": "annual",
                "severity": "minor",
                "mandatory": False,
                "codes": ("management_walkthrough", "leadership_tour", "visible_leadership"),
            },
        ],
    },
]


@dataclass(frozen=True)
class Requirement:
    id: str
    element_number: int
    description: str
    evidence_type: str
    category: str
    min_count: int = 1
    frequency: str = "annual"
    severity: str = "major"
    mandatory: bool = True
    codes: tuple = ()
    lookback_days: int = 365

    def __post_init__(self):
        if self.evidence_type not in EVIDENCE_TYPES:
            raise ValueError(f"{self.id}: unknown evidence type {self.evidence_type!r}")
        if self.severity not in SEVERITY_LEVELS:
            raise ValueError(f"{self.id}: unknown severity {self.severity!r}")
        if self.min_count < 0:
            raise ValueError(f"{self.id}: min_count must not be negative")


@dataclass(frozen=True)
class Element:
    number: int
    name: str
    weight: float = 1.0
    requirements: tuple = field(default_factory=tuple)
    description: str = ""


class ElementCatalog:
    """Immutable, number-ordered collection of elements."""

    def __init__(self, elements):
        ordered = sorted(elements, key=lambda e: e.number)
        numbers = set()
        requirement_ids = set()
        for element in ordered:
            if element.number in numbers:
                raise ValueError(f"Duplicate element number {element.number}")
            numbers.add(element.number)
            for req in element.requirements:
                if req.id in requirement_ids:
                    raise ValueError(f"Duplicate requirement id {req.id}")
                if req.element_number != element.number:
                    raise ValueError(
                        f"Requirement {req.id} belongs to element {req.element_number}, "
                        f"not {element.number}"
                    )
                requirement_ids.add(req.id)
        self._elements = tuple(ordered)
        self._by_number = {e.number: e for e in ordered}

    def get_element(self, number):
        try:
            return self._by_number[number]
        except (KeyError, TypeError):
            raise UnknownElementError(number) from None

    def get_all_elements(self):
        return list(self._elements)

    def weight_for(self, number):
        return self.get_element(number).weight

    def __contains__(self, number):
        return number in self._by_number

    def __iter__(self):
        return iter(self._elements)

    def __len__(self):
        return len(self._elements)


def _lookback_for(frequency):
    return 90 if frequency in SHORT_LOOKBACK_FREQUENCIES else 365


def element_from_dict(data):
    """Build an Element (with its Requirements) from a catalog dict entry."""
    number = data["number"]
    requirements = tuple(
        Requirement(
            id=r["id"],
            element_number=number,
            description=r["description"],
            evidence_type=r["evidence_type"],
            category=r["category"],
            min_count=r.get("min_count", 1),
            frequency=r.get("frequency", "annual"),
            severity=r.get("severity", "major"),
            mandatory=r.get("mandatory", True),
            codes=tuple(r.get("codes", ())),
            lookback_days=r.get("lookback_days", _lookback_for(r.get("frequency", "annual"))),
        )
        for r in data.get("requirements", [])
    )
    return Element(
        number=number,
        name=data["name"],
        weight=data.get("weight", 1.0),
        requirements=requirements,
        description=data.get("description", ""),
    )


def build_default_catalog():
    """Build the COR 2020 catalog from COR_ELEMENTS."""
    return ElementCatalog(element_from_dict(e) for e in COR_ELEMENTS)


DEFAULT_CATALOG = build_default_catalog()


def get_element(number):
    """Look up a single COR element by number."""
    return DEFAULT_CATALOG.get_element(number)


def get_all_elements():
    """All COR elements ordered by number."""
    return DEFAULT_CATALOG.get_all_elements()
