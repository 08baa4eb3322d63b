"""
Exception hierarchy for the COR audit readiness engine.

- ComplianceError: base class; service-level failures surface as this
- EvidenceValidationError: a raw evidence record could not be parsed
- UnknownElementError: lookup of an element number outside the catalog
- ContractViolation: caller passed inputs that indicate a bug upstream
  (negative counts, target date before start, ...)
- PlanNotFoundError: a persisted action plan / task / subtask is missing
"""


class ComplianceError(Exception):
    """Base error for scoring, gap and action plan operations."""


class EvidenceValidationError(ComplianceError, ValueError):
    pass


class UnknownElementError(ComplianceError, LookupError):
    def __init__(self, element_number):
        self.element_number = element_number
        super().__init__(f"Unknown COR element: {element_number!r}")


class ContractViolation(ComplianceError, ValueError):
    pass


class PlanNotFoundError(ComplianceError, LookupError):
    pass
