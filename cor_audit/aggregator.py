"""
Evidence Aggregator

Groups a company's evidence records per element requirement and counts the
records that satisfy each one as of an evaluation date.

A record satisfies a requirement when:
- its type matches the requirement's evidence type
- it is tagged with the requirement's element
- it is current (valid status, not dated after the evaluation date, not expired)
- undated-expiry records fall inside the requirement's lookback window
- if both the record and the requirement carry codes, the codes match

Counting is per requirement: one record tagged with several elements counts
independently toward each of them.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, timedelta

from cor_audit.cor_elements import ElementCatalog
from cor_audit.errors import EvidenceValidationError
from cor_audit.evidence import parse_evidence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationResult:
    element_number: int
    requirement: object
    found_count: int
    matched_evidence: tuple


class EvidenceAggregation(Mapping):
    """Read-only mapping of requirement id -> AggregationResult.

    Also carries the context the scoring engine needs: the catalog, the
    evaluation date and per-element document counts.
    """

    def __init__(self, results, catalog, as_of, company_id=None,
                 documents_by_element=None, total_documents=0, matched_documents=0,
                 skipped_records=0):
        self._results = dict(results)
        self.catalog = catalog
        self.as_of = as_of
        self.company_id = company_id
        self.documents_by_element = dict(documents_by_element or {})
        self.total_documents = total_documents
        self.matched_documents = matched_documents
        self.skipped_records = skipped_records

    def __getitem__(self, requirement_id):
        return self._results[requirement_id]

    def __iter__(self):
        return iter(self._results)

    def __len__(self):
        return len(self._results)

    def for_element(self, number):
        return [r for r in self._results.values() if r.element_number == number]


def _as_catalog(elements):
    if isinstance(elements, ElementCatalog):
        return elements
    return ElementCatalog(elements or [])


def _within_lookback(record, requirement, as_of):
    if record.expiry_date is not None:
        return True
    return record.date >= as_of - timedelta(days=requirement.lookback_days)


def _code_matches(record, requirement):
    if not requirement.codes or not record.code:
        return True
    return record.code in requirement.codes


def matches_requirement(record, requirement, as_of):
    return (
        record.type == requirement.evidence_type
        and requirement.element_number in record.element_numbers
        and record.is_current(as_of)
        and _within_lookback(record, requirement, as_of)
        and _code_matches(record, requirement)
    )


def _accept_records(evidence, catalog, company_id):
    """Parse raw records, dropping malformed, duplicate and unknown-element ones."""
    accepted = []
    seen = set()
    skipped = 0
    for index, raw in enumerate(evidence or []):
        try:
            record = parse_evidence(raw)
        except EvidenceValidationError as e:
            logger.warning(f"Skipping malformed evidence record #{index} for company {company_id}: {e}")
            skipped += 1
            continue

        key = (record.type, record.reference_id)
        if key in seen:
            logger.warning(f"Skipping duplicate evidence record {record.type}:{record.reference_id}")
            skipped += 1
            continue
        seen.add(key)

        unknown = [n for n in record.element_numbers if n not in catalog]
        if unknown:
            logger.warning(
                f"Evidence {record.type}:{record.reference_id} references unknown element(s) {unknown}; ignoring them"
            )
        if len(unknown) == len(record.element_numbers):
            skipped += 1
            continue
        accepted.append(record)
    return accepted, skipped


def aggregate_evidence(elements, evidence, as_of=None, company_id=None):
    """Count matching evidence for every requirement of every element.

    elements: an ElementCatalog or an iterable of Element
    evidence: typed EvidenceRecords and/or raw dicts
    as_of: evaluation date (defaults to today)
    company_id: opaque, used only for provenance and logging
    """
    catalog = _as_catalog(elements)
    as_of = as_of or date.today()
    records, skipped = _accept_records(evidence, catalog, company_id)

    results = {}
    documents_by_element = {}
    all_matched = set()
    for element in catalog:
        tagged = [r for r in records if element.number in r.element_numbers]
        matched_ids = set()
        for req in element.requirements:
            matched = tuple(
                sorted(
                    (r for r in tagged if matches_requirement(r, req, as_of)),
                    key=lambda r: (r.date, r.type, r.reference_id),
                )
            )
            matched_ids.update((r.type, r.reference_id) for r in matched)
            results[req.id] = AggregationResult(
                element_number=element.number,
                requirement=req,
                found_count=len(matched),
                matched_evidence=matched,
            )
        all_matched.update(matched_ids)
        documents_by_element[element.number] = {
            "found": len(tagged),
            "matched": len(matched_ids),
        }

    logger.info(
        f"Aggregated {len(records)} evidence records ({skipped} skipped) "
        f"across {len(catalog)} elements for company {company_id}"
    )
    return EvidenceAggregation(
        results,
        catalog=catalog,
        as_of=as_of,
        company_id=company_id,
        documents_by_element=documents_by_element,
        total_documents=len(records),
        matched_documents=len(all_matched),
        skipped_records=skipped,
    )
