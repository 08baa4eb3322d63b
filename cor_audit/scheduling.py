"""
Phase scheduling shared by the action plan generator and the timeline projector.

- Workload is converted to days at a fixed workday length (8 hours), minimum
  one day per phase.
- Phases overlap: the next phase starts once ceil(duration * (1 - overlap))
  days of the previous phase have elapsed (70% with the default 30% overlap).
- Elements are worked in priority order: most critical gaps first, then
  highest weight, then lowest percentage.
- At most max_phases phases are produced; elements beyond the cap are folded
  into the last phase.

Both consumers must use the same scheduler instance settings so projected
dates agree.
"""

import math
from dataclasses import dataclass
from datetime import timedelta
from fractions import Fraction


@dataclass(frozen=True)
class PhaseSlot:
    index: int
    start_date: object
    end_date: object
    duration_days: int
    hours: float
    offset_days: int


class PhaseScheduler:
    def __init__(self, hours_per_day=8, overlap=0.3):
        if hours_per_day <= 0:
            raise ValueError("hours_per_day must be positive")
        overlap = Fraction(str(overlap))
        if not 0 <= overlap < 1:
            raise ValueError("overlap must be in [0, 1)")
        self.hours_per_day = Fraction(str(hours_per_day))
        self.overlap = overlap

    def duration_days(self, hours):
        return max(1, math.ceil(Fraction(str(hours)) / self.hours_per_day))

    def stagger_days(self, duration):
        return math.ceil(duration * (1 - self.overlap))

    def schedule(self, workloads, start):
        """One slot per workload (hours), in order, starting at start."""
        slots = []
        offset = 0
        for index, hours in enumerate(workloads):
            duration = self.duration_days(hours)
            slot_start = start + timedelta(days=offset)
            slots.append(PhaseSlot(
                index=index,
                start_date=slot_start,
                end_date=slot_start + timedelta(days=duration),
                duration_days=duration,
                hours=hours,
                offset_days=offset,
            ))
            offset += self.stagger_days(duration)
        return slots

    @staticmethod
    def span_days(slots):
        """Days from the first slot's start to the latest end."""
        if not slots:
            return 0
        return max(s.offset_days + s.duration_days for s in slots)


def priority_key(critical_count, weight, percentage, element_number):
    return (-critical_count, -Fraction(str(weight)), percentage, element_number)


def fold_into_phases(items, max_phases):
    """Split ordered items into at most max_phases groups.

    The first max_phases - 1 items get a group each; everything after that
    shares the last group.
    """
    if max_phases < 1:
        raise ValueError("max_phases must be at least 1")
    items = list(items)
    if len(items) <= max_phases:
        return [[item] for item in items]
    head = [[item] for item in items[: max_phases - 1]]
    return head + [items[max_phases - 1:]]


def element_workloads(gaps, catalog=None):
    """Group gaps per element and order the groups by remediation priority.

    Weight and percentage come from the gap (element_weight /
    element_percentage); the catalog fills in a missing weight.
    """
    groups = {}
    for gap in gaps:
        number = gap["element_number"]
        group = groups.get(number)
        if group is None:
            weight = gap.get("element_weight")
            if weight is None:
                weight = catalog.weight_for(number) if catalog is not None and number in catalog else 1.0
            group = groups[number] = {
                "element_number": number,
                "element_name": gap.get("element_name") or f"Element {number}",
                "weight": weight,
                "percentage": gap.get("element_percentage", 0),
                "gaps": [],
                "critical_count": 0,
                "hours": 0,
            }
        group["gaps"].append(gap)
        group["hours"] += gap["estimated_effort_hours"]
        if gap["severity"] == "critical":
            group["critical_count"] += 1
    return sorted(
        groups.values(),
        key=lambda g: priority_key(g["critical_count"], g["weight"], g["percentage"], g["element_number"]),
    )
