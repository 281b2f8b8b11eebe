"""
Reconciliation of submitted attendance against records already stored for the day.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Sequence, Tuple

from attendance_bridge.integrations.salesforce import objects
from attendance_bridge.integrations.salesforce.soql import normalize_class_value
from attendance_bridge.schemas.attendance import AttendanceEntry


logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """Which entries to create and which existing records to update. Built per request."""
    date: date
    to_create: List[AttendanceEntry] = field(default_factory=list)
    to_update: List[Tuple[AttendanceEntry, str]] = field(default_factory=list)
    skipped: List[AttendanceEntry] = field(default_factory=list)

    @property
    def operation_count(self) -> int:
        return len(self.to_create) + len(self.to_update)

    @property
    def is_empty(self) -> bool:
        return self.operation_count == 0


def classify(
    entries: Sequence[AttendanceEntry],
    existing_ids: Dict[str, str],
    on_date: date
) -> ReconciliationPlan:
    """
    Split entries into create/update/skip.

    An entry with a stored record is always updated, whatever its status, so a
    mistaken mark can be corrected. Without a stored record only absences are
    written; presence is the default and needs no record. When a student appears
    more than once, the last entry wins.
    """
    latest: Dict[str, AttendanceEntry] = {}
    for entry in entries:
        latest.pop(entry.student_id, None)
        latest[entry.student_id] = entry

    plan = ReconciliationPlan(date=on_date)
    for student_id, entry in latest.items():
        record_id = existing_ids.get(student_id)
        if record_id:
            plan.to_update.append((entry, record_id))
        elif entry.status == objects.STATUS_ABSENT:
            plan.to_create.append(entry)
        else:
            plan.skipped.append(entry)
    return plan


def update_fields(entry: AttendanceEntry) -> Dict[str, Any]:
    """Partial-update body for an existing attendance record."""
    fields: Dict[str, Any] = {objects.ATTENDANCE_STATUS_FIELD: entry.status}
    if entry.roll_number:
        fields[objects.ATTENDANCE_ROLL_NUMBER_FIELD] = entry.roll_number
    if entry.class_value:
        fields[objects.ATTENDANCE_CLASS_FIELD] = normalize_class_value(entry.class_value)
    if entry.section_value:
        fields[objects.ATTENDANCE_SECTION_FIELD] = entry.section_value
    return fields


def create_fields(entry: AttendanceEntry, on_date: date) -> Dict[str, Any]:
    """Creation body for a new attendance record."""
    fields = {
        objects.ATTENDANCE_STUDENT_FIELD: entry.student_id,
        objects.ATTENDANCE_DATE_FIELD: on_date.isoformat(),
    }
    fields.update(update_fields(entry))
    return fields


class AttendanceReconciler:
    """Looks up the day's stored records and classifies the submitted batch against them."""

    def __init__(self, record_store):
        self.record_store = record_store

    async def plan(self, entries: Sequence[AttendanceEntry], on_date: date) -> ReconciliationPlan:
        existing = await self.record_store.fetch_attendance(
            [entry.student_id for entry in entries],
            on_date
        )
        existing_ids = {student_id: record['id'] for student_id, record in existing.items()}

        plan = classify(entries, existing_ids, on_date)
        logger.info(
            f"[RECONCILE] {on_date}: {len(plan.to_update)} update, "
            f"{len(plan.to_create)} create, {len(plan.skipped)} skip"
        )
        return plan
