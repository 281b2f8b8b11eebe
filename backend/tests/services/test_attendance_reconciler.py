"""
Tests for attendance reconciliation.
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock, Mock

from attendance_bridge.schemas.attendance import AttendanceEntry
from attendance_bridge.services.attendance_reconciler import (
    AttendanceReconciler, classify, create_fields, update_fields
)


DAY = date(2026, 1, 20)


def entry(student_id, status, **kwargs):
    return AttendanceEntry(
        studentId=student_id,
        status=status,
        rollNumber=kwargs.get("roll", "1"),
        classValue=kwargs.get("class_value", "Class 10"),
        sectionValue=kwargs.get("section", "A"),
    )


class TestClassify:

    @pytest.mark.parametrize("status", ["Present", "Absent", "Late", "Excused"])
    def test_existing_record_is_always_updated(self, status):
        plan = classify([entry("001A", status)], {"001A": "a0A"}, DAY)

        assert [(e.student_id, rid) for e, rid in plan.to_update] == [("001A", "a0A")]
        assert plan.to_create == []
        assert plan.skipped == []

    def test_absent_without_record_is_created(self):
        plan = classify([entry("001B", "Absent")], {}, DAY)
        assert [e.student_id for e in plan.to_create] == ["001B"]

    @pytest.mark.parametrize("status", ["Present", "Late", "absent"])
    def test_non_absent_without_record_is_skipped(self, status):
        plan = classify([entry("001C", status)], {}, DAY)
        assert plan.is_empty
        assert [e.student_id for e in plan.skipped] == ["001C"]

    def test_sets_are_disjoint_subset_of_input(self):
        entries = [
            entry("001A", "Present"),
            entry("001B", "Absent"),
            entry("001C", "Present"),
            entry("001D", "Absent"),
        ]
        plan = classify(entries, {"001A": "a0A", "001D": "a0D"}, DAY)

        updated = {e.student_id for e, _ in plan.to_update}
        created = {e.student_id for e in plan.to_create}
        assert updated == {"001A", "001D"}
        assert created == {"001B"}
        assert updated.isdisjoint(created)
        assert updated | created <= {e.student_id for e in entries}
        assert plan.operation_count == 3

    def test_duplicate_student_last_entry_wins(self):
        plan = classify([entry("001B", "Absent"), entry("001B", "Present")], {}, DAY)
        assert plan.is_empty
        assert len(plan.skipped) == 1


class TestWriteFields:

    def test_create_fields_normalize_class(self):
        fields = create_fields(entry("001B", "Absent", roll="12"), DAY)

        assert fields == {
            "Student__c": "001B",
            "Date__c": "2026-01-20",
            "Status__c": "Absent",
            "Roll_Number__c": "12",
            "Class__c": "10",
            "Section__c": "A",
        }

    def test_update_fields_are_partial(self):
        fields = update_fields(entry("001A", "Present"))

        assert "Student__c" not in fields
        assert "Date__c" not in fields
        assert fields["Status__c"] == "Present"
        assert fields["Class__c"] == "10"

    def test_optional_values_omitted(self):
        bare = AttendanceEntry(studentId="001A", status="Absent")
        assert update_fields(bare) == {"Status__c": "Absent"}


class TestAttendanceReconciler:

    @pytest.mark.asyncio
    async def test_plan_queries_existing_records_for_submitted_students(self):
        record_store = Mock()
        record_store.fetch_attendance = AsyncMock(return_value={
            "001A": {"id": "a0A", "status": "Absent"},
        })
        reconciler = AttendanceReconciler(record_store)

        plan = await reconciler.plan(
            [entry("001A", "Present"), entry("001B", "Absent"), entry("001C", "Present")],
            DAY
        )

        record_store.fetch_attendance.assert_awaited_once_with(["001A", "001B", "001C"], DAY)
        assert [(e.student_id, rid) for e, rid in plan.to_update] == [("001A", "a0A")]
        assert [e.student_id for e in plan.to_create] == ["001B"]
        assert [e.student_id for e in plan.skipped] == ["001C"]
        assert plan.date == DAY
