"""
Service layer coordinating roster reads and attendance submissions against Salesforce.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional, Sequence

from attendance_bridge.core.config import Settings, settings as default_settings
from attendance_bridge.integrations.salesforce.errors import ValidationError
from attendance_bridge.integrations.salesforce.schema_resolver import SchemaResolver
from attendance_bridge.integrations.salesforce.soql import normalize_class_value
from attendance_bridge.schemas.attendance import AttendanceEntry, parse_attendance_date
from attendance_bridge.services.attendance_reconciler import AttendanceReconciler
from attendance_bridge.services.batch_executor import MAX_OPERATIONS_PER_BATCH, BatchExecutor
from attendance_bridge.services.record_store import RecordStore
from attendance_bridge.services.session_manager import SessionManager


logger = logging.getLogger(__name__)

NO_ABSENCES_MESSAGE = "No absences to record."


def require_date(value) -> date:
    try:
        parsed = parse_attendance_date(value)
    except ValueError as e:
        raise ValidationError(str(e))
    if parsed is None:
        raise ValidationError("date is required (e.g. 2026-01-20)")
    return parsed


class AttendanceSyncService:
    """
    Unified entry point for the HTTP layer.

    Holds the process-lifetime caches (credentials via the client, schema field
    map via the resolver), so one instance is shared by all requests.
    """

    def __init__(
        self,
        client,
        schema_resolver: SchemaResolver,
        record_store: RecordStore,
        session_manager: SessionManager,
        reconciler: AttendanceReconciler,
        batch_executor: BatchExecutor
    ):
        self.client = client
        self.schema_resolver = schema_resolver
        self.record_store = record_store
        self.session_manager = session_manager
        self.reconciler = reconciler
        self.batch_executor = batch_executor

    @classmethod
    def from_client(cls, client, config: Settings = default_settings) -> "AttendanceSyncService":
        record_store = RecordStore(client, config)
        return cls(
            client=client,
            schema_resolver=SchemaResolver(client, config),
            record_store=record_store,
            session_manager=SessionManager(client, record_store, config),
            reconciler=AttendanceReconciler(record_store),
            batch_executor=BatchExecutor(client),
        )

    async def get_roster(
        self,
        class_value: Optional[str],
        section_value: Optional[str] = None,
        on_date: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Students of a class (and optionally section), with the day's attendance joined in.

        Returns:
            ``{'students': [...], 'session': {'id', 'takenBy'} | None}``
        """
        class_value = (class_value or '').strip()
        section_value = (section_value or '').strip() or None
        if not class_value:
            raise ValidationError("classValue is required (e.g. ?classValue=10)")
        try:
            attendance_date = parse_attendance_date(on_date)
        except ValueError as e:
            raise ValidationError(str(e))

        await self.client.credentials.get_credential()
        field_map = await self.schema_resolver.resolve_fields()
        students = await self.record_store.fetch_students(field_map, class_value, section_value)

        session = None
        if attendance_date:
            existing = await self.record_store.fetch_attendance(
                [student['id'] for student in students],
                attendance_date
            )
            for student in students:
                record = existing.get(student['id'])
                student['attendanceStatus'] = record['status'] if record else None

            if section_value:
                session = await self.record_store.find_session(class_value, section_value, attendance_date)

        logger.info(f"[ROSTER] {len(students)} students for class {class_value} section {section_value}")
        return {'students': students, 'session': session}

    async def submit_attendance(
        self,
        on_date,
        entries: Sequence[AttendanceEntry],
        taken_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Reconcile and write one day's attendance for a single class/section.

        Raises:
            ValidationError: Missing date, no entries, or entries spanning several classes
            AuthenticationError: Credential could not be obtained
            RemoteQueryError: Existing-record lookup failed
            PartialBatchFailure: The composite write was rejected and rolled back
        """
        attendance_date = require_date(on_date)
        if not entries:
            raise ValidationError("attendances must be a non-empty list")
        student_count = len({entry.student_id for entry in entries})
        if student_count > MAX_OPERATIONS_PER_BATCH:
            raise ValidationError(
                f"At most {MAX_OPERATIONS_PER_BATCH} students can be submitted at once",
                details={'students': student_count},
            )
        class_value, section_value = self._single_class(entries)

        await self.client.credentials.get_credential()

        await self.session_manager.upsert_session(class_value, section_value, attendance_date, taken_by)

        plan = await self.reconciler.plan(entries, attendance_date)
        if plan.is_empty:
            return {'success': True, 'message': NO_ABSENCES_MESSAGE, 'saved': 0}

        result = await self.batch_executor.execute(plan)
        return {'success': True, 'saved': result.written_count}

    @staticmethod
    def _single_class(entries: Sequence[AttendanceEntry]):
        """
        The (class, section) the submission is for, taken from the first entry that
        carries both. Entries missing either value are not compared; case is ignored.
        """
        labelled = [e for e in entries if normalize_class_value(e.class_value) and e.section_value]
        if not labelled:
            return entries[0].class_value, entries[0].section_value

        keys = {
            (normalize_class_value(e.class_value).lower(), e.section_value.lower())
            for e in labelled
        }
        if len(keys) > 1:
            raise ValidationError(
                "All attendances in one submission must share the same class and section",
                details={'classes': sorted(f"{c}-{s}" for c, s in keys)},
            )
        return labelled[0].class_value, labelled[0].section_value
