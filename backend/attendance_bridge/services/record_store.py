"""
Read path against Salesforce: rosters, same-day attendance, sessions and contacts.
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from attendance_bridge.core.config import Settings, settings as default_settings
from attendance_bridge.integrations.salesforce import objects
from attendance_bridge.integrations.salesforce.schema_resolver import SchemaFieldMap
from attendance_bridge.integrations.salesforce.soql import SOQLBuilder, normalize_class_value


logger = logging.getLogger(__name__)


class RecordStore:
    """Builds escaped SOQL for each read and maps the raw records to plain dictionaries."""

    def __init__(self, client, config: Settings = default_settings):
        self.client = client
        self.config = config

    async def fetch_students(
        self,
        field_map: SchemaFieldMap,
        class_value: str,
        section_value: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Students whose class matches ``class_value`` with or without a "Class " prefix.
        """
        class_values = _unique([class_value, normalize_class_value(class_value)])
        builder = (
            SOQLBuilder(objects.ACCOUNT_OBJECT, _unique([
                'Id', 'Name', objects.ACCOUNT_NUMBER_FIELD,
                field_map.class_field, field_map.section_field,
            ]))
            .where_in(field_map.class_field, class_values)
        )
        if section_value:
            builder.where_equals(field_map.section_field, section_value)
        builder.order_by('Name').limit(self.config.ROSTER_QUERY_LIMIT)

        records = await self.client.query(builder.build())
        return [
            {
                'id': record.get('Id'),
                'name': record.get('Name'),
                'accountNumber': record.get(objects.ACCOUNT_NUMBER_FIELD),
                'classValue': record.get(field_map.class_field),
                'sectionValue': record.get(field_map.section_field),
            }
            for record in records
        ]

    async def fetch_attendance(self, student_ids: Iterable[str], on_date: date) -> Dict[str, Dict[str, Any]]:
        """
        Existing attendance records for ``on_date``, keyed by student id.

        Returns:
            ``{student_id: {'id': record_id, 'status': status}}``
        """
        student_ids = _unique(student_ids)
        if not student_ids:
            return {}

        soql = (
            SOQLBuilder(objects.ATTENDANCE_OBJECT, [
                'Id', objects.ATTENDANCE_STUDENT_FIELD, objects.ATTENDANCE_STATUS_FIELD,
            ])
            .where_date(objects.ATTENDANCE_DATE_FIELD, on_date)
            .where_in(objects.ATTENDANCE_STUDENT_FIELD, student_ids)
            .build()
        )
        records = await self.client.query(soql)

        existing: Dict[str, Dict[str, Any]] = {}
        for record in records:
            student_id = record.get(objects.ATTENDANCE_STUDENT_FIELD)
            if student_id in existing:
                logger.warning(
                    f"Duplicate attendance records for student {student_id} on {on_date}; "
                    f"keeping {existing[student_id]['id']}"
                )
                continue
            existing[student_id] = {
                'id': record.get('Id'),
                'status': record.get(objects.ATTENDANCE_STATUS_FIELD),
            }
        return existing

    async def find_session(
        self,
        class_value: str,
        section_value: str,
        on_date: date
    ) -> Optional[Dict[str, Any]]:
        """The oldest session for (class, section, date), or None. ``class_value`` is normalized here."""
        soql = (
            SOQLBuilder(objects.SESSION_OBJECT, ['Id', objects.SESSION_TAKEN_BY_FIELD])
            .where_equals(objects.SESSION_CLASS_FIELD, normalize_class_value(class_value))
            .where_equals(objects.SESSION_SECTION_FIELD, section_value)
            .where_date(objects.SESSION_DATE_FIELD, on_date)
            .order_by('CreatedDate')
            .limit(1)
            .build()
        )
        records = await self.client.query(soql)
        if not records:
            return None
        return {
            'id': records[0].get('Id'),
            'takenBy': records[0].get(objects.SESSION_TAKEN_BY_FIELD),
        }

    async def find_contact_by_mobile(self, mobiles: Sequence[str]) -> Optional[Dict[str, Any]]:
        """First Contact whose MobilePhone or Phone equals any of the given spellings."""
        soql = (
            SOQLBuilder(objects.CONTACT_OBJECT, ['Id', 'Name', objects.CONTACT_ROLE_FIELD])
            .where_any_in(objects.CONTACT_MOBILE_FIELDS, _unique(mobiles))
            .limit(1)
            .build()
        )
        records = await self.client.query(soql)
        if not records:
            return None
        return {
            'id': records[0].get('Id'),
            'name': records[0].get('Name'),
            'role': records[0].get(objects.CONTACT_ROLE_FIELD),
        }


def _unique(values: Iterable) -> List:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen
