"""
Once-per-day attendance session bookkeeping.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

from attendance_bridge.core.config import Settings, settings as default_settings
from attendance_bridge.integrations.salesforce import objects
from attendance_bridge.integrations.salesforce.errors import (
    RemoteQueryError, SalesforceError, SessionUpsertError, log_salesforce_error
)
from attendance_bridge.integrations.salesforce.soql import normalize_class_value


logger = logging.getLogger(__name__)

DUPLICATE_VALUE = "DUPLICATE_VALUE"


class SessionManager:
    """
    Upserts the session record for (class, section, date) and stamps who took attendance.

    Without a unique key field configured this is a plain read-then-write, so two
    concurrent first submissions for the same key can both create a session. With
    ``SF_SESSION_KEY_FIELD`` set, creation carries a deterministic key and a
    ``DUPLICATE_VALUE`` rejection is turned into an update of the winner's record.

    Failures are logged and swallowed; they never block the attendance write.
    """

    def __init__(self, client, record_store, config: Settings = default_settings):
        self.client = client
        self.record_store = record_store
        self.key_field = config.SF_SESSION_KEY_FIELD or None

    async def upsert_session(
        self,
        class_value: Optional[str],
        section_value: Optional[str],
        on_date: date,
        taken_by: Optional[str]
    ) -> Optional[str]:
        """Returns the session id, or None when skipped or failed."""
        if not (class_value and section_value and taken_by):
            logger.debug("Session upsert skipped: class, section and takenBy are all required")
            return None

        normalized_class = normalize_class_value(class_value)

        try:
            existing = await self.record_store.find_session(normalized_class, section_value, on_date)
            if existing:
                return await self._update_attribution(existing['id'], taken_by)
            return await self._create(normalized_class, section_value, on_date, taken_by)

        except SalesforceError as e:
            log_salesforce_error(
                SessionUpsertError(
                    f"Session upsert failed: {e.message}",
                    error_code=e.error_code,
                    details={
                        'class': normalized_class,
                        'section': section_value,
                        'date': on_date.isoformat(),
                    },
                    original_exception=e,
                )
            )
            return None

    async def _update_attribution(self, session_id: str, taken_by: str) -> str:
        await self.client.update(
            objects.SESSION_OBJECT,
            session_id,
            {objects.SESSION_TAKEN_BY_FIELD: taken_by}
        )
        logger.info(f"[SESSION] Updated {session_id} taken by {taken_by}")
        return session_id

    async def _create(self, class_value: str, section_value: str, on_date: date, taken_by: str) -> str:
        fields: Dict[str, Any] = {
            objects.SESSION_CLASS_FIELD: class_value,
            objects.SESSION_SECTION_FIELD: section_value,
            objects.SESSION_DATE_FIELD: on_date.isoformat(),
            objects.SESSION_TAKEN_BY_FIELD: taken_by,
        }
        if self.key_field:
            fields[self.key_field] = session_key(class_value, section_value, on_date)

        try:
            session_id = await self.client.create(objects.SESSION_OBJECT, fields)
        except RemoteQueryError as e:
            if not (self.key_field and e.error_code == DUPLICATE_VALUE):
                raise
            # Lost the race to a concurrent creator; attribute on the existing record
            logger.info(f"[SESSION] Concurrent create detected for {fields[self.key_field]}")
            existing = await self.record_store.find_session(class_value, section_value, on_date)
            if not existing:
                raise
            return await self._update_attribution(existing['id'], taken_by)

        logger.info(f"[SESSION] Created {session_id} for {class_value}-{section_value} on {on_date}")
        return session_id


def session_key(class_value: str, section_value: str, on_date: date) -> str:
    return f"{normalize_class_value(class_value)}|{section_value}|{on_date.isoformat()}".upper()
