"""
Staff sign-in by mobile number against Salesforce Contacts.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import phonenumbers
from phonenumbers import NumberParseException

from attendance_bridge.core.config import Settings, settings as default_settings
from attendance_bridge.integrations.salesforce.errors import (
    UnauthorizedRoleError, UserNotFoundError, ValidationError
)


logger = logging.getLogger(__name__)

_MOBILE_SEPARATORS = re.compile(r"[\s\-().]")


def mobile_candidates(mobile: Optional[str], region: str) -> List[str]:
    """
    Spellings of ``mobile`` that a Contact phone field may hold.

    Contact phone fields are free text, so the number is matched as typed (minus
    separators) and, when it parses as a valid number, also in E.164 and national
    form: "+91 93927 23536" and "9392723536" find the same Contact.
    """
    compact = _MOBILE_SEPARATORS.sub("", mobile or "")
    if not compact:
        return []

    candidates = [compact]
    try:
        parsed = phonenumbers.parse(compact, region)
    except NumberParseException:
        return candidates

    if phonenumbers.is_valid_number(parsed):
        for spelling in (
            phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164),
            str(parsed.national_number),
        ):
            if spelling not in candidates:
                candidates.append(spelling)
    return candidates


class LoginService:

    def __init__(self, record_store, config: Settings = default_settings):
        self.record_store = record_store
        self.region = config.PHONE_DEFAULT_REGION
        self.authorized_roles = {role.lower() for role in config.authorized_roles}

    async def login(self, mobile: Optional[str]) -> Dict[str, Any]:
        candidates = mobile_candidates(mobile, self.region)
        if not candidates:
            raise ValidationError("mobile is required")

        user = await self.record_store.find_contact_by_mobile(candidates)
        if not user:
            logger.info("[LOGIN] No contact for supplied mobile")
            raise UserNotFoundError("No user found with this mobile number")

        role = (user.get('role') or '').strip()
        if role.lower() not in self.authorized_roles:
            logger.info(f"[LOGIN] Contact {user['id']} has unauthorized role {role!r}")
            raise UnauthorizedRoleError(
                "This user is not authorized to take attendance",
                details={'role': role or None},
            )

        logger.info(f"[LOGIN] Contact {user['id']} signed in as {role}")
        return {'success': True, 'user': {'id': user['id'], 'name': user.get('name'), 'role': role}}
