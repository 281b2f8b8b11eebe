"""
Discovery of the Account fields that hold a student's class and section.

Orgs rename or re-create these custom fields, so the names are looked up from the
Account describe metadata, cached for a few minutes, and fall back to the last
known (or default) names when discovery fails.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Protocol, Sequence, Tuple

from attendance_bridge.core.config import Settings, settings as default_settings
from attendance_bridge.integrations.salesforce import objects
from attendance_bridge.integrations.salesforce.errors import (
    SalesforceError, SchemaResolutionError, log_salesforce_error
)


logger = logging.getLogger(__name__)

CUSTOM_SUFFIX = "__c"


@dataclass(frozen=True)
class FieldCandidates:
    """What to look for when resolving one logical field."""
    labels: FrozenSet[str]
    tokens: Tuple[str, ...]
    default: str


CLASS_CANDIDATES = FieldCandidates(
    labels=frozenset({"class", "grade", "class name", "standard"}),
    tokens=("class", "grade"),
    default=objects.DEFAULT_CLASS_FIELD,
)

SECTION_CANDIDATES = FieldCandidates(
    labels=frozenset({"section", "division", "section name"}),
    tokens=("section", "division"),
    default=objects.DEFAULT_SECTION_FIELD,
)


@dataclass(frozen=True)
class SchemaFieldMap:
    class_field: str
    section_field: str
    resolved_at: datetime

    @classmethod
    def defaults(cls, resolved_at: datetime) -> "SchemaFieldMap":
        return cls(CLASS_CANDIDATES.default, SECTION_CANDIDATES.default, resolved_at)


class FieldMatchStrategy(Protocol):
    """One way of picking a field out of describe metadata."""

    def resolve(self, fields: Sequence[Dict[str, Any]], candidates: FieldCandidates) -> Optional[str]:
        ...


class LabelMatchStrategy:
    """Exact, case-insensitive match of the field label against the candidate labels."""

    def resolve(self, fields, candidates):
        for field in fields:
            label = (field.get('label') or '').strip().lower()
            if label in candidates.labels:
                return field.get('name')
        return None


class StandardNameContainsStrategy:
    """Standard (non-custom) field whose API name contains a candidate token."""

    def resolve(self, fields, candidates):
        for field in fields:
            name = field.get('name') or ''
            if name.endswith(CUSTOM_SUFFIX):
                continue
            if any(token in name.lower() for token in candidates.tokens):
                return name
        return None


class CustomNameContainsStrategy:
    """Custom (``__c``) field whose API name contains a candidate token."""

    def resolve(self, fields, candidates):
        for field in fields:
            name = field.get('name') or ''
            if not name.endswith(CUSTOM_SUFFIX):
                continue
            if any(token in name.lower() for token in candidates.tokens):
                return name
        return None


DEFAULT_STRATEGIES: Tuple[FieldMatchStrategy, ...] = (
    LabelMatchStrategy(),
    StandardNameContainsStrategy(),
    CustomNameContainsStrategy(),
)


def match_field(
    fields: Sequence[Dict[str, Any]],
    candidates: FieldCandidates,
    strategies: Sequence[FieldMatchStrategy] = DEFAULT_STRATEGIES
) -> Optional[str]:
    """Return the first field name any strategy finds, trying strategies in order."""
    for strategy in strategies:
        name = strategy.resolve(fields, candidates)
        if name:
            return name
    return None


class SchemaResolver:
    """Caches the class/section field names of the student (Account) object."""

    def __init__(
        self,
        client,
        config: Settings = default_settings,
        strategies: Sequence[FieldMatchStrategy] = DEFAULT_STRATEGIES,
        sobject: str = objects.ACCOUNT_OBJECT,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self.client = client
        self.ttl = timedelta(seconds=config.SCHEMA_CACHE_TTL_SECONDS)
        self.strategies = list(strategies)
        self.sobject = sobject
        self._clock = clock
        self._field_map: Optional[SchemaFieldMap] = None
        self._lock = asyncio.Lock()

    @property
    def field_map(self) -> Optional[SchemaFieldMap]:
        return self._field_map

    def _is_fresh(self) -> bool:
        return (
            self._field_map is not None
            and self._clock() - self._field_map.resolved_at < self.ttl
        )

    async def resolve_fields(self) -> SchemaFieldMap:
        """Return the cached field map, re-resolving it when older than the TTL. Never raises."""
        if self._is_fresh():
            return self._field_map

        async with self._lock:
            if self._is_fresh():
                return self._field_map
            self._field_map = await self._resolve()
            return self._field_map

    async def _resolve(self) -> SchemaFieldMap:
        now = self._clock()
        previous = self._field_map or SchemaFieldMap.defaults(now)

        try:
            fields = await self._describe_fields()
        except SchemaResolutionError as e:
            log_salesforce_error(e, {'sobject': self.sobject})
            return SchemaFieldMap(previous.class_field, previous.section_field, now)

        class_field = match_field(fields, CLASS_CANDIDATES, self.strategies) or previous.class_field
        section_field = match_field(fields, SECTION_CANDIDATES, self.strategies) or previous.section_field

        logger.info(
            f"[SCHEMA] {self.sobject} class field={class_field}, section field={section_field}"
        )
        return SchemaFieldMap(class_field, section_field, now)

    async def _describe_fields(self) -> List[Dict[str, Any]]:
        try:
            description = await self.client.describe(self.sobject)
        except SalesforceError as e:
            raise SchemaResolutionError(
                f"Describe of {self.sobject} failed: {e.message}",
                error_code=e.error_code,
                original_exception=e,
            )
        fields = description.get('fields') if isinstance(description, dict) else None
        if not fields:
            raise SchemaResolutionError(f"Describe of {self.sobject} returned no fields")
        return fields
