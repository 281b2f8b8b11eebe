"""
SOQL escaping and query construction.

Values are always escaped; field and object names are passed through only after
checking them against the API-name pattern, since they must originate from code
constants or describe metadata and never from request input.
"""

import re
from datetime import date
from typing import Iterable, List, Optional


_API_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_CLASS_PREFIX = re.compile(r"^\s*class\s+", re.IGNORECASE)


def escape_soql(value) -> str:
    """
    Escape a value for use inside a single-quoted SOQL literal.

    Backslashes are doubled first so the escapes added for quotes and percent
    signs are not themselves escaped again.
    """
    if value is None:
        return ""
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("%", "\\%")
    )


def quote(value) -> str:
    return f"'{escape_soql(value)}'"


def quote_list(values: Iterable) -> str:
    return "(" + ", ".join(quote(v) for v in values) + ")"


def normalize_class_value(value: Optional[str]) -> Optional[str]:
    """Strip a leading "Class " token, case-insensitively: "Class 10" -> "10"."""
    if value is None:
        return None
    return _CLASS_PREFIX.sub("", str(value)).strip()


def check_api_name(name: str) -> str:
    if not isinstance(name, str) or not _API_NAME.match(name):
        raise ValueError(f"Invalid Salesforce API name: {name!r}")
    return name


class SOQLBuilder:
    """Small SELECT builder. Conditions added through the helpers are escaped."""

    def __init__(self, sobject: str, fields: List[str]):
        self.sobject = check_api_name(sobject)
        self.fields = [check_api_name(f) for f in fields]
        self._conditions: List[str] = []
        self._order_by: Optional[str] = None
        self._limit: Optional[int] = None

    def where_equals(self, field: str, value) -> "SOQLBuilder":
        self._conditions.append(f"{check_api_name(field)} = {quote(value)}")
        return self

    def where_date(self, field: str, value: date) -> "SOQLBuilder":
        # Date literals are unquoted in SOQL
        if not isinstance(value, date):
            raise ValueError("Date condition requires a date value")
        self._conditions.append(f"{check_api_name(field)} = {value.isoformat()}")
        return self

    def where_in(self, field: str, values: Iterable) -> "SOQLBuilder":
        values = list(values)
        if not values:
            raise ValueError("IN condition requires at least one value")
        self._conditions.append(f"{check_api_name(field)} IN {quote_list(values)}")
        return self

    def where_any_in(self, fields: Iterable[str], values: Iterable) -> "SOQLBuilder":
        values = list(values)
        if not values:
            raise ValueError("IN condition requires at least one value")
        clauses = [f"{check_api_name(f)} IN {quote_list(values)}" for f in fields]
        self._conditions.append("(" + " OR ".join(clauses) + ")")
        return self

    def order_by(self, field: str, descending: bool = False) -> "SOQLBuilder":
        self._order_by = f"{check_api_name(field)} {'DESC' if descending else 'ASC'}"
        return self

    def limit(self, count: int) -> "SOQLBuilder":
        self._limit = int(count)
        return self

    def build(self) -> str:
        soql = f"SELECT {', '.join(self.fields)} FROM {self.sobject}"
        if self._conditions:
            soql += " WHERE " + " AND ".join(self._conditions)
        if self._order_by:
            soql += f" ORDER BY {self._order_by}"
        if self._limit is not None:
            soql += f" LIMIT {self._limit}"
        return soql
