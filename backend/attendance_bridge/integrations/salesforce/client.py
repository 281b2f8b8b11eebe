"""
Salesforce REST API client: SOQL queries, describe, record writes and composite batches.
"""

import asyncio
import json as json_module
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from attendance_bridge.core.config import Settings, settings as default_settings
from attendance_bridge.integrations.salesforce.credential_cache import CredentialCache
from attendance_bridge.integrations.salesforce.errors import (
    NetworkError, RemoteQueryError, parse_error_body
)
from attendance_bridge.integrations.salesforce.soql import check_api_name


logger = logging.getLogger(__name__)


class SalesforceClient:
    """Authenticated access to one Salesforce org over a shared aiohttp session."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        credentials: CredentialCache,
        config: Settings = default_settings
    ):
        self._http_session = http_session
        self.credentials = credentials
        self.config = config

    def data_path(self, suffix: str) -> str:
        return f"/services/data/{self.config.SF_API_VERSION}/{suffix.lstrip('/')}"

    def sobject_path(self, sobject: str, record_id: Optional[str] = None) -> str:
        path = self.data_path(f"sobjects/{check_api_name(sobject)}/")
        if record_id:
            path += str(record_id)
        return path

    async def query(self, soql: str) -> List[Dict[str, Any]]:
        """
        Run a SOQL query and return every record, following ``nextRecordsUrl``.

        Raises:
            RemoteQueryError: Salesforce rejected the query; carries the SOQL text
            NetworkError: Transport failure or timeout
        """
        logger.info(f"[SOQL] {soql}")
        try:
            response = await self._make_api_request('GET', self.data_path('query'), params={'q': soql})
            records = list(response.get('records') or [])

            while not response.get('done', True) and response.get('nextRecordsUrl'):
                response = await self._make_api_request('GET', response['nextRecordsUrl'])
                records.extend(response.get('records') or [])

        except RemoteQueryError as e:
            e.query = soql
            e.details['query'] = soql
            raise

        logger.info(f"[RESULT] {len(records)} records")
        return records

    async def describe(self, sobject: str) -> Dict[str, Any]:
        """Fetch field metadata for an sObject type."""
        return await self._make_api_request('GET', self.sobject_path(sobject) + 'describe')

    async def create(self, sobject: str, fields: Dict[str, Any]) -> str:
        """Create a single record and return its id."""
        response = await self._make_api_request('POST', self.sobject_path(sobject), json=fields)
        return response.get('id')

    async def update(self, sobject: str, record_id: str, fields: Dict[str, Any]) -> None:
        """Partially update a single record."""
        await self._make_api_request('PATCH', self.sobject_path(sobject, record_id), json=fields)

    async def composite(
        self,
        sub_requests: List[Dict[str, Any]],
        all_or_none: bool = True
    ) -> List[Dict[str, Any]]:
        """
        Submit sub-requests through the composite endpoint.

        Args:
            sub_requests: Ordered ``{method, url, referenceId, body}`` dictionaries
            all_or_none: Ask Salesforce to roll back every sub-request if one fails

        Returns:
            The ``compositeResponse`` list, parallel to ``sub_requests``
        """
        payload = {
            'allOrNone': all_or_none,
            'compositeRequest': sub_requests,
        }
        response = await self._make_api_request('POST', self.data_path('composite'), json=payload)
        return response.get('compositeResponse') or []

    async def _make_api_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Make an authenticated request, re-authenticating once on 401."""
        credential = await self.credentials.get_credential()
        status, body = await self._send(credential, method, path, params, json)

        if status == 401:
            # Session revoked or timed out server-side before our expiry estimate
            logger.warning("[SF] Session rejected, re-authenticating")
            self.credentials.invalidate(credential)
            credential = await self.credentials.get_credential()
            status, body = await self._send(credential, method, path, params, json)

        if status >= 400:
            message, error_code, parsed = parse_error_body(body)
            logger.error(f"[SF ERROR] {method} {path}: {status} {error_code} {message}")
            raise RemoteQueryError(
                message,
                status=status,
                error_code=error_code,
                details={'response': parsed},
            )

        if not body:
            return {}
        try:
            return json_module.loads(body)
        except ValueError as e:
            raise RemoteQueryError(
                f"Unreadable response from {method} {path}",
                status=status,
                original_exception=e,
            )

    async def _send(self, credential, method, path, params, json):
        url = path if path.startswith('http') else f"{credential.instance_url}{path}"
        headers = {
            'Authorization': credential.authorization_header,
            'Accept': 'application/json',
        }

        try:
            async with self._http_session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers
            ) as response:
                return response.status, await response.text()

        except asyncio.TimeoutError as e:
            raise NetworkError(f"{method} {path} timed out", original_exception=e)
        except aiohttp.ClientError as e:
            raise NetworkError(f"HTTP client error: {e}", original_exception=e)
