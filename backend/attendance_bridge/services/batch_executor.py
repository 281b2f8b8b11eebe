"""
Executes a reconciliation plan as one all-or-none composite request.

Records are grouped into sObject Collections subrequests (one PATCH per group of
updates, one POST per group of creates) so a full roster fits in a single
composite call.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from attendance_bridge.integrations.salesforce import objects
from attendance_bridge.integrations.salesforce.errors import PartialBatchFailure, ValidationError
from attendance_bridge.schemas.attendance import AttendanceEntry
from attendance_bridge.services.attendance_reconciler import (
    ReconciliationPlan, create_fields, update_fields
)


logger = logging.getLogger(__name__)

# Salesforce limits: records per collection, collection subrequests per composite
MAX_RECORDS_PER_COLLECTION = 200
MAX_COLLECTION_SUBREQUESTS = 5

# Updates and creates are grouped separately, so this many operations always fit
MAX_OPERATIONS_PER_BATCH = MAX_RECORDS_PER_COLLECTION * (MAX_COLLECTION_SUBREQUESTS - 1)


@dataclass
class BatchResult:
    written_count: int
    results: List[Dict[str, Any]] = field(default_factory=list)


def _chunked(items: Sequence, size: int) -> List[list]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _record(fields: Dict[str, Any], **extra) -> Dict[str, Any]:
    record = {'attributes': {'type': objects.ATTENDANCE_OBJECT}}
    record.update(extra)
    record.update(fields)
    return record


class BatchExecutor:
    """Turns a plan into composite sub-requests and checks every record result."""

    def __init__(self, client):
        self.client = client

    def _groups(self, plan: ReconciliationPlan) -> List[List[AttendanceEntry]]:
        """Entries per sub-request, in the order ``build_requests`` emits them."""
        updates = _chunked(plan.to_update, MAX_RECORDS_PER_COLLECTION)
        creates = _chunked(plan.to_create, MAX_RECORDS_PER_COLLECTION)
        return [[entry for entry, _ in chunk] for chunk in updates] + creates

    def build_requests(self, plan: ReconciliationPlan) -> List[Dict[str, Any]]:
        collection_path = self.client.data_path('composite/sobjects')
        requests: List[Dict[str, Any]] = []

        for index, chunk in enumerate(_chunked(plan.to_update, MAX_RECORDS_PER_COLLECTION)):
            requests.append({
                'method': 'PATCH',
                'url': collection_path,
                'referenceId': f"update_{index}",
                'body': {
                    'allOrNone': True,
                    'records': [_record(update_fields(entry), id=record_id) for entry, record_id in chunk],
                },
            })

        for index, chunk in enumerate(_chunked(plan.to_create, MAX_RECORDS_PER_COLLECTION)):
            requests.append({
                'method': 'POST',
                'url': collection_path,
                'referenceId': f"create_{index}",
                'body': {
                    'allOrNone': True,
                    'records': [_record(create_fields(entry, plan.date)) for entry in chunk],
                },
            })

        if len(requests) > MAX_COLLECTION_SUBREQUESTS:
            raise ValidationError(
                f"Too many attendance records in one submission (at most {MAX_OPERATIONS_PER_BATCH})",
                details={'operations': plan.operation_count},
            )
        return requests

    async def execute(self, plan: ReconciliationPlan) -> BatchResult:
        """
        Submit the plan atomically.

        Returns:
            BatchResult whose ``written_count`` is the number of records written

        Raises:
            ValidationError: The plan does not fit in one composite call
            PartialBatchFailure: Any record failed; Salesforce rolled back the batch
        """
        requests = self.build_requests(plan)
        if not requests:
            return BatchResult(written_count=0)

        responses = await self.client.composite(requests, all_or_none=True)
        groups = self._groups(plan)

        results: List[Dict[str, Any]] = []
        for index, request in enumerate(requests):
            response = responses[index] if index < len(responses) else {}
            results.extend(self._record_results(request['referenceId'], groups[index], response))

        failed = [r for r in results if not r['success']]
        if failed:
            logger.error(
                f"[BATCH] {len(failed)} of {len(results)} operations failed; batch rolled back"
            )
            raise PartialBatchFailure(
                f"Attendance batch failed: {len(failed)} of {len(results)} operations rejected",
                results=results,
            )

        logger.info(
            f"[BATCH] Saved {len(results)} attendance records "
            f"({len(plan.to_update)} updated, {len(plan.to_create)} created)"
        )
        return BatchResult(written_count=len(results), results=results)

    @staticmethod
    def _record_results(
        reference_id: str,
        entries: List[AttendanceEntry],
        response: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        status = response.get('httpStatusCode')
        body = response.get('body')

        if isinstance(status, int) and status < 400 and isinstance(body, list) and len(body) == len(entries):
            return [
                {
                    'referenceId': f"{reference_id}.{position}",
                    'studentId': entry.student_id,
                    'status': status,
                    'success': bool(outcome.get('success')),
                    'id': outcome.get('id'),
                    'errors': outcome.get('errors') or [],
                }
                for position, (entry, outcome) in enumerate(zip(entries, body))
            ]

        # Whole sub-request rejected (or missing); every record in it failed
        errors = body if isinstance(body, list) else ([body] if body else [])
        return [
            {
                'referenceId': f"{reference_id}.{position}",
                'studentId': entry.student_id,
                'status': status,
                'success': False,
                'id': None,
                'errors': errors,
            }
            for position, entry in enumerate(entries)
        ]
