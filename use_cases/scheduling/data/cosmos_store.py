"""
Azure Cosmos DB-based appointment store.

Appointments live in the ``Coaching_Appointments`` container partitioned by
``/dietitianId``. Each dietitian partition also holds one schedule marker
document; its etag is the schedule version handed out by ``snapshot``.
A commit is a transactional batch that replaces the marker (if-match on the
etag) and upserts the appointment, so either both land or neither does.

Cosmos and transport exceptions are translated to ``StoreUnavailable`` here;
a lost if-match race surfaces as ``ConcurrencyConflict``.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from azure.cosmos.exceptions import (
    CosmosBatchOperationError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from core.data import ConcurrencyConflict, QueryOptions, QueryResult, Snapshot
from core.domain import to_iso, utc_now
from shared.cosmos_client import batch_status
from shared.cosmos_config import DOC_TYPE_APPOINTMENT, DOC_TYPE_SCHEDULE_MARKER
from use_cases.scheduling.domain import Appointment, StoreUnavailable

from .repositories import AppointmentStore

logger = logging.getLogger(__name__)

PRECONDITION_FAILED = 412


def marker_id(dietitian_id: str) -> str:
    return f"schedule-{dietitian_id}"


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate Cosmos DB and transport failures into StoreUnavailable."""
    try:
        yield
    except CosmosBatchOperationError as e:
        status = batch_status(e)
        logger.error(f"Cosmos batch failed during {operation}: {status}")
        raise StoreUnavailable(status) from e
    except CosmosHttpResponseError as e:
        logger.error(f"Cosmos request failed during {operation}: {e.status_code}")
        raise StoreUnavailable(e.status_code) from e
    except (ServiceRequestError, ServiceResponseError) as e:
        logger.error(f"Cosmos unreachable during {operation}: {e}")
        raise StoreUnavailable() from e


class CosmosAppointmentStore(AppointmentStore):
    """Appointment store backed by a Cosmos DB container client."""

    def __init__(self, container):
        """
        Args:
            container: ``ContainerProxy`` for the appointments container
        """
        self._container = container

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, partition_key: str, id: str) -> Optional[Appointment]:
        with store_errors("get"):
            try:
                doc = self._container.read_item(item=id, partition_key=partition_key)
            except CosmosResourceNotFoundError:
                return None
        if doc.get("type") != DOC_TYPE_APPOINTMENT:
            return None
        return Appointment.from_document(doc)

    def _build_query(self, options: QueryOptions, select: str = "*") -> tuple:
        clauses = ["c.type = @type"]
        params: List[Dict[str, Any]] = [{"name": "@type", "value": DOC_TYPE_APPOINTMENT}]
        if options.window_start is not None:
            clauses.append("c.startTime >= @start")
            params.append({"name": "@start", "value": to_iso(options.window_start)})
        if options.window_end is not None:
            clauses.append("c.startTime < @end")
            params.append({"name": "@end", "value": to_iso(options.window_end)})
        status = options.filters.get("status")
        if status is not None:
            clauses.append("c.status = @status")
            params.append({"name": "@status", "value": getattr(status, "value", status)})
        query = f"SELECT {select} FROM c WHERE {' AND '.join(clauses)}"
        return query, params

    def find(self, partition_key: str, options: Optional[QueryOptions] = None) -> QueryResult[Appointment]:
        options = options or QueryOptions()
        query, params = self._build_query(options)
        direction = "DESC" if options.order_desc else "ASC"
        query = f"{query} ORDER BY c.startTime {direction}"
        with store_errors("find"):
            docs = list(self._container.query_items(query, parameters=params, partition_key=partition_key))
        items = [Appointment.from_document(doc) for doc in docs]
        return QueryResult.paginate(items, options)

    def count(self, dietitian_id: str, options: Optional[QueryOptions] = None) -> int:
        query, params = self._build_query(options or QueryOptions(), select="VALUE COUNT(1)")
        with store_errors("count"):
            result = list(self._container.query_items(query, parameters=params, partition_key=dietitian_id))
        return int(result[0]) if result else 0

    def _read_marker(self, dietitian_id: str) -> Dict[str, Any]:
        """Read the schedule marker, creating it on first use."""
        with store_errors("read_marker"):
            try:
                return self._container.read_item(item=marker_id(dietitian_id), partition_key=dietitian_id)
            except CosmosResourceNotFoundError:
                pass
            try:
                return self._container.create_item(self._marker_body(dietitian_id))
            except CosmosResourceExistsError:
                # Another writer created it first
                return self._container.read_item(item=marker_id(dietitian_id), partition_key=dietitian_id)

    def snapshot(self, partition_key: str) -> Snapshot[Appointment]:
        # Marker first: a write landing after this read makes the etag stale
        marker = self._read_marker(partition_key)
        items = self.find(partition_key, QueryOptions(limit=10_000)).data
        return Snapshot(partition_key=partition_key, items=items, version=marker["_etag"])

    # =========================================================================
    # WRITES
    # =========================================================================

    def _marker_body(self, dietitian_id: str) -> Dict[str, Any]:
        return {
            "id": marker_id(dietitian_id),
            "dietitianId": dietitian_id,
            "type": DOC_TYPE_SCHEDULE_MARKER,
            "revision": uuid.uuid4().hex,
            "updatedAt": to_iso(utc_now()),
        }

    def save(self, entity: Appointment, expected_version: Any = None) -> Appointment:
        dietitian_id = entity.dietitian_id
        marker = self._marker_body(dietitian_id)
        if expected_version is None:
            marker_op = ("upsert", (marker,))
        else:
            marker_op = ("replace", (marker["id"], marker), {"if_match_etag": expected_version})

        with store_errors("save"):
            try:
                self._container.execute_item_batch(
                    batch_operations=[marker_op, ("upsert", (entity.to_document(),))],
                    partition_key=dietitian_id,
                )
            except CosmosBatchOperationError as e:
                if self._is_stale(e):
                    logger.info(f"Stale commit for dietitian {dietitian_id} at etag {expected_version}")
                    raise ConcurrencyConflict(dietitian_id, expected_version) from e
                raise
        logger.info(f"Saved appointment {entity.id} for dietitian {dietitian_id}")
        return entity

    @staticmethod
    def _is_stale(error: CosmosBatchOperationError) -> bool:
        return PRECONDITION_FAILED in (error.status_code, batch_status(error))

    def delete(self, partition_key: str, id: str) -> bool:
        with store_errors("delete"):
            try:
                self._container.execute_item_batch(
                    batch_operations=[("upsert", (self._marker_body(partition_key),)), ("delete", (id,))],
                    partition_key=partition_key,
                )
            except CosmosBatchOperationError as e:
                if batch_status(e) == 404:
                    return False
                raise
        return True
