"""
Budget sync propagator.

Keeps budget line items in step with the crew, cast, equipment and location
records they link to. After a resource edit, every BudgetItem whose link
field points at the resource gets its description, unit rate and estimated
amount recomputed, and all changes land in one atomic batch.

Propagation is best-effort: the resource edit has already succeeded by the
time it runs, so any failure is logged and reported as a FAILED result and
never raised.
"""

import logging
from datetime import datetime
from datetime import timezone
from typing import Any
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional

from pydantic import ValidationError

from production_sync.linkage import ResourceLink
from production_sync.linkage import link_for
from production_sync.models import BudgetItem
from production_sync.models import PropagationResult
from production_sync.models import ResourceKind
from production_sync.settings import Settings
from production_sync.settings import get_settings
from production_sync.store import DocumentStore
from production_sync.store import Write

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class BudgetSyncPropagator:
    """Republish derived budget fields from a resource to its linked items."""

    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    @property
    def collection(self) -> str:
        return self.settings.budget_collection

    async def propagate(
        self,
        kind: ResourceKind,
        resource_id: str,
        changed_fields: Mapping[str, Any],
        source_updated_at: Optional[datetime] = None,
    ) -> PropagationResult:
        """
        Propagate a resource edit into every linked BudgetItem.

        Args:
            kind: Kind of the edited resource
            resource_id: Id of the edited resource
            changed_fields: Changed resource fields keyed by their document
                names (e.g. ``name``, ``role``, ``actorName``, ``dailyRate``)
            source_updated_at: Optional time of the resource edit; items that
                already carry a newer ``sourceUpdatedAt`` are left untouched

        Returns:
            PROPAGATED with the updated item ids, SKIPPED when nothing had to
            be written, or FAILED with the reason
        """
        link = link_for(kind)
        kind = link.kind

        if not link.is_relevant(changed_fields):
            logger.debug(f"No budget-relevant change for {kind.value} {resource_id}")
            return PropagationResult.skipped(kind, resource_id, "no relevant fields changed")

        try:
            documents = await self.store.get_all(self.collection, {link.link_field: resource_id})
            if not documents:
                return PropagationResult.skipped(kind, resource_id, "no linked budget items")

            resource_fields = await self._resource_fields(link, resource_id, changed_fields)

            writes: List[Write] = []
            for document in documents:
                try:
                    item = BudgetItem.from_document(document)
                except ValidationError as exc:
                    logger.warning(f"Skipping unreadable budget item {document.get('id')}: {exc}")
                    continue

                if self._is_stale(item, source_updated_at):
                    logger.info(
                        f"Skipping budget item {item.id}: already synced from a newer "
                        f"{kind.value} edit"
                    )
                    continue

                update = self._derive_update(link, item, resource_fields, changed_fields)
                if not update:
                    continue
                if source_updated_at is not None:
                    update["sourceUpdatedAt"] = _as_utc(source_updated_at).isoformat()
                writes.append(Write.update(self.collection, item.id, update))

            if not writes:
                return PropagationResult.skipped(kind, resource_id, "linked budget items already up to date")

            await self.store.commit_batch(writes)

        except Exception as exc:
            logger.error(
                f"Budget sync failed for {kind.value} {resource_id}: {exc}",
                exc_info=True,
            )
            return PropagationResult.failed(kind, resource_id, str(exc))

        item_ids = [write.doc_id for write in writes]
        logger.info(f"Propagated {kind.value} {resource_id} to {len(item_ids)} budget items")
        return PropagationResult.propagated(kind, resource_id, item_ids)

    async def unlink(self, kind: ResourceKind, resource_id: str) -> PropagationResult:
        """
        Remove the back-reference to a deleted resource from its budget items.

        Items are kept, with their last derived values, to preserve budget
        history. Same best-effort policy as ``propagate``.
        """
        link = link_for(kind)
        kind = link.kind

        try:
            documents = await self.store.get_all(self.collection, {link.link_field: resource_id})
            if not documents:
                return PropagationResult.skipped(kind, resource_id, "no linked budget items")

            writes = [
                Write.delete_fields(self.collection, document["id"], [link.link_field])
                for document in documents
            ]
            await self.store.commit_batch(writes)

        except Exception as exc:
            logger.error(
                f"Budget unlink failed for {kind.value} {resource_id}: {exc}",
                exc_info=True,
            )
            return PropagationResult.failed(kind, resource_id, str(exc))

        item_ids = [write.doc_id for write in writes]
        logger.info(f"Unlinked {kind.value} {resource_id} from {len(item_ids)} budget items")
        return PropagationResult.propagated(kind, resource_id, item_ids)

    async def _resource_fields(
        self,
        link: ResourceLink,
        resource_id: str,
        changed_fields: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Current resource fields with the changes laid over them."""
        fields: Dict[str, Any] = {}
        if link.touches_description(changed_fields):
            document = await self.store.get(link.collection, resource_id)
            if document:
                try:
                    fields.update(link.parse(document).to_document())
                except ValidationError as exc:
                    logger.warning(
                        f"Unreadable {link.kind.value} {resource_id}, composing the "
                        f"description from the changed fields only: {exc}"
                    )
        fields.update(changed_fields)
        return fields

    @staticmethod
    def _is_stale(item: BudgetItem, source_updated_at: Optional[datetime]) -> bool:
        if source_updated_at is None or item.source_updated_at is None:
            return False
        return _as_utc(item.source_updated_at) > _as_utc(source_updated_at)

    @staticmethod
    def _derive_update(
        link: ResourceLink,
        item: BudgetItem,
        resource_fields: Mapping[str, Any],
        changed_fields: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """
        Compute the derived fields of one budget item that actually change.

        Returns:
            camelCase field updates, empty when the item is already current
        """
        update: Dict[str, Any] = {}

        if link.touches_description(changed_fields):
            description = link.compose_description(resource_fields)
            if description and description != item.description:
                update["description"] = description

        # Items without a unit rate are not rate-synced
        if link.touches_rate(changed_fields) and item.unit_rate is not None:
            rate_field = link.select_rate_field(item.unit)
            new_rate = changed_fields.get(rate_field) if rate_field else None
            if new_rate is not None:
                unit_rate = float(new_rate)
                if unit_rate != item.unit_rate:
                    update["unitRate"] = unit_rate
                if item.quantity is not None:
                    estimated = unit_rate * item.quantity
                    if estimated != item.estimated_amount:
                        update["estimatedAmount"] = estimated

        return update
