"""
Tag Join Resolver

Tags hang off transactions through the transaction_tags join table.
Reading them is a second lookup merged in memory after the primary
query, and it is never allowed to fail that query: if the join or tag
lookup fails, the transactions simply come back without tags.
"""

from collections import defaultdict
from typing import Iterable
from uuid import UUID

from pydantic import ValidationError as ModelValidationError

from spendly.log import get_logger
from spendly.models.ledger import Tag, TransactionTag
from spendly.services.storage.interface import (
    TAGS,
    TRANSACTION_TAGS,
    In,
    StorageError,
    TableStore,
)


class TagJoinResolver:
    """Reads and writes transaction <-> tag links."""

    def __init__(self, store: TableStore):
        self._store = store
        self._logger = get_logger(__name__)

    async def tags_for(self, transaction_ids: Iterable[UUID]) -> dict[UUID, list[Tag]]:
        """
        Map each transaction id to its tags.

        Transactions without tags are absent from the mapping.
        Any storage or row-shape failure degrades to an empty mapping.
        """
        ids = list(dict.fromkeys(transaction_ids))
        if not ids:
            return {}

        try:
            links = [
                TransactionTag.model_validate(row)
                for row in await self._store.select(
                    TRANSACTION_TAGS, {"transaction_id": In(ids)}
                )
            ]
            if not links:
                return {}

            tag_rows = await self._store.select(
                TAGS, {"id": In({link.tag_id for link in links})}
            )
            tags = {tag.id: tag for tag in (Tag.model_validate(row) for row in tag_rows)}
        except (StorageError, ModelValidationError) as e:
            self._logger.warning(
                "tag_lookup_degraded",
                error=str(e),
                transaction_count=len(ids),
            )
            return {}

        mapping: dict[UUID, list[Tag]] = defaultdict(list)
        for link in links:
            # Links to deleted tags are skipped
            if link.tag_id in tags:
                mapping[link.transaction_id].append(tags[link.tag_id])
        return dict(mapping)

    async def tag_ids_for(self, transaction_ids: Iterable[UUID]) -> dict[UUID, list[UUID]]:
        """
        Map each transaction id to the ids it is linked to, dangling or not.

        Unlike tags_for this raises StorageError, for callers that must put
        the links back exactly.
        """
        ids = list(dict.fromkeys(transaction_ids))
        if not ids:
            return {}

        rows = await self._store.select(TRANSACTION_TAGS, {"transaction_id": In(ids)})
        try:
            links = [TransactionTag.model_validate(row) for row in rows]
        except ModelValidationError as e:
            raise StorageError(f"Malformed TransactionTag row: {e}")

        mapping: dict[UUID, list[UUID]] = defaultdict(list)
        for link in links:
            mapping[link.transaction_id].append(link.tag_id)
        return dict(mapping)

    async def link(self, transaction_id: UUID, tag_ids: Iterable[UUID]) -> None:
        """Attach tags to a transaction. Raises StorageError on failure."""
        rows = [
            TransactionTag(transaction_id=transaction_id, tag_id=tag_id).model_dump()
            for tag_id in dict.fromkeys(tag_ids)
        ]
        if rows:
            await self._store.insert(TRANSACTION_TAGS, rows)

    async def unlink_transaction(self, transaction_id: UUID) -> None:
        await self._store.delete(TRANSACTION_TAGS, {"transaction_id": transaction_id})

    async def unlink_tag(self, tag_id: UUID) -> None:
        await self._store.delete(TRANSACTION_TAGS, {"tag_id": tag_id})
