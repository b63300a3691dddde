"""Read-only lookups into the scheme, document type and checklist catalogs."""

import uuid
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import ChecklistItem, DocumentType, Scheme
from app.repositories.base_repository import BaseRepository


class ChecklistRepository(BaseRepository[ChecklistItem]):
    """Catalog lookups used when creating an evaluation."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ChecklistItem)

    async def get_scheme(self, scheme_id: uuid.UUID) -> Optional[Scheme]:
        return await self.first(select(Scheme).where(Scheme.id == scheme_id))

    async def get_document_type(self, document_type_id: uuid.UUID) -> Optional[DocumentType]:
        return await self.first(select(DocumentType).where(DocumentType.id == document_type_id))

    async def get_items_in_order(self, item_ids: Sequence[uuid.UUID]) -> List[ChecklistItem]:
        """Resolve checklist items, keeping the order of ``item_ids``.

        Unknown ids are skipped.
        """
        if not item_ids:
            return []
        items = await self.all(select(ChecklistItem).where(ChecklistItem.id.in_(list(item_ids))))
        by_id = {item.id: item for item in items}
        return [by_id[item_id] for item_id in item_ids if item_id in by_id]
