"""In-memory ChildrenService for the local server and tests."""

import uuid
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from handlers.children import Child, ServiceError, Transaction, UpdateChildSettingsRequest


class InMemoryChildrenService:
    """Keeps children and transactions in dictionaries for one process."""

    def __init__(
        self,
        children: Optional[Iterable[Child]] = None,
        transactions: Optional[Iterable[Transaction]] = None,
    ) -> None:
        self.children: Dict[uuid.UUID, Child] = {c.id: c for c in children or []}
        self.transactions: List[Transaction] = list(transactions or [])

    async def list_children(self, family_id: uuid.UUID) -> List[Child]:
        return [c for c in self.children.values() if c.family_id == family_id]

    async def get_child(self, child_id: uuid.UUID) -> Optional[Child]:
        return self.children.get(child_id)

    async def list_transactions(self, child_id: uuid.UUID, limit: int) -> List[Transaction]:
        matching = [t for t in self.transactions if t.child_id == child_id]
        matching.sort(key=lambda t: t.created_at, reverse=True)
        return matching[:limit]

    async def update_allowance(self, child_id: uuid.UUID, weekly_allowance: Decimal) -> Child:
        child = self.children.get(child_id)
        if child is None:
            raise ServiceError(f"Child {child_id} disappeared during update")
        updated = child.model_copy(update={"weekly_allowance": weekly_allowance})
        self.children[child_id] = updated
        return updated

    async def update_settings(self, child_id: uuid.UUID, settings: UpdateChildSettingsRequest) -> Child:
        child = self.children.get(child_id)
        if child is None:
            raise ServiceError(f"Child {child_id} disappeared during update")
        updated = child.model_copy(update=settings.model_dump())
        self.children[child_id] = updated
        return updated

    async def delete_child(self, child_id: uuid.UUID) -> None:
        self.children.pop(child_id, None)
        self.transactions = [t for t in self.transactions if t.child_id != child_id]
