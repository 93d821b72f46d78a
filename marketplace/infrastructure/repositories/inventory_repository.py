# marketplace/infrastructure/repositories/inventory_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from marketplace.infrastructure.db.models import InventoryCategory, InventoryItem, Organizer


class InventoryRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_item(self, item_id: str) -> InventoryItem | None:
        stmt = select(InventoryItem).where(InventoryItem.id == item_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_item(self, item_id: str) -> InventoryItem | None:
        """
        SELECT ... FOR UPDATE
        Serializes bookings against one item for the rest of the transaction.
        """

        stmt = (
            select(InventoryItem)
            .where(InventoryItem.id == item_id)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add_item(self, item: InventoryItem) -> InventoryItem:
        self.db.add(item)
        self.db.flush()
        return item

    def replace_categories(
        self,
        item: InventoryItem,
        categories: list[InventoryCategory],
    ) -> None:
        item.categories.clear()
        # Flush the orphan deletes before re-inserting names under the unique constraint.
        self.db.flush()
        for position, category in enumerate(categories):
            category.position = position
            item.categories.append(category)

    def get_organizer(self, organizer_id: str) -> Organizer | None:
        stmt = select(Organizer).where(Organizer.id == organizer_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_organizer_by_email(self, email: str) -> Organizer | None:
        stmt = select(Organizer).where(func.lower(Organizer.email) == email.strip().lower())
        return self.db.execute(stmt).scalar_one_or_none()

    def add_organizer(self, organizer: Organizer) -> Organizer:
        self.db.add(organizer)
        self.db.flush()
        return organizer
