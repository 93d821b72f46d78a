from sqlalchemy.orm import Session

from marketplace.domain.exceptions import InvalidInputError, NotFoundError
from marketplace.domain.models import CategorySpec, Vertical
from marketplace.domain.pricing import to_money
from marketplace.domain.state_machine import ItemStateMachine, ItemStatus
from marketplace.infrastructure.db.models import InventoryCategory, InventoryItem, Organizer
from marketplace.infrastructure.repositories.inventory_repository import InventoryRepository


class CatalogService:
    """Listings and organizers. Plain writes, no contention."""

    def __init__(self, db: Session):
        self.db = db
        self.inventory_repository = InventoryRepository(db)

    def create_organizer(self, name: str, email: str) -> Organizer:
        email = (email or "").strip().lower()
        if not email or not (name or "").strip():
            raise InvalidInputError("name and email are required")
        if self.inventory_repository.get_organizer_by_email(email):
            raise InvalidInputError("an organizer with this email already exists")

        return self.inventory_repository.add_organizer(
            Organizer(name=name.strip(), email=email)
        )

    def create_item(
        self,
        organizer_id: str,
        vertical: Vertical,
        title: str,
        categories: list[CategorySpec],
        sales_notification_emails: list[str] | None = None,
    ) -> InventoryItem:
        if not (title or "").strip():
            raise InvalidInputError("title is required")
        if self.inventory_repository.get_organizer(organizer_id) is None:
            raise NotFoundError("organizer not found")

        item = InventoryItem(
            organizer_id=organizer_id,
            vertical=vertical,
            title=title.strip(),
            status=ItemStatus.PENDING,
            sales_notification_emails=_clean_emails(sales_notification_emails),
        )
        self.inventory_repository.add_item(item)
        self.inventory_repository.replace_categories(item, _build_categories(categories))
        self.db.flush()
        return item

    def get_item(self, item_id: str) -> InventoryItem:
        item = self.inventory_repository.get_item(item_id)
        if item is None:
            raise NotFoundError("item not found")
        return item

    def update_item(
        self,
        item_id: str,
        title: str | None = None,
        categories: list[CategorySpec] | None = None,
        sales_notification_emails: list[str] | None = None,
    ) -> InventoryItem:
        """Any edit sends the listing back for approval. The owner never changes."""
        item = self.get_item(item_id)

        if title is not None:
            if not title.strip():
                raise InvalidInputError("title is required")
            item.title = title.strip()
        if categories is not None:
            self.inventory_repository.replace_categories(item, _build_categories(categories))
        if sales_notification_emails is not None:
            item.sales_notification_emails = _clean_emails(sales_notification_emails)

        if item.status != ItemStatus.PENDING:
            ItemStateMachine.validate_transition(item.status, ItemStatus.PENDING)
            item.status = ItemStatus.PENDING

        self.db.flush()
        return item

    def set_status(self, item_id: str, new_status: ItemStatus) -> InventoryItem:
        item = self.get_item(item_id)
        ItemStateMachine.validate_transition(item.status, new_status)
        item.status = new_status
        self.db.flush()
        return item


def _build_categories(specs: list[CategorySpec]) -> list[InventoryCategory]:
    seen = set()
    categories = []
    for spec in specs:
        name = (spec.name or "").strip()
        if not name:
            raise InvalidInputError("category name is required")
        if name in seen:
            raise InvalidInputError(f"duplicate category name: {name}")
        if spec.capacity is not None and spec.capacity < 0:
            raise InvalidInputError(f"capacity for {name} cannot be negative")
        seen.add(name)
        categories.append(
            InventoryCategory(
                name=name,
                price=to_money(spec.price) if spec.price is not None else None,
                capacity=spec.capacity,
            )
        )
    return categories


def _clean_emails(emails: list[str] | None) -> list[str]:
    return [email.strip().lower() for email in emails or [] if email and email.strip()]
