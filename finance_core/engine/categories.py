"""
Category Service

Default (system) categories are shared by every user and never deleted.
Custom categories belong to one owner; (name, kind, owner) is unique.
"""

from typing import Optional
from uuid import UUID

from finance_core.audit import AuditLogger
from finance_core.engine.errors import (
    DuplicateResourceError,
    InvariantViolationError,
    ResourceNotFoundError,
)
from finance_core.models.audit import AuditEventType
from finance_core.models.ledger import Category, CategoryKind
from finance_core.services.storage import (
    CategoryStorageInterface,
    TransactionStorageInterface,
)


# (name, kind, color, icon)
DEFAULT_CATEGORIES = [
    ("Salary", CategoryKind.INCOME, "#10B981", "Banknote"),
    ("Freelance", CategoryKind.INCOME, "#059669", "Laptop"),
    ("Investments", CategoryKind.INCOME, "#047857", "TrendingUp"),
    ("Other Income", CategoryKind.INCOME, "#065F46", "Plus"),
    ("Food", CategoryKind.EXPENSE, "#EF4444", "UtensilsCrossed"),
    ("Transport", CategoryKind.EXPENSE, "#F97316", "Car"),
    ("Housing", CategoryKind.EXPENSE, "#EAB308", "Home"),
    ("Health", CategoryKind.EXPENSE, "#EC4899", "Heart"),
    ("Education", CategoryKind.EXPENSE, "#8B5CF6", "GraduationCap"),
    ("Leisure", CategoryKind.EXPENSE, "#06B6D4", "Gamepad2"),
    ("Shopping", CategoryKind.EXPENSE, "#84CC16", "ShoppingBag"),
    ("Bills", CategoryKind.EXPENSE, "#6366F1", "Receipt"),
    ("Other Expenses", CategoryKind.EXPENSE, "#64748B", "MoreHorizontal"),
]


class CategoryService:
    """Default and custom categories."""

    def __init__(
        self,
        category_storage: CategoryStorageInterface,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._categories = category_storage
        self._transactions = transaction_storage
        self._audit = audit_logger or AuditLogger()

    async def ensure_default_categories(self) -> list[Category]:
        """
        Create any missing default category. Safe to call on every startup.

        Returns the full list of defaults.
        """
        defaults = []
        for order, (name, kind, color, icon) in enumerate(DEFAULT_CATEGORIES):
            existing = await self._categories.find_category(name, kind, owner_id=None)
            if existing is not None:
                defaults.append(existing)
                continue
            category = await self._categories.save_category(Category(
                name=name,
                kind=kind,
                color=color,
                icon=icon,
                is_default=True,
                order=order,
            ))
            await self._audit.log_entity_created(
                event_type=AuditEventType.CATEGORY_CREATED,
                owner_id=None,
                entity_type="category",
                entity_id=category.id,
                name=category.name,
            )
            defaults.append(category)
        return defaults

    async def create_category(
        self,
        owner_id: UUID,
        name: str,
        kind: CategoryKind,
        color: str,
        icon: str = "Circle",
        description: Optional[str] = None,
    ) -> Category:
        """
        Create a custom category.

        Raises:
            DuplicateResourceError: owner already has (name, kind)
        """
        category = Category(
            name=name,
            kind=kind,
            color=color,
            icon=icon,
            description=description,
            owner_id=owner_id,
        )
        if await self._categories.find_category(category.name, kind, owner_id):
            raise DuplicateResourceError(
                f"Category '{category.name}' ({kind.value}) already exists"
            )

        saved = await self._categories.save_category(category)
        await self._audit.log_entity_created(
            event_type=AuditEventType.CATEGORY_CREATED,
            owner_id=owner_id,
            entity_type="category",
            entity_id=saved.id,
            name=saved.name,
        )
        return saved

    async def get_category(self, owner_id: UUID, category_id: UUID) -> Category:
        category = await self._categories.get_category(category_id)
        if category is None or not category.is_visible_to(owner_id):
            raise ResourceNotFoundError("Category", category_id)
        return category

    async def list_categories(
        self,
        owner_id: UUID,
        kind: Optional[CategoryKind] = None,
    ) -> list[Category]:
        """Defaults plus the owner's active custom categories."""
        return await self._categories.list_categories(owner_id=owner_id, kind=kind)

    async def delete_category(self, owner_id: UUID, category_id: UUID) -> None:
        """
        Delete a custom category.

        Raises:
            ResourceNotFoundError: unknown or not visible to owner
            InvariantViolationError: default category, or still referenced
        """
        category = await self.get_category(owner_id, category_id)
        if category.is_default:
            raise InvariantViolationError("Default categories cannot be deleted")

        referenced = await self._transactions.count_by_category(category_id)
        if referenced:
            raise InvariantViolationError(
                f"Category is used by {referenced} transaction(s)"
            )

        await self._categories.delete_category(category_id)
        await self._audit.log_entity_changed(
            event_type=AuditEventType.CATEGORY_DELETED,
            owner_id=owner_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category deleted: {category.name}",
        )
