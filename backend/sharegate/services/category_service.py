"""Category hierarchy stored as a flat (id, parent_id) table.

Writes that would make a category its own ancestor are rejected.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.exceptions import NotFoundError, ValidationError
from sharegate.models.category import Category
from sharegate.schemas.category import CategoryCreate, CategoryUpdate
from sharegate.utils.logging import get_logger

logger = get_logger(__name__)


async def get_category(db: AsyncSession, category_id: int) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


async def list_categories(db: AsyncSession, parent_id: int | None = None) -> list[Category]:
    stmt = select(Category).order_by(Category.name, Category.id)
    if parent_id is not None:
        stmt = stmt.where(Category.parent_id == parent_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def ancestor_ids(db: AsyncSession, category_id: int) -> list[int]:
    """Parent chain of ``category_id``, nearest first."""
    parents = dict((await db.execute(select(Category.id, Category.parent_id))).tuples().all())
    chain: list[int] = []
    current = parents.get(category_id)
    while current is not None and current not in chain:
        chain.append(current)
        current = parents.get(current)
    return chain


async def create_category(db: AsyncSession, data: CategoryCreate) -> Category:
    if data.parent_id is not None:
        await get_category(db, data.parent_id)
    category = Category(name=data.name.strip(), description=data.description, parent_id=data.parent_id)
    db.add(category)
    await db.flush()
    logger.info("Created category %s '%s'", category.id, category.name)
    return category


async def update_category(db: AsyncSession, category_id: int, data: CategoryUpdate) -> Category:
    category = await get_category(db, category_id)
    changes = data.model_dump(exclude_unset=True)

    if "parent_id" in changes and changes["parent_id"] is not None:
        new_parent = changes["parent_id"]
        if new_parent == category_id:
            raise ValidationError("A category cannot be its own parent")
        await get_category(db, new_parent)
        if category_id in await ancestor_ids(db, new_parent):
            raise ValidationError(f"Moving category {category_id} under {new_parent} would create a cycle")

    for field, value in changes.items():
        if field == "name" and value is not None:
            value = value.strip()
        if value is None and field != "parent_id":
            continue
        setattr(category, field, value)
    await db.flush()
    return category


async def delete_category(db: AsyncSession, category_id: int) -> None:
    category = await get_category(db, category_id)
    # children move up to the deleted node's parent
    await db.execute(
        update(Category)
        .where(Category.parent_id == category_id)
        .values(parent_id=category.parent_id)
        .execution_options(synchronize_session="fetch")
    )
    await db.delete(category)
    await db.flush()
    logger.info("Deleted category %s", category_id)
