from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.database import get_db
from sharegate.core.rbac import Permission, require_permission
from sharegate.models.user import User
from sharegate.schemas.category import CategoryCreate, CategoryRead, CategoryUpdate
from sharegate.services import category_service

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=list[CategoryRead])
async def list_categories(
    parent_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    return await category_service.list_categories(db, parent_id=parent_id)


@router.post("", response_model=CategoryRead, status_code=201)
async def create_category(
    body: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.ADMIN_ACCESS)),
):
    return await category_service.create_category(db, body)


@router.put("/{category_id}", response_model=CategoryRead)
async def update_category(
    category_id: int,
    body: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.ADMIN_ACCESS)),
):
    return await category_service.update_category(db, category_id, body)


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.ADMIN_ACCESS)),
):
    await category_service.delete_category(db, category_id)
