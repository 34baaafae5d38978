"""
Category endpoints.
"""
from fastapi import APIRouter
from sqlmodel import select

from luno.db.models import Category
from luno.deps import CurrentUser, DBSession
from luno.schemas import CategoryIn, CategoryOut, CategoryUpdate
from luno.services import cache
from luno.services.records import (
    apply_changes,
    create_category,
    delete_category,
    ensure_valid_parent,
    get_owned,
)

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("", response_model=list[CategoryOut])
async def list_categories(user: CurrentUser, db: DBSession):
    categories = db.exec(
        select(Category).where(Category.user_id == user.id).order_by(Category.name)
    ).all()
    return [CategoryOut.model_validate(c) for c in categories]


@router.post("", response_model=CategoryOut, status_code=201)
async def add_category(request: CategoryIn, user: CurrentUser, db: DBSession):
    """Create a category; subject to the plan's category limit."""
    return CategoryOut.model_validate(create_category(db, user.id, request.model_dump()))


@router.post("/invalidate-cache")
async def invalidate_category_cache(user: CurrentUser):
    cache.invalidate_category_cache(user.id)
    return {"success": True}


@router.get("/{category_id}", response_model=CategoryOut)
async def get_category(category_id: int, user: CurrentUser, db: DBSession):
    return CategoryOut.model_validate(get_owned(db, Category, category_id, user.id, "Category"))


@router.patch("/{category_id}", response_model=CategoryOut)
async def update_category(category_id: int, request: CategoryUpdate, user: CurrentUser, db: DBSession):
    category = get_owned(db, Category, category_id, user.id, "Category")
    changes = request.model_dump(exclude_unset=True)

    parent_id = changes.get("parent_category_id")
    if parent_id is not None:
        ensure_valid_parent(db, user.id, category_id, parent_id)

    apply_changes(category, changes)
    db.add(category)
    db.commit()
    db.refresh(category)
    return CategoryOut.model_validate(category)


@router.delete("/{category_id}", status_code=204)
async def remove_category(category_id: int, user: CurrentUser, db: DBSession):
    delete_category(db, user.id, category_id)
