from fastapi import APIRouter, Depends, status
from sqlmodel import Session, select
from sqlalchemy.exc import IntegrityError

from app.db import get_session
from app.deps import require_manager, require_user
from app.models import Category, User
from app.schemas import CategoryCreate, CategoryRead
from app.error import abort

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=list[CategoryRead])
def list_categories(
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    return session.exec(select(Category).order_by(Category.name.asc())).all()


@router.post("", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
def create_category(
        data: CategoryCreate,
        session: Session = Depends(get_session),
        _user: User = Depends(require_manager),
):
    if session.exec(select(Category).where(Category.name == data.name)).first():
        abort(400, "CATEGORY_EXISTS", "Category already exists")

    category = Category(name=data.name)
    session.add(category)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, "CATEGORY_EXISTS", "Category already exists")
    session.refresh(category)
    return category
