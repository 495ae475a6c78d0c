from fastapi import APIRouter, Depends, status
from sqlmodel import Session, select
from sqlalchemy.exc import IntegrityError

from app.clock import utcnow
from app.db import get_session
from app.deps import require_admin
from app.models import User
from app.schemas import UserCreate, UserRead, UserUpdate
from app.security import hash_password
from app.error import abort

router = APIRouter(prefix="/users", tags=["users"])


def _commit_unique_email(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, "EMAIL_EXISTS", "User already exists")


@router.get("", response_model=list[UserRead])
def list_users(
        session: Session = Depends(get_session),
        _admin: User = Depends(require_admin),
):
    return session.exec(select(User).order_by(User.id.asc())).all()


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
        data: UserCreate,
        session: Session = Depends(get_session),
        _admin: User = Depends(require_admin),
):
    email = data.email.lower()
    if session.exec(select(User).where(User.email == email)).first():
        abort(400, "EMAIL_EXISTS", "User already exists")

    user = User(
        name=data.name.strip(),
        email=email,
        password_hash=hash_password(data.password),
        role=data.role.value,
    )
    session.add(user)
    _commit_unique_email(session)
    session.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserRead)
def get_user(
        user_id: int,
        session: Session = Depends(get_session),
        _admin: User = Depends(require_admin),
):
    user = session.get(User, user_id)
    if not user:
        abort(404, "NOT_FOUND", "User not found")
    return user


@router.put("/{user_id}", response_model=UserRead)
def update_user(
        user_id: int,
        data: UserUpdate,
        session: Session = Depends(get_session),
        _admin: User = Depends(require_admin),
):
    user = session.get(User, user_id)
    if not user:
        abort(404, "NOT_FOUND", "User not found")

    if data.email is not None:
        email = data.email.lower()
        if email != user.email:
            if session.exec(select(User).where(User.email == email)).first():
                abort(400, "EMAIL_EXISTS", "User already exists")
            user.email = email
    if data.name:
        user.name = data.name.strip()
    if data.role is not None:
        user.role = data.role.value
    user.updated_at = utcnow()

    session.add(user)
    _commit_unique_email(session)
    session.refresh(user)
    return user


@router.delete("/{user_id}")
def delete_user(
        user_id: int,
        session: Session = Depends(get_session),
        _admin: User = Depends(require_admin),
):
    user = session.get(User, user_id)
    if not user:
        abort(404, "NOT_FOUND", "User not found")
    # past transactions keep the id and render as "Unknown User"; a store
    # that enforces foreign keys refuses the delete instead
    session.delete(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, "IN_USE", "User has transactions and cannot be deleted")
    return {"ok": True}
