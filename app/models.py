from datetime import datetime
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from app.clock import utcnow


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: str = Field(default="Employee", index=True)  # Admin / Manager / Employee

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)

    created_at: datetime = Field(default_factory=utcnow)


class Tool(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tool_name: str = Field(index=True)
    tool_code: str = Field(index=True, unique=True)  # printed asset tag
    category_id: int = Field(foreign_key="category.id", index=True)

    # cached; written by checkout/checkin and the overdue sweep
    status: str = Field(default="Available", index=True)

    purchase_date: Optional[datetime] = None
    location: str = Field(default="")
    image: str = Field(default="")

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


OPEN_TRANSACTION_CLAUSE = "actual_return_date IS NULL"


class Transaction(SQLModel, table=True):
    __tablename__ = "tool_transaction"
    __table_args__ = (
        # at most one open checkout per tool
        Index(
            "ix_open_transaction_per_tool",
            "tool_id",
            unique=True,
            sqlite_where=text(OPEN_TRANSACTION_CLAUSE),
            postgresql_where=text(OPEN_TRANSACTION_CLAUSE),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    tool_id: int = Field(foreign_key="tool.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    type: str = Field(default="checkout", index=True)  # checkout / checkin

    checkout_date: datetime = Field(default_factory=utcnow)
    expected_return_date: Optional[datetime] = None
    actual_return_date: Optional[datetime] = None  # None -> still out

    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
