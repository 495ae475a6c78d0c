from typing import Optional
from enum import Enum
from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime

from app.clock import to_naive_utc


class Role(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    EMPLOYEE = "Employee"


class ToolStatus(str, Enum):
    AVAILABLE = "Available"
    CHECKED_OUT = "Checked Out"
    UNDER_MAINTENANCE = "Under Maintenance"
    RETIRED = "Retired"
    OVERDUE = "Overdue"


class TransactionType(str, Enum):
    CHECKOUT = "checkout"
    CHECKIN = "checkin"


class TransactionStatus(str, Enum):
    """Display status resolved from a transaction's dates."""
    AVAILABLE = "Available"
    IN_USE = "In Use"
    OVERDUE = "Overdue"


class TransactionAction(str, Enum):
    CHECKED_OUT = "Checked Out"
    CHECKED_IN = "Checked In"


# --- auth / users ---

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: Role = Role.EMPLOYEE


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    role: Role


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# --- categories ---

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CategoryRead(BaseModel):
    id: int
    name: str


# --- tools ---

class ToolCreate(BaseModel):
    tool_name: str = Field(..., min_length=1, max_length=200)
    tool_code: str = Field(..., min_length=1, max_length=50)
    category_id: int
    status: ToolStatus = ToolStatus.AVAILABLE
    purchase_date: Optional[datetime] = None
    location: str = ""
    image: str = ""

    @field_validator("tool_name", "tool_code")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("purchase_date")
    @classmethod
    def normalize_purchase_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class ToolUpdate(BaseModel):
    tool_name: Optional[str] = Field(None, min_length=1, max_length=200)
    tool_code: Optional[str] = Field(None, min_length=1, max_length=50)
    category_id: Optional[int] = None
    status: Optional[ToolStatus] = None
    purchase_date: Optional[datetime] = None
    location: Optional[str] = None
    image: Optional[str] = None

    @field_validator("purchase_date")
    @classmethod
    def normalize_purchase_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class ToolRead(BaseModel):
    id: int
    tool_name: str
    tool_code: str
    category_id: int
    category_name: Optional[str] = None
    status: ToolStatus
    purchase_date: Optional[datetime] = None
    location: str
    image: str
    updated_at: datetime


class ToolListResponse(BaseModel):
    items: list[ToolRead]
    total: int
    limit: int
    offset: int
    search: str | None = None


# --- transactions ---

class CheckoutCreate(BaseModel):
    tool_id: int
    user_id: int
    expected_return_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("expected_return_date")
    @classmethod
    def normalize_due(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"tool_id": 1, "user_id": 2, "expected_return_date": "2026-01-12T17:00:00Z", "notes": "site B"},
            ]
        }
    }


class CheckinUpdate(BaseModel):
    notes: Optional[str] = None


class TransactionView(BaseModel):
    id: int
    tool_name: str
    tool_code: str
    user_name: str
    user_email: str
    action: TransactionAction
    checkout_date: Optional[datetime] = None
    checkin_date: Optional[datetime] = None
    event_timestamp: datetime
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    status: TransactionStatus


class SweepResult(BaseModel):
    updated_count: int


# --- dashboard ---

class DashboardStats(BaseModel):
    total_tools: int
    tools_available: int
    tools_checked_out: int
    tools_overdue: int
    total_users: int
    recent_transactions: int


class ActivityItem(BaseModel):
    action: str
    description: str
    time: datetime
