from pydantic import BaseModel, Field, ValidationError, field_validator
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Literal
import phonenumbers
from app.config import settings

# tasks.total_cost is Numeric(10, 2)
CENT = Decimal("0.01")
MAX_TOTAL_COST = Decimal("99999999.99")


def normalize_phone(value: str, region: Optional[str] = None) -> str:
    """Parse a phone number and return it in E.164, or raise ValueError."""
    try:
        parsed = phonenumbers.parse(value, region or settings.DEFAULT_PHONE_REGION)
    except phonenumbers.NumberParseException:
        raise ValueError("Invalid phone number")
    if not phonenumbers.is_valid_number(parsed):
        raise ValueError("Invalid phone number")
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


class TaskCreate(BaseModel):
    """Repair request as submitted by the dashboard form (camelCase on the wire)."""
    description: str = Field(..., min_length=1, max_length=255)
    total_cost: Decimal = Field(..., alias="totalCost")
    customer_name: str = Field(..., alias="customerName", min_length=1, max_length=100)
    customer_phone: str = Field(..., alias="customerPhone", min_length=1)
    laptop_brand: str = Field(..., alias="laptopBrand", min_length=1, max_length=100)
    laptop_model: str = Field(..., alias="laptopModel", min_length=1, max_length=100)

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}

    @field_validator("total_cost", mode="before")
    @classmethod
    def check_total_cost(cls, value):
        if isinstance(value, bool):
            raise ValueError("Total cost must be a non-negative number")
        try:
            cost = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError("Total cost must be a non-negative number")
        if not cost.is_finite() or cost < 0:
            raise ValueError("Total cost must be a non-negative number")
        if cost > MAX_TOTAL_COST:
            raise ValueError(f"Total cost cannot exceed {MAX_TOTAL_COST}")
        if cost != cost.quantize(CENT):
            raise ValueError("Total cost can have at most 2 decimal places")
        return cost

    @field_validator("customer_phone")
    @classmethod
    def check_customer_phone(cls, value: str) -> str:
        return normalize_phone(value)


def first_error_message(exc: ValidationError) -> str:
    """Human readable message of the first validation error."""
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    error = errors[0]
    message = error.get("msg", "Invalid input")
    # Messages from our own validators come wrapped as "Value error, ..."
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    field = ".".join(str(part) for part in error.get("loc", ()))
    return f"{field}: {message}" if field else message


class ActionResult(BaseModel):
    status: Literal["success", "error"]
    message: str


class TaskUpdateStatus(BaseModel):
    status: Literal["Pending", "In Progress", "Completed"]


class TaskAssign(BaseModel):
    worker_id: int


class TaskResponse(BaseModel):
    id: int
    description: str
    customer_name: str
    customer_phone: str
    laptop_brand: str
    laptop_model: str
    total_cost: float
    status: str
    assigned_to_id: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}


class TaskListResponse(BaseModel):
    total: int
    tasks: List[TaskResponse]
