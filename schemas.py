import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal, Any
from pydantic import BaseModel, EmailStr, ConfigDict, Field, field_validator

from models import PDF_FILE_NAME_LENGTH, PDF_MIME_TYPE_LENGTH, PaymentStatus, Role
from services.config import DEFAULT_PDF_MIME_TYPE


# =========================
# Auth
# =========================
class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class Principal(BaseModel):
    """Authenticated caller as seen by the invoice services."""
    role: str
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    role: Role = Role.CUSTOMER

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8)
    role: Optional[Role] = None
    disabled: Optional[bool] = None

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class UserRead(BaseModel):
    id: uuid.UUID
    email: EmailStr
    role: Role
    disabled: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# =========================
# Invoices
# =========================
def normalize_invoice_number(v: Any) -> Any:
    return v.strip().upper() if isinstance(v, str) else v


def normalize_email(v: Any) -> Any:
    return v.strip().lower() if isinstance(v, str) else v


class _InvoiceFields(BaseModel):
    # Normalization runs before length/email validation and before the
    # unique index ever sees the value.
    model_config = ConfigDict(extra="forbid")

    @field_validator("invoice_number", mode="before", check_fields=False)
    @classmethod
    def normalize_number(cls, v: Any) -> Any:
        return normalize_invoice_number(v)

    @field_validator("customer_email", mode="before", check_fields=False)
    @classmethod
    def normalize_customer_email(cls, v: Any) -> Any:
        return normalize_email(v)


class InvoiceCreate(_InvoiceFields):
    invoice_number: str = Field(min_length=1, max_length=64)
    customer_email: EmailStr
    invoice_date: Optional[datetime] = None
    due_date: datetime
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    invoice_amount: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)


class InvoiceUpdate(_InvoiceFields):
    """One optional slot per mutable column; anything else is rejected."""
    invoice_number: Optional[str] = Field(default=None, min_length=1, max_length=64)
    customer_email: Optional[EmailStr] = None
    invoice_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    payment_status: Optional[PaymentStatus] = None
    invoice_amount: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class InvoiceRead(BaseModel):
    id: uuid.UUID
    invoice_number: str
    customer_email: str
    invoice_date: datetime
    due_date: datetime
    payment_status: PaymentStatus
    invoice_amount: Decimal
    pdf_file_name: Optional[str] = None
    pdf_mime_type: Optional[str] = None
    pdf_size: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class InvoiceRecord(InvoiceRead):
    """Full row including the attachment bytes. Never serialized to clients."""
    pdf_data: Optional[bytes] = None

    def summary(self) -> InvoiceRead:
        return InvoiceRead.model_validate(self.model_dump(exclude={"pdf_data"}))


class InvoiceDeleted(BaseModel):
    deleted: bool
    id: uuid.UUID


# =========================
# Attachments
# =========================
class Attachment(BaseModel):
    """An uploaded file held in memory for the duration of one request."""
    data: bytes
    file_name: Optional[str] = Field(default=None, max_length=PDF_FILE_NAME_LENGTH)
    mime_type: str = Field(default=DEFAULT_PDF_MIME_TYPE, max_length=PDF_MIME_TYPE_LENGTH)

    @property
    def size(self) -> int:
        return len(self.data)


class AttachmentContent(BaseModel):
    content: bytes
    file_name: str
    mime_type: str
    size: int
    disposition: Literal["attachment", "inline"]
