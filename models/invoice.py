"""Supplier Invoice Models for CrewTech"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class SupplierInvoiceStatus(str, Enum):
    UPLOADED = "uploaded"
    APPROVED = "approved"
    REJECTED = "rejected"


class SupplierInvoiceCreate(BaseModel):
    """Invoice uploaded by a freelancer for one assignment"""
    assignment_id: str
    invoice_number: str
    amount: float = Field(..., ge=0)
    currency: str = "EUR"
    pdf_path: Optional[str] = None


class SupplierInvoice(SupplierInvoiceCreate):
    id: str
    status: SupplierInvoiceStatus = SupplierInvoiceStatus.UPLOADED
    created_at: datetime = Field(default_factory=datetime.utcnow)


class SupplierInvoiceStatusUpdate(BaseModel):
    status: SupplierInvoiceStatus
