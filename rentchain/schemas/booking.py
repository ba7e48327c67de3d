from datetime import date
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional

class BookingCreate(BaseModel):
    userId: Optional[str] = None  # must match the token when sent
    propertyId: str
    checkInDate: date
    checkOutDate: date
    numberOfGuests: int = 1
    requestedPrice: Optional[Decimal] = Field(default=None, ge=0)

class BookingUpdate(BaseModel):
    checkInDate: Optional[date] = None
    checkOutDate: Optional[date] = None
    numberOfGuests: Optional[int] = None
    requestedPrice: Optional[Decimal] = Field(default=None, ge=0)

class PaymentConfirm(BaseModel):
    transactionHash: str = Field(default="", max_length=100)

class BookingOut(BaseModel):
    id: str
    tenantId: str
    propertyId: str
    ownerId: str
    checkInDate: date
    checkOutDate: date
    numberOfGuests: int
    listPrice: Decimal
    totalPrice: Decimal
    longStayDiscountPercent: int = 0
    requestedPrice: Optional[Decimal] = None
    requestedNegotiationPercent: Optional[Decimal] = None
    negotiationExpiresAt: Optional[str] = None
    transactionHash: Optional[str] = None
    status: str
    allowedActions: list[str] = []
    createdAt: Optional[str] = None

class SettlementOut(BaseModel):
    status: str
    attempts: int = 0
    lastError: Optional[str] = None
    transactionHash: Optional[str] = None

class BookingResultOut(BaseModel):
    status: str  # created | updated | rejected
    booking: Optional[BookingOut] = None
    error: Optional[str] = None
    message: str = ""
    minPrice: Optional[Decimal] = None
    hasNegotiation: bool = False

class CheckoutOut(BaseModel):
    booking: BookingOut
    settlement: SettlementOut
    degraded: bool = False
