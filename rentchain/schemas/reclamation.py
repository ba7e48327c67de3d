from decimal import Decimal
from pydantic import BaseModel
from typing import Optional

class ReclamationOut(BaseModel):
    id: str
    bookingId: str
    complainantId: str
    complainantRole: str
    targetUserId: str
    type: str
    title: str = ""
    description: str = ""
    status: str
    severity: str
    fixedSeverity: bool = False
    refundAmount: Optional[Decimal] = None
    penaltyPoints: Optional[int] = None
    resolutionNotes: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    resolvedAt: Optional[str] = None
    attachments: list[str] = []

class ExpectedOutcome(BaseModel):
    refund: Decimal
    penaltyPoints: int

class AdminReclamationOut(ReclamationOut):
    expected: Optional[ExpectedOutcome] = None

class SeverityUpdate(BaseModel):
    severity: str

class ResolveRequest(BaseModel):
    notes: str = ""
    approved: bool = True

class RejectRequest(BaseModel):
    notes: str

class AttachmentOut(BaseModel):
    id: str
    filename: str
    originalName: str
    contentType: str
    url: str
