from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from services.order_service.models import PaymentMethod, PaymentStatus
from services.order_service.schemas import Pagination

from .models import SessionStatus, SessionType


class SessionBook(BaseModel):
    name: str = Field(min_length=1)
    age: Optional[int] = Field(default=None, ge=0, le=120)
    contact: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    condition_description: Optional[str] = None
    preferred_time: datetime
    session_type: SessionType = SessionType.HOME_VISIT
    payment_method: PaymentMethod


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    name: str
    age: Optional[int] = None
    contact: str
    email: Optional[str] = None
    address: Optional[str] = None
    condition_description: Optional[str] = None
    preferred_time: datetime
    session_type: SessionType
    amount: Decimal
    status: SessionStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    assigned_physio_id: Optional[str] = None
    session_notes: Optional[str] = None
    instamojo_payment_request_id: Optional[str] = None
    instamojo_payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookedSession(SessionResponse):
    instamojo_payment: Optional[Dict[str, Any]] = None


class BookSessionResponse(BaseModel):
    success: bool = True
    session: BookedSession


class SessionEnvelope(BaseModel):
    session: SessionResponse


class UpdatedSessionResponse(BaseModel):
    success: bool = True
    session: SessionResponse


class AdminSessionResponse(SessionResponse):
    user_name: Optional[str] = None


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    pagination: Pagination


class AdminSessionListResponse(BaseModel):
    sessions: List[AdminSessionResponse]
    pagination: Pagination


class SessionStatusUpdate(BaseModel):
    status: Optional[SessionStatus] = None
    payment_status: Optional[PaymentStatus] = None
    assigned_physio_id: Optional[str] = None
    session_notes: Optional[str] = None


class VerifySessionPaymentRequest(BaseModel):
    session_id: Optional[str] = None
    payment_request_id: Optional[str] = None
    payment_id: Optional[str] = None


class VerifySessionPaymentResponse(BaseModel):
    success: bool
    message: str
    session: Optional[SessionResponse] = None
    payment_status: Optional[str] = None


class SessionStats(BaseModel):
    total_sessions: int
    pending_sessions: int
    confirmed_sessions: int
    completed_sessions: int
    cancelled_sessions: int
    paid_sessions: int
    total_revenue: Decimal
    home_visits: int
    online_consultations: int


class SessionStatsResponse(BaseModel):
    stats: SessionStats
