import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from shared.config.database import Base, utcnow
from services.order_service.models import PaymentStatus


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"  # the visit or consultation took place
    CANCELLED = "cancelled"


class SessionType(str, enum.Enum):
    HOME_VISIT = "home_visit"
    ONLINE_CONSULTATION = "online_consultation"


class TherapySession(Base):
    """A booked physiotherapy session; priced by the server from its type."""

    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)  # NULL for guest bookings
    name = Column(String(255), nullable=False)
    age = Column(Integer, nullable=True)
    contact = Column(String(20), nullable=False)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    condition_description = Column(Text, nullable=True)
    preferred_time = Column(DateTime(timezone=True), nullable=False)
    session_type = Column(String(30), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=SessionStatus.PENDING.value, index=True)
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    assigned_physio_id = Column(String(36), nullable=True)
    session_notes = Column(Text, nullable=True)
    instamojo_payment_request_id = Column(String(100), nullable=True, unique=True, index=True)
    instamojo_payment_id = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
