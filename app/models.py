import enum

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class RenewalStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRING_SOON = "expiring-soon"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class User(Base):
    """
    Core user model. Stores credentials and metadata.

    Design notes:
    - email is unique and indexed for fast lookup, stored lower-cased
    - password_hash never leaves the database layer
    - deleting a user removes their tokens and renewals (FK cascade)
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    tokens = relationship(
        "ApiToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    renewals = relationship(
        "Renewal", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def role(self) -> str:
        return "admin" if self.is_admin else "user"

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"


class ApiToken(Base):
    """
    Opaque bearer token issued on login.

    Design notes:
    - only the SHA-256 digest of the token is stored; the raw value is
      handed to the client once and cannot be recovered
    - a user may hold many tokens (one per login)
    - expires_at is NULL unless token expiry is configured
    """
    __tablename__ = "api_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, default="api-token")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)

    user = relationship("User", back_populates="tokens")

    def __repr__(self):
        return f"<ApiToken(id={self.id}, user_id={self.user_id})>"


class Renewal(Base):
    """
    A tracked recurring service owned by one user.

    The stored status is only authoritative for "cancelled"; every other
    value is derived from end_date when the record is read.
    """
    __tablename__ = "renewals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    service_name = Column(String(255), nullable=False)
    service_type = Column(String(255), nullable=False)
    provider = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False, index=True)
    cost = Column(Numeric(10, 2), nullable=False)
    reminder_type = Column(String(255), nullable=False)
    status = Column(
        Enum(
            RenewalStatus,
            name="renewal_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=RenewalStatus.ACTIVE,
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    user = relationship("User", back_populates="renewals")

    def __repr__(self):
        return f"<Renewal(id={self.id}, service_name={self.service_name})>"
