"""
Exam Portal - User Model
Accounts are managed by the account service; this table is what the
exam backend reads to authorize requests.
"""
import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from exam_portal.core.database import Base


class UserRole(str, Enum):
    """User roles for RBAC."""
    CANDIDATE = "candidate"
    EXAMINER = "examiner"
    ADMIN = "admin"


class User(Base):
    """Platform user."""
    
    __tablename__ = "users"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    role: Mapped[UserRole] = mapped_column(String(50), default=UserRole.CANDIDATE)
    
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    
    def __repr__(self):
        return f"<User {self.email} role={self.role}>"
