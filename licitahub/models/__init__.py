from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Float, Date, JSON, Index, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from licitahub.database import Base

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, index=True)  # Identity provider subject (UUID)
    email = Column(String(255), index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    subscribed = Column(Boolean, default=False, nullable=False)
    subscription_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    roles = relationship("UserRole", back_populates="profile", cascade="all, delete-orphan")
    saved_filters = relationship("SavedFilter", back_populates="profile", cascade="all, delete-orphan")
    audit_logs = relationship("AuditLog", back_populates="profile")

class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(50), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    profile = relationship("Profile", back_populates="roles")

    # One row per (user, role): a second grant is rejected by the database
    __table_args__ = (
        UniqueConstraint('user_id', 'role', name='uq_user_role'),
    )

class AdminBootstrap(Base):
    """Single-row marker for the one-time "first admin" promotion.

    The primary key is always 1, so only one insert can ever succeed; concurrent
    first requests race on the constraint instead of on a check-then-insert.
    """
    __tablename__ = "admin_bootstrap"

    id = Column(Integer, primary_key=True, autoincrement=False)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class SavedFilter(Base):
    __tablename__ = "saved_filters"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    keyword = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)
    locality = Column(String(255), nullable=True)
    value_min = Column(Float, nullable=True)
    value_max = Column(Float, nullable=True)
    date_from = Column(Date, nullable=True)
    date_to = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    profile = relationship("Profile", back_populates="saved_filters")

    __table_args__ = (
        Index('idx_saved_filter_user_created', 'user_id', 'created_at'),
    )

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), index=True)
    details = Column(JSON)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)

    profile = relationship("Profile", back_populates="audit_logs")

    __table_args__ = (
        Index('idx_audit_user_action', 'user_id', 'action'),
    )
