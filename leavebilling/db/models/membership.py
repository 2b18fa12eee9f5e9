# leavebilling/db/models/membership.py
import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from leavebilling.db.base import BaseModel


class UserOrganization(BaseModel):
    """Membership of a user in an organization"""
    __tablename__ = "user_organizations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(100), nullable=False, index=True)
    organization_id = Column(String(100), ForeignKey("organizations.id"), nullable=False, index=True)
    role = Column(String(50), default="employee", nullable=False)  # owner, admin, manager, employee
    status = Column(String(50), default="active", nullable=False, index=True)  # active, pending_removal, archived

    # Members flagged for removal keep their seat until this date
    removal_effective_date = Column(DateTime(timezone=True), nullable=True)

    organization = relationship("Organization", back_populates="members")


class Invitation(BaseModel):
    """Pending invitations hold a seat until answered"""
    __tablename__ = "invitations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    organization_id = Column(String(100), ForeignKey("organizations.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    role = Column(String(50), default="employee", nullable=False)
    status = Column(String(50), default="pending", nullable=False, index=True)

    organization = relationship("Organization", back_populates="invitations")
