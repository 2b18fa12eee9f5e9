# leavebilling/db/models/organization.py
from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship

from leavebilling.db.base import BaseModel


class Organization(BaseModel):
    """Organization (tenant). Billing overrides are maintained by admin tooling."""
    __tablename__ = "organizations"

    id = Column(String(100), primary_key=True, index=True)
    name = Column(String(255), nullable=False)

    # Manual seat ceiling, superseding the subscription-derived value
    billing_override_seats = Column(Integer, nullable=True)
    billing_override_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="organization")
    members = relationship("UserOrganization", back_populates="organization")
    invitations = relationship("Invitation", back_populates="organization")
