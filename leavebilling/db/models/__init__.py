from leavebilling.db.models.organization import Organization
from leavebilling.db.models.subscription import Subscription
from leavebilling.db.models.membership import UserOrganization, Invitation

__all__ = ["Organization", "Subscription", "UserOrganization", "Invitation"]
