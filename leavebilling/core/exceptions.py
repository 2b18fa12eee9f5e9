# leavebilling/core/exceptions.py
"""
Billing error hierarchy.

Every error carries a stable ``code`` and an HTTP ``status_code`` so the API
layer can render it without knowing which component raised it.
"""
from datetime import datetime
from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base class for all billing engine errors"""

    code = "billing_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.code, "message": self.message}
        payload.update(self.details())
        return payload


class ValidationError(BillingError):
    """Malformed or out-of-range input"""

    code = "validation_error"
    status_code = 400


class NotFoundError(BillingError):
    """No active-like subscription (or organization) for the caller"""

    code = "not_found"
    status_code = 404


class PermissionDeniedError(BillingError):
    code = "forbidden"
    status_code = 403


class TransitionBlockedError(BillingError):
    """The billing period transition table forbids the requested change"""

    status_code = 409

    def __init__(
        self,
        message: str,
        reason: str,
        renewal_date: Optional[datetime] = None,
        redirect_to: Optional[str] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.code = reason
        self.renewal_date = renewal_date
        self.redirect_to = redirect_to

    def details(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"reason": self.reason}
        if self.renewal_date is not None:
            payload["renewal_date"] = self.renewal_date.isoformat()
        if self.redirect_to is not None:
            payload["redirect_to"] = self.redirect_to
        return payload


class ProviderError(BillingError):
    """The billing provider call failed or returned a non-success status"""

    code = "provider_error"
    status_code = 502

    def __init__(self, message: str, provider_detail: Optional[str] = None, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.provider_detail = provider_detail
        self.upstream_status = upstream_status

    def details(self) -> Dict[str, Any]:
        return {
            "provider_detail": self.provider_detail,
            "upstream_status": self.upstream_status,
        }


class ProviderResponseError(ProviderError):
    """
    The provider answered with a success status but the body could not be
    read. The requested change may already have been applied.
    """


class ConfigurationError(BillingError):
    """Provider credentials or product mappings are missing"""

    code = "configuration_error"
    status_code = 500


class DivergentStateError(BillingError):
    """
    The provider accepted a change but the local write did not land.

    The provider now bills a different quantity than the local row records;
    this needs operator attention, not a user retry.
    """

    code = "divergent_state"
    status_code = 500

    def __init__(self, message: str, subscription_id: Any = None, provider_quantity: Optional[int] = None):
        super().__init__(message)
        self.subscription_id = subscription_id
        self.provider_quantity = provider_quantity

    def details(self) -> Dict[str, Any]:
        return {
            "subscription_id": str(self.subscription_id) if self.subscription_id is not None else None,
            "provider_quantity": self.provider_quantity,
        }
