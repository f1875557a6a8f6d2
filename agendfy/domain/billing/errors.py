"""Billing domain errors - each carries the HTTP status it is reported with"""

from typing import Any, Optional


class BillingError(Exception):
    """Base class for subscription and entitlement errors"""

    status_code = 500
    code = "billing_error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class Unauthenticated(BillingError):
    """Webhook request carried no signature header"""

    status_code = 400
    code = "unauthenticated"


class InvalidSignature(BillingError):
    """Signature present but did not verify against the shared secret"""

    status_code = 400
    code = "invalid_signature"


class Misconfigured(BillingError):
    """A required secret, key or price id is not configured"""

    status_code = 500
    code = "misconfigured"


class MissingMetadata(BillingError):
    """Event payload has no professionalId linkage"""

    status_code = 400
    code = "missing_metadata"


class InconsistentBillingState(BillingError):
    """Refusing to persist an active subscription without a renewal date"""

    status_code = 500
    code = "inconsistent_billing_state"


class ProcessingFailure(BillingError):
    status_code = 500
    code = "processing_failure"


class ProviderTimeout(ProcessingFailure):
    code = "provider_timeout"


class AccountNotFound(BillingError):
    status_code = 404
    code = "account_not_found"


class PermissionDenied(BillingError):
    status_code = 403
    code = "permission_denied"


class PlanLimitExceeded(BillingError):
    """Create-time rejection when the current plan's resource limit is reached"""

    status_code = 403
    code = "plan_limit_exceeded"


class InactiveSubscription(BillingError):
    """Operator recovery found a subscription that is not active at the provider"""

    status_code = 400
    code = "inactive_subscription"
