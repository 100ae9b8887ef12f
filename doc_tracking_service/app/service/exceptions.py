"""
Custom exceptions for the Doc Tracking service.

Messages never carry borrower PII (names, emails, phone numbers).
"""

class BaseDocTrackingError(Exception):
    """Base class for exceptions in this module."""
    pass

class CrmApiError(BaseDocTrackingError):
    """Raised when a CRM API call fails. status_code is 0 for transport failures."""
    def __init__(self, message: str, status_code: int, response_body: str = ""):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)

class CrmRateLimitError(CrmApiError):
    """Raised on HTTP 429. Callers should retry after backoff."""
    def __init__(self, response_body: str = ""):
        super().__init__("CRM API rate limit exceeded (429). Retry after backoff.", 429, response_body)

class CrmAuthError(CrmApiError):
    """Raised on HTTP 401, when the API key is invalid, expired or lacks scopes."""
    def __init__(self, response_body: str = ""):
        super().__init__(
            "CRM API authentication failed (401). Check that CRM_API_KEY is valid and has required scopes.",
            401,
            response_body,
        )

class ConfigurationError(BaseDocTrackingError):
    """Raised when a configuration issue is detected."""
    pass
