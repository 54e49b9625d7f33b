"""Custom exception classes for the wedding-reel service."""

class ValidationError(Exception):
    """Raised when input validation fails."""
    pass

class NotFoundError(Exception):
    """Raised when a requested project, video or record does not exist."""
    pass

class AccessDeniedError(Exception):
    """Raised when the caller may not act on the requested resource."""
    pass

class ConfigurationError(Exception):
    """Raised when required environment configuration is missing."""

    def __init__(self, message: str, missing: list = None):
        super().__init__(message)
        self.missing = missing or []

class DynamoDBError(Exception):
    """Raised when DynamoDB operations fail."""
    pass

class ExternalServiceError(Exception):
    """Raised when Cloudflare, Stripe or the AI service returns an error."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code
