from typing import Optional, Any

class PrintDeskError(Exception):
    """
    Base exception for PrintDesk application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

class ConfigurationError(PrintDeskError):
    """
    Raised when the menu grammar or settings are inconsistent.
    Detected at startup, never while serving traffic.
    """
    def __init__(self, message: str = "Invalid configuration", details: Optional[Any] = None):
        super().__init__(message, code="CONFIGURATION_ERROR", status_code=500, details=details)

class StoreUnavailable(PrintDeskError):
    """
    Raised when the conversation store cannot be reached.
    """
    def __init__(self, message: str = "Conversation store unavailable", details: Optional[Any] = None):
        super().__init__(message, code="STORE_UNAVAILABLE", status_code=503, details=details)

class RecordNotFound(PrintDeskError):
    """
    Raised when a state write matched no user record.
    """
    def __init__(self, message: str = "User record not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)

class RecordExists(PrintDeskError):
    """
    Raised when creating a user record that was inserted concurrently.
    """
    def __init__(self, message: str = "User record already exists", details: Optional[Any] = None):
        super().__init__(message, code="RECORD_EXISTS", status_code=409, details=details)

class StateConflict(PrintDeskError):
    """
    Raised when a conditional state write lost a race with another session.
    """
    def __init__(self, message: str = "Conversation state changed concurrently", details: Optional[Any] = None):
        super().__init__(message, code="STATE_CONFLICT", status_code=409, details=details)

class MalformedEvent(PrintDeskError):
    """
    Raised when an inbound messaging event lacks its identifiers.
    """
    def __init__(self, message: str = "Malformed inbound event", details: Optional[Any] = None):
        super().__init__(message, code="MALFORMED_EVENT", status_code=400, details=details)

class AuthenticationError(PrintDeskError):
    """
    Raised when webhook verification or signature validation fails.
    """
    def __init__(self, message: str = "Authentication failed", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=403, details=details)

class ExternalServiceError(PrintDeskError):
    """
    Raised when the Graph or Send API fails.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=502, details=details)
