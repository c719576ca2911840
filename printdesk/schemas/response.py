from pydantic import BaseModel
from typing import Optional, Any

class ErrorResponse(BaseModel):
    """
    Standard error response structure.
    """
    error: str
    code: str
    details: Optional[Any] = None

class WebhookAck(BaseModel):
    """
    Answer to a Messenger delivery; Messenger only looks at the status code.
    """
    status: str = "ok"
    events: int = 0
