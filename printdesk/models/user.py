"""
printdesk/models/user.py

Purpose: User conversation record

- Messenger PSID (external_id)
- Display name resolved on first contact
- Current menu state
"""

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, Field


class UserRecord(BaseModel):
    """
    Snapshot of one user's conversation position.
    Owned by the conversation store; other components only read it.
    """
    external_id: str = Field(..., description="Platform-assigned user id")
    display_name: str = Field(..., description="Cached profile name")
    state_label: str = Field(..., description="Current menu state")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"frozen": True}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "UserRecord":
        return cls(
            external_id=document["external_id"],
            display_name=document.get("display_name") or document["external_id"],
            state_label=document["state_label"],
            created_at=document.get("created_at") or datetime.utcnow(),
            updated_at=document.get("updated_at") or datetime.utcnow(),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "display_name": self.display_name,
            "state_label": self.state_label,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "state_history": [],
        }
