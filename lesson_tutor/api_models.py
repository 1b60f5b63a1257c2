from typing import Any, List, Optional

from pydantic import BaseModel, Field

from lesson_tutor.context import Attachment


class ChatRequest(BaseModel):
    """Body of POST /chat."""
    message: Optional[str] = ""
    model: Optional[str] = None
    stream: bool = False
    attachments: List[Attachment] = Field(default_factory=list)


class ModelUpdateRequest(BaseModel):
    model: Optional[str] = None


class ApiResponse(BaseModel):
    """Envelope shared by every JSON endpoint."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None

    def to_content(self) -> dict:
        # Only the envelope drops empty keys; `data` is passed through untouched.
        return {key: value for key, value in self.model_dump().items() if value is not None}
