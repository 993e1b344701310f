from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str
    language: Literal["en", "sw"] = "en"
    session_id: str = Field(default="web-session", max_length=100)
    user_id: Optional[int] = None
    channel: Literal["web", "whatsapp"] = "web"
    phone_number: Optional[str] = None


class ChatResponse(BaseModel):
    content: str
    suggestions: List[str] = []
    priority: Literal["normal", "crisis"] = "normal"
    conversation_id: int
