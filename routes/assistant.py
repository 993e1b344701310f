from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from schemas.assistant import ChatRequest, ChatResponse
from services import assistant

router = APIRouter(prefix="/assistant", tags=["assistant"])


@router.post("/chat", response_model=ChatResponse)
def chat(data: ChatRequest, db: Session = Depends(get_db)):
    if not data.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    try:
        reply, conversation = assistant.chat(
            db,
            data.message,
            language=data.language,
            session_id=data.session_id,
            channel=data.channel,
            user_id=data.user_id,
            phone_number=data.phone_number,
        )
    except assistant.AssistantGatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ChatResponse(
        content=reply.content,
        suggestions=reply.suggestions,
        priority=reply.priority,
        conversation_id=conversation.id,
    )
