import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests
from sqlalchemy.orm import Session

from core.config import settings
from models.chat import ChatConversation, ChatMessage
from models.user import User

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3

SYSTEM_PROMPT = """You are Bepawa Care, a warm, trauma-informed mental health supporter.

GOALS
- Offer short, compassionate, non-judgmental support
- Help users explore feelings safely
- Offer simple, culturally sensitive coping tools
- Escalate clearly when there are safety risks

STYLE
- 1-3 short paragraphs max
- Use simple, conversational language
- Never diagnose or label
- Ask one clear follow-up question at a time

Always answer by calling the set_therapeutic_response tool with the reply,
0-3 short suggestion button texts, and priority "crisis" if there is any
self-harm, suicide or immediate danger, otherwise "normal".
Reply in the user's language (English or Swahili)."""

RESPONSE_TOOL = {
    "type": "function",
    "function": {
        "name": "set_therapeutic_response",
        "description": "Return the therapeutic reply plus optional dynamic suggestions and priority level.",
        "parameters": {
            "type": "object",
            "properties": {
                "reply": {"type": "string"},
                "suggestions": {"type": "array", "items": {"type": "string"}},
                "priority": {"type": "string", "enum": ["normal", "crisis"]},
            },
            "required": ["reply"],
            "additionalProperties": False,
        },
    },
}

FALLBACK_REPLIES = {
    "en": (
        "I'm having a technical issue right now, but I'm still here with you. "
        "Can you share briefly how you're feeling at this moment?",
        ["Tell me more", "Coping strategies"],
    ),
    "sw": (
        "Samahani, kuna tatizo la kiteknolojia kwa sasa. "
        "Je, unaweza kuniambia kwa kifupi unajisikiaje sasa?",
        ["Niongeze zaidi", "Nipatie mbinu za kukabiliana"],
    ),
}


class AssistantGatewayError(RuntimeError):
    pass


@dataclass
class AssistantReply:
    content: str
    suggestions: List[str] = field(default_factory=list)
    priority: str = "normal"


def fallback_reply(language: str) -> AssistantReply:
    content, suggestions = FALLBACK_REPLIES.get(language, FALLBACK_REPLIES["en"])
    return AssistantReply(content=content, suggestions=list(suggestions))


def get_or_create_conversation(
    db: Session,
    session_id: str,
    channel: str,
    language: str,
    user_id: Optional[int] = None,
    phone_number: Optional[str] = None,
) -> ChatConversation:
    conversation = (
        db.query(ChatConversation)
        .filter(ChatConversation.session_id == session_id, ChatConversation.channel == channel)
        .order_by(ChatConversation.id.desc())
        .first()
    )
    if conversation:
        return conversation

    if user_id is not None and db.get(User, user_id) is None:
        user_id = None
    conversation = ChatConversation(
        session_id=session_id,
        channel=channel,
        language=language,
        user_id=user_id,
        phone_number=phone_number,
    )
    db.add(conversation)
    db.flush()
    return conversation


def load_history(db: Session, conversation: ChatConversation, limit: Optional[int] = None) -> List[ChatMessage]:
    """Most recent ``limit`` messages, oldest first."""
    limit = limit or settings.AI_HISTORY_LIMIT
    recent = (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_id == conversation.id)
        .order_by(ChatMessage.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(recent))


def build_payload(history: List[ChatMessage]) -> Dict[str, Any]:
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    messages.extend(
        {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
        for m in history
    )
    return {
        "model": settings.AI_MODEL,
        "messages": messages,
        "tools": [RESPONSE_TOOL],
        "tool_choice": {"type": "function", "function": {"name": "set_therapeutic_response"}},
    }


def parse_completion(data: Dict[str, Any], user_message: str) -> AssistantReply:
    """Read the forced tool call out of a chat completion, tolerating a plain reply."""
    choices = data.get("choices") or [{}]
    message = choices[0].get("message") or {}
    tool_calls = message.get("tool_calls") or []
    arguments = tool_calls[0].get("function", {}).get("arguments") if tool_calls else None

    if not arguments:
        logger.warning("No tool call returned, falling back to plain message")
        content = message.get("content")
        return AssistantReply(content=content if isinstance(content, str) and content else user_message)

    try:
        parsed = json.loads(arguments) if isinstance(arguments, str) else dict(arguments)
    except (TypeError, ValueError):
        logger.error("Failed to parse tool arguments: %r", arguments)
        return AssistantReply(content=user_message)

    suggestions = parsed.get("suggestions")
    return AssistantReply(
        content=parsed.get("reply") or user_message,
        suggestions=[str(s) for s in suggestions[:MAX_SUGGESTIONS]] if isinstance(suggestions, list) else [],
        priority="crisis" if parsed.get("priority") == "crisis" else "normal",
    )


def call_gateway(history: List[ChatMessage], user_message: str, language: str) -> AssistantReply:
    if not settings.AI_GATEWAY_API_KEY:
        logger.error("AI_GATEWAY_API_KEY is not configured")
        return fallback_reply(language)

    try:
        resp = requests.post(
            settings.AI_GATEWAY_URL,
            json=build_payload(history),
            headers={
                "Authorization": f"Bearer {settings.AI_GATEWAY_API_KEY}",
                "Content-Type": "application/json",
            },
            timeout=60,
        )
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("AI gateway error: %s", exc)
        raise AssistantGatewayError("AI gateway error") from exc
    return parse_completion(data, user_message)


def chat(
    db: Session,
    message: str,
    language: str = "en",
    session_id: str = "web-session",
    channel: str = "web",
    user_id: Optional[int] = None,
    phone_number: Optional[str] = None,
) -> Tuple[AssistantReply, ChatConversation]:
    """Run one chat turn: persist the user message, ask the gateway, persist the reply."""
    if not message or not message.strip():
        raise ValueError("Message is required")

    conversation = get_or_create_conversation(db, session_id, channel, language, user_id, phone_number)
    db.add(ChatMessage(
        conversation_id=conversation.id,
        role="user",
        content=message,
        metadata_={"channel": channel, "phone_number": phone_number},
    ))
    db.commit()

    history = load_history(db, conversation)
    reply = call_gateway(history, message, language)

    db.add(ChatMessage(
        conversation_id=conversation.id,
        role="assistant",
        content=reply.content,
        metadata_={
            "suggestions": reply.suggestions,
            "priority": reply.priority,
            "channel": channel,
            "phone_number": phone_number,
        },
    ))
    db.commit()
    return reply, conversation
