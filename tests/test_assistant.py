import json
from unittest.mock import Mock, patch

import pytest
import requests

from core import config as core_config
from models.chat import ChatConversation, ChatMessage
from services import assistant


@pytest.fixture
def gateway_key(monkeypatch):
    monkeypatch.setattr(core_config.settings, "AI_GATEWAY_API_KEY", "test-key")


def _completion(arguments=None, content=None):
    message = {"role": "assistant", "content": content}
    if arguments is not None:
        message["tool_calls"] = [{"function": {"name": "set_therapeutic_response", "arguments": arguments}}]
    resp = Mock()
    resp.raise_for_status = Mock()
    resp.json.return_value = {"choices": [{"message": message}]}
    return resp


class TestParseCompletion:
    def test_tool_call(self):
        data = _completion(json.dumps({
            "reply": "I'm here with you.",
            "suggestions": ["One", "Two", "Three", "Four"],
            "priority": "crisis",
        })).json()
        reply = assistant.parse_completion(data, "help")
        assert reply.content == "I'm here with you."
        assert reply.suggestions == ["One", "Two", "Three"]
        assert reply.priority == "crisis"

    def test_unknown_priority_is_normal(self):
        data = _completion(json.dumps({"reply": "ok", "priority": "urgent"})).json()
        assert assistant.parse_completion(data, "hi").priority == "normal"

    def test_plain_content_without_tool_call(self):
        data = _completion(content="Plain answer").json()
        reply = assistant.parse_completion(data, "hi")
        assert reply.content == "Plain answer"
        assert reply.suggestions == []

    def test_unparsable_arguments_echo_message(self):
        data = _completion("{not json").json()
        assert assistant.parse_completion(data, "hello there").content == "hello there"


class TestChatService:
    def test_empty_message(self, db):
        with pytest.raises(ValueError):
            assistant.chat(db, "   ")

    def test_fallback_without_key(self, db):
        reply, conversation = assistant.chat(db, "Nimechoka", language="sw", session_id="s1")
        assert reply.content == assistant.FALLBACK_REPLIES["sw"][0]
        roles = [m.role for m in db.query(ChatMessage).filter(ChatMessage.conversation_id == conversation.id)]
        assert roles == ["user", "assistant"]

    @patch("services.assistant.requests.post")
    def test_history_is_sent(self, mock_post, db, gateway_key):
        mock_post.return_value = _completion(json.dumps({"reply": "Tell me more"}))
        assistant.chat(db, "first", session_id="s2")
        assistant.chat(db, "second", session_id="s2")

        assert db.query(ChatConversation).count() == 1
        payload = mock_post.call_args.kwargs["json"]
        assert payload["messages"][0]["role"] == "system"
        assert [m["content"] for m in payload["messages"][1:]] == ["first", "Tell me more", "second"]
        assert payload["tool_choice"]["function"]["name"] == "set_therapeutic_response"
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer test-key"

    def test_history_limit(self, db, monkeypatch):
        monkeypatch.setattr(core_config.settings, "AI_HISTORY_LIMIT", 3)
        conversation = assistant.get_or_create_conversation(db, "s3", "web", "en")
        for i in range(5):
            db.add(ChatMessage(conversation_id=conversation.id, role="user", content=f"m{i}"))
        db.commit()
        assert [m.content for m in assistant.load_history(db, conversation)] == ["m2", "m3", "m4"]

    @patch("services.assistant.requests.post", side_effect=requests.Timeout("slow"))
    def test_gateway_error(self, mock_post, db, gateway_key):
        with pytest.raises(assistant.AssistantGatewayError):
            assistant.chat(db, "hello", session_id="s4")
        # the user's message is kept even when the gateway fails
        assert db.query(ChatMessage).count() == 1


class TestChatEndpoint:
    @patch("services.assistant.requests.post")
    def test_chat(self, mock_post, client, gateway_key):
        mock_post.return_value = _completion(json.dumps({"reply": "I hear you", "suggestions": ["Breathing"]}))
        resp = client.post("/assistant/chat", json={"message": "I feel anxious", "session_id": "web-1"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["content"] == "I hear you"
        assert data["suggestions"] == ["Breathing"]
        assert data["priority"] == "normal"
        assert data["conversation_id"] > 0

    def test_empty_message(self, client):
        assert client.post("/assistant/chat", json={"message": "  "}).status_code == 400

    @patch("services.assistant.requests.post")
    def test_gateway_http_error(self, mock_post, client, gateway_key):
        resp = Mock()
        resp.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_post.return_value = resp
        assert client.post("/assistant/chat", json={"message": "hi"}).status_code == 502
