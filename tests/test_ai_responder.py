"""
Tests for AI response composition and the chat-completion gateway.
"""
import asyncio
import json
import httpx
import jwt
import pytest
from ai_responder.gateway import ChatCompletionGateway, GatewayError, RateLimitError, PaymentRequiredError
from ai_responder.schema import ProcessMessageRequest
from ai_responder.service import (
    build_system_prompt, build_chat_messages, process_message, KNOWLEDGE_HEADER, DEFAULT_SYSTEM_PROMPT,
)
from conversations.models import Message
from knowledge.models import KnowledgeDocument, KnowledgeChunk
from voice.elevenlabs import VoiceError


def gateway_with(handler) -> ChatCompletionGateway:
    return ChatCompletionGateway(
        base_url="https://llm.test/v1",
        api_key="test-key",
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


def reply(text):
    return lambda request: httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": text}}]})


def user_headers(claims):
    from main import JWT_SECRET, JWT_ALGORITHM

    return {"Authorization": f"Bearer {jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)}"}


class TestPromptBuilding:

    def test_system_prompt_without_knowledge(self):
        assert build_system_prompt("Base", []) == "Base"

    def test_system_prompt_appends_knowledge(self):
        prompt = build_system_prompt("Base", ["A", "B"])
        assert prompt == "Base" + KNOWLEDGE_HEADER + "A\n\n---\n\nB"

    def test_history_roles_and_current_message(self):
        history = [
            Message(direction="incoming", content="Oi"),
            Message(direction="outgoing", content="Olá! Como posso ajudar?"),
            Message(direction="incoming", content=None, audio_transcription="Qual o preço?"),
        ]
        messages = build_chat_messages("system", history, "Qual o preço?")
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        # Already in history, not appended twice
        assert messages[-1]["content"] == "Qual o preço?"

    def test_current_message_appended_when_missing(self):
        messages = build_chat_messages("system", [], "Vocês abrem sábado?")
        assert messages[-1] == {"role": "user", "content": "Vocês abrem sábado?"}


class TestGateway:

    def test_returns_reply_and_sends_model(self):
        captured = {}

        def handler(request: httpx.Request):
            captured["body"] = json.loads(request.content)
            captured["auth"] = request.headers["Authorization"]
            return reply("Olá!")(request)

        text = asyncio.run(gateway_with(handler).complete([{"role": "user", "content": "oi"}], temperature=0.2))
        assert text == "Olá!"
        assert captured["auth"] == "Bearer test-key"
        assert captured["body"]["model"] == "test-model"
        assert captured["body"]["temperature"] == 0.2

    @pytest.mark.parametrize("status, error_class", [(429, RateLimitError), (402, PaymentRequiredError), (500, GatewayError)])
    def test_error_statuses(self, status, error_class):
        gateway = gateway_with(lambda request: httpx.Response(status, json={"error": "x"}))
        with pytest.raises(error_class) as exc:
            asyncio.run(gateway.complete([{"role": "user", "content": "oi"}]))
        assert exc.value.status_code == status

    def test_empty_reply_is_an_error(self):
        gateway = gateway_with(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(GatewayError):
            asyncio.run(gateway.complete([{"role": "user", "content": "oi"}]))

    def test_missing_api_key(self, monkeypatch):
        from config import settings
        monkeypatch.setattr(settings, "LLM_GATEWAY_API_KEY", None)
        with pytest.raises(GatewayError):
            ChatCompletionGateway()


class TestProcessMessage:

    def test_reply_uses_persona_knowledge_and_history(self, db_session, sample_conversation, sample_persona, mock_provider_send):
        document = KnowledgeDocument(workspace_id=sample_conversation.workspace_id, title="FAQ", status="completed", chunks_count=2)
        db_session.add(document)
        db_session.flush()
        db_session.add_all([
            KnowledgeChunk(document_id=document.id, workspace_id=document.workspace_id, chunk_index=0, content="O horário é 9h às 18h"),
            KnowledgeChunk(document_id=document.id, workspace_id=document.workspace_id, chunk_index=1, content="Aceitamos cartão e pix"),
        ])
        db_session.commit()

        captured = {}

        def handler(request: httpx.Request):
            captured["body"] = json.loads(request.content)
            return reply("Funcionamos das 9h às 18h.")(request)

        request = ProcessMessageRequest(conversation_id=sample_conversation.id, content="qual o horário de funcionamento")
        result = asyncio.run(process_message(db_session, request, gateway=gateway_with(handler)))

        assert result.response == "Funcionamos das 9h às 18h."
        assert result.knowledge_used == 1
        system = captured["body"]["messages"][0]["content"]
        assert system.startswith(sample_persona.system_prompt)
        assert "O horário é 9h às 18h" in system
        assert "Aceitamos cartão e pix" not in system
        assert captured["body"]["temperature"] == 0.3

        sent = mock_provider_send.send.call_args.args[1]
        assert sent.message == "Funcionamos das 9h às 18h."
        assert sent.source == "ai"
        db_session.refresh(sample_conversation)
        assert sample_conversation.attendance_mode == "ai"

    def test_default_prompt_without_persona(self, db_session, sample_conversation, mock_provider_send):
        captured = {}

        def handler(request: httpx.Request):
            captured["body"] = json.loads(request.content)
            return reply("Oi!")(request)

        request = ProcessMessageRequest(conversation_id=sample_conversation.id, content="oi")
        asyncio.run(process_message(db_session, request, gateway=gateway_with(handler)))
        assert captured["body"]["messages"][0]["content"] == DEFAULT_SYSTEM_PROMPT

    def test_human_mode_is_skipped(self, db_session, sample_conversation, mocker):
        sample_conversation.attendance_mode = "human"
        db_session.commit()
        gateway = mocker.MagicMock()

        result = asyncio.run(process_message(
            db_session, ProcessMessageRequest(conversation_id=sample_conversation.id, content="oi"), gateway=gateway
        ))
        assert result.skipped is True
        gateway.complete.assert_not_called()

    def test_audio_reply_when_voice_enabled(self, db_session, sample_conversation, sample_persona, mock_provider_send, mocker):
        sample_persona.voice_enabled = True
        sample_persona.voice_id = "jessica"
        db_session.commit()
        voice = mocker.MagicMock()
        voice.text_to_speech = mocker.AsyncMock(return_value="SUQzBAAA")

        request = ProcessMessageRequest(conversation_id=sample_conversation.id, content="pode me mandar um áudio?", message_type="ptt")
        result = asyncio.run(process_message(db_session, request, gateway=gateway_with(reply("Claro!")), voice=voice))

        assert result.audio_sent is True
        sent = mock_provider_send.send.call_args.args[1]
        assert sent.message_type == "audio"
        assert sent.audio_base64 == "SUQzBAAA"
        voice.text_to_speech.assert_awaited_once_with("Claro!", "jessica")

    def test_tts_failure_falls_back_to_text(self, db_session, sample_conversation, sample_persona, mock_provider_send, mocker):
        sample_persona.voice_enabled = True
        db_session.commit()
        voice = mocker.MagicMock()
        voice.text_to_speech = mocker.AsyncMock(side_effect=VoiceError("quota exceeded"))

        request = ProcessMessageRequest(conversation_id=sample_conversation.id, content="oi", message_type="audio")
        result = asyncio.run(process_message(db_session, request, gateway=gateway_with(reply("Olá!")), voice=voice))

        assert result.audio_sent is False
        sent = mock_provider_send.send.call_args.args[1]
        assert sent.message_type == "text"
        assert sent.message == "Olá!"


class TestProcessMessageEndpoint:

    @pytest.mark.parametrize("error, status", [
        (RateLimitError("Rate limit exceeded, please try again later"), 429),
        (PaymentRequiredError("AI credits exhausted"), 402),
    ])
    def test_gateway_errors_passed_through(self, client, service_headers, sample_conversation, mocker, error, status):
        gateway = mocker.patch("ai_responder.service.ChatCompletionGateway").return_value
        gateway.complete = mocker.AsyncMock(side_effect=error)

        response = client.post(
            "/ai/process-message",
            json={"conversation_id": sample_conversation.id, "content": "oi"},
            headers=service_headers
        )
        assert response.status_code == status
        assert response.json() == {"error": error.message}

    def test_unknown_conversation(self, client, service_headers, db_session):
        response = client.post("/ai/process-message", json={"conversation_id": "missing"}, headers=service_headers)
        assert response.status_code == 404

    def test_user_token_without_workspace_is_rejected(self, client, sample_conversation, mocker):
        gateway = mocker.patch("ai_responder.service.ChatCompletionGateway").return_value

        response = client.post(
            "/ai/process-message",
            json={"conversation_id": sample_conversation.id, "content": "oi"},
            headers=user_headers({"sub": "test_user_id"})
        )
        assert response.status_code == 400
        gateway.complete.assert_not_called()

    def test_other_workspace_conversation_not_found(self, client, db_session, sample_conversation):
        from models import Workspace

        db_session.add(Workspace(id="other_workspace", name="Outra Loja", slug="outra-loja"))
        db_session.commit()
        headers = user_headers({"sub": "test_user_id", "workspace_id": "other_workspace"})

        response = client.post("/ai/process-message", json={"conversation_id": sample_conversation.id, "content": "oi"}, headers=headers)
        assert response.status_code == 404


class TestTriggerMessageScope:

    def test_message_from_another_conversation_is_ignored(self, db_session, sample_conversation, mocker):
        """A message id outside the conversation is neither transcribed nor used as the prompt"""
        from contacts.models import Contact
        from conversations.models import Conversation
        from instances.models import Instance
        from models import Workspace

        db_session.add(Workspace(id="other_workspace", name="Outra Loja", slug="outra-loja"))
        db_session.add(Instance(id="other_instance", workspace_id="other_workspace", name="Outra", provider_type="wapi", status="connected"))
        db_session.flush()
        contact = Contact(workspace_id="other_workspace", instance_id="other_instance", phone_number="5521988880000", tags=[], metadata_={})
        db_session.add(contact)
        db_session.flush()
        conversation = Conversation(workspace_id="other_workspace", instance_id="other_instance", contact_id=contact.id)
        db_session.add(conversation)
        db_session.flush()
        foreign = Message(
            workspace_id="other_workspace",
            conversation_id=conversation.id,
            instance_id="other_instance",
            contact_id=contact.id,
            direction="incoming",
            message_type="audio",
            content="[Áudio]",
            media_url="https://media.test/secret.ogg",
        )
        db_session.add(foreign)
        db_session.commit()

        voice = mocker.MagicMock()
        voice.speech_to_text = mocker.AsyncMock(return_value="dados de outro cliente")
        gateway = mocker.MagicMock()

        request = ProcessMessageRequest(conversation_id=sample_conversation.id, message_id=foreign.id)
        result = asyncio.run(process_message(db_session, request, gateway=gateway, voice=voice))

        assert result.skipped is True
        voice.speech_to_text.assert_not_called()
        gateway.complete.assert_not_called()
        db_session.refresh(foreign)
        assert foreign.audio_transcription is None
