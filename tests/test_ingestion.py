"""
Tests for webhook ingestion: contact reuse, echo suppression, attendance gating,
status and connection updates.
"""
import pytest
from contacts.models import Contact
from conversations.models import Conversation, Message
from integrations.models import Integration

WEBHOOK_URL = "/webhooks/wapi?instance_id=test_instance_id"


def received(message_id, sender_id="5511999990000@s.whatsapp.net", text="Olá, tudo bem?", from_me=False, push_name="Maria"):
    return {
        "event": "webhookReceived",
        "instanceId": "test-instance-key",
        "messageId": message_id,
        "fromMe": from_me,
        "chat": {"id": sender_id},
        "sender": {"id": sender_id, "pushName": push_name},
        "msgContent": {"conversation": text},
    }


class TestContactReuse:

    def test_same_digits_reuse_one_contact(self, client, db_session, sample_instance, mock_ai_dispatch):
        """Differently formatted sender ids that normalize to the same digits share a contact"""
        for message_id, sender in (
            ("wamid.1", "5511999990000@s.whatsapp.net"),
            ("wamid.2", "5511999990000:12@s.whatsapp.net"),
            ("wamid.3", "5511999990000@c.us"),
        ):
            response = client.post(WEBHOOK_URL, json=received(message_id, sender))
            assert response.status_code == 200
            assert response.json()["messages"] == 1

        assert db_session.query(Contact).count() == 1
        assert db_session.query(Conversation).count() == 1
        assert db_session.query(Message).count() == 3

    def test_unread_count_and_contact_fields(self, client, db_session, sample_instance, mock_ai_dispatch):
        client.post(WEBHOOK_URL, json=received("wamid.1"))
        client.post(WEBHOOK_URL, json=received("wamid.2", push_name="Maria S."))

        contact = db_session.query(Contact).one()
        assert contact.phone_number == "5511999990000"
        # name is filled once; push_name tracks the latest
        assert contact.name == "Maria"
        assert contact.push_name == "Maria S."

        conversation = db_session.query(Conversation).one()
        assert conversation.unread_count == 2
        assert conversation.status == "open"

    def test_inbound_message_fields(self, client, db_session, sample_instance, mock_ai_dispatch):
        client.post(WEBHOOK_URL, json=received("wamid.1"))

        message = db_session.query(Message).one()
        assert message.direction == "incoming"
        assert message.status == "delivered"
        assert message.content == "Olá, tudo bem?"
        assert message.metadata_["source"] == "wapi_webhook"


class TestEchoSuppression:

    def test_own_message_echo_not_reinserted(self, client, db_session, sample_conversation, mock_ai_dispatch):
        """A fromMe echo of a message we already stored is skipped"""
        from conversations.crud import create_message

        create_message(
            db_session,
            sample_conversation,
            direction="outgoing",
            content="Seu pedido saiu",
            status="sent",
            whatsapp_message_id="wamid.echo1",
            is_from_bot=False,
        )

        response = client.post(WEBHOOK_URL, json=received("wamid.echo1", text="Seu pedido saiu", from_me=True))
        assert response.status_code == 200
        assert response.json()["skipped"] == 1
        assert db_session.query(Message).count() == 1
        mock_ai_dispatch.assert_not_called()

    def test_new_echo_stored_as_outgoing(self, client, db_session, sample_instance, mock_ai_dispatch):
        """Messages sent from the phone itself are recorded but never answered"""
        response = client.post(WEBHOOK_URL, json=received("wamid.phone1", from_me=True, push_name="Loja"))
        assert response.json()["messages"] == 1

        message = db_session.query(Message).one()
        assert message.direction == "outgoing"
        assert message.metadata_["source"] == "wapi_echo"
        # The operator's push name is not the contact's
        assert db_session.query(Contact).one().push_name is None
        assert db_session.query(Conversation).one().unread_count == 0
        mock_ai_dispatch.assert_not_called()

    def test_duplicate_delivery_skipped(self, client, db_session, sample_instance, mock_ai_dispatch):
        client.post(WEBHOOK_URL, json=received("wamid.dup"))
        response = client.post(WEBHOOK_URL, json=received("wamid.dup"))

        assert response.json()["skipped"] == 1
        assert db_session.query(Message).count() == 1
        assert mock_ai_dispatch.call_count == 1


class TestAttendanceGating:

    def test_toggle_suppresses_and_restores_dispatch(self, client, auth_headers, db_session, sample_conversation, mock_ai_dispatch):
        """ai -> human stops AI dispatch until switched back"""
        url = f"/conversations/{sample_conversation.id}/attendance"

        response = client.patch(url, json={"attendance_mode": "human"}, headers=auth_headers)
        assert response.status_code == 200
        client.post(WEBHOOK_URL, json=received("wamid.h1"))
        client.post(WEBHOOK_URL, json=received("wamid.h2"))
        mock_ai_dispatch.assert_not_called()

        client.patch(url, json={"attendance_mode": "ai"}, headers=auth_headers)
        client.post(WEBHOOK_URL, json=received("wamid.a1"))
        assert mock_ai_dispatch.call_count == 1

        workspace_id, payload = mock_ai_dispatch.call_args.args
        assert workspace_id == "test_workspace_id"
        assert payload["conversation_id"] == sample_conversation.id
        assert payload["content"] == "Olá, tudo bem?"

    def test_invalid_attendance_mode(self, client, auth_headers, sample_conversation):
        response = client.patch(
            f"/conversations/{sample_conversation.id}/attendance",
            json={"attendance_mode": "robot"},
            headers=auth_headers
        )
        assert response.status_code == 400
        assert "error" in response.json()

    def test_bitrix_mirror_scheduled_when_integration_active(self, client, db_session, sample_instance, mock_ai_dispatch, mock_bitrix_mirror):
        integration = Integration(workspace_id=sample_instance.workspace_id, type="bitrix24", config={"webhook_url": "https://b24.example/rest/1/abc/"})
        db_session.add(integration)
        db_session.commit()

        client.post(WEBHOOK_URL, json=received("wamid.crm1"))

        message = db_session.query(Message).one()
        mock_bitrix_mirror.assert_called_once_with(integration.id, message.id)


class TestStatusAndConnection:

    def test_status_moves_forward_only(self, client, db_session, sample_conversation):
        from conversations.crud import create_message

        message = create_message(
            db_session, sample_conversation,
            direction="outgoing", content="Oi", status="sent", whatsapp_message_id="wamid.s1",
        )

        client.post(WEBHOOK_URL, json={"event": "webhookStatus", "messageId": "wamid.s1", "status": "READ"})
        db_session.refresh(message)
        assert message.status == "read"

        response = client.post(WEBHOOK_URL, json={"event": "webhookStatus", "messageId": "wamid.s1", "status": "DELIVERY"})
        assert response.json()["statuses"] == 0
        db_session.refresh(message)
        assert message.status == "read"

    def test_connection_events_update_instance(self, client, db_session, sample_instance):
        client.post(WEBHOOK_URL, json={"event": "webhookQrCode", "qrCode": "data:image/png;base64,AAA"})
        db_session.refresh(sample_instance)
        assert sample_instance.status == "qr_pending"
        assert sample_instance.qr_code == "data:image/png;base64,AAA"

        client.post(WEBHOOK_URL, json={"event": "webhookConnected", "connectedPhone": "+55 11 98888-7777"})
        db_session.refresh(sample_instance)
        assert sample_instance.status == "connected"
        assert sample_instance.phone_number == "5511988887777"
        assert sample_instance.qr_code is None


class TestWebhookErrors:

    def test_unknown_instance(self, client, db_session):
        response = client.post("/webhooks/wapi?instance_id=missing", json=received("wamid.x"))
        assert response.status_code == 404
        assert response.json() == {"error": "Instance not found"}

    def test_missing_instance_id(self, client, db_session):
        response = client.post("/webhooks/apibrasil", json={"event": "message"})
        assert response.status_code == 400

    def test_evolution_health_check(self, client):
        response = client.post("/webhooks/evolution", json={"action": "health_check"})
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


@pytest.fixture
def provider_instance(db_session, sample_workspace):
    """Factory for connected instances of the other providers"""
    from instances.models import Instance

    def make(instance_id, provider_type, config=None):
        instance = Instance(
            id=instance_id,
            workspace_id=sample_workspace.id,
            name=f"Linha {provider_type}",
            provider_type=provider_type,
            status="connected",
            provider_config=config or {},
        )
        db_session.add(instance)
        db_session.commit()
        return instance
    return make


def evolution_upsert(message_id, remote_jid="5511999990000@s.whatsapp.net", text="Oi", from_me=False, **extra):
    return {
        "event": "messages.upsert",
        "data": {
            "key": {"remoteJid": remote_jid, "fromMe": from_me, "id": message_id},
            "pushName": "Maria",
            "message": {"conversation": text},
        },
        **extra,
    }


def apibrasil_message(message_id, sender="5511999990000@c.us", text="Bom dia", push_name="Maria", from_me=False):
    return {
        "event": "message",
        "message": {"from": sender, "id": message_id, "body": text, "pushName": push_name, "fromMe": from_me},
    }


class TestEvolutionWebhook:

    def test_contact_reuse_and_echo(self, client, db_session, provider_instance, mock_ai_dispatch):
        provider_instance("evo_instance", "evolution", {"instance_name": "loja"})
        url = "/webhooks/evolution?instance_id=evo_instance"

        assert client.post(url, json=evolution_upsert("EVO1")).json()["messages"] == 1
        assert client.post(url, json=evolution_upsert("EVO2", remote_jid="5511999990000:7@s.whatsapp.net")).json()["messages"] == 1

        # The echo of a message already stored is skipped
        response = client.post(url, json=evolution_upsert("EVO1", from_me=True))
        assert response.status_code == 200
        assert response.json()["skipped"] == 1

        assert db_session.query(Contact).count() == 1
        assert db_session.query(Message).count() == 2
        assert db_session.query(Conversation).one().unread_count == 2
        assert mock_ai_dispatch.call_count == 2

    def test_instance_id_from_body(self, client, db_session, provider_instance, mock_ai_dispatch):
        provider_instance("evo_instance", "evolution", {"instance_name": "loja"})

        response = client.post("/webhooks/evolution", json=evolution_upsert("EVO1", instance_id="evo_instance"))
        assert response.status_code == 200
        assert db_session.query(Message).one().metadata_["source"] == "evolution_webhook"

    def test_status_update(self, client, db_session, provider_instance, mock_ai_dispatch):
        provider_instance("evo_instance", "evolution", {"instance_name": "loja"})
        url = "/webhooks/evolution?instance_id=evo_instance"
        client.post(url, json=evolution_upsert("EVO9", from_me=True))

        client.post(url, json={"event": "MESSAGES_UPDATE", "data": {"key": {"id": "EVO9"}, "status": "READ"}})
        assert db_session.query(Message).one().status == "read"


class TestApiBrasilWebhook:

    def test_contact_reuse_and_duplicate(self, client, db_session, provider_instance, mock_ai_dispatch):
        provider_instance("abr_instance", "apibrasil", {"device_token": "dev"})
        url = "/webhooks/apibrasil?instanceId=abr_instance"

        client.post(url, json=apibrasil_message("AB1"))
        client.post(url, json=apibrasil_message("AB2", sender="+55 (11) 99999-0000"))
        response = client.post(url, json=apibrasil_message("AB1"))

        assert response.json()["skipped"] == 1
        assert db_session.query(Contact).count() == 1
        assert db_session.query(Message).count() == 2
        assert mock_ai_dispatch.call_count == 2

    def test_outgoing_message_not_stored(self, client, db_session, provider_instance, mock_ai_dispatch):
        provider_instance("abr_instance", "apibrasil", {"device_token": "dev"})

        response = client.post("/webhooks/apibrasil?instanceId=abr_instance", json=apibrasil_message("AB3", from_me=True))
        assert response.json()["messages"] == 0
        assert db_session.query(Message).count() == 0
        mock_ai_dispatch.assert_not_called()

    def test_empty_push_name_keeps_known_name(self, client, db_session, provider_instance, mock_ai_dispatch):
        provider_instance("abr_instance", "apibrasil", {"device_token": "dev"})
        url = "/webhooks/apibrasil?instanceId=abr_instance"

        client.post(url, json=apibrasil_message("AB1", push_name="Maria"))
        client.post(url, json=apibrasil_message("AB2", push_name=""))

        contact = db_session.query(Contact).one()
        assert contact.push_name == "Maria"
        assert contact.name == "Maria"


class TestGupshupWebhook:

    def test_message_and_delivery_event(self, client, db_session, provider_instance, mock_ai_dispatch):
        provider_instance("gs_instance", "gupshup", {"api_key": "k", "app_name": "LojaTeste"})
        url = "/webhooks/gupshup?instanceId=gs_instance"

        response = client.post(url, json={
            "type": "message",
            "payload": {
                "id": "gs.1",
                "source": "5511999990000",
                "type": "text",
                "payload": {"text": "Oi"},
                "sender": {"phone": "5511999990000", "name": "Ana"},
            },
        })
        assert response.json()["messages"] == 1
        message = db_session.query(Message).one()
        assert message.direction == "incoming"
        assert message.metadata_["source"] == "gupshup_webhook"
        assert db_session.query(Contact).one().push_name == "Ana"
        assert mock_ai_dispatch.call_count == 1

        response = client.post(url, json={"type": "message-event", "payload": {"id": "gs.1", "type": "read"}})
        assert response.json()["statuses"] == 1

    def test_missing_instance_id(self, client, db_session):
        response = client.post("/webhooks/gupshup", json={"type": "message"})
        assert response.status_code == 400


class TestContactFieldCoalescing:

    def test_empty_values_never_overwrite(self, db_session, sample_instance):
        from contacts.crud import upsert_contact

        upsert_contact(
            db_session, sample_instance.workspace_id, sample_instance.id, "5511977776666",
            push_name="Carlos", profile_picture_url="https://pps.test/carlos.jpg",
        )
        contact, created = upsert_contact(
            db_session, sample_instance.workspace_id, sample_instance.id, "5511977776666",
            push_name="", profile_picture_url="",
        )

        assert created is False
        assert contact.push_name == "Carlos"
        assert contact.profile_picture_url == "https://pps.test/carlos.jpg"

    def test_blank_name_filled_from_push_name(self, db_session, sample_instance):
        from contacts.crud import upsert_contact

        contact, _ = upsert_contact(db_session, sample_instance.workspace_id, sample_instance.id, "5511977776666")
        contact.name = ""
        db_session.commit()

        contact, _ = upsert_contact(db_session, sample_instance.workspace_id, sample_instance.id, "5511977776666", push_name="Carlos")
        assert contact.name == "Carlos"


class TestAiDispatch:

    @pytest.fixture
    def dispatch_settings(self, monkeypatch):
        from config import settings

        monkeypatch.setattr(settings, "INTERNAL_SERVICE_KEY", "sk_internal_test")
        monkeypatch.setattr(settings, "INTERNAL_BASE_URL", "http://backend.test")
        monkeypatch.setattr(settings, "FLOW_ENGINE_URL", None)
        return settings

    def run_dispatch(self, handler):
        import asyncio
        import httpx
        from providers.ingestion import dispatch_to_ai

        payload = {"conversation_id": "conv-1", "message_id": "msg-1", "content": "Oi"}
        return asyncio.run(dispatch_to_ai("test_workspace_id", payload, transport=httpx.MockTransport(handler)))

    def test_posts_to_ai_responder_with_service_key(self, dispatch_settings):
        import httpx

        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["headers"] = request.headers
            return httpx.Response(200, json={"success": True})

        self.run_dispatch(handler)
        assert captured["url"] == "http://backend.test/ai/process-message"
        assert captured["headers"]["X-Service-Key"] == "sk_internal_test"
        assert captured["headers"]["X-Workspace-Id"] == "test_workspace_id"

    def test_targets_flow_engine_when_configured(self, dispatch_settings, monkeypatch):
        import httpx

        monkeypatch.setattr(dispatch_settings, "FLOW_ENGINE_URL", "https://flows.test/run")
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(202)

        self.run_dispatch(handler)
        assert urls == ["https://flows.test/run"]

    def test_server_error_is_logged_not_raised(self, dispatch_settings, caplog):
        import httpx

        result = self.run_dispatch(lambda request: httpx.Response(500, json={"error": "boom"}))
        assert result is None
        assert "AI dispatch" in caplog.text

    def test_missing_service_key_is_logged_not_raised(self, dispatch_settings, monkeypatch, caplog):
        monkeypatch.setattr(dispatch_settings, "INTERNAL_SERVICE_KEY", None)
        calls = []

        result = self.run_dispatch(lambda request: calls.append(request))
        assert result is None
        assert calls == []
        assert "INTERNAL_SERVICE_KEY" in caplog.text
