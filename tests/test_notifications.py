import pytest
import requests
from decimal import Decimal
from unittest.mock import Mock, patch

from core import config as core_config
from models.order import OrderStatus
from models.sms_log import SmsLog
from services import notifications
from services.notifications import dispatch_sms as real_dispatch_sms
from services.sms import SmsNotConfiguredError, send_sms, to_e164
from tasks.notification_tasks import send_sms_task


@pytest.fixture
def twilio(monkeypatch):
    monkeypatch.setattr(core_config.settings, "TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setattr(core_config.settings, "TWILIO_AUTH_TOKEN", "secret")
    monkeypatch.setattr(core_config.settings, "TWILIO_PHONE_NUMBER", "+15005550006")


def _twilio_response(status_code=201, payload=None):
    resp = Mock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.json.return_value = payload if payload is not None else {"sid": "SM123"}
    return resp


class TestPhoneNormalization:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("0712 345 678", "+255712345678"),
            ("255712345678", "+255712345678"),
            ("+255712345678", "+255712345678"),
            ("712-345-678", "+255712345678"),
            ("(0712) 345.678", "+255712345678"),
            ("+1 415 555 0100", "+14155550100"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_to_e164(self, raw, expected):
        assert to_e164(raw) == expected

    def test_custom_country_code(self):
        assert to_e164("0712345678", country_code="254") == "+254712345678"


class TestTemplates:
    def test_money_filter(self):
        assert notifications.format_money(Decimal("20000.00"), "TZS") == "TZS 20,000"
        assert notifications.format_money(None) == "TZS 0"

    def test_order_placed_pair(self, make_order, seller, buyer):
        order = make_order()
        built = notifications.order_placed(order)
        assert [(n.event_type, n.to) for n in built] == [
            ("order_placed", seller.phone),
            ("order_placed_buyer", buyer.phone),
        ]
        assert "TZS 20,000" in built[0].message
        assert "TZS 21,000" in built[1].message
        assert "\n" not in built[0].message

    def test_rider_message_has_pickup_and_cash(self, make_order, rider):
        order = make_order(status=OrderStatus.RIDER_ASSIGNED, rider=rider)
        rider_sms = notifications.rider_assigned(order)[1]
        assert rider_sms.to == rider.phone
        assert "Kariakoo, Dar es Salaam" in rider_sms.message
        assert "Sinza, Dar es Salaam" in rider_sms.message
        assert "TZS 21,000" in rider_sms.message

    def test_cancel_without_reason(self, make_order):
        order = make_order()
        message = notifications.order_cancelled(order)[0].message
        assert "Reason" not in message

    def test_missing_phone_is_skipped(self, db, make_order):
        order = make_order(status=OrderStatus.RIDER_ASSIGNED)
        built = notifications.rider_assigned(order)
        assert [n.event_type for n in built] == ["rider_assigned_buyer"]


class TestDispatch:
    def test_enqueue_continues_after_failure(self, monkeypatch):
        calls = []

        def _flaky(to, message, event_type, order_id=None):
            calls.append(to)
            if to == "+1":
                raise RuntimeError("boom")

        monkeypatch.setattr(notifications, "dispatch_sms", _flaky)
        notifications.enqueue([
            notifications.Notification("+1", "a", "order_placed", 1),
            notifications.Notification("+2", "b", "order_placed_buyer", 1),
        ])
        assert calls == ["+1", "+2"]

    @patch("services.notifications.send_sms_task")
    def test_dispatch_queues_on_celery(self, mock_task):
        mock_task.delay = Mock()
        real_dispatch_sms("+255712345678", "hi", "order_accepted", 5)
        mock_task.delay.assert_called_once_with("+255712345678", "hi", "order_accepted", 5)

    @patch("services.notifications.send_sms_task")
    def test_dispatch_falls_back_to_direct_send(self, mock_task):
        mock_task.delay.side_effect = Exception("Celery not available")
        with patch("services.notifications._send_sms_direct") as mock_direct:
            real_dispatch_sms("+255712345678", "hi", "order_accepted", 5)
        mock_direct.assert_called_once_with("+255712345678", "hi", "order_accepted", 5)

    def test_task_skipped_in_testing(self):
        result = send_sms_task.run("+255712345678", "hi", "order_accepted")
        assert result["success"] is False


class TestSmsGateway:
    def test_not_configured(self, db):
        with pytest.raises(SmsNotConfiguredError):
            send_sms(db, "0712345678", "hi")

    @patch("services.sms.requests.post")
    def test_success_logs_sent(self, mock_post, db, twilio):
        mock_post.return_value = _twilio_response()
        result = send_sms(db, "0712345678", "hello", "order_accepted")

        assert result == {"success": True, "provider_message_id": "SM123"}
        args, kwargs = mock_post.call_args
        assert args[0].endswith("/Accounts/AC123/Messages.json")
        assert kwargs["data"]["To"] == "+255712345678"
        assert kwargs["auth"] == ("AC123", "secret")
        log = db.query(SmsLog).one()
        assert log.status == "sent"
        assert log.provider_message_id == "SM123"

    @patch("services.sms.requests.post")
    def test_provider_error(self, mock_post, db, twilio):
        mock_post.return_value = _twilio_response(400, {"message": "Invalid 'To' Phone Number"})
        result = send_sms(db, "123", "hello")

        assert result == {"success": False, "error": "Invalid 'To' Phone Number"}
        assert db.query(SmsLog).one().status == "failed"

    @patch("services.sms.requests.post", side_effect=requests.ConnectionError("down"))
    def test_network_error(self, mock_post, db, twilio):
        result = send_sms(db, "0712345678", "hello")
        assert result["success"] is False
        assert db.query(SmsLog).one().error_message == "down"


class TestSmsEndpoint:
    def test_admin_only(self, client, buyer, headers_for):
        resp = client.post("/notifications/sms", json={"to": "0712345678", "message": "hi"}, headers=headers_for(buyer))
        assert resp.status_code == 403

    def test_missing_fields(self, client, admin, headers_for):
        resp = client.post("/notifications/sms", json={"to": "0712345678"}, headers=headers_for(admin))
        assert resp.status_code == 400

    def test_not_configured(self, client, admin, headers_for):
        resp = client.post("/notifications/sms", json={"to": "0712345678", "message": "hi"}, headers=headers_for(admin))
        assert resp.status_code == 503

    @patch("services.sms.requests.post")
    def test_provider_failure(self, mock_post, client, admin, headers_for, twilio):
        mock_post.return_value = _twilio_response(500, {})
        resp = client.post("/notifications/sms", json={"to": "0712345678", "message": "hi"}, headers=headers_for(admin))
        assert resp.status_code == 502

    @patch("services.sms.requests.post")
    def test_sent(self, mock_post, client, admin, headers_for, twilio):
        mock_post.return_value = _twilio_response()
        resp = client.post(
            "/notifications/sms",
            json={"to": "0712345678", "message": "hi", "event_type": "manual"},
            headers=headers_for(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["provider_message_id"] == "SM123"
