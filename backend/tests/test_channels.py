import smtplib

import httpx
import pytest

from app.core.errors import ChannelDeliveryError
from app.db.models.alerts import AlertLog
from app.db.session import SessionLocal
from conftest import FakeChannel
from services.notifications.channels import EmailChannel, WhatsAppChannel
from services.notifications.notifier import Notifier


def _whatsapp(handler) -> WhatsAppChannel:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WhatsAppChannel("http://gateway.local/", token="t0k", client=client)


def test_whatsapp_posts_to_gateway():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = request.read().decode()
        return httpx.Response(200, json={"success": True, "group": "BB-Demand & Supply"})

    info = _whatsapp(handler).send("hello", subject="Report")
    assert seen["url"] == "http://gateway.local/send"
    assert seen["auth"] == "Bearer t0k"
    assert "*Report*\\nhello" in seen["body"]
    assert info.recipients == ["BB-Demand & Supply"]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, json={"success": False, "error": "WhatsApp not ready or group not set"}),
        httpx.Response(200, json={"success": False, "error": "not ready"}),
    ],
)
def test_whatsapp_failures_raise_channel_error(response):
    channel = _whatsapp(lambda request: response)
    with pytest.raises(ChannelDeliveryError) as exc:
        channel.send("hello")
    assert exc.value.channel == "whatsapp"


def test_whatsapp_transport_error_raises_channel_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ChannelDeliveryError):
        _whatsapp(handler).send("hello")


def test_whatsapp_status():
    channel = _whatsapp(lambda request: httpx.Response(200, json={"ready": True, "groupName": "BB", "status": "connected"}))
    assert channel.status() == {"ready": True, "group": "BB", "status": "connected"}


def test_email_channel_builds_message():
    sent = {}

    def sender(**kwargs):
        sent.update(kwargs)

    channel = EmailChannel(host="smtp.local", from_email="dash@example.com", recipients=["a@example.com", "b@example.com"], sender=sender)
    info = channel.send("line one\nline two", subject="Daily")
    msg = sent["msg"]
    assert msg["Subject"] == "Daily"
    assert msg["To"] == "a@example.com, b@example.com"
    assert msg["Cc"] is None
    assert "line one" in msg.get_body(preferencelist=("plain",)).get_content()
    assert "line two" in msg.get_body(preferencelist=("html",)).get_content()
    assert info.message_id == msg["Message-ID"]


def test_email_smtp_error_becomes_channel_error():
    def sender(**kwargs):
        raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    channel = EmailChannel(host="smtp.local", from_email="dash@example.com", recipients=["a@example.com"], sender=sender)
    with pytest.raises(ChannelDeliveryError):
        channel.send("x")


def test_notifier_never_raises_and_logs_attempts(db):
    notifier = Notifier([FakeChannel("email", fail=True), FakeChannel("whatsapp")], session_factory=SessionLocal)
    results = notifier.broadcast("text", alert_type="URGENT_DEMAND", demand_id=7)
    assert [(r.channel, r.ok) for r in results] == [("email", False), ("whatsapp", True)]
    rows = db.query(AlertLog).order_by(AlertLog.id).all()
    assert [(r.channel, r.ok, r.demand_id) for r in rows] == [("email", False, 7), ("whatsapp", True, 7)]
    assert "channel not ready" in rows[0].error


def test_notifier_without_channels_still_logs(db):
    Notifier([], session_factory=SessionLocal).broadcast("text", alert_type="TEST")
    assert db.query(AlertLog).one().channel == "log"


def test_notifier_can_target_one_channel(db):
    email, whatsapp = FakeChannel("email"), FakeChannel("whatsapp")
    results = Notifier([email, whatsapp], session_factory=SessionLocal).broadcast("hi", alert_type="TEST", only="whatsapp")
    assert [r.channel for r in results] == ["whatsapp"]
    assert email.sent == [] and whatsapp.sent == [("hi", None)]
    assert db.query(AlertLog).one().channel == "whatsapp"
