from carelink import config
from carelink.utils import alerts


def test_mock_send_without_credentials(monkeypatch, caplog):
    monkeypatch.setattr(config, "TWILIO_SID", "")
    with caplog.at_level("INFO", logger="carelink.utils.alerts"):
        assert alerts.send_sms("+911", "hello") is None
    assert "[MOCK SMS] to +911: hello" in caplog.text


def test_send_through_twilio(monkeypatch):
    monkeypatch.setattr(config, "TWILIO_SID", "AC123")
    monkeypatch.setattr(config, "TWILIO_AUTH", "token")
    monkeypatch.setattr(config, "TWILIO_PHONE", "+15550000")
    created = []

    class FakeMessages:
        def create(self, **kwargs):
            created.append(kwargs)
            return type("Message", (), {"sid": "SM1"})()

    class FakeClient:
        def __init__(self, sid, auth):
            assert (sid, auth) == ("AC123", "token")
            self.messages = FakeMessages()

    monkeypatch.setattr(alerts, "Client", FakeClient)

    assert alerts.send_sms("+911", "hello") == "SM1"
    assert created == [{"to": "+911", "from_": "+15550000", "body": "hello"}]
