import dataclasses
from unittest.mock import patch

import httpx
import pytest

from receipts.config import settings
from receipts.services.mailer import Mailer
from tests.mocks import FakeHTTPXClient, FakeHTTPXResponse

SHARE = {
    "title": "Safety <Policy>",
    "sender": "Pat Pro",
    "share_url": "https://app.example.com/d/abc",
}


@pytest.fixture()
def configured():
    with patch(
        "receipts.services.mailer.settings",
        dataclasses.replace(settings, resend_api_key="re_test"),
    ):
        yield


def _use(monkeypatch, client):
    monkeypatch.setattr("receipts.services.mailer.httpx.Client", client)
    return client


class TestRender:
    def test_share_link_escapes_html(self):
        subject, body, text = Mailer.render("share_link", SHARE)
        assert subject == "Pat Pro shared “Safety <Policy>” with you"
        assert "Safety &lt;Policy&gt;" in body
        assert "https://app.example.com/d/abc" in text

    def test_version_update(self):
        subject, _, _ = Mailer.render(
            "version_update", {**SHARE, "version_label": "2.1"}
        )
        assert subject.endswith("(version 2.1)")

    def test_stack_delivery_greets_recipient(self):
        subject, body, text = Mailer.render(
            "stack_delivery",
            {
                "workspace_name": "Acme Ops",
                "title": "Onboarding <pack>",
                "share_url": "https://app.example.com/s/xyz",
                "recipient_name": "Ada",
            },
        )
        assert subject == "Acme Ops shared a document stack"
        assert text.startswith("Hi Ada,")
        assert "Onboarding &lt;pack&gt;" in body
        assert "https://app.example.com/s/xyz" in text

    def test_unknown_template(self):
        with pytest.raises(ValueError):
            Mailer.render("welcome", SHARE)


class TestSend:
    def test_not_configured(self):
        result = Mailer.send("a@x.com", "share_link", SHARE)
        assert result["sent"] is False

    def test_success(self, configured, monkeypatch):
        client = _use(monkeypatch, FakeHTTPXClient())
        result = Mailer.send("a@x.com", "share_link", SHARE)
        assert result == {"sent": True, "id": "msg_1"}
        request = client.requests[0]
        assert request["json"]["to"] == ["a@x.com"]
        assert request["headers"]["Authorization"] == "Bearer re_test"

    def test_non_json_body(self, configured, monkeypatch):
        _use(monkeypatch, FakeHTTPXClient(FakeHTTPXResponse(status_code=202)))
        assert Mailer.send("a@x.com", "share_link", SHARE) == {"sent": True, "id": None}

    def test_rejected(self, configured, monkeypatch):
        _use(monkeypatch, FakeHTTPXClient(FakeHTTPXResponse({}, status_code=422)))
        result = Mailer.send("a@x.com", "share_link", SHARE)
        assert result == {"sent": False, "error": "HTTP 422"}

    def test_transport_error(self, configured, monkeypatch):
        _use(monkeypatch, FakeHTTPXClient(error=httpx.ConnectError("boom")))
        result = Mailer.send("a@x.com", "share_link", SHARE)
        assert result["sent"] is False


class TestDeliver:
    def test_counts_failures(self, configured):
        outcomes = {
            "ok@x.com": {"sent": True, "id": "1"},
            "bad@x.com": {"sent": False, "error": "HTTP 500"},
        }
        with patch.object(
            Mailer, "send", side_effect=lambda to, template, data: outcomes[to]
        ):
            result = Mailer.deliver(["ok@x.com", "bad@x.com"], "share_link", SHARE)
        assert result == {"sent": 1, "failed": ["bad@x.com"]}
