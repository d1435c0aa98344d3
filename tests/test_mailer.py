"""Tests for the provider mailer."""

import json

import httpx
import pytest

from storefront import config
from storefront.mailer import MAILERSEND_URL, SENDGRID_URL, Mailer, MailerError, render_template


@pytest.fixture
def outbox():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(202)

    return sent, httpx.MockTransport(handler)


class TestMailer:
    def test_sandbox_sends_nothing(self, outbox):
        sent, transport = outbox
        assert Mailer("sendgrid", sandbox=True, transport=transport).send_email("a@example.com", "Hi", "<p>x</p>")
        assert sent == []

    def test_sendgrid_payload(self, outbox, monkeypatch):
        monkeypatch.setattr(config, "SENDGRID_API_KEY", "sg-key")
        sent, transport = outbox
        Mailer("sendgrid", sandbox=False, transport=transport).send_email(
            "a@example.com", "Hi", "<p>x</p>", text="x", to_name="Ann"
        )
        request = sent[0]
        assert str(request.url) == SENDGRID_URL
        assert request.headers["authorization"] == "Bearer sg-key"
        payload = json.loads(request.content)
        assert payload["personalizations"] == [{"to": [{"email": "a@example.com", "name": "Ann"}]}]
        assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]

    def test_mailersend_payload(self, outbox, monkeypatch):
        monkeypatch.setattr(config, "MAILERSEND_API_KEY", "ms-key")
        sent, transport = outbox
        Mailer("mailersend", sandbox=False, transport=transport).send_email("a@example.com", "Hi", "<p>x</p>")
        request = sent[0]
        assert str(request.url) == MAILERSEND_URL
        payload = json.loads(request.content)
        assert payload["to"] == [{"email": "a@example.com"}]
        assert payload["html"] == "<p>x</p>"
        assert "text" not in payload

    def test_missing_api_key(self, outbox, monkeypatch):
        monkeypatch.setattr(config, "SENDGRID_API_KEY", "")
        _, transport = outbox
        with pytest.raises(MailerError, match="No API key"):
            Mailer("sendgrid", sandbox=False, transport=transport).send_email("a@example.com", "Hi", "x")

    def test_provider_rejection(self, monkeypatch):
        monkeypatch.setattr(config, "SENDGRID_API_KEY", "sg-key")
        transport = httpx.MockTransport(lambda request: httpx.Response(401, text="bad key"))
        with pytest.raises(MailerError, match="401"):
            Mailer("sendgrid", sandbox=False, transport=transport).send_email("a@example.com", "Hi", "x")

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            Mailer("pigeon")

    def test_welcome_email(self, outbox, monkeypatch):
        monkeypatch.setattr(config, "SENDGRID_API_KEY", "sg-key")
        monkeypatch.setattr(config, "PUBLIC_WEBSITE_URL", "https://shop.test")
        sent, transport = outbox
        Mailer("sendgrid", sandbox=False, transport=transport).send_welcome_email("g@example.com", "Grace Hopper", "Grace")
        payload = json.loads(sent[0].content)
        html = payload["content"][-1]["value"]
        assert "Grace" in html
        assert "[First Name]" not in html
        assert "https://shop.test" in payload["content"][0]["value"]


def test_render_template_replaces_markers():
    html = render_template("welcome.html", {"First Name": "Ann", "Website URL": "https://x.test"})
    assert "[First Name]" not in html
    assert "Ann" in html
