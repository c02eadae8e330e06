import html
import logging

import httpx

from receipts.config import settings
from receipts.metrics import EMAILS_FAILED, EMAILS_SENT

logger = logging.getLogger(__name__)


def _share_link(data: dict) -> tuple[str, str, str]:
    title = data.get("title") or "a document"
    sender = data.get("sender") or "Someone"
    url = data["share_url"]
    subject = f"{sender} shared “{title}” with you"
    text = (
        f"{sender} shared “{title}” with you.\n\n"
        f"Open it here: {url}\n\n"
        "Please read it and confirm when you are done."
    )
    body = (
        f"<p>{html.escape(sender)} shared <strong>{html.escape(title)}</strong> "
        "with you.</p>"
        f'<p><a href="{html.escape(url, quote=True)}">Open document</a></p>'
        "<p>Please read it and confirm when you are done.</p>"
    )
    return subject, body, text


def _version_update(data: dict) -> tuple[str, str, str]:
    title = data.get("title") or "a document"
    label = data.get("version_label") or ""
    url = data["share_url"]
    subject = f"Updated: “{title}” (version {label})"
    text = (
        f"“{title}” has a new version ({label}).\n\n"
        f"Review the latest version: {url}"
    )
    body = (
        f"<p><strong>{html.escape(title)}</strong> has a new version "
        f"({html.escape(label)}).</p>"
        f'<p><a href="{html.escape(url, quote=True)}">Review the latest version</a></p>'
    )
    return subject, body, text


def _stack_delivery(data: dict) -> tuple[str, str, str]:
    workspace = data.get("workspace_name") or "Receipt"
    title = data.get("title") or "Document stack"
    url = data["share_url"]
    greeting = f"Hi {data['recipient_name']}," if data.get("recipient_name") else "Hello,"
    subject = f"{workspace} shared a document stack"
    text = (
        f"{greeting}\n\n"
        f"{workspace} sent you a document stack:\n{title}\n\n"
        f"Open stack: {url}\n"
    )
    body = (
        f"<p>{html.escape(greeting)}</p>"
        f"<p>{html.escape(workspace)} sent you a document stack. Please review and "
        "acknowledge each document in:</p>"
        f"<p><strong>{html.escape(title)}</strong></p>"
        f'<p><a href="{html.escape(url, quote=True)}">Open stack</a></p>'
    )
    return subject, body, text


TEMPLATES = {
    "share_link": _share_link,
    "version_update": _version_update,
    "stack_delivery": _stack_delivery,
}


class Mailer:
    @staticmethod
    def is_configured() -> bool:
        return bool(settings.resend_api_key)

    @staticmethod
    def render(template: str, data: dict) -> tuple[str, str, str]:
        renderer = TEMPLATES.get(template)
        if renderer is None:
            raise ValueError(f"Unknown email template: {template}")
        return renderer(data)

    @staticmethod
    def send(to: str, template: str, data: dict) -> dict:
        """Send one templated email. Failures are reported, not raised."""
        if not Mailer.is_configured():
            return {"sent": False, "error": "RESEND_API_KEY is not configured."}

        subject, body, text = Mailer.render(template, data)
        payload = {
            "from": settings.mail_from,
            "to": [to],
            "subject": subject,
            "html": body,
            "text": text,
        }
        headers = {"Authorization": f"Bearer {settings.resend_api_key}"}
        try:
            with httpx.Client(timeout=settings.mail_timeout_seconds) as client:
                resp = client.post(settings.resend_api_url, json=payload, headers=headers)
        except (httpx.HTTPError, OSError) as e:
            logger.warning("Email %s to %s failed: %s", template, to, e)
            return {"sent": False, "error": "Mail request failed."}

        if not 200 <= resp.status_code < 300:
            logger.warning(
                "Email %s to %s rejected with HTTP %s", template, to, resp.status_code
            )
            return {"sent": False, "error": f"HTTP {resp.status_code}"}
        try:
            message_id = resp.json().get("id")
        except ValueError:
            message_id = None
        return {"sent": True, "id": message_id}

    @staticmethod
    def deliver(recipients: list[str], template: str, data: dict) -> dict:
        sent = 0
        failed: list[str] = []
        for email in recipients:
            result = Mailer.send(email, template, data)
            if result.get("sent"):
                sent += 1
                EMAILS_SENT.labels(template=template).inc()
            else:
                failed.append(email)
                EMAILS_FAILED.labels(template=template).inc()
        logger.info(
            "Delivered %s email to %d recipient(s), %d failed",
            template,
            sent,
            len(failed),
        )
        return {"sent": sent, "failed": failed}


mailer = Mailer()
