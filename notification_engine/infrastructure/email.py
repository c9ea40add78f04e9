"""Email channel transport backed by the SendGrid v3 API."""

from __future__ import annotations

import html
import json
import logging
from functools import partial
from typing import Any

from anyio import to_thread
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from notification_engine.config import get_settings

logger = logging.getLogger(__name__)


def _decode_error_body(body: Any) -> Any:
    """Return the parsed JSON error body, the raw text, or ``None``."""

    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(body, str):
        return body
    body = body.strip()
    if not body:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return body


def sendgrid_error_details(body: Any) -> str | None:
    """Summarize a SendGrid error payload as ``field: message`` pairs."""

    parsed = _decode_error_body(body)
    if parsed is None or isinstance(parsed, str):
        return parsed or None
    if isinstance(parsed, list):
        return "; ".join(str(item) for item in parsed) or None
    if not isinstance(parsed, dict):
        return None

    messages = []
    for item in parsed.get("errors") or []:
        if not isinstance(item, dict) or not item.get("message"):
            continue
        field = item.get("field")
        messages.append(f"{field}: {item['message']}" if field else str(item["message"]))
    return "; ".join(messages) if messages else json.dumps(parsed, default=str)


def _log_failure(status_code: Any, body: Any) -> None:
    details = sendgrid_error_details(body)
    suffix = f": {details}" if details else ""
    if status_code:
        logger.error("SendGrid rejected the email with status %s%s", status_code, suffix)
    else:
        logger.error("SendGrid rejected the email%s", suffix)


def send_email(
    subject: str,
    html_content: str,
    recipient: str,
    *,
    text_content: str | None = None,
) -> bool:
    """Send one email with the configured SendGrid credentials.

    Returns ``False`` when email is not configured or SendGrid did not accept
    the message; the retry queue decides what happens next.
    """

    settings = get_settings()
    if not (settings.sendgrid_api_key and settings.sendgrid_sender):
        logger.info("SendGrid configuration incomplete; skipping email delivery")
        return False

    message = Mail(
        from_email=settings.sendgrid_sender,
        to_emails=recipient,
        subject=subject,
        html_content=html_content,
        plain_text_content=text_content,
    )

    try:
        response = SendGridAPIClient(settings.sendgrid_api_key).send(message)
    except Exception as exc:  # sendgrid raises python_http_client errors and socket errors alike
        status_code = getattr(exc, "status_code", None)
        body = getattr(exc, "body", None)
        if status_code or body:
            _log_failure(status_code, body)
        else:
            logger.exception("Error sending email via SendGrid: %s", exc)
        return False

    status_code = getattr(response, "status_code", None)
    if not isinstance(status_code, int) or not 200 <= status_code < 300:
        _log_failure(status_code, getattr(response, "body", None))
        return False
    return True


def render_notification_html(message: str) -> str:
    """Wrap a plain message into minimal HTML paragraphs."""

    paragraphs = [line.strip() for line in message.splitlines() if line.strip()]
    return "".join(f"<p>{html.escape(paragraph)}</p>" for paragraph in paragraphs)


class SendGridEmailTransport:
    """Email transport running the blocking SendGrid client in a worker thread."""

    async def send(self, *, to: str, subject: str, html: str, text: str) -> bool:
        return await to_thread.run_sync(
            partial(send_email, subject, html, to, text_content=text)
        )


__all__ = [
    "SendGridEmailTransport",
    "render_notification_html",
    "send_email",
    "sendgrid_error_details",
]
