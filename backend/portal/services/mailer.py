"""
Transactional email sender with bounded retry.

- Validates and normalizes the message before any network call; invalid
  input raises ValidationError and is never retried.
- Each logical send gets one correlation id, sent as ``X-Request-ID`` and
  shared by all of its attempts.
- Transient provider failures (429, 5xx) are retried with exponential
  backoff and jitter (see ``portal.services.retry``); permanent failures and
  exhausted retries raise DeliveryError with the last transport error as
  cause.
- Logs carry the correlation id, attempt, remaining retries, masked
  recipient and subject. Never the body, full addresses or the API key.
"""

import asyncio
import logging
import re
import secrets
from typing import Any, Awaitable, Callable, Mapping, Optional

from portal.config import Settings
from portal.errors import DeliveryError, ValidationError
from portal.models.email import OutboundMessage, SendResult
from portal.services.email_templates import clamp, render_template, sanitize_display_name
from portal.services.email_transport import (
    MessageTransport,
    TransportStatusError,
    build_sendgrid_payload,
)
from portal.services.retry import RetryPolicy, is_transient_status

logger = logging.getLogger(__name__)

MAX_EMAIL_LENGTH = 254
CORRELATION_HEADER = "X-Request-ID"

# Lightweight check, not full RFC validation
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_LINE_BREAKS_RE = re.compile(r"[\r\n]+")


def normalize_email(email: Optional[str]) -> str:
    return clamp(email, MAX_EMAIL_LENGTH).lower()


def looks_like_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def mask_email(email: Any) -> str:
    """``alice@example.com`` -> ``a***@example.com``."""
    value = email if isinstance(email, str) else str(email or "")
    at = value.find("@")
    if at <= 1:
        return "***"
    return f"{value[0]}***@{value[at + 1:]}"


def new_correlation_id() -> str:
    return secrets.token_hex(8)


def _is_transient_failure(exc: BaseException) -> bool:
    return isinstance(exc, TransportStatusError) and is_transient_status(exc.status_code)


def _require_email(value: Optional[str], field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")
    normalized = normalize_email(value)
    if not looks_like_email(normalized):
        raise ValidationError(f"{field_name} must be a valid email address")
    return normalized


class Mailer:
    def __init__(self, transport: MessageTransport, settings: Settings,
                 policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.transport = transport
        self.settings = settings
        self.policy = policy or RetryPolicy(
            max_attempts=settings.mail_max_attempts,
            base_delay=settings.mail_retry_delay_seconds,
            jitter=settings.mail_retry_jitter_seconds,
        )
        self._sleep = sleep

    def _build_payload(self, message: OutboundMessage) -> dict:
        to = _require_email(message.to, "to")
        sender = _require_email(message.sender or self.settings.mail_from, "from")
        reply_to = message.reply_to or self.settings.mail_reply_to
        if reply_to:
            reply_to = _require_email(reply_to, "reply_to")

        if not isinstance(message.subject, str) or not message.subject.strip():
            raise ValidationError("subject must be a non-empty string")
        subject = _LINE_BREAKS_RE.sub(" ", message.subject).strip()

        text = message.text if message.text and message.text.strip() else None
        html = message.html if message.html and message.html.strip() else None
        if not text and not html:
            raise ValidationError("Either text or html content must be provided")

        return build_sendgrid_payload(
            to=to,
            to_name=sanitize_display_name(message.to_name, fallback="") or None,
            sender=sender,
            sender_name=sanitize_display_name(message.sender_name, fallback="") or None,
            reply_to=reply_to,
            subject=subject,
            text=text,
            html=html,
            categories=list(message.categories),
            custom_args=dict(message.custom_args),
            headers=dict(message.headers),
        )

    def _log_failure(self, error: TransportStatusError, correlation_id: str, attempt: int,
                     max_attempts: int, to: str, subject: str) -> None:
        remaining = max(max_attempts - attempt, 0)
        logger.error(
            f"Email send failed: request_id={correlation_id} attempt={attempt} "
            f"remaining_retries={remaining} to={to} subject={subject!r} "
            f"status={error.status_code} errors={error.errors}"
        )

    async def _attempt(self, payload: dict, correlation_id: str, attempt: int,
                       max_attempts: int) -> int:
        to = mask_email(payload["personalizations"][0]["to"][0]["email"])
        subject = payload["subject"]
        try:
            status = await self.transport.send(payload, {CORRELATION_HEADER: correlation_id})
        except TransportStatusError as e:
            self._log_failure(e, correlation_id, attempt, max_attempts, to, subject)
            raise
        except Exception as e:
            # Unknown failures carry no status and are treated as permanent
            wrapped = TransportStatusError(f"Mail transport failed: {type(e).__name__}")
            self._log_failure(wrapped, correlation_id, attempt, max_attempts, to, subject)
            raise wrapped from e
        logger.info(
            f"Email send success: request_id={correlation_id} attempt={attempt} "
            f"to={to} subject={subject!r} status={status}"
        )
        return status

    async def send(self, message: OutboundMessage,
                   policy: Optional[RetryPolicy] = None) -> SendResult:
        """
        Deliver one message, retrying transient failures. Returns the provider status.

        ``policy`` overrides the configured retry policy for this send only.
        """
        policy = policy or self.policy
        payload = self._build_payload(message)

        if not self.transport.configured:
            raise DeliveryError("Mail transport is not configured (missing SENDGRID_API_KEY)")

        correlation_id = new_correlation_id()
        logger.info(
            f"Sending email: request_id={correlation_id} "
            f"to={mask_email(payload['personalizations'][0]['to'][0]['email'])} "
            f"subject={payload['subject']!r} categories={payload.get('categories')}"
        )

        attempt = 0
        status = 0
        try:
            async for attempt_manager in policy.retrying(_is_transient_failure, sleep=self._sleep):
                with attempt_manager:
                    attempt = attempt_manager.retry_state.attempt_number
                    status = await self._attempt(payload, correlation_id, attempt,
                                                 policy.max_attempts)
        except TransportStatusError as e:
            raise DeliveryError(
                f"Failed to send email after {attempt} attempt(s)",
                attempts=attempt,
                status_code=e.status_code,
                cause=e,
            )

        return SendResult(status_code=status, correlation_id=correlation_id, attempts=attempt)

    async def send_templated(self, kind: str, recipient: str,
                             template_args: Optional[Mapping[str, Any]] = None) -> SendResult:
        rendered = render_template(kind, self.settings.app_name, template_args)
        return await self.send(
            OutboundMessage(
                to=recipient,
                subject=rendered.subject,
                text=rendered.text,
                html=rendered.html,
                categories=["transactional", kind],
                custom_args={"template": kind},
            )
        )
