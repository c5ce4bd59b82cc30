"""
Fixed transactional email templates.

Each template renders a subject, a plain-text body and an HTML body.
Every interpolated value is HTML-escaped before it goes into the HTML body,
so a display name like ``<script>`` arrives as ``&lt;script&gt;``.
"""

import html
import re
from typing import Any, Callable, Dict, Mapping, Optional

from portal.errors import ValidationError
from portal.models.email import RenderedTemplate

MAX_NAME_LENGTH = 80
_LINE_BREAKS_RE = re.compile(r"[\r\n]+")


def clamp(value: Optional[str], max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        return ""
    value = value.strip()
    return value[:max_length]


def sanitize_display_name(name: Optional[str], fallback: str = "there") -> str:
    # Line breaks in a name could inject headers
    cleaned = _LINE_BREAKS_RE.sub(" ", clamp(name, MAX_NAME_LENGTH)).strip()
    return cleaned or fallback


def _e(value: Any) -> str:
    return html.escape(str(value), quote=True)


def build_welcome(app_name: str, args: Mapping[str, Any]) -> RenderedTemplate:
    name = sanitize_display_name(args.get("name"))
    subject = f"Welcome to {app_name}"
    text = (
        f"Hello {name},\n\n"
        f"Welcome to {app_name}! We're glad you're here.\n\n"
        f"The {app_name} Team"
    )
    body = f"""
<div style="font-family: Arial, sans-serif; line-height: 1.5;">
  <h2 style="margin: 0 0 12px;">Hello {_e(name)},</h2>
  <p style="margin: 0 0 12px;">Welcome to <strong>{_e(app_name)}</strong>! We're glad you're here.</p>
  <p style="margin: 0;">The {_e(app_name)} Team</p>
</div>
""".strip()
    return RenderedTemplate(subject=subject, text=text, html=body)


def build_password_reset(app_name: str, args: Mapping[str, Any]) -> RenderedTemplate:
    reset_url = args.get("reset_url")
    if not isinstance(reset_url, str) or not reset_url.startswith(("https://", "http://")):
        raise ValidationError("reset_url must be an http(s) URL")

    name = sanitize_display_name(args.get("name"))
    try:
        expires_minutes = int(args.get("expires_minutes", 60))
    except (TypeError, ValueError):
        raise ValidationError("expires_minutes must be an integer")

    subject = f"Reset your {app_name} password"
    text = (
        f"Hello {name},\n\n"
        f"We received a request to reset your password. Open the link below to choose a new one:\n"
        f"{reset_url}\n\n"
        f"The link expires in {expires_minutes} minutes. If you did not ask for this, ignore this email.\n\n"
        f"The {app_name} Team"
    )
    body = f"""
<div style="font-family: Arial, sans-serif; line-height: 1.5;">
  <h2 style="margin: 0 0 12px;">Hello {_e(name)},</h2>
  <p style="margin: 0 0 12px;">We received a request to reset your password.</p>
  <p style="margin: 0 0 12px;"><a href="{_e(reset_url)}">Choose a new password</a></p>
  <p style="margin: 0 0 12px;">The link expires in {expires_minutes} minutes. If you did not ask for this, ignore this email.</p>
  <p style="margin: 0;">The {_e(app_name)} Team</p>
</div>
""".strip()
    return RenderedTemplate(subject=subject, text=text, html=body)


TEMPLATES: Dict[str, Callable[[str, Mapping[str, Any]], RenderedTemplate]] = {
    "welcome": build_welcome,
    "password_reset": build_password_reset,
}


def render_template(kind: str, app_name: str, args: Optional[Mapping[str, Any]] = None) -> RenderedTemplate:
    builder = TEMPLATES.get(kind)
    if builder is None:
        raise ValidationError(f"Unknown email template: {kind}")
    return builder(app_name, args or {})
