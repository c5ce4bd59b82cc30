"""
SendGrid v3 mail-send transport.

The transport knows the wire format and nothing about retries: it returns
the HTTP status on success and raises TransportStatusError otherwise.
"""

from typing import Any, Dict, List, Optional, Protocol

import httpx

from portal.config import Settings


class TransportStatusError(Exception):
    """
    A send attempt failed.

    ``status_code`` is the HTTP status reported by the provider, or None when
    no response was received (connection error, timeout).
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class MessageTransport(Protocol):
    @property
    def configured(self) -> bool: ...

    async def send(self, payload: Dict[str, Any], headers: Dict[str, str]) -> int: ...

    async def aclose(self) -> None: ...


def _summarize_errors(response: httpx.Response) -> List[Dict[str, Any]]:
    """Keep only high-level error messages; never the whole response body."""
    try:
        body = response.json()
    except ValueError:
        return []
    errors = body.get("errors") if isinstance(body, dict) else None
    if not isinstance(errors, list):
        return []
    return [
        {"message": e.get("message"), "field": e.get("field"), "help": e.get("help")}
        for e in errors
        if isinstance(e, dict)
    ]


class SendGridTransport:
    def __init__(self, api_key: Optional[str], api_url: str, timeout: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None):
        self._api_key = api_key
        self._api_url = api_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SendGridTransport":
        return cls(
            api_key=settings.sendgrid_api_key,
            api_url=settings.sendgrid_api_url,
            timeout=settings.mail_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, payload: Dict[str, Any], headers: Dict[str, str]) -> int:
        request_headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        # Per-message headers travel inside the payload, not on the API request
        body = dict(payload)
        if headers:
            body["headers"] = {**body.get("headers", {}), **headers}

        try:
            response = await self._client.post(self._api_url, headers=request_headers, json=body)
        except httpx.HTTPError as e:
            raise TransportStatusError(f"Mail API request failed: {type(e).__name__}") from e

        if response.status_code >= 300:
            raise TransportStatusError(
                f"Mail API responded with {response.status_code}",
                status_code=response.status_code,
                errors=_summarize_errors(response),
            )
        return response.status_code

    async def aclose(self) -> None:
        await self._client.aclose()


def build_sendgrid_payload(*, to: str, to_name: Optional[str], sender: str,
                           sender_name: Optional[str], reply_to: Optional[str], subject: str,
                           text: Optional[str], html: Optional[str], categories: List[str],
                           custom_args: Dict[str, str],
                           headers: Dict[str, str]) -> Dict[str, Any]:
    def _address(email: str, name: Optional[str]) -> Dict[str, str]:
        return {"email": email, "name": name} if name else {"email": email}

    personalization: Dict[str, Any] = {"to": [_address(to, to_name)]}
    if custom_args:
        personalization["custom_args"] = custom_args

    # SendGrid requires text/plain before text/html
    content = []
    if text:
        content.append({"type": "text/plain", "value": text})
    if html:
        content.append({"type": "text/html", "value": html})

    payload: Dict[str, Any] = {
        "personalizations": [personalization],
        "from": _address(sender, sender_name),
        "subject": subject,
        "content": content,
    }
    if reply_to:
        payload["reply_to"] = {"email": reply_to}
    if categories:
        payload["categories"] = categories
    if headers:
        payload["headers"] = headers
    return payload
