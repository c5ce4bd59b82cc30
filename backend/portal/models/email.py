"""
Pydantic models for outbound transactional email.

An OutboundMessage is built per logical send and never persisted.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OutboundMessage(BaseModel):
    """A structured message as handed to ``Mailer.send``."""

    to: str
    subject: str
    text: Optional[str] = None
    html: Optional[str] = None
    to_name: Optional[str] = None
    sender: Optional[str] = None        # defaults to Settings.mail_from
    sender_name: Optional[str] = None
    reply_to: Optional[str] = None      # defaults to Settings.mail_reply_to
    categories: List[str] = Field(default_factory=list)
    custom_args: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)


class RenderedTemplate(BaseModel):
    subject: str
    text: str
    html: str


class SendResult(BaseModel):
    status_code: int
    correlation_id: str
    attempts: int
