from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class ReplyVisibility(str, enum.Enum):
    PUBLIC = "in_channel"
    PRIVATE = "ephemeral"


@dataclass(frozen=True)
class SlackAttachment:
    text: str
    color: str | None = None


@dataclass(frozen=True)
class SlackReply:
    """A reply to a slash command; delivery is up to the caller."""

    text: str
    visibility: ReplyVisibility = ReplyVisibility.PUBLIC
    attachments: tuple[SlackAttachment, ...] = field(default_factory=tuple)

    @property
    def is_public(self) -> bool:
        return self.visibility is ReplyVisibility.PUBLIC

    def to_slack_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"response_type": self.visibility.value, "text": self.text}
        if self.attachments:
            payload["attachments"] = [
                {"text": attachment.text, **({"color": attachment.color} if attachment.color else {})}
                for attachment in self.attachments
            ]
        return payload


def public(text: str, *attachments: SlackAttachment) -> SlackReply:
    return SlackReply(text=text, visibility=ReplyVisibility.PUBLIC, attachments=tuple(attachments))


def private(text: str, *attachments: SlackAttachment) -> SlackReply:
    return SlackReply(text=text, visibility=ReplyVisibility.PRIVATE, attachments=tuple(attachments))
