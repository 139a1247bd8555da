from __future__ import annotations

from pydantic import BaseModel

from timesbot.services.accounting import Owner


class SlashCommandForm(BaseModel):
    """The fields of a Slack slash-command request the bot relies on."""

    team_id: str
    user_id: str
    command: str
    text: str = ""
    user_name: str | None = None
    channel_id: str | None = None
    response_url: str | None = None

    @property
    def owner(self) -> Owner:
        return Owner(team_id=self.team_id, user_id=self.user_id)
