from timesbot.schemas.report import ReportRead, SummarizedTaskRead
from timesbot.schemas.slack import SlashCommandForm

__all__ = [
    "ReportRead",
    "SlashCommandForm",
    "SummarizedTaskRead",
]
