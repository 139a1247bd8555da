from __future__ import annotations

import logging
import os
from logging.config import dictConfig
from typing import Iterable

from .config import get_settings


def _mask_secret(secret: str, visible: int = 4) -> str:
    secret = secret.strip()
    if not secret:
        return secret
    if len(secret) <= visible:
        return "*" * len(secret)
    return f"{secret[:visible]}{'*' * (len(secret) - visible)}"


class SecretMaskFilter(logging.Filter):
    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        seen: list[str] = []
        for secret in secrets:
            secret_value = (secret or "").strip()
            if secret_value and secret_value not in seen:
                seen.append(secret_value)
        self._secrets = seen

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        sanitized = message
        for secret in self._secrets:
            sanitized = sanitized.replace(secret, _mask_secret(secret))
        if sanitized != message:
            record.msg = sanitized
            record.args = ()
        return True


def configure_logging() -> None:
    settings = get_settings()
    secrets_to_mask = [
        settings.slack_signing_secret,
        settings.slack_client_secret,
        os.getenv("SLACK_BOT_TOKEN", ""),
    ]
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"}
            },
            "filters": {
                "mask_secrets": {"()": SecretMaskFilter, "secrets": secrets_to_mask}
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["mask_secrets"],
                }
            },
            "root": {"level": settings.log_level.upper(), "handlers": ["console"]},
        }
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    # Handlers installed by the uvicorn CLI before the app is imported.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        for handler in logging.getLogger(name).handlers:
            handler.addFilter(SecretMaskFilter(secrets_to_mask))
