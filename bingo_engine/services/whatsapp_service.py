"""Card delivery over a WhatsApp HTTP gateway.

Best effort: `send_cards` reports failures in its result and never raises.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from sqlalchemy.orm import Session, sessionmaker
from urllib3.util.retry import Retry

from bingo_engine.db import session_scope
from bingo_engine.repositories.settings_repository import SettingsRepository

logger = logging.getLogger(__name__)

ROUND_TYPE_LABELS = {"regular": "Regular", "special": "Especial"}


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


def _build_http_session(retries: int = 2, backoff_factor: float = 0.5) -> requests.Session:
    """requests session retrying gateway hiccups (429/5xx) with backoff."""

    retry = Retry(
        total=retries,
        connect=retries,
        read=0,
        status=retries,
        backoff_factor=backoff_factor,
        status_forcelist=(429, 502, 503, 504),
        allowed_methods=("POST",),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)

    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _format_moment(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    return str(value or "")


def build_card_message(card_codes: Sequence[str], round_info: Mapping[str, Any], template: str | None = None) -> str:
    round_type = ROUND_TYPE_LABELS.get(str(round_info.get("type")), str(round_info.get("type") or ""))
    starts_at = _format_moment(round_info.get("starts_at"))

    if template:
        return (
            template.replace("{cards}", ", ".join(card_codes))
            .replace("{round_number}", str(round_info.get("number", "")))
            .replace("{round_type}", round_type)
            .replace("{starts_at}", starts_at)
        )

    cards = "\n".join(f"*{code}*" for code in card_codes)
    return (
        f"Suas cartelas para a rodada #{round_info.get('number', '')} ({round_type}):\n\n"
        f"{cards}\n\n"
        f"Sorteio: {starts_at}\n\n"
        "Guarde seus codigos: eles sao necessarios para resgatar o premio."
    )


def settings_config_loader(session_factory: sessionmaker[Session]) -> Callable[[], dict[str, Any]]:
    """Read `whatsapp_config` in a short-lived session of its own."""

    settings = SettingsRepository()

    def _load() -> dict[str, Any]:
        with session_scope(session_factory) as session:
            return settings.whatsapp_config(session)

    return _load


class WhatsAppService:
    def __init__(
        self,
        config_loader: Callable[[], Mapping[str, Any]],
        timeout: float = 10.0,
        http: requests.Session | None = None,
    ) -> None:
        self._config_loader = config_loader
        self._timeout = timeout
        self._http = http or _build_http_session()

    def send_cards(self, destination: str, card_codes: Sequence[str], round_info: Mapping[str, Any]) -> SendResult:
        try:
            config = self._config_loader() or {}
            if not config.get("is_active"):
                logger.info("WhatsApp not configured or inactive")
                return SendResult(success=False, error="WhatsApp not configured")

            message = build_card_message(card_codes, round_info, config.get("message_template"))
            number = re.sub(r"\D", "", destination or "")
            if not number:
                return SendResult(success=False, error="Destination has no phone number")

            resp = self._http.post(
                str(config["api_url"]),
                json={"number": number, "message": message},
                headers={"Authorization": f"Bearer {config.get('api_key', '')}"},
                timeout=self._timeout,
            )
            if not resp.ok:
                return SendResult(success=False, error=f"Gateway returned HTTP {resp.status_code}")

            try:
                body = resp.json()
            except ValueError:
                body = {}
            message_id = body.get("id") or body.get("messageId") if isinstance(body, dict) else None
            logger.info("Sent %s card code(s) to %s", len(card_codes), number)
            return SendResult(success=True, message_id=str(message_id) if message_id else None)
        except Exception as exc:
            logger.warning("WhatsApp delivery failed", exc_info=True)
            return SendResult(success=False, error=str(exc))
