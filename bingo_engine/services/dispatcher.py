"""Background delivery of card codes, outside any transaction."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class CardSender(Protocol):
    def send_cards(self, destination: str, card_codes: Sequence[str], round_info: Mapping[str, Any]) -> Any: ...


class CardDispatcher:
    """Submits sends to a small thread pool; results are only logged."""

    def __init__(self, sender: CardSender, max_workers: int = 2) -> None:
        self._sender = sender
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="card-dispatch")

    def submit(self, destination: str, card_codes: Sequence[str], round_info: Mapping[str, Any]) -> Future:
        future = self._executor.submit(self._sender.send_cards, destination, list(card_codes), dict(round_info))
        future.add_done_callback(self._log_outcome)
        return future

    @staticmethod
    def _log_outcome(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning("Card delivery raised", exc_info=exc)
            return
        result = future.result()
        if not getattr(result, "success", True):
            logger.warning("Card delivery failed: %s", getattr(result, "error", None))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
