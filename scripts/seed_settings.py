"""Write the default operator settings.

Existing keys are left alone unless --overwrite is given.

Usage:
  python scripts/seed_settings.py [--overwrite]
"""

from __future__ import annotations

import argparse
import pathlib
import sys

from dotenv import load_dotenv

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from bingo_engine.config import resolve_database_url  # noqa: E402
from bingo_engine.db import create_app_engine, create_session_factory, session_scope, transaction  # noqa: E402
from bingo_engine.models.base import Base  # noqa: E402
from bingo_engine.repositories.settings_repository import (  # noqa: E402
    DEFAULT_MAX_CARDS,
    DEFAULT_ROUND_CONFIG,
    DEFAULT_TIEBREAK_POLICY,
    SettingsRepository,
)
from bingo_engine.services.win_checker import DEFAULT_PATTERNS  # noqa: E402

DEFAULT_SETTINGS = {
    "round_config": DEFAULT_ROUND_CONFIG,
    "card_price_regular": "5.00",
    "card_price_special": "10.00",
    "max_cards_per_round": DEFAULT_MAX_CARDS,
    "split_config": {
        "prize_percentage": 40,
        "charity_percentage": 20,
        "platform_percentage": 30,
        "commission_percentage": 10,
    },
    "winning_patterns": list(DEFAULT_PATTERNS),
    "tiebreak_policy": DEFAULT_TIEBREAK_POLICY,
    "whatsapp_config": {
        "is_active": False,
        "api_url": "",
        "api_key": "",
        "sender_number": "",
        "message_template": "",
    },
}


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed default settings")
    parser.add_argument("--overwrite", action="store_true", help="Replace keys that already exist")
    args = parser.parse_args()

    load_dotenv()

    engine = create_app_engine(resolve_database_url())
    Base.metadata.create_all(bind=engine)
    settings = SettingsRepository()

    written = 0
    with session_scope(create_session_factory(engine)) as session, transaction(session):
        existing = settings.get_many(session, DEFAULT_SETTINGS)
        for key, value in DEFAULT_SETTINGS.items():
            if key in existing and not args.overwrite:
                continue
            settings.set(session, key, value)
            written += 1

    print(f"Settings written: {written}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
