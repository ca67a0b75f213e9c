#!/usr/bin/env python3
"""Install the demo account and sample assessments into the local store.

Only runs in demo environments (development, ENABLE_DEMO_MODE, or a demo or
staging hostname). Set LOCAL_STORE_PATH to seed a persisted store file.
"""

from __future__ import annotations

import sys
from pathlib import Path

# REQUIRED: Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import get_settings
from src.core.logging import setup_logging
from src.infrastructure.local import KeyValueStore
from src.infrastructure.local.demo import DEMO_EMAIL, seed_demo_credentials


def main() -> int:
    setup_logging(json_output=False)
    settings = get_settings()

    if not settings.local_store_path:
        print("⚠️  LOCAL_STORE_PATH is not set; the seeded store would be discarded on exit")
        return 1

    store = KeyValueStore(Path(settings.local_store_path))
    if not seed_demo_credentials(store, settings):
        print(f"❌ Refusing to seed demo data in environment '{settings.environment}'")
        return 1

    print(f"✅ Demo account {DEMO_EMAIL} seeded into {settings.local_store_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
