#!/usr/bin/env python3
"""Check the configured storage backend: environment validation plus, in
remote mode, connectivity and table access."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# REQUIRED: Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import BackendMode, get_settings
from src.core.environment import validate_environment
from src.core.logging import setup_logging
from src.infrastructure.db import dispose_engine
from src.infrastructure.remote import RemoteEngine


async def check_remote() -> bool:
    engine = RemoteEngine()
    try:
        report = await engine.check_connection()
    finally:
        await dispose_engine()

    if not report["configured"]:
        print(f"❌ {report['error']}")
        return False

    for table, entry in report["tables"].items():
        if entry["ok"]:
            print(f"✅ {table}: {entry['rows']} rows")
        else:
            print(f"❌ {table}: {entry['error']}")
    return report["reachable"]


def main() -> int:
    setup_logging(json_output=False)
    settings = get_settings()
    print(f"Environment: {settings.environment} | backend: {settings.backend_mode.value}")

    env_report = validate_environment(settings)
    for error in env_report.errors:
        print(f"❌ {error}")
    for warning in env_report.warnings:
        print(f"⚠️  {warning}")

    if settings.backend_mode is not BackendMode.REMOTE:
        print("✅ Local backend selected; nothing to connect to")
        return 0 if env_report.is_valid else 1

    reachable = asyncio.run(check_remote())
    return 0 if reachable and env_report.is_valid else 1


if __name__ == "__main__":
    sys.exit(main())
