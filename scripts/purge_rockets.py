#!/usr/bin/env python3
"""
Remove every pool container and forget every rocket record.

Use when:
- A crashed LaunchPad left warm containers behind.
- The PostgreSQL inventory no longer matches the containers on the host.

Run from project root:
  python scripts/purge_rockets.py
  # or, containers only (in-memory deployments):
  python scripts/purge_rockets.py --containers-only

Requires: Docker, and for the inventory PostgreSQL with DB env vars
(DB_HOST, DB_NAME, etc.) or .env.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from launchpad.core.db import clear_all_rockets, init_db
from launchpad.infra.docker_client import ROCKET_LABEL, DockerAdapter

if __name__ == "__main__":
    removed = DockerAdapter().remove_containers_by_label(ROCKET_LABEL)
    print(f"Removed {removed} rocket containers.")

    if "--containers-only" not in sys.argv:
        init_db()
        n = clear_all_rockets()
        print(f"Cleared {n} rockets from the database. The pool is now empty.")
