# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# ROCKET REPOSITORY (In-Memory + PostgreSQL)
# -----------------------------------------------------------------------------
# Responsibility: The pool inventory. Single source of truth for which
# rockets exist and what state they are in.
#
# Two implementations:
# - InMemoryRocketRepository: live Rocket objects behind a lock (single process)
# - PostgresRocketRepository: JSON-shaped snapshots in a `rockets` table
#
# Both make claim_idle() atomic, so two concurrent launches can never be
# handed the same idle rocket.
# -----------------------------------------------------------------------------

import os
import threading
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import SimpleConnectionPool
from rich.console import Console

from launchpad.domain.models import Mission, Rocket, RocketStatus

console = Console()

# Database configuration from environment
DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "5432")),
    "user": os.getenv("DB_USER", "launchpad"),
    "password": os.getenv("DB_PASSWORD", "securepass"),
    "database": os.getenv("DB_NAME", "launchpad"),
    "connect_timeout": 10,
    "options": "-c statement_timeout=30000",
}

# Connection pool (initialized on first use)
_pool: SimpleConnectionPool | None = None


def _get_pool() -> SimpleConnectionPool:
    """Get or create the connection pool."""
    global _pool

    if _pool is None:
        try:
            _pool = SimpleConnectionPool(
                minconn=1,
                maxconn=10,
                host=DB_CONFIG["host"],
                port=DB_CONFIG["port"],
                user=DB_CONFIG["user"],
                password=DB_CONFIG["password"],
                database=DB_CONFIG["database"],
                connect_timeout=DB_CONFIG["connect_timeout"],
                options=DB_CONFIG["options"],
            )
            console.print(
                f"[green][DB] Connection pool created: {DB_CONFIG['host']}:{DB_CONFIG['port']}[/green]"
            )
        except psycopg2.Error as e:
            console.print(f"[red][DB] Failed to create connection pool: {e}[/red]")
            raise

    return _pool


@contextmanager
def get_connection():
    """Borrow a pooled connection; commit on success, roll back on error."""
    pool = _get_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def init_db() -> None:
    """Create the rockets table. Safe to call multiple times."""
    with get_connection() as conn, conn.cursor() as cursor:
        cursor.execute("""
                CREATE TABLE IF NOT EXISTS rockets (
                    id VARCHAR(64) PRIMARY KEY,
                    container_id VARCHAR(128) NOT NULL,
                    status VARCHAR(20) NOT NULL DEFAULT 'IDLE',
                    current_mission JSONB,
                    assigned_domain VARCHAR(255),
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

        cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_rockets_status
                ON rockets(status)
            """)

    console.print(f"[green][DB] Rocket table ready: {DB_CONFIG['database']}[/green]")


def clear_all_rockets() -> int:
    """Delete every rocket record. Returns the number of rows removed."""
    with get_connection() as conn, conn.cursor() as cursor:
        cursor.execute("DELETE FROM rockets")
        return cursor.rowcount


def _row_to_rocket(row: dict) -> Rocket:
    return Rocket.from_json(
        {
            "id": row["id"],
            "containerId": row["container_id"],
            "status": row["status"],
            "currentMission": row.get("current_mission"),
            "assignedDomain": row.get("assigned_domain"),
        }
    )


class InMemoryRocketRepository:
    """
    Process-local inventory.

    Stores the Rocket objects themselves, so every holder of a reference sees
    the same state. The lock covers dictionary access only; it is never held
    while a collaborator is called.
    """

    def __init__(self) -> None:
        self._rockets: dict[str, Rocket] = {}
        self._lock = threading.Lock()

    def save(self, rocket: Rocket) -> None:
        with self._lock:
            self._rockets[rocket.id] = rocket

    def find_by_id(self, rocket_id: str) -> Rocket | None:
        with self._lock:
            return self._rockets.get(rocket_id)

    def find_idle(self) -> Rocket | None:
        with self._lock:
            for rocket in self._rockets.values():
                if rocket.status == RocketStatus.IDLE:
                    return rocket
            return None

    def find_all(self) -> list[Rocket]:
        with self._lock:
            return list(self._rockets.values())

    def delete(self, rocket_id: str) -> None:
        with self._lock:
            self._rockets.pop(rocket_id, None)

    def claim_idle(self, mission: Mission) -> Rocket | None:
        with self._lock:
            for rocket in self._rockets.values():
                if rocket.status == RocketStatus.IDLE:
                    rocket.assign_mission(mission)
                    return rocket
            return None


class PostgresRocketRepository:
    """
    PostgreSQL-backed inventory.

    Rows mirror Rocket.to_json(). claim_idle() locks one IDLE row with
    FOR UPDATE SKIP LOCKED, so concurrent claimers each get a different row
    (or none) instead of blocking on each other.
    """

    def __init__(self, initialize: bool = True) -> None:
        if initialize:
            init_db()

    def save(self, rocket: Rocket) -> None:
        data = rocket.to_json()
        with get_connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                """
                    INSERT INTO rockets (id, container_id, status, current_mission,
                                         assigned_domain, updated_at)
                    VALUES (%s, %s, %s, %s, %s, CURRENT_TIMESTAMP)
                    ON CONFLICT (id) DO UPDATE SET
                        container_id = EXCLUDED.container_id,
                        status = EXCLUDED.status,
                        current_mission = EXCLUDED.current_mission,
                        assigned_domain = EXCLUDED.assigned_domain,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                (
                    data["id"],
                    data["containerId"],
                    data["status"],
                    Json(data["currentMission"]) if data["currentMission"] else None,
                    data["assignedDomain"],
                ),
            )

    def find_by_id(self, rocket_id: str) -> Rocket | None:
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cursor:
            cursor.execute("SELECT * FROM rockets WHERE id = %s", (rocket_id,))
            row = cursor.fetchone()
            return _row_to_rocket(row) if row else None

    def find_idle(self) -> Rocket | None:
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cursor:
            cursor.execute(
                "SELECT * FROM rockets WHERE status = %s ORDER BY updated_at LIMIT 1",
                (RocketStatus.IDLE.value,),
            )
            row = cursor.fetchone()
            return _row_to_rocket(row) if row else None

    def find_all(self) -> list[Rocket]:
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cursor:
            cursor.execute("SELECT * FROM rockets ORDER BY id")
            return [_row_to_rocket(row) for row in cursor.fetchall()]

    def delete(self, rocket_id: str) -> None:
        with get_connection() as conn, conn.cursor() as cursor:
            cursor.execute("DELETE FROM rockets WHERE id = %s", (rocket_id,))

    def claim_idle(self, mission: Mission) -> Rocket | None:
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cursor:
            cursor.execute(
                """
                    SELECT * FROM rockets
                    WHERE status = %s
                    ORDER BY updated_at
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                    """,
                (RocketStatus.IDLE.value,),
            )
            row = cursor.fetchone()
            if row is None:
                return None

            rocket = _row_to_rocket(row)
            rocket.assign_mission(mission)
            cursor.execute(
                """
                    UPDATE rockets
                    SET status = %s, current_mission = %s, updated_at = CURRENT_TIMESTAMP
                    WHERE id = %s
                    """,
                (rocket.status.value, Json(mission.to_json()), rocket.id),
            )
            return rocket
