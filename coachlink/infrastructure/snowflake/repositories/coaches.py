"""
Snowflake repository for coach records.

This module implements the repository pattern for coach data access.
The repository:
1. Translates between the Coach domain model and COACHES table rows
2. Encapsulates all SQL queries
3. Implements the CoachStore protocol from core.onboarding.service

The application code never writes SQL directly.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import uuid4

from coachlink.core.onboarding.errors import StorageUnavailable
from coachlink.core.onboarding.models import Coach, utc_now
from coachlink.core.onboarding.service import CoachStore


logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "COACHLINK"
    schema: str = "PAYOUTS"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


# Column order shared by every SELECT and by the mock cursor
COACH_COLUMNS = (
    "coach_id",
    "email",
    "name",
    "external_account_id",
    "onboarding_complete",
    "payouts_enabled",
    "created_at",
    "updated_at",
)

_SELECT_COACH = f"SELECT {', '.join(COACH_COLUMNS)} FROM coaches"

# Keyed on email so there is exactly one row per coach. An external
# account id that is already stored is never overwritten.
_MERGE_COACH = """
    MERGE INTO coaches AS target
    USING (
        SELECT
            %s AS coach_id,
            %s AS email,
            %s AS name,
            %s AS external_account_id,
            %s AS onboarding_complete,
            %s AS payouts_enabled,
            %s AS created_at,
            %s AS updated_at
    ) AS source
    ON target.email = source.email
    WHEN MATCHED THEN UPDATE SET
        name = source.name,
        external_account_id = COALESCE(target.external_account_id, source.external_account_id),
        onboarding_complete = source.onboarding_complete,
        payouts_enabled = source.payouts_enabled,
        updated_at = source.updated_at
    WHEN NOT MATCHED THEN INSERT (
        coach_id, email, name, external_account_id,
        onboarding_complete, payouts_enabled, created_at, updated_at
    ) VALUES (
        source.coach_id, source.email, source.name, source.external_account_id,
        source.onboarding_complete, source.payouts_enabled,
        source.created_at, source.updated_at
    )
"""


class CoachRepository(CoachStore):
    """
    Repository for coach persistence.

    Each method corresponds to a use case the application needs:
    - find_by_email / find_by_external_id: the two lookups reconciliation uses
    - upsert: the only write
    - list_all: admin listing

    Any database failure surfaces as StorageUnavailable.
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def find_by_email(self, email: str) -> Optional[Coach]:
        rows = self._query(f"{_SELECT_COACH} WHERE email = %s", (email,))
        return self._row_to_coach(rows[0]) if rows else None

    def find_by_external_id(self, external_account_id: str) -> Optional[Coach]:
        rows = self._query(
            f"{_SELECT_COACH} WHERE external_account_id = %s",
            (external_account_id,),
        )
        return self._row_to_coach(rows[0]) if rows else None

    def list_all(self) -> list[Coach]:
        rows = self._query(f"{_SELECT_COACH} ORDER BY created_at DESC")
        return [self._row_to_coach(row) for row in rows]

    def upsert(self, coach: Coach) -> Coach:
        """
        Insert or update a coach, keyed on email.

        Assigns id and created_at to new coaches and always refreshes
        updated_at. Returns the record as stored, which for a concurrent
        first insert may carry the other writer's id.
        """
        now = utc_now()
        if not coach.is_persisted:
            coach.id = str(uuid4())
            coach.created_at = now
        coach.updated_at = now

        cursor = self._conn.cursor()
        try:
            cursor.execute(_MERGE_COACH, (
                coach.id,
                coach.email,
                coach.name,
                coach.external_account_id,
                coach.onboarding_complete,
                coach.payouts_enabled,
                coach.created_at,
                coach.updated_at,
            ))
            self._conn.commit()
        except Exception as e:
            logger.error(
                "Failed to save coach",
                extra={"email": coach.email, "error": str(e)},
            )
            raise StorageUnavailable(f"Failed to save coach: {e}") from e
        finally:
            cursor.close()

        stored = self.find_by_email(coach.email)
        if stored is None:
            raise StorageUnavailable(f"Coach {coach.email} missing after save")
        return stored

    def ping(self) -> bool:
        """Run a trivial query. Used by the readiness check."""
        rows = self._query("SELECT 1")
        return bool(rows)

    def _query(self, sql: str, params: Optional[tuple] = None) -> list:
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, params)
            return cursor.fetchall()
        except Exception as e:
            logger.error(
                "Coach query failed",
                extra={"query": sql[:100], "error": str(e)},
            )
            raise StorageUnavailable(f"Coach query failed: {e}") from e
        finally:
            cursor.close()

    def _row_to_coach(self, row: tuple) -> Coach:
        (
            coach_id,
            email,
            name,
            external_account_id,
            onboarding_complete,
            payouts_enabled,
            created_at,
            updated_at,
        ) = row

        return Coach(
            id=str(coach_id),
            email=email,
            name=name or "",
            external_account_id=external_account_id,
            onboarding_complete=bool(onboarding_complete),
            payouts_enabled=bool(payouts_enabled),
            created_at=created_at,
            updated_at=updated_at,
        )
