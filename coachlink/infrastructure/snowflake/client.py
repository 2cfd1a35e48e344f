"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.
Includes mock mode with in-memory storage for local development.

Using the repository pattern means most code never touches this module
directly - it goes through CoachRepository which handles the translation
between domain models and database rows.
"""

import base64
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from coachlink.core.onboarding.errors import StorageUnavailable

from .repositories.coaches import COACH_COLUMNS, SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(StorageUnavailable):
    """Raised when Snowflake connection fails."""
    pass


def _to_der(pem_bytes: bytes) -> bytes:
    """
    Convert a PEM private key into the DER bytes snowflake-connector expects.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        pem_bytes,
        password=None,  # No password on the key
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _load_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    """
    Load the private key for key-pair authentication, if one is configured.

    The base64 form is for deployments where mounting a key file is awkward.
    """
    if config.private_key_base64:
        return _to_der(base64.b64decode(config.private_key_base64))
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _to_der(key_file.read())
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If a private key (file or base64) is set, uses key-pair auth
    - Otherwise, uses password auth

    Only failures to connect are translated to SnowflakeConnectionError.
    Exceptions raised by the caller inside the block pass through untouched.

    Usage:
        with get_snowflake_connection(config) as conn:
            repo = CoachRepository(conn)
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    connect_params = {
        'account': config.account,
        'user': config.user,
        'database': config.database,
        'schema': config.schema,
        'warehouse': config.warehouse,
        'role': config.role,
        'client_session_keep_alive': True,
    }

    try:
        private_key = _load_private_key(config)
        if private_key:
            logger.info("Using key-pair authentication for Snowflake")
            connect_params['private_key'] = private_key
        elif config.password:
            logger.info("Using password authentication for Snowflake")
            connect_params['password'] = config.password
        else:
            raise SnowflakeConnectionError(
                "Either password or a private key must be provided"
            )

        conn = snowflake.connector.connect(**connect_params)

    except SnowflakeConnectionError:
        raise

    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    except Exception as e:
        logger.error(
            "Unexpected error connecting to Snowflake",
            extra={"error": str(e)}
        )
        raise SnowflakeConnectionError(f"Connection error: {e}")

    logger.debug(
        "Established Snowflake connection",
        extra={
            "account": config.account,
            "database": config.database,
            "schema": config.schema,
        }
    )

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support
    CoachRepository operations without a real database: the email-keyed
    MERGE, the three SELECT shapes, and the readiness ping.
    """

    def __init__(self, storage: dict) -> None:
        self._storage = storage
        self._results: list = []

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        """
        Execute a query against mock storage.

        Queries are recognised by pattern matching. This is simplified but
        mirrors what the real MERGE and SELECTs do.
        """
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        query_upper = " ".join(query.upper().split())
        self._results = []

        if 'MERGE INTO COACHES' in query_upper:
            self._handle_merge(params)

        elif query_upper.startswith('SELECT') and 'FROM COACHES' in query_upper:
            self._handle_select(query_upper, params)

        elif query_upper == 'SELECT 1':
            self._results = [(1,)]

        return self

    def _handle_merge(self, params: Optional[tuple]) -> None:
        """Upsert keyed on email, keeping a stored external account id."""
        if not params:
            return

        incoming = dict(zip(COACH_COLUMNS, params))
        coaches = self._storage['coaches']
        existing = coaches.get(incoming['email'])

        if existing is None:
            coaches[incoming['email']] = incoming
        else:
            existing['name'] = incoming['name']
            if existing['external_account_id'] is None:
                existing['external_account_id'] = incoming['external_account_id']
            existing['onboarding_complete'] = incoming['onboarding_complete']
            existing['payouts_enabled'] = incoming['payouts_enabled']
            existing['updated_at'] = incoming['updated_at']

    def _handle_select(self, query: str, params: Optional[tuple]) -> None:
        rows = list(self._storage['coaches'].values())

        if 'WHERE EMAIL =' in query:
            rows = [r for r in rows if r['email'] == params[0]]
        elif 'WHERE EXTERNAL_ACCOUNT_ID =' in query:
            rows = [r for r in rows if r['external_account_id'] == params[0]]
        elif 'ORDER BY CREATED_AT DESC' in query:
            rows.sort(key=lambda r: r['created_at'], reverse=True)

        self._results = [tuple(r[c] for c in COACH_COLUMNS) for r in rows]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return self._results

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores data in memory using a simple dictionary structure.
    This enables testing the full API without a real database.

    Not suitable for production, but perfect for:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {email: row_dict}}
        self._storage: dict[str, dict[str, dict]] = {
            'coaches': {},
        }

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self._storage)

    def commit(self) -> None:
        """Commit transaction (no-op for mock, always auto-commits)."""
        logger.debug("Mock connection commit")

    def close(self) -> None:
        """Close connection (no-op for mock)."""
        logger.debug("Mock connection close")

    # Helper methods for testing
    def _get_coach(self, email: str) -> Optional[dict]:
        """Get a raw coach row from mock storage (for test assertions)."""
        row = self._storage['coaches'].get(email)
        return dict(row) if row else None

    def _snapshot(self) -> dict[str, dict]:
        """Copy of every stored row (for asserting nothing was written)."""
        return {email: dict(row) for email, row in self._storage['coaches'].items()}

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        for table in self._storage.values():
            table.clear()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Create Snowflake connection based on configuration.

    Factory function that returns either a real or mock connection
    depending on mock_mode flag.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return mock connection for testing

    Yields:
        SnowflakeConnection implementation (real or mock)
    """
    if mock_mode:
        conn = MockSnowflakeConnection()
        try:
            yield conn
        finally:
            conn.close()
    else:
        if config is None:
            raise ValueError("config is required when not in mock mode")

        with get_snowflake_connection(config) as conn:
            yield conn
