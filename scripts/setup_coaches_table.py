#!/usr/bin/env python3
"""
Create the COACHES table in Snowflake.

Idempotent: uses CREATE TABLE IF NOT EXISTS, so it is safe to run on every
deploy.

Usage:
    python scripts/setup_coaches_table.py
    python scripts/setup_coaches_table.py --dry-run

Requires:
    - .env file with Snowflake credentials
"""

import sys
from pathlib import Path

# Add project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from coachlink.config.settings import get_settings  # noqa: E402
from coachlink.infrastructure.snowflake.client import get_snowflake_connection  # noqa: E402
from coachlink.infrastructure.snowflake.repositories.coaches import SnowflakeConfig  # noqa: E402


CREATE_COACHES_TABLE = """
    CREATE TABLE IF NOT EXISTS coaches (
        coach_id VARCHAR(36) NOT NULL PRIMARY KEY,
        email VARCHAR(320) NOT NULL UNIQUE,
        name VARCHAR(200),
        external_account_id VARCHAR(64),
        onboarding_complete BOOLEAN DEFAULT FALSE,
        payouts_enabled BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP_TZ NOT NULL,
        updated_at TIMESTAMP_TZ NOT NULL
    )
"""


def setup_table(dry_run: bool = False) -> bool:
    settings = get_settings()

    if not settings.snowflake_account or not settings.snowflake_user:
        print("ERROR: Missing SNOWFLAKE_ACCOUNT or SNOWFLAKE_USER")
        return False

    if dry_run:
        print("\n=== DRY RUN - No changes will be made ===\n")
        print(f"Would run in {settings.snowflake_database}.{settings.snowflake_schema}:")
        print(CREATE_COACHES_TABLE)
        return True

    config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )

    try:
        print(f"Connecting to Snowflake account: {settings.snowflake_account}")
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(CREATE_COACHES_TABLE)
                conn.commit()
            finally:
                cursor.close()
    except Exception as e:
        print(f"ERROR: {e}")
        return False

    print(f"[OK] coaches table ready in {settings.snowflake_database}.{settings.snowflake_schema}")
    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Create the coaches table in Snowflake')
    parser.add_argument('--dry-run', action='store_true', help='Print the DDL, don\'t run it')
    args = parser.parse_args()

    success = setup_table(dry_run=args.dry_run)
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
