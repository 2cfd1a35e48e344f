"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .coaches import CoachRepository

__all__ = ["CoachRepository"]
