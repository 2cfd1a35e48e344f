"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- stripe: Connected accounts and webhook verification
- snowflake: Database persistence

These wrappers translate between external formats and our domain models.
"""
