"""
Core business logic for coach onboarding.

This module is framework-agnostic - it doesn't import FastAPI, Stripe,
Snowflake or any infrastructure concerns. This separation means we can test
the reconciliation rules in isolation and swap providers if needed.
"""
