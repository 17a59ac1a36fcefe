"""
Placeholder for integration tests.

Integration tests exercise the engine against real backing services:
- PostgreSQL (claim exclusivity under concurrent workers)
- Redis (shared rate limit windows across processes)

These tests require external dependencies and run slower than unit tests.
"""
