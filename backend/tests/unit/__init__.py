"""
Unit Tests

Unit tests run in isolation without external services.
The LLM provider is always mocked; store-backed tests use an in-memory
SQLite database through aiosqlite.
"""
