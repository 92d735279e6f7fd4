"""
MCP Hub storage — collaborator ports and their adapters.

- ports: the async protocols the gateway depends on
- memory: dict-backed implementation for tests and local dev
- sql: SQLAlchemy async implementation (asyncpg / aiosqlite)
"""
