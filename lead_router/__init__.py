"""
Lead Router Package.

FastAPI service that routes incoming monday.com leads to sales agents.
Normalizes board items against an admin-defined schema, evaluates prioritized
routing rules, scores candidate agents, and applies assignments back to
monday.com exactly once through a rate-limited write queue.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, exceptions and dependencies
    - models: Pydantic schemas and enums
    - services: Routing pipeline services
    - sql: Parameterized SQL queries
"""

__version__ = "1.0.0"
