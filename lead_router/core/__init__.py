"""
Core infrastructure package for the Lead Router service.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg
- The RoutingError exception hierarchy

Usage Examples:
    from lead_router.core import get_settings, init_db, close_db

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db()
        yield
        await close_db()
"""

# =============================================================================
# Re-exports from lead_router.core.config
# =============================================================================
from lead_router.core.config import Settings, get_settings

# =============================================================================
# Re-exports from lead_router.core.database
# =============================================================================
from lead_router.core.database import init_db, close_db, get_db_pool

# =============================================================================
# Re-exports from lead_router.core.exceptions
# =============================================================================
from lead_router.core.exceptions import RoutingError

__all__ = [
    'Settings',
    'get_settings',
    'init_db',
    'close_db',
    'get_db_pool',
    'RoutingError',
]
