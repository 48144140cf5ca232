"""
Shared module for common utilities used by the KDS API and CLI.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: OrderStatus, ScreenStatus, DistributionStrategy, transitions

- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy sessions, safe_commit()
  - redis/: connection pool and key layout
  - events/: screen events published over Redis pub/sub
  - metrics/: Redis-backed Prometheus metrics
  - correlation.py: request / cycle correlation ids

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging, StoreUnavailableError
  - schemas.py, kds_schemas.py: Pydantic schemas

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import OrderStatus, ScreenStatus
    from shared.utils.exceptions import NotFoundError, StoreUnavailableError
"""
