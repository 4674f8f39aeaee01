"""
Shared module for configuration and infrastructure used by the ordering agent.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging, phone masking
  - constants.py: OrderStatus, PaymentMethod, Commands, Limits

- shared.infrastructure: Database and request correlation
  - db.py: SQLAlchemy engine/session factory, safe_commit()
  - correlation.py: Correlation ID middleware and log filter

- shared.utils: Utilities
  - exceptions.py: Domain exceptions with auto-logging

IMPORT EXAMPLES:
    from shared.infrastructure.db import SessionLocal, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import OrderStatus, Commands
    from shared.utils.exceptions import NotFoundError, GatewayError
"""
