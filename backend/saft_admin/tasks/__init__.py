"""Dramatiq background tasks package."""

import dramatiq
from dramatiq.brokers.redis import RedisBroker

from saft_admin.config import settings
from saft_admin.logging import setup_logging

# Configure logging before anything else
setup_logging()

# Configure Redis broker
redis_broker = RedisBroker(url=settings.redis_url)  # type: ignore[no-untyped-call]
dramatiq.set_broker(redis_broker)

# Import all tasks to register them with Dramatiq (must be after broker setup)
import saft_admin.tasks.maintenance  # noqa: E402, F401
