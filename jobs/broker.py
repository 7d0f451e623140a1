"""
Dramatiq broker.

Redis broker shared by all reconciliation actors. Importing this module
sets it as the global broker, so it must be imported before any actor
is declared (jobs.tasks does this).
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, ShutdownNotifications
from loguru import logger

from custody.config.settings import get_settings
from custody.utils.redis_utils import get_redis_url_masked

_settings = get_settings()

broker = RedisBroker(
    host=_settings.redis_host,
    port=_settings.redis_port,
    password=_settings.redis_password or None,
    db=_settings.redis_db,
)
# Lets a worker finish its current pass on SIGTERM
broker.add_middleware(ShutdownNotifications())
broker.add_middleware(CurrentMessage())

dramatiq.set_broker(broker)

logger.info(f"Dramatiq broker on {get_redis_url_masked(_settings)}")
