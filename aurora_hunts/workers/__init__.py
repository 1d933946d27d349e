"""
Background jobs for hunt maintenance.

Every worker module imports redis_broker from here before declaring its
actors. Jobs that sweep participant state run on MAINTENANCE_QUEUE so a
dedicated worker can be started for them.
"""
import dramatiq
from dramatiq.brokers.redis import RedisBroker

from aurora_hunts.config import settings

MAINTENANCE_QUEUE = "maintenance"

redis_broker = RedisBroker(url=settings.redis_url)
dramatiq.set_broker(redis_broker)
