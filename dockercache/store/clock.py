"""Synchronization clock shared by every host writing to the store."""

import logging
from datetime import datetime, timezone
from typing import Any

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def local_now() -> int:
    """Local UTC wall-clock time in whole seconds."""
    return int(datetime.now(timezone.utc).timestamp())


class StoreClock:
    """Resolve the current time from the store, falling back to local time.

    Every host asks the same Redis server for the time, so expiry
    calculations are immune to skew between the hosts' local clocks.
    """

    def __init__(self, client: Any):
        self._client = client

    async def now(self) -> int:
        """Return the sync-point-in-time in seconds."""
        try:
            reply = await self._client.time()
            return int(reply[0])
        except (RedisError, OSError) as e:
            # Servers older than 2.6 have no TIME command
            logger.debug(f"Store time unavailable, using local clock: {e}")
        except (TypeError, ValueError, IndexError) as e:
            logger.debug(f"Malformed store time reply, using local clock: {e}")
        return local_now()
