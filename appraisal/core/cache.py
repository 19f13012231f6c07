from typing import TypeVar

import redis
from cachetools import TTLCache
from pydantic import BaseModel

from .config import settings

M = TypeVar("M", bound=BaseModel)

# Local runs/reports when Redis is off (dev, tests)
_local_store: TTLCache = TTLCache(maxsize=4096, ttl=settings.RUN_TTL_SECONDS)

class RunStore:
    """
    Keeps comparable runs and report drafts between requests.

    Entries are pydantic models serialized to JSON under "{kind}:{key}" and
    expire after RUN_TTL_SECONDS in either backend.
    """
    def __init__(self, client: "redis.Redis | None" = None):
        self.redis = client
        if self.redis is None and settings.USE_REDIS:
            self.redis = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

    @staticmethod
    def _key(kind: str, key: str) -> str:
        return f"{kind}:{key}"

    def put(self, kind: str, key: str, model: BaseModel) -> None:
        raw = model.model_dump_json()
        if self.redis is not None:
            self.redis.setex(self._key(kind, key), settings.RUN_TTL_SECONDS, raw)
        else:
            _local_store[self._key(kind, key)] = raw

    def load(self, kind: str, key: str, model_cls: type[M]) -> M | None:
        if self.redis is not None:
            raw = self.redis.get(self._key(kind, key))
        else:
            raw = _local_store.get(self._key(kind, key))
        return None if raw is None else model_cls.model_validate_json(raw)

store = RunStore()
