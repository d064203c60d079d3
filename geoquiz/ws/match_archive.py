from typing import Optional

from redis.asyncio import Redis

from geoquiz.core.config import settings
from geoquiz.core.logging import get_logger
from geoquiz.core.redis_manager import get_redis
from geoquiz.ws.schemas import FinishedMatchSnapshot

logger = get_logger(__name__)

INDEX_KEY = "quiz:match:index"


def k_match(match_id: int) -> str:
    return f"quiz:match:{match_id}"


class RedisMatchArchive:
    """Finished-match snapshots, kept in Redis for replay and review."""

    def __init__(self, redis: Optional[Redis] = None, ttl_seconds: Optional[int] = None) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds or settings.MATCH_ARCHIVE_TTL_SEC

    async def _client(self) -> Redis:
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def save(self, snapshot: FinishedMatchSnapshot) -> None:
        r = await self._client()
        key = k_match(snapshot.matchId)
        await r.set(key, snapshot.model_dump_json(), ex=self.ttl_seconds)
        await r.zadd(INDEX_KEY, {str(snapshot.matchId): snapshot.endedAt})
        logger.info("Archived match %s in %s", snapshot.matchId, key, extra={"match": snapshot.matchId})

    async def load(self, match_id: int) -> Optional[FinishedMatchSnapshot]:
        r = await self._client()
        raw = await r.get(k_match(match_id))
        if raw is None:
            return None
        return FinishedMatchSnapshot.model_validate_json(raw)

    async def recent(self, limit: int = 20) -> list[int]:
        """Ids of the most recently finished matches, newest first"""
        r = await self._client()
        ids = await r.zrevrange(INDEX_KEY, 0, limit - 1)
        return [int(i) for i in ids]
