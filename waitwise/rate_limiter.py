"""
Hybrid in-memory + Redis rate limiting for the public endpoints
(queue join, customer notifications, provider webhooks)
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

# {key: {"count": int, "reset_time": int, "last_redis_sync": int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10  # seconds between Redis writes per key
MEMORY_CACHE_CLEANUP_INTERVAL = 60
last_cleanup_time = 0

CONNECTION_OPTIONS = {
    "decode_responses": True,
    "socket_connect_timeout": 15,
    "socket_timeout": 30,
    "retry_on_timeout": True,
    "health_check_interval": 30,
    "max_connections": 20,
}


def _mask_url(url: str) -> str:
    if "@" not in url:
        return "****"
    scheme = url.split("@")[0].split(":")[0]
    return f"{scheme}:****@{url.split('@')[1]}"


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client from REDIS_URL or the REDIS_* settings"""
    global redis_client

    if redis_client is not None:
        return redis_client

    logger.info("🔄 Initializing Redis connection for rate limiting...")
    redis_url = os.getenv("REDIS_URL")

    try:
        if redis_url:
            logger.info(f"📡 Using Redis URL connection: {_mask_url(redis_url)}")
            client = redis.from_url(redis_url, **CONNECTION_OPTIONS)
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            logger.info(f"📡 Using Redis at {redis_host}:{redis_port} (SSL: {redis_ssl})")
            client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                **CONNECTION_OPTIONS,
            )
        client.ping()
    except Exception as e:
        logger.error(f"❌ Failed to connect to Redis: {e}")
        raise

    logger.info("✅ Redis connected for rate limiting")
    redis_client = client
    return redis_client


def cleanup_expired_cache():
    """Remove expired entries from the memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)]
        for k in expired_keys:
            del memory_cache[k]
        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

    last_cleanup_time = current_time


def _new_window(current_time: int, window_seconds: int) -> dict:
    return {"count": 0, "reset_time": current_time + window_seconds, "last_redis_sync": current_time}


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: redis.Redis
) -> tuple[bool, int, int]:
    """
    Count a request against a fixed window.

    Counts live in memory and are written to Redis at most every
    MEMORY_CACHE_SYNC_INTERVAL seconds per key; a key seen for the first
    time is seeded from Redis so limits survive restarts.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    try:
        current_time = int(time.time())
        cleanup_expired_cache()

        with cache_lock:
            if key not in memory_cache:
                try:
                    redis_count = client.get(key)
                    redis_ttl = client.ttl(key)
                    if redis_count and redis_ttl > 0:
                        memory_cache[key] = {
                            "count": int(redis_count),
                            "reset_time": current_time + redis_ttl,
                            "last_redis_sync": current_time,
                        }
                    else:
                        memory_cache[key] = _new_window(current_time, window_seconds)
                except Exception as e:
                    logger.warning(f"⚠️ Failed to load from Redis, using memory only: {e}")
                    memory_cache[key] = _new_window(current_time, window_seconds)

            entry = memory_cache[key]

            if current_time >= entry["reset_time"]:
                entry.update(_new_window(current_time, window_seconds))
                entry["last_redis_sync"] = 0

            is_allowed = entry["count"] < limit
            if is_allowed:
                entry["count"] += 1

            if current_time - entry.get("last_redis_sync", 0) >= MEMORY_CACHE_SYNC_INTERVAL:
                try:
                    client.set(key, entry["count"], ex=window_seconds)
                    entry["last_redis_sync"] = current_time
                except Exception as e:
                    logger.warning(f"⚠️ Failed to sync to Redis: {e}")

            return is_allowed, entry["count"], max(0, entry["reset_time"] - current_time)

    except Exception as e:
        logger.error(f"❌ Rate limit check failed: {e}")
        logger.warning("🔒 Denying request due to rate limiting error (fail-closed mode)")
        return False, limit, 0


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
):
    """Raise 429 when the caller (or everyone, when use_ip is False) is over the limit"""
    try:
        client = get_redis_client()
        key = f"{key_prefix}:{_client_ip(request)}" if use_ip else f"{key_prefix}:global"

        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, client)
        if not is_allowed:
            logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                headers={"Retry-After": str(ttl)},
            )

        request.state.rate_limit_remaining = limit - current_count
        request.state.rate_limit_reset = int(time.time()) + ttl

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Rate limiting error: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rate limiting service temporarily unavailable",
        ) from e


def create_rate_limiter(
    limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True
):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        @router.post("/queue/entries")
        async def join_queue(body: JoinQueueRequest, _: None = Depends(queue_join_rate_limiter)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter


# Walk-in customers join from a shared tablet, so the per-IP limit is generous
queue_join_rate_limiter = create_rate_limiter(limit=60, window_seconds=60, key_prefix="queue_join")
notify_rate_limiter = create_rate_limiter(limit=30, window_seconds=60, key_prefix="notify_customer")
webhook_rate_limiter = create_rate_limiter(
    limit=300, window_seconds=60, key_prefix="webhooks", use_ip=False
)
