from functools import lru_cache

import redis.asyncio as redis
from fastapi import Depends, HTTPException, Security
from fastapi.security import APIKeyHeader

from .config import Settings


@lru_cache
def get_settings() -> Settings:
    """
    Returns a cached instance of the controller settings.
    The settings are loaded from environment variables and/or a .env file.
    Using lru_cache ensures the settings are loaded only once.
    """
    return Settings()


def create_redis_client(settings: Settings) -> redis.Redis:
    """
    Creates the Redis client used for the bus subscription.

    Responses are left undecoded so payloads reach the workers byte for byte.
    """
    return redis.from_url(settings.REDIS_URL, decode_responses=False)


api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    settings: Settings = Depends(get_settings), api_key: str = Security(api_key_header)
):
    """
    Dependency to verify the API key provided in the request header.
    """
    if not api_key or api_key != settings.API_KEY.get_secret_value():
        raise HTTPException(status_code=401, detail="Invalid or missing API Key")
    return True
