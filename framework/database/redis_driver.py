from typing import Optional
import redis.asyncio as redis


class RedisDriver:
    """Lazily connected client for the audit stream; connect() is a no-op once connected."""

    def __init__(self, url: str, connect_timeout: Optional[float] = None):
        self.url = url
        self.connect_timeout = connect_timeout
        self.client = None

    async def connect(self):
        if self.client is not None:
            return
        # Only the connect is bounded; XREADGROUP blocks longer than any sane read timeout
        client = redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=self.connect_timeout,
        )
        try:
            # Fail here rather than on the first XADD
            await client.ping()
        except Exception:
            await client.aclose()
            raise
        self.client = client

    async def disconnect(self):
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    def get_client(self):
        return self.client
