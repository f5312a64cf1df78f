import json
from typing import Awaitable, Callable

from core.config import settings
from core.exceptions import AlreadyProcessed
from core.logger import app_logger

PENDING = "pending"


class IdempotencyService:
    """
    Replays the stored response of a repeated ``X-Idempotency-Key``.

    A key that is still being processed is rejected with AlreadyProcessed.
    A failed call releases its key so the client may retry.
    """

    def __init__(self, client, ttl_seconds: int = settings.IDEMPOTENCY_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(scope: str, key: str) -> str:
        return f"idempotency:{scope}:{key}"

    async def begin(self, scope: str, key: str) -> dict | None:
        redis_key = self._key(scope, key)

        acquired = await self.client.set(
            redis_key, json.dumps({"state": PENDING}), nx=True, ex=self.ttl_seconds
        )
        if acquired:
            return None

        cached = await self.client.get(redis_key)
        entry = json.loads(cached) if cached else {"state": PENDING}
        if entry.get("state") == PENDING:
            raise AlreadyProcessed("This request is already being processed", {"idempotency_key": key})

        app_logger.info(f"♻️ Replaying idempotent response for {redis_key}")
        return entry["response"]

    async def complete(self, scope: str, key: str, response: dict) -> None:
        await self.client.set(
            self._key(scope, key),
            json.dumps({"state": "done", "response": response}),
            ex=self.ttl_seconds
        )

    async def release(self, scope: str, key: str) -> None:
        await self.client.delete(self._key(scope, key))

    async def run(self, scope: str, key: str | None, handler: Callable[[], Awaitable[dict]]) -> dict:
        if not key:
            return await handler()

        cached = await self.begin(scope, key)
        if cached is not None:
            return cached

        try:
            response = await handler()
        except BaseException:
            # cancellation included
            await self.release(scope, key)
            raise

        await self.complete(scope, key, response)
        return response
