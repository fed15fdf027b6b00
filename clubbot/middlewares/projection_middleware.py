"""
Optimistic projection middleware.

Injects the current user's OptimisticProjection into handler data under
key "projection". The projection lives as long as the user's session: the
registry keeps it until /cancel drops it.
"""
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from clubbot.services.projection import ProjectionRegistry


class ProjectionMiddleware(BaseMiddleware):
    def __init__(self, registry: ProjectionRegistry) -> None:
        self._registry = registry

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = data.get("event_from_user")
        if user is not None:
            data["projection"] = self._registry.for_owner(user.id)
        return await handler(event, data)
