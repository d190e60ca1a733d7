"""
Cache Key Scheme

Structured cache keys of the form ``type:id:qualifier...``. Coarse prefixes
such as ``workspace:{id}:`` cover every finer key beneath them, which is what
pattern invalidation relies on. The namespace prefix is added by
CacheManager, not here.
"""

from typing import Optional, Sequence, Union, TYPE_CHECKING

from ...constants import CACHE_KEY_DELIMITER

if TYPE_CHECKING:
    from .cache_manager import CacheManager

EntityId = Union[str, int, Sequence[Union[str, int]]]


def build_cache_key(
    entity_type: str,
    entity_id: Optional[EntityId] = None,
    *qualifiers: Union[str, int],
) -> str:
    """
    Build a cache key from an entity type, an id and qualifier segments.

    Args:
        entity_type: Leading segment, e.g. ``workspace``
        entity_id: Scalar id or ordered sequence of ids (joined in order)
        *qualifiers: Extra segments appended after the id

    Returns:
        Delimiter-joined key
    """
    parts = [entity_type]

    if entity_id is not None and entity_id != "":
        if isinstance(entity_id, (list, tuple)):
            parts.append(CACHE_KEY_DELIMITER.join(str(part) for part in entity_id))
        else:
            parts.append(str(entity_id))

    parts.extend(str(qualifier) for qualifier in qualifiers)
    return CACHE_KEY_DELIMITER.join(parts)


class CacheKeys:
    """Common cache keys used across the application."""

    @staticmethod
    def user(user_id: str) -> str:
        return build_cache_key("user", user_id)

    @staticmethod
    def workspace(workspace_id: str) -> str:
        return build_cache_key("workspace", workspace_id)

    @staticmethod
    def workspace_members(workspace_id: str) -> str:
        return build_cache_key("workspace", workspace_id, "members")

    @staticmethod
    def workspace_tasks(workspace_id: str, filters: Optional[str] = None) -> str:
        return build_cache_key("workspace", workspace_id, "tasks", filters or "all")

    @staticmethod
    def workspace_services(workspace_id: str) -> str:
        return build_cache_key("workspace", workspace_id, "services")

    @staticmethod
    def user_workspaces(user_id: str) -> str:
        return build_cache_key("user", user_id, "workspaces")

    @staticmethod
    def user_notifications(user_id: str) -> str:
        return build_cache_key("user", user_id, "notifications")

    @staticmethod
    def task_history(task_id: str) -> str:
        return build_cache_key("task", task_id, "history")

    @staticmethod
    def task_messages(task_id: str) -> str:
        return build_cache_key("task", task_id, "messages")

    @staticmethod
    def rate_limit(policy: str, identifier: str) -> str:
        return build_cache_key("rate_limit", policy, identifier)

    @staticmethod
    def response(method: str, path: str, identity: str, query: str = "") -> str:
        return build_cache_key("response", method, path, identity, query)


class CacheInvalidator:
    """
    Invalidation helpers run by write paths after an entity changes.

    Each helper drops the entity's own key and every finer key beneath it.
    """

    def __init__(self, cache: "CacheManager"):
        self.cache = cache

    async def user_updated(self, user_id: str) -> None:
        await self.cache.delete(CacheKeys.user(user_id))
        await self.cache.invalidate_pattern(f"user:{user_id}:*")

    async def workspace_updated(self, workspace_id: str) -> None:
        await self.cache.delete(CacheKeys.workspace(workspace_id))
        await self.cache.invalidate_pattern(f"workspace:{workspace_id}:*")

    async def task_updated(self, task_id: str, workspace_id: str) -> None:
        await self.cache.invalidate_pattern(f"task:{task_id}:*")
        await self.cache.invalidate_pattern(f"workspace:{workspace_id}:tasks:*")

    async def membership_changed(self, user_id: str, workspace_id: str) -> None:
        await self.cache.delete(CacheKeys.user_workspaces(user_id))
        await self.cache.delete(CacheKeys.workspace_members(workspace_id))
