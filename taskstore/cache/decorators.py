from functools import wraps
from typing import Callable


def async_cached(key_builder: Callable[..., str], l2_ttl: int = None):
    """
    Decorator for async methods of an object with a ``cache`` attribute.
    key_builder receives the same args/kwargs, without ``self``.
    When ``self.cache`` is None the method is called directly.
    Example:
      @async_cached(lambda task_id: f"task:{task_id}")
      async def get_task(self, task_id): ...
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, *args, **kwargs):
            if self.cache is None:
                return await fn(self, *args, **kwargs)

            key = key_builder(*args, **kwargs)

            # loader closure calls the original function
            async def loader():
                value = await fn(self, *args, **kwargs)
                if value is None:
                    return None
                if hasattr(value, "model_dump"):
                    return value.model_dump(mode="json")
                return value

            return await self.cache.get(key, loader=loader, l2_ttl=l2_ttl)

        return wrapper

    return decorator


def async_cached_expire(key_builder: Callable[..., str]):
    """Invalidate the key once the wrapped call finishes, whether or not it raised."""

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            finally:
                if self.cache is not None:
                    await self.cache.delete(key_builder(*args, **kwargs))

        return wrapper

    return decorator
