"""
FinSync - Derived View Memoization

PURPOSE: Recompute derived views only when the source collection changes
SCOPE: Identity-keyed caches for view properties and parameterized queries
DEPENDENCIES: functools
"""

from functools import update_wrapper
from typing import Any, Callable, Dict, Hashable, Tuple

_CACHE_ATTR = '_derived_view_cache'


def _cache_for(instance: Any) -> Dict[Hashable, Any]:
    """Per-instance cache, dropped as soon as ``instance.items`` is a different object."""
    source = instance.items
    state = instance.__dict__.get(_CACHE_ATTR)
    if state is None or state[0] is not source:
        state = (source, {})
        instance.__dict__[_CACHE_ATTR] = state
    return state[1]


class derived_view:
    """Read-only property computed as ``func(self.items)`` and cached on its identity."""

    def __init__(self, func: Callable[[Tuple[Any, ...]], Any]):
        self.func = func
        self.name = func.__name__
        update_wrapper(self, func)

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        cache = _cache_for(instance)
        key = (self.name,)
        if key not in cache:
            cache[key] = self.func(instance.items)
        return cache[key]


class derived_query:
    """Like ``derived_view`` but takes hashable arguments: ``func(self.items, *args)``."""

    def __init__(self, func: Callable[..., Any]):
        self.func = func
        self.name = func.__name__
        update_wrapper(self, func)

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self

        def query(*args):
            cache = _cache_for(instance)
            key = (self.name,) + args
            if key not in cache:
                cache[key] = self.func(instance.items, *args)
            return cache[key]

        query.__name__ = self.name
        query.__doc__ = self.func.__doc__
        return query
