"""
Cache utilities for pickpool
Query caching helpers built on Flask-Caching
"""

import functools

from flask import current_app

from pickpool import cache


def make_cache_key(prefix, *args, **kwargs):
    """Build a cache key from a prefix and call arguments"""
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"{prefix}_{args_str}_{kwargs_str}".replace("/", "_").replace(" ", "_")


def _version_key(namespace):
    return f"version_{namespace}"


def get_cache_version(namespace):
    """Current generation of a namespace, keys from older generations are dead"""
    return cache.get(_version_key(namespace)) or 0


def cached_query(namespace, timeout=300):
    """
    Decorator for caching plain-data query results

    Args:
        namespace: Namespace used for key generation and invalidation
        timeout: Cache timeout in seconds
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            version = get_cache_version(namespace)
            cache_key = make_cache_key(
                f"query_{namespace}_v{version}_{f.__name__}", *args, **kwargs
            )

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Query cache hit: {cache_key}")
                return result

            result = f(*args, **kwargs)
            cache.set(cache_key, result, timeout=timeout)
            current_app.logger.debug(f"Query cache set: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_model_cache(namespace):
    """
    Invalidate all cached queries of a namespace

    Args:
        namespace: Namespace passed to cached_query
    """
    version = get_cache_version(namespace) + 1
    # Never expires, older generations age out on their own timeouts
    cache.set(_version_key(namespace), version, timeout=0)
    current_app.logger.debug(f"Cache namespace {namespace} now at version {version}")


def invalidate_week_cache(season, week):
    """Drop cached standings after the scores of a week change"""
    current_app.logger.debug(f"Invalidating score caches for {season} week {week}")
    invalidate_model_cache("scores")


class CacheManager:
    """Cache management utilities"""

    @staticmethod
    def get_cache_stats():
        """Get cache statistics"""
        return {
            "type": current_app.config.get("CACHE_TYPE", "Unknown"),
            "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
            "scores_version": get_cache_version("scores"),
        }
