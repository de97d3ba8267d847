"""
Caching utilities for expensive aggregate queries (dashboard metrics).

Keys carry a generation number per prefix; invalidating a prefix bumps the
generation so stale entries are never read again and simply expire. This
works the same on Redis (django-redis) and on the local memory cache.
"""
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
DASHBOARD_KPI_CACHE_TTL = 300  # 5 minutes

DASHBOARD_PREFIX = "dashboard_kpis"


def _generation_key(prefix):
    return f"{prefix}:generation"


def get_generation(prefix):
    generation = cache.get(_generation_key(prefix))
    if generation is None:
        cache.add(_generation_key(prefix), 1, None)
        generation = cache.get(_generation_key(prefix)) or 1
    return generation


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:g{get_generation(prefix)}:{key_hash}"


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(cache_ttl=300, key_prefix=DASHBOARD_PREFIX)
        def get_dashboard_metrics(low_stock_threshold):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_prefix(prefix):
    """Make every key built for ``prefix`` unreachable"""
    try:
        try:
            cache.incr(_generation_key(prefix))
        except ValueError:
            # Generation key expired or was never written
            cache.set(_generation_key(prefix), 2, None)
        logger.debug(f"Invalidated cache prefix: {prefix}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache prefix {prefix}: {str(e)}")


def invalidate_dashboard_cache():
    """Invalidate dashboard KPIs cache"""
    invalidate_prefix(DASHBOARD_PREFIX)
