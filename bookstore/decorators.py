"""
Retry decorator for provider calls.

- retry: re-invokes a function on transient failures with exponential
  backoff. Clients wrap their send method with it using the app's
  PROVIDER_MAX_RETRIES / PROVIDER_RETRY_DELAY_SECONDS settings.
"""

import logging
import time
from functools import wraps

logger = logging.getLogger(__name__)


def retry(max_retries=2, delay=0.5, backoff=2.0, exceptions=(Exception,)):
    """Retry the wrapped function up to ``max_retries`` extra times.

    Exceptions carrying ``retryable = False`` are re-raised immediately.
    The last exception is re-raised once attempts are exhausted.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max_retries + 1
            current_delay = delay

            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts or not getattr(e, "retryable", True):
                        raise
                    logger.warning(
                        f"{func.__name__} attempt {attempt}/{attempts} failed, "
                        f"retrying in {current_delay}s: {e}"
                    )
                    if current_delay:
                        time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator
