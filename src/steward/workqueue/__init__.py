from .limiters import (
    BucketRateLimiter,
    default_rate_limiter,
    ItemExponentialFailureRateLimiter,
    MaxOfRateLimiter,
    RateLimiter,
)
from .queue import Workqueue

__all__ = [
    'BucketRateLimiter',
    'default_rate_limiter',
    'ItemExponentialFailureRateLimiter',
    'MaxOfRateLimiter',
    'RateLimiter',
    'Workqueue',
]
