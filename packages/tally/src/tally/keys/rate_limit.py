"""Rate limiter key constants.

Redis key structure:
    rl:{limiter}:{client}  -> STRING hit counter, PEXPIRE = window
"""

RATE_LIMIT_PREFIX = "rl"


def limiter_prefix(name: str) -> str:
    """Key prefix for a named limiter, e.g. ``rl:auth``."""
    return f"{RATE_LIMIT_PREFIX}:{name}"


def limiter_key(prefix: str, client_key: str) -> str:
    return f"{prefix}:{client_key}"
