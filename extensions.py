# FILE: ecoaction-backend/extensions.py

import os
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(
    # The default key is the IP address of the client making the request.
    key_func=get_remote_address,
    # Passed to the Redis client so responses are decoded to strings.
    storage_options={"decode_responses": True},
    # Storage is configured in main.py through RATELIMIT_STORAGE_URI.
    default_limits=["1000 per day", "300 per hour"]
)


def submit_rate_limit():
    """Per-client limit for evidence submissions, each of which costs one AI call."""
    return os.environ.get("SUBMIT_RATE_LIMIT", "20 per hour")
