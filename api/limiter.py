"""
api/limiter.py -- Process-wide slowapi limiter.

api/main.py attaches it to app.state (where @limiter.limit looks it up) and
api/routes/v1/auth.py decorates the login route with it. Counters are kept
per client IP in memory, so they reset on restart and are not shared between
worker processes.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
