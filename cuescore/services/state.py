from __future__ import annotations
import datetime
from ..config import get_token_ttl_hours
from .. import storage

# reset caches when state module is reloaded (test setup)
storage.invalidate_cache()

TOKEN_TTL = datetime.timedelta(hours=get_token_ttl_hours())

# Minimum query length for user search
SEARCH_MIN_LENGTH = 2
