"""Authentication / authorization helpers.

Auth is kept lightweight:

- Users table (email + password hash + access level)
- Server-side sessions table, referenced by a signed httpOnly cookie

Staff are users with access level >= 1; it is only ever changed out-of-band
(bootstrap env vars or scripts/set_access_level.py).
"""

from .deps import get_current_user, get_optional_user, require_staff
from .crud import bootstrap_admin_if_needed, create_user

__all__ = [
    "get_current_user",
    "get_optional_user",
    "require_staff",
    "bootstrap_admin_if_needed",
    "create_user",
]
