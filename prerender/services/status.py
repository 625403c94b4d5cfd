from __future__ import annotations

import re
from typing import Any, Optional

from prerender.services.session import BrowserResponse

NO_RESPONSE_STATUS = 400
FORBIDDEN_STATUS = 403
OK_STATUS = 200
NOT_MODIFIED_STATUS = 304
MIN_STATUS = 200
MAX_STATUS = 599
# Statuses whose responses must not carry a body.
BODILESS_STATUSES = frozenset({204, 205, 304})

METADATA_FLAVOR_HEADER = "metadata-flavor"
METADATA_FLAVOR_VALUE = "Google"
STATUS_META_SELECTOR = 'meta[name="render:status_code"]'

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def is_metadata_response(response: BrowserResponse) -> bool:
    """True when the response comes from a cloud compute metadata server."""
    return response.header(METADATA_FLAVOR_HEADER) == METADATA_FLAVOR_VALUE


def parse_status_override(raw: Any) -> Optional[int]:
    """Parse a status meta tag value the way ``parseInt`` reads it.

    Returns ``None`` for missing, unparsable or out-of-range values, and for
    statuses that cannot carry the serialized markup.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    else:
        match = _LEADING_INT.match(str(raw))
        if not match:
            return None
        value = int(match.group(1))
    if value < MIN_STATUS or value > MAX_STATUS or value in BODILESS_STATUSES:
        return None
    return value


def allows_body(status: int) -> bool:
    return status >= MIN_STATUS and status not in BODILESS_STATUSES


def resolve_status(base_status: int, override: Optional[int] = None) -> int:
    # Repeat visits may hit the browser cache; 304 is reported as 200.
    status = OK_STATUS if base_status == NOT_MODIFIED_STATUS else base_status
    # Non-200 transport statuses are authoritative.
    if status == OK_STATUS and override is not None:
        return override
    return status
