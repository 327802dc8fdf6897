"""
Deployment ids: ``d-YYYYMMDD-hhmmss-xxxx`` with a UTC timestamp and a
lowercase alphanumeric suffix.
"""

import re
import secrets
import string
from datetime import datetime, timezone
from typing import Optional

SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

DEPLOYMENT_ID = re.compile(r"d-\d{8}-\d{6}-[a-z0-9]{4}")


def new_deployment_id(now: Optional[datetime] = None) -> str:
    """
    Generate a new deployment ID.

    Args:
        now: Clock reading; defaults to the current UTC time

    Returns:
        str: ID such as ``d-20250101-120000-ab12``
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(4))
    return f"d-{now:%Y%m%d}-{now:%H%M%S}-{suffix}"


def is_valid_deployment_id(deployment_id: Optional[str]) -> bool:
    # ids double as file names in the file store, so nothing else gets through
    return bool(deployment_id) and DEPLOYMENT_ID.fullmatch(deployment_id) is not None
