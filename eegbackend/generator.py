"""Generation of EBMS message identifiers."""

from __future__ import annotations

import random
from datetime import datetime

_RANDOM_LOW = 100
_RANDOM_HIGH = 9999999999


def new_message_id(ec_number: str) -> str:
    """Build a message id: number, local timestamp to the millisecond, ten random digits."""
    now = datetime.now()
    suffix = random.randrange(_RANDOM_HIGH - _RANDOM_LOW) + _RANDOM_LOW
    return (
        f"{ec_number}{now.year:04d}{now.month:02d}{now.day:02d}"
        f"{now.hour:02d}{now.minute:02d}{now.second:02d}"
        f"{now.microsecond // 1000:03d}{suffix:010d}"
    )