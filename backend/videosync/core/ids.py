from __future__ import annotations

import random
import string
import time

_BASE36 = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    if value < 0:
        return "-" + to_base36(-value)
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_client_id() -> str:
    """Return a display/addressing id shaped like ``client_<rand>_<ts36>``.

    Not guaranteed unique; ids are never used as credentials.
    """
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"client_{suffix}_{to_base36(now_ms())}"
