from typing import Tuple


def normalize_window(limit, offset, default_limit: int = 50, max_limit: int = 200) -> Tuple[int, int]:
    try:
        lim = int(limit) if limit not in (None, "") else default_limit
    except (TypeError, ValueError):
        raise ValueError("limit must be an integer")
    try:
        off = int(offset) if offset not in (None, "") else 0
    except (TypeError, ValueError):
        raise ValueError("offset must be an integer")
    lim = lim if lim > 0 else default_limit
    return min(lim, max_limit), max(off, 0)

