from __future__ import annotations

import re
from typing import Iterable, Optional

DEFAULT_PREFIX = "SBT"
SEED = "SBT-001"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def memo_suffix(memo_no: Optional[str]) -> int:
    """Numeric part after the first '-', 0 when absent or unparseable."""
    if not memo_no or "-" not in memo_no:
        return 0
    match = _LEADING_INT.match(memo_no.split("-")[1])
    if match is None:
        return 0
    return int(match.group(1))


def next_memo_number(
    memo_numbers: Iterable[Optional[str]],
    prefix: str = DEFAULT_PREFIX,
    seed: str = SEED,
) -> str:
    """
    Next memo number after the highest suffix in ``memo_numbers``.

    Pure function of the snapshot it is given: no locking. Two sessions
    allocating from the same snapshot get the same number, and since
    invoices are upserted on the memo number the later save overwrites the
    earlier one.
    """
    max_num = 0
    seen = False
    for memo_no in memo_numbers:
        seen = True
        max_num = max(max_num, memo_suffix(memo_no))
    if not seen:
        return seed
    return f"{prefix}-{max_num + 1:03d}"
