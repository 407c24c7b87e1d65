# core.py: dashboard figures, no HTTP concerns

from sbt_admin.services import bundle, memo
from sbt_admin.services.data_layer import DataLayer


def get_kpis(dl: DataLayer, prefix: str = memo.DEFAULT_PREFIX, seed: str = memo.SEED) -> dict:
    """
    Basic figures for the dashboard.

    Returns a dict with:
    - one ``<table>_count`` per table
    - latest_memo_no (None without invoices)
    - next_memo_no
    """
    doc = bundle.export_bundle(dl)
    memo_numbers = [row.get("trips_memo_no") for row in doc["invoices"]]

    kpis = {f"{table}_count": len(rows) for table, rows in doc.items()}
    latest = max(
        (m for m in memo_numbers if m),
        key=memo.memo_suffix,
        default=None,
    )
    kpis["latest_memo_no"] = latest
    kpis["next_memo_no"] = memo.next_memo_number(memo_numbers, prefix=prefix, seed=seed)
    return kpis
