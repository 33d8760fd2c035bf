"""Prometheus metrics for the note store.

All metric objects are defined here so they can be imported from any module.
"""

from prometheus_client import Counter

# ---------------------------------------------------------------------------
# Store operation metrics
# ---------------------------------------------------------------------------

NOTE_OPERATIONS = Counter(
    "notes_store_operations_total",
    "Total number of note store operations",
    ["operation", "status"],  # status: ok, not_found
)

# ---------------------------------------------------------------------------
# Persistence metrics
# ---------------------------------------------------------------------------

STORAGE_LOAD_FAILURES = Counter(
    "notes_storage_load_failures_total",
    "Persisted blobs discarded while loading",
    ["reason"],  # unreadable, invalid_json, bad_shape
)
