"""Deterministic identifiers for engine output.

Group ids and discrepancy ids are UUIDv5 values derived from the records
they describe, so re-running the same input yields the same ids.
"""

import uuid


RECONCILIATION_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "urn:soa-reconciliation")


def stable_id(kind: str, *parts) -> str:
    """UUIDv5 string for a kind plus an ordered list of parts ("" for None)."""
    key = "|".join([kind] + ["" if p is None else str(p) for p in parts])
    return str(uuid.uuid5(RECONCILIATION_NAMESPACE, key))
