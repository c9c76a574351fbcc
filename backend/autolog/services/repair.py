from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from ..persistence import DocumentStore
from ..store import EXPENSE_ENTRIES, FUEL_ENTRIES, VEHICLES

logger = logging.getLogger(__name__)

REPAIRED_COLLECTIONS = (
    ("vehicles", VEHICLES),
    ("fuelEntries", FUEL_ENTRIES),
    ("expenseEntries", EXPENSE_ENTRIES),
)


@dataclass
class RepairStats:
    before: int = 0
    after: int = 0
    fixed: int = 0


def backfill_ids(document_store: DocumentStore, collection: str, user_id: str) -> RepairStats:
    documents = document_store.find(collection, {"userId": user_id})
    stats = RepairStats(before=len(documents))
    for document in documents:
        if document.get("id") or document.get("_id") is None:
            continue
        document["id"] = str(document["_id"])
        document_store.save(collection, document)
        stats.fixed += 1
    stats.after = document_store.count(collection, {"userId": user_id})
    return stats


def repair_user_documents(document_store: DocumentStore, user_id: str) -> dict[str, dict[str, int]]:
    """Give every document the user owns a canonical ``id``.

    Each repaired document is saved on its own; a failure stops the run and leaves
    the documents already saved in place.
    """
    results: dict[str, dict[str, int]] = {}
    for label, collection in REPAIRED_COLLECTIONS:
        stats = backfill_ids(document_store, collection, user_id)
        logger.info(
            "Repaired %s for user %s: before=%d after=%d fixed=%d",
            label,
            user_id,
            stats.before,
            stats.after,
            stats.fixed,
        )
        results[label] = asdict(stats)
    return results
