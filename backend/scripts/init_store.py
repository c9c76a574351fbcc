from __future__ import annotations

import logging

from autolog.config import settings
from autolog.persistence import connect


def main() -> None:
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    document_store = connect()
    document_store.ensure_indexes()
    print(f"Document store ready: {document_store.name}")


if __name__ == "__main__":
    main()
