"""One-off migration script: memory snapshot (JSON) -> SQL database.

Ids are kept as-is so history entries keep pointing at their thoughts.

Usage:
  DATABASE_URL=postgresql://... python scripts/migrate_snapshot_to_sql.py data/snapshot.json
"""
from __future__ import annotations

import argparse
import logging
from dataclasses import asdict
from pathlib import Path
import sys

# Keep the thoughtbox package importable when run directly
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import func, select, text

from thoughtbox.core.logging import configure_logging
from thoughtbox.db import models
from thoughtbox.db.create_tables import create_all
from thoughtbox.db.session import get_session
from thoughtbox.repositories.memory_storage import MemoryStorage

logger = logging.getLogger("migrate_snapshot_to_sql")

# parents first so foreign keys resolve
_ORDER = (
    ("clinics", models.Clinic),
    ("users", models.User),
    ("thoughts", models.Thought),
    ("thought_history", models.ThoughtHistory),
)


def migrate(snapshot: Path) -> dict[str, int]:
    if not snapshot.exists():
        raise SystemExit(f"Snapshot not found: {snapshot}")
    storage = MemoryStorage(snapshot_path=snapshot)
    tables = storage.dump()
    create_all()

    counts: dict[str, int] = {}
    with get_session() as session:
        for name, model in _ORDER:
            for record in tables[name]:
                session.merge(model(**asdict(record)))
            counts[name] = len(tables[name])
        session.flush()
        if session.get_bind().dialect.name == "postgresql":
            for name, model in _ORDER:
                top = session.execute(select(func.max(model.id))).scalar() or 0
                if top:
                    session.execute(
                        text("SELECT setval(pg_get_serial_sequence(:table, 'id'), :value)"),
                        {"table": name, "value": top},
                    )
        session.commit()
    return counts


def main() -> None:
    ap = argparse.ArgumentParser(description="Copy a memory snapshot into the SQL database")
    ap.add_argument("snapshot", type=Path, help="Path to the JSON snapshot file")
    args = ap.parse_args()

    configure_logging()
    counts = migrate(args.snapshot)
    for name, total in counts.items():
        logger.info("%s: %s rows", name, total)


if __name__ == "__main__":
    main()
