"""
moves/store.py -- SQLAlchemy-backed persistence for move payloads.

Uses SQLAlchemy Core (not ORM) so the dataclass in moves/models.py stays the
domain representation. Payloads are serialized to a JSON text column; the
store never looks inside them.

Pattern: Repository + Data Mapper. MoveStore is the repository, _row_to_move
the mapper.

Usage:
    store = MoveStore()                                # SQLite default
    store = MoveStore("postgresql://user:pw@host/db")  # PostgreSQL
    move_id = store.create_move(Move(payload={"name": "Lyon -> Paris"}))
    moves = store.list_moves()
    store.close()
"""

import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from core.config import get_settings
from moves.models import Move

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_moves = Table(
    "moves",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("payload", Text, nullable=False),  # JSON object serialized as text
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MoveStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().moves_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create_move(self, move: Move) -> int:
        """Insert a move and return its assigned database ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _moves.insert().values(
                    payload=json.dumps(move.payload),
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_move(self, move_id: int) -> Optional[Move]:
        with self.engine.connect() as conn:
            row = conn.execute(_moves.select().where(_moves.c.id == move_id)).fetchone()
        return _row_to_move(row) if row is not None else None

    def list_moves(self) -> list[Move]:
        """Return every stored move in insertion order."""
        with self.engine.connect() as conn:
            rows = conn.execute(_moves.select().order_by(_moves.c.id)).fetchall()
        return [_row_to_move(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_move(row) -> Move:
    return Move(
        id=row.id,
        payload=json.loads(row.payload),
        created_at=row.created_at,
    )
