"""
api/routes/moves.py -- Moves REST endpoints.

Routes:
  GET  /api/moves  -- list every stored move
  POST /api/moves  -- store a move payload verbatim

Both require an authenticated caller (default rule of the access policy).
The payload must be a JSON object; its contents are not validated.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request

from moves.models import Move
from moves.store import MoveStore

router = APIRouter()


@router.get("/moves")
def list_moves(request: Request) -> list[dict[str, Any]]:
    store: MoveStore = request.app.state.moves
    return [m.to_dict() for m in store.list_moves()]


@router.post("/moves")
def create_move(request: Request, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    """Store the request body and return it with its assigned id."""
    store: MoveStore = request.app.state.moves
    move_id = store.create_move(Move(payload=payload))
    created = store.get_move(move_id)
    if created is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "Move not found after write."},
        )
    return created.to_dict()
