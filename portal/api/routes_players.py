from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from ..auth.core import has_role
from ..auth.dependencies import require_user
from ..database import db_session
from ..errors import Conflict, NotFound, PermissionDenied
from ..models import Player
from ..schemas import PlayerPage, PlayerRead, PlayerSummary, PlayerUpdate, SessionUser

logger = logging.getLogger("portal.players")

router = APIRouter(prefix="/players", tags=["players"])


@router.get("", response_model=PlayerPage)
def list_players(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    vocation: Optional[str] = Query(None, max_length=32),
    min_level: Optional[int] = Query(None, ge=1, alias="minLevel"),
) -> PlayerPage:
    """Roster ordered by level, with optional vocation / minimum level filters."""
    filters = []
    if vocation:
        filters.append(Player.vocation == vocation)
    if min_level:
        filters.append(Player.level >= min_level)

    with db_session() as session:
        total = session.execute(
            select(func.count(Player.id)).where(*filters)
        ).scalar_one()
        rows = session.execute(
            select(Player)
            .where(*filters)
            .order_by(Player.level.desc(), Player.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        players = [PlayerSummary.model_validate(r) for r in rows]

    return PlayerPage(total=total, page=page, limit=limit, players=players)


def _load_player(session, player_id: int) -> Player:
    player = session.execute(
        select(Player).options(selectinload(Player.account)).where(Player.id == player_id)
    ).scalar_one_or_none()
    if not player:
        raise NotFound("Player not found.")
    return player


@router.get("/{player_id}", response_model=PlayerRead)
def get_player(player_id: int) -> PlayerRead:
    with db_session() as session:
        return PlayerRead.model_validate(_load_player(session, player_id))


@router.put("/{player_id}", response_model=PlayerRead)
def update_player(
    player_id: int,
    body: PlayerUpdate,
    current_user: SessionUser = Depends(require_user),
) -> PlayerRead:
    """Owners edit their own player; moderators and admins edit any."""
    with db_session() as session:
        player = _load_player(session, player_id)
        if player.account_id != current_user.id and not has_role(current_user.role, "moderator"):
            raise PermissionDenied("You can only edit your own player.")

        if body.name is not None and body.name != player.name:
            taken = session.execute(
                select(Player.id).where(Player.name == body.name, Player.id != player_id)
            ).first()
            if taken:
                raise Conflict("Player name already taken.")
            player.name = body.name
        if body.avatar is not None:
            player.avatar = body.avatar
        if body.vocation is not None:
            player.vocation = body.vocation

        session.flush()
        session.refresh(player)
        logger.info("Player %d updated by %s", player_id, current_user.username)
        return PlayerRead.model_validate(player)
