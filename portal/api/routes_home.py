import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy import func, select
from starlette.concurrency import run_in_threadpool

from ..auth.dependencies import require_user
from ..config import settings
from ..database import db_session
from ..errors import NotFound
from ..models import Account, News, Player
from ..rate_limit import limiter
from ..schemas import NewsRead, PlayerRead, PlayerSummary, SessionUser
from ..templating import render_page
from .routes_news import latest_news

logger = logging.getLogger("portal.home")

router = APIRouter(tags=["home"])

HOME_CACHE_KEY = "home:dashboard"
ONLINE_WINDOW_MINUTES = 15
TOP_PLAYERS = 4
HOME_NEWS = 10
DASHBOARD_NEWS = 5


def load_home_data() -> Dict[str, Any]:
    """Aggregate everything the homepage shows into one JSON-safe dict."""
    online_cutoff = datetime.now(timezone.utc) - timedelta(minutes=ONLINE_WINDOW_MINUTES)
    # SQLite stores naive UTC datetimes; strip tzinfo for comparison
    online_cutoff = online_cutoff.replace(tzinfo=None)

    with db_session() as session:
        news = session.execute(
            select(News).order_by(News.published_at.desc(), News.id.desc()).limit(HOME_NEWS)
        ).scalars().all()
        top_players = session.execute(
            select(Player).order_by(Player.level.desc(), Player.id).limit(TOP_PLAYERS)
        ).scalars().all()
        online_players = session.execute(
            select(func.count(Account.id))
            .where(Account.is_active.is_(True))
            .where(Account.last_login_at >= online_cutoff)
        ).scalar_one()
        total_players = session.execute(select(func.count(Player.id))).scalar_one()

        return {
            "title": "Home",
            "server_name": settings.server_name,
            "news": [NewsRead.model_validate(n).model_dump(mode="json") for n in news],
            "top_players": [PlayerSummary.model_validate(p).model_dump(mode="json") for p in top_players],
            "online_players": online_players,
            "total_players": total_players,
        }


@router.get("/", response_class=HTMLResponse)
@limiter.limit(settings.api_rate_limit)
async def home(request: Request):
    cache = request.app.state.cache
    data = await cache.get(HOME_CACHE_KEY)
    if data is None:
        logger.debug("Homepage cache miss; recomputing")
        data = await run_in_threadpool(load_home_data)
        await cache.set(HOME_CACHE_KEY, data, settings.home_cache_ttl_seconds)
    return render_page(request, "index", data)


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request, current_user: SessionUser = Depends(require_user)):
    with db_session() as session:
        account = session.get(Account, current_user.id)
        if not account:
            raise NotFound("Your account could not be found. Please log in again.")
        player = PlayerRead.model_validate(account.player) if account.player else None

    return render_page(
        request,
        "dashboard",
        {
            "title": "Player dashboard",
            "player": player,
            "news": latest_news(DASHBOARD_NEWS),
        },
    )
