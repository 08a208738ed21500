"""
Church Song Navigator - Page Routes

Serves the two HTML views through Jinja2 templates:

- the public homepage: this week's and next week's songs, audio player and
  sheet-music carousel
- the admin page (admin cookie required)

Any path or method no other route claims falls through to the homepage.
"""

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, PlainTextResponse

from songnav.auth import UNAUTHORIZED_MESSAGE, is_admin
from songnav.config import APP_VERSION, DEFAULT_PER_PAGE
from songnav.database import get_config, list_collections
from songnav.services.collections import build_week_view, select_weeks
from songnav.services.week_label import short_week_label, week_label

router = APIRouter(tags=["Pages"])

_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


# ---------------------------------------------------------------------------
# Homepage
# ---------------------------------------------------------------------------
async def render_home(request: Request) -> HTMLResponse:
    """Render the homepage from the two most recent collections."""
    config = await get_config()
    current, upcoming = select_weeks(await list_collections(limit=2))

    current_view = build_week_view(current, "current")
    next_view = build_week_view(upcoming, "next")

    context = {
        "church_name": config["church_name"],
        "current_badge": short_week_label(current_view["label"]) or current_view["label"],
        "weeks": [current_view, next_view],
        "version": APP_VERSION,
    }
    return request.app.state.templates.TemplateResponse(request, "home.html", context)


@router.get("/", response_class=HTMLResponse)
async def home(request: Request):
    """Public homepage."""
    return await render_home(request)


# ---------------------------------------------------------------------------
# Admin page
# ---------------------------------------------------------------------------
@router.get("/admin", response_class=HTMLResponse)
async def admin_page(request: Request):
    """Admin console; 403 plain text without the admin cookie."""
    if not is_admin(request):
        return PlainTextResponse(UNAUTHORIZED_MESSAGE, status_code=403)

    config = await get_config()
    context = {
        "church_name": config["church_name"],
        "this_week_label": week_label(0),
        "next_week_label": week_label(1),
        "per_page": DEFAULT_PER_PAGE,
        "version": APP_VERSION,
    }
    return request.app.state.templates.TemplateResponse(request, "admin.html", context)


# ---------------------------------------------------------------------------
# Fallback (must be registered last)
# ---------------------------------------------------------------------------
@router.api_route("/{full_path:path}", methods=_ALL_METHODS, response_class=HTMLResponse)
async def fallback(request: Request, full_path: str):
    """Everything else gets the homepage."""
    return await render_home(request)
