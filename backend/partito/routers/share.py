"""Shareable event links: link-preview bots get Open Graph HTML, people get the SPA."""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from partito.database import get_db
from partito.models.event import Event
from partito.services.export_service import direct_event_url
from partito.services.share_service import is_crawler, render_og_html

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/e/{slug}")
def share_event(slug: str, request: Request, db: Session = Depends(get_db)):
    user_agent = request.headers.get("user-agent", "")
    if not is_crawler(user_agent):
        return RedirectResponse(direct_event_url(slug), status_code=302)

    event = db.query(Event).filter(Event.slug == slug).first()
    if event is None:
        logger.info("Preview requested for unknown slug %s", slug)
    return HTMLResponse(
        render_og_html(event, slug),
        headers={"Cache-Control": "public, max-age=300, s-maxage=300"},
    )
