"""Share-link previews: crawler detection and Open Graph HTML."""
from typing import Optional

from partito.config import settings
from partito.services.export_service import direct_event_url, shareable_event_url, strip_html
from partito.services.timezones import localize
from partito.templating import render

CRAWLER_PATTERNS = [
    "facebookexternalhit",
    "Facebot",
    "Twitterbot",
    "LinkedInBot",
    "WhatsApp",
    "Slackbot",
    "TelegramBot",
    "Discordbot",
    "Pinterest",
    "Googlebot",
    "bingbot",
    "iMessageLinkPreview",
    "Applebot",
    "vkShare",
    "W3C_Validator",
    "redditbot",
    "Embedly",
    "SkypeUriPreview",
    "quora link preview",
    "Tumblr",
    "Yahoo Link Preview",
    "Google-PageRenderer",
]

DEFAULT_TITLE = "Partito – Beautiful Event Pages, Effortless RSVPs"
DEFAULT_DESCRIPTION = "Create simple, beautiful event pages and collect RSVPs in seconds."
DESCRIPTION_LIMIT = 160

_LOWER_PATTERNS = [p.lower() for p in CRAWLER_PATTERNS]


def is_crawler(user_agent: Optional[str]) -> bool:
    if not user_agent:
        return False
    ua = user_agent.lower()
    return any(pattern in ua for pattern in _LOWER_PATTERNS)


def default_image_url() -> str:
    return f"{settings.SITE_URL.rstrip('/')}/og-image.png"


def build_preview_description(event) -> str:
    """Build "Weekday, Month D • text", cut to 160 characters."""
    description = strip_html(event.description).strip() or f"You're invited to {event.title}"
    start = localize(event.start_time, event.timezone)
    if start is not None:
        description = f"{start.strftime('%A, %B')} {start.day} • {description}"
    if len(description) > DESCRIPTION_LIMIT:
        description = description[: DESCRIPTION_LIMIT - 3] + "..."
    return description


def render_og_html(event, slug: str) -> str:
    """Preview page for ``slug``; default branding when ``event`` is None."""
    canonical = direct_event_url(slug)

    if event is None:
        return render(
            "og.html",
            title=DEFAULT_TITLE,
            description=DEFAULT_DESCRIPTION,
            image=default_image_url(),
            url=settings.SITE_URL,
            canonical=canonical,
        )

    title = event.title
    if event.host_name:
        title = f"{title} | Hosted by {event.host_name}"

    return render(
        "og.html",
        title=title,
        description=build_preview_description(event),
        image=event.cover_image or default_image_url(),
        url=shareable_event_url(slug),
        canonical=canonical,
    )
