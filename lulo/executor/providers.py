"""URL builders for the web apps EMAIL, SEARCH and CALENDAR open."""
from typing import Optional
from urllib.parse import urlencode, quote

GMAIL_COMPOSE_URL = "https://mail.google.com/mail/"
GOOGLE_SEARCH_URL = "https://www.google.com/search"
GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/render"


def email_url(to: Optional[str] = None, subject: Optional[str] = None, body: Optional[str] = None) -> str:
    """Gmail compose window (view=cm opens the draft directly, skipping the inbox)."""
    params = [("view", "cm"), ("fs", "1"), ("tf", "1")]
    if to:
        params.append(("to", to))
    if subject:
        params.append(("su", subject))
    if body:
        params.append(("body", body))
    return f"{GMAIL_COMPOSE_URL}?{urlencode(params)}"


def search_url(query: str) -> str:
    return f"{GOOGLE_SEARCH_URL}?q={quote(query, safe='')}"


def calendar_url(
    title: Optional[str] = None,
    details: Optional[str] = None,
    location: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None
) -> str:
    """Google Calendar event template; dates only when both ends are known."""
    params = [("action", "TEMPLATE")]
    if title:
        params.append(("text", title))
    if details:
        params.append(("details", details))
    if location:
        params.append(("location", location))
    if start and end:
        params.append(("dates", f"{start}/{end}"))
    return f"{GOOGLE_CALENDAR_URL}?{urlencode(params)}"
