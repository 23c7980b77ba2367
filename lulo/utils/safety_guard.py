"""Safety guardrails for URLs and files the planner asks us to touch.

The planner is an external service; anything it hands us is checked here
before a tab is opened or navigated, or a file is written:
- Script and local-file URL schemes
- Browser pages that reset settings or clear data
- Download filenames that try to escape the downloads directory
"""
import re
from typing import Iterable, List, Optional
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath
from urllib.parse import urlparse

from lulo.utils.logger import setup_logger


class DangerLevel(Enum):
    SAFE = "safe"
    BLOCKED = "blocked"


@dataclass
class SafetyCheck:
    """Verdict on one URL."""
    allowed: bool
    danger_level: DangerLevel
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "SafetyCheck":
        return cls(allowed=True, danger_level=DangerLevel.SAFE)

    @classmethod
    def blocked(cls, reason: str) -> "SafetyCheck":
        return cls(allowed=False, danger_level=DangerLevel.BLOCKED, reason=reason)


# Internal pages, per browser, that wipe data or reset the profile
_RESET_PAGES = {
    "chrome": ("settings/clearBrowserData", "settings/reset", "settings/resetProfileSettings"),
    "edge": ("settings/clearBrowserData", "settings/reset"),
    "brave": ("settings/clearBrowserData", "settings/reset"),
}


def _reset_page_patterns() -> List[str]:
    patterns = [
        rf"^{browser}://{re.escape(page)}"
        for browser, pages in _RESET_PAGES.items()
        for page in pages
    ]
    patterns += [r"^about:config", r"^about:preferences.*clear"]
    return patterns


class SafetyGuard:
    """
    Refuses URLs and filenames that could hurt the user's browser or disk.

    Usage:
        from lulo.utils.safety_guard import safety_guard

        if not safety_guard.check_url(step.get("url")).allowed:
            ...skip the step...
    """

    BLOCKED_SCHEMES = frozenset({"javascript", "file", "vbscript"})

    def __init__(self, extra_url_patterns: Optional[Iterable[str]] = None):
        self.logger = setup_logger("SafetyGuard")
        self._url_patterns = [
            re.compile(p, re.IGNORECASE)
            for p in _reset_page_patterns() + list(extra_url_patterns or ())
        ]

    def check_url(self, url: Optional[str]) -> SafetyCheck:
        """
        Check a URL before a tab is opened or navigated to it.

        Args:
            url: Target URL from a plan step

        Returns:
            SafetyCheck; allowed is False for missing URLs, blocked schemes
            and browser reset/clear-data pages
        """
        if not isinstance(url, str) or not url.strip():
            return SafetyCheck.blocked("Missing URL")

        url = url.strip()
        scheme = urlparse(url).scheme.lower()
        if scheme in self.BLOCKED_SCHEMES:
            self.logger.warning(f"🛑 Refusing {scheme}: URL")
            return SafetyCheck.blocked(f"URL scheme not allowed: {scheme}")

        if any(pattern.search(url) for pattern in self._url_patterns):
            self.logger.warning(f"🛑 Refusing browser reset page: {url}")
            return SafetyCheck.blocked(f"Dangerous URL blocked: {url}")

        return SafetyCheck.ok()

    def safe_filename(self, filename: Optional[str], default: str) -> str:
        """
        Reduce a planner-supplied filename to a bare basename.

        Directory parts (either separator style) are dropped; empty and
        dot-only names fall back to `default`.
        """
        if not filename or not isinstance(filename, str):
            return default

        name = PureWindowsPath(PurePosixPath(filename.strip()).name).name
        if not name or set(name) <= {"."}:
            return default

        if name != filename:
            self.logger.warning(f"Sanitized filename {filename!r} -> {name!r}")
        return name


# Global instance
safety_guard = SafetyGuard()
