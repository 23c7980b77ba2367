"""Configuration management for the Lulo orchestrator."""
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass
class Config:
    """Central configuration for the orchestrator."""

    # =========================================================================
    # PLANNER SERVICE
    # =========================================================================
    planner_url: str = "https://heylulo.com/api/agent"
    api_token: Optional[str] = field(default_factory=lambda: os.getenv("LULO_API_TOKEN"))
    request_timeout: float = 60.0
    max_follow_up_turns: int = 3

    # =========================================================================
    # BROWSER SETTINGS
    # =========================================================================
    browser_headless: bool = False
    browser_channel: Optional[str] = None  # "chrome" to use the system Chrome
    browser_default_url: str = "https://www.google.com"
    viewport_width: int = 1200
    viewport_height: int = 800
    navigation_timeout: float = 30.0  # Seconds, external driver + tab loads

    # =========================================================================
    # READINESS / TIMING
    # =========================================================================
    readiness_poll_interval: float = 0.5
    readiness_timeout: float = 15.0
    click_settle_delay: float = 0.3
    glow_end_delay: float = 2.0         # After a plan finishes
    new_tab_glow_duration: float = 3.0  # After a freshly opened tab lights up
    ring_lifetime_ms: int = 500
    type_delay_ms: int = 50
    guide_lifetime_ms: int = 30000

    # =========================================================================
    # CONTENT LIMITS
    # =========================================================================
    extract_preview_limit: int = 5000
    follow_up_excerpt_limit: int = 1000
    page_snippet_limit: int = 1000

    # =========================================================================
    # OVERLAY
    # =========================================================================
    idle_status_text: str = "Lulo is controlling this browser"

    # =========================================================================
    # PATHS
    # =========================================================================
    downloads_dir: Path = field(default_factory=lambda: Path.home() / "Downloads")

    # =========================================================================
    # LOGGING
    # =========================================================================
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    structured_logs: bool = False

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        config = cls()

        if os.getenv("LULO_PLANNER_URL"):
            config.planner_url = os.getenv("LULO_PLANNER_URL")

        if os.getenv("LULO_LOG_LEVEL"):
            config.log_level = os.getenv("LULO_LOG_LEVEL")

        if os.getenv("LULO_LOG_FILE"):
            config.log_file = Path(os.getenv("LULO_LOG_FILE"))

        if os.getenv("LULO_STRUCTURED_LOGS"):
            config.structured_logs = os.getenv("LULO_STRUCTURED_LOGS").lower() == "true"

        if os.getenv("LULO_BROWSER_HEADLESS"):
            config.browser_headless = os.getenv("LULO_BROWSER_HEADLESS").lower() == "true"

        if os.getenv("LULO_BROWSER_CHANNEL"):
            config.browser_channel = os.getenv("LULO_BROWSER_CHANNEL")

        if os.getenv("LULO_DOWNLOADS_DIR"):
            config.downloads_dir = Path(os.getenv("LULO_DOWNLOADS_DIR"))

        readiness_timeout = _env_float("LULO_READINESS_TIMEOUT")
        if readiness_timeout is not None:
            config.readiness_timeout = readiness_timeout

        navigation_timeout = _env_float("LULO_NAVIGATION_TIMEOUT")
        if navigation_timeout is not None:
            config.navigation_timeout = navigation_timeout

        if os.getenv("LULO_MAX_FOLLOW_UP_TURNS", "").isdigit():
            config.max_follow_up_turns = int(os.getenv("LULO_MAX_FOLLOW_UP_TURNS"))

        return config

    def check(self) -> dict:
        """Check which external settings are configured."""
        return {
            "planner": bool(self.planner_url),
            "token": bool(self.api_token),
        }

    def print_status(self):
        """Print configuration status."""
        checks = self.check()
        print("\n=== Lulo Configuration ===")
        print(f"Planner URL: {self.planner_url}")
        print(f"API Token: {'✓ Set' if checks['token'] else '✗ Not set'}")
        print(f"Headless: {self.browser_headless}")
        print(f"Readiness timeout: {self.readiness_timeout}s")
        print(f"Downloads Dir: {self.downloads_dir}")
        print("==========================\n")


# Global config instance
config = Config.from_env()
