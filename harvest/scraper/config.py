"""Configuration constants for the listing harvester."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("HARVEST_DATA_DIR", "data"))
LOG_DIR: Path = DATA_DIR / "logs"
RUNS_DIR: Path = DATA_DIR / "runs"

COINGECKO_BASE_URL: str = "https://www.coingecko.com"
DEFILLAMA_PREDICTION_URL: str = "https://defillama.com/protocols/prediction-market"
TRENDING_API_URL: str = "https://api.coingecko.com/api/v3/search/trending"


def _parse_int(env_var: str, default: int, *, minimum: int | None = None) -> int:
    """Parse an integer from the environment, falling back to ``default``."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    if minimum is not None:
        return max(minimum, value)
    return value


def _parse_float(env_var: str, default: float) -> float:
    try:
        return float(os.getenv(env_var, str(default)))
    except ValueError:
        return default


# Pagination range and pacing
START_PAGE: int = _parse_int("HARVEST_START_PAGE", 1)
MAX_PAGE: int = _parse_int("HARVEST_MAX_PAGE", 100)
RECYCLE_EVERY_PAGES: int = _parse_int("HARVEST_RECYCLE_EVERY_PAGES", 10)
PAGE_RETRIES: int = _parse_int("HARVEST_PAGE_RETRIES", 2)
FAILURE_THRESHOLD: int = _parse_int("HARVEST_FAILURE_THRESHOLD", 3)
PAGE_DELAY_MIN_SECONDS: float = _parse_float("HARVEST_PAGE_DELAY_MIN_SECONDS", 2.0)
PAGE_DELAY_MAX_SECONDS: float = _parse_float("HARVEST_PAGE_DELAY_MAX_SECONDS", 4.0)
PAGE_SETTLE_SECONDS: float = _parse_float("HARVEST_PAGE_SETTLE_SECONDS", 3.0)
PAGE_RETRY_COOLDOWN_SECONDS: float = _parse_float("HARVEST_PAGE_RETRY_COOLDOWN_SECONDS", 2.0)
FAILURE_COOLDOWN_SECONDS: float = _parse_float("HARVEST_FAILURE_COOLDOWN_SECONDS", 5.0)

# Playwright timeouts (seconds)
# Default navigation and generic-operation timeout applied to every view.
NAV_TIMEOUT_SECONDS: int = _parse_int("HARVEST_NAV_TIMEOUT_SECONDS", 60, minimum=1)
# Selector waits once the container is known to exist.
SELECTOR_TIMEOUT_SECONDS: int = _parse_int("HARVEST_SELECTOR_TIMEOUT_SECONDS", 30, minimum=1)

# Virtualized list sampling
SCROLL_STEPS: int = _parse_int("HARVEST_SCROLL_STEPS", 150)
SNAPSHOT_STRIDE: int = _parse_int("HARVEST_SNAPSHOT_STRIDE", 5)
SCROLL_STEP_DELAY_SECONDS: float = _parse_float("HARVEST_SCROLL_STEP_DELAY_SECONDS", 0.1)
FOCUS_SETTLE_SECONDS: float = _parse_float("HARVEST_FOCUS_SETTLE_SECONDS", 0.5)
# 0 keeps the fixed step budget as the only stopping rule.
STABLE_SNAPSHOTS: int = _parse_int("HARVEST_STABLE_SNAPSHOTS", 0)
SAMPLER_RETRIES: int = _parse_int("HARVEST_SAMPLER_RETRIES", 2)
SAMPLER_RETRY_COOLDOWN_SECONDS: float = _parse_float("HARVEST_SAMPLER_RETRY_COOLDOWN_SECONDS", 5.0)

# Trending API
TRENDING_RETRIES: int = _parse_int("HARVEST_TRENDING_RETRIES", 3, minimum=1)
TRENDING_BACKOFF_STEP_SECONDS: float = _parse_float("HARVEST_TRENDING_BACKOFF_STEP_SECONDS", 2.0)
TRENDING_TIMEOUT_SECONDS: int = _parse_int("HARVEST_TRENDING_TIMEOUT_SECONDS", 30, minimum=1)

# Browser identity
HEADLESS: bool = os.getenv("HARVEST_HEADLESS", "1").strip().lower() not in {"0", "false"}
VIEWPORT: dict[str, int] = {"width": 1400, "height": 900}
USER_AGENT: str = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
BROWSER_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
)

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}
