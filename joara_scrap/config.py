from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# --------- Site ---------
BASE = "https://www.joara.com"
BOOK_URL = f"{BASE}/book/{{work_id}}"
CHALLENGE_URL = f"{BASE}/defender"
BOOK_URL_PATTERN = r"https?://(?:www\.)?[\w.-]+/book/(\d+)"

# --------- Selectors ---------
READY_SELECTOR = "body"
CHALLENGE_MARKER = ".recaptcha-page"
BOOK_TITLE_SELECTOR = ".book-info .title"
AUTHOR_SELECTOR = ".nickname button"
COVER_SELECTOR = 'meta[property="og:image"]'
UNIT_LIST_SELECTOR = ".episode-items"
UNIT_ANCHOR_SELECTOR = '.episode-items a[href^="/viewer?"]'
UNIT_TITLE_SELECTOR = ".chapter-tt p"
UNIT_TEXT_SELECTOR = "ol.text-wrap.no-print"
UNTITLED_UNIT = "Untitled Chapter"

# --------- Browser ---------
DEFAULT_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
CHROME_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920,1080",
    "--disable-blink-features=AutomationControlled",
]
VIEWPORT = {"width": 1920, "height": 1080}
PROFILE_DIR = Path("./joara_profile")

# --------- Timeouts (ms) ---------
NAV_TIMEOUT = 60_000
WAIT_TIMEOUT = 30_000
TEXT_TIMEOUT = 5_000

# --------- Retry / pacing (seconds unless noted) ---------
SETTLE_DELAY = 5.0
NETWORK_RETRY_DELAY = 30.0
METADATA_ATTEMPTS = 3
METADATA_RETRY_DELAY = 5.0
UNIT_ATTEMPTS = 3
CHALLENGE_ATTEMPTS = 3
CHALLENGE_RETRY_DELAY = 5.0
CHALLENGE_COOLDOWN = 120.0
CLOSE_ATTEMPTS = 3
CLOSE_RETRY_DELAY = 1.0
SCROLL_STEP_PX = 100
SCROLL_PAUSE = 0.1
MAX_SCROLL_STEPS = 5_000
COVER_TIMEOUT = 20

DEFAULT_WAIT_TIME_MS = 5000
DEFAULT_BOOK_WAIT_MS = 0


@dataclass
class Settings:
    wait_time_ms: int = DEFAULT_WAIT_TIME_MS
    book_wait_ms: int = DEFAULT_BOOK_WAIT_MS
    cooldown_every: Optional[int] = None
    cooldown_minutes: Optional[int] = None
    max_challenge_cycles: Optional[int] = None
    out_dir: Path = Path(".")
    fetch_cover: bool = True
    verbose: bool = False

    @property
    def cooldown_enabled(self) -> bool:
        return bool(self.cooldown_every and self.cooldown_minutes)
