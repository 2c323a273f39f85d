from typing import Optional

TRANSIENT_NET_ERRORS = (
    "net::ERR_INTERNET_DISCONNECTED",
    "net::ERR_CONNECTION_RESET",
)


class JoaraScrapError(Exception):
    """Base class for everything the scraper raises on purpose."""


class RenderTimeout(JoaraScrapError):
    """A bounded wait on the rendered page ran out."""

    def __init__(self, what: str, timeout_ms: Optional[float] = None):
        self.what = what
        self.timeout_ms = timeout_ms
        suffix = f" after {timeout_ms:.0f}ms" if timeout_ms else ""
        super().__init__(f"timed out waiting for {what}{suffix}")


class WorkFailed(JoaraScrapError):
    """Aborts one work; the batch carries on with the next."""

    def __init__(self, work_id: str, reason: str):
        self.work_id = work_id
        super().__init__(f"book {work_id}: {reason}")


class ContentListUnavailable(WorkFailed):
    pass


class MetadataExtractionFailed(WorkFailed):
    pass


class NoUnitsFound(WorkFailed):
    pass


class ChallengeResolutionFailed(JoaraScrapError):
    """Raised only when a cap on challenge cycles is configured and reached."""


def is_transient_network_error(exc: BaseException) -> bool:
    msg = str(exc)
    return any(code in msg for code in TRANSIENT_NET_ERRORS)
