import argparse
import asyncio
import itertools
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from joara_scrap.config import DEFAULT_BOOK_WAIT_MS, DEFAULT_WAIT_TIME_MS, Settings
from joara_scrap.models import WorkRequest

logger = logging.getLogger(__name__)

NEGATIVE_INT_RE = re.compile(r"^-\d+$")

EXAMPLES = """\
Examples:
  joara-scrap 12345 -waitTime 3000 -bookWait 60000 -cooldown 5 10
  joara-scrap https://www.joara.com/book/6789 -help
"""


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="joara-scrap",
        description="Joara book -> .txt + .epub (pauses for a human when a captcha shows up).",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    ap.add_argument("works", nargs="*", metavar="bookId", help="Joara book ID or https://www.joara.com/book/<id> URL")
    ap.add_argument("-waitTime", nargs="?", metavar="ms",
                    help=f"Wait between chapters in milliseconds (default: {DEFAULT_WAIT_TIME_MS})")
    ap.add_argument("-bookWait", nargs="?", metavar="ms",
                    help=f"Wait between books in milliseconds (default: {DEFAULT_BOOK_WAIT_MS})")
    ap.add_argument("-cooldown", nargs=2, metavar=("n", "m"),
                    help="After every <n> chapters, cool down for <m> minutes")
    ap.add_argument("-challengeCycles", nargs="?", metavar="n",
                    help="Give up on a captcha after <n> long cooldowns (default: never)")
    ap.add_argument("-out", default=".", metavar="dir", help="Output folder (default: current directory)")
    ap.add_argument("-noCover", action="store_true", help="Do not download the cover image")
    ap.add_argument("-verbose", action="store_true", help="Debug logging")
    ap.add_argument("-help", action="store_true", help="Display this help message and exit")
    return ap


def _int_or_none(raw: Optional[str]) -> Optional[int]:
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def _is_option(token: str) -> bool:
    return token.startswith("-") and not NEGATIVE_INT_RE.match(token)


def _drop_truncated_cooldown(argv: List[str]) -> List[str]:
    # argparse aborts on a -cooldown short of two values; treat it as "no cooldown".
    out: List[str] = []
    i = 0
    while i < len(argv):
        if argv[i] != "-cooldown":
            out.append(argv[i])
            i += 1
            continue
        values = list(itertools.takewhile(lambda t: not _is_option(t), argv[i + 1:i + 3]))
        if len(values) < 2:
            logger.warning("[warn] missing values for -cooldown; ignoring cooldown")
        else:
            out.append("-cooldown")
            out.extend(values)
        i += 1 + len(values)
    return out


def parse_args(argv: Sequence[str]) -> Tuple[Settings, List[WorkRequest], bool]:
    """Returns (settings, requests, show_help). Bad values warn and fall back."""
    argv = list(argv)
    if "-help" in argv:
        return Settings(), [], True

    args, unknown = build_parser().parse_known_intermixed_args(_drop_truncated_cooldown(argv))
    settings = Settings(out_dir=Path(args.out), fetch_cover=not args.noCover, verbose=args.verbose)

    if args.waitTime is not None or "-waitTime" in argv:
        v = _int_or_none(args.waitTime)
        if v is not None and v > 0:
            settings.wait_time_ms = v
        else:
            logger.warning("[warn] invalid or missing value for -waitTime; using default")

    if args.bookWait is not None or "-bookWait" in argv:
        v = _int_or_none(args.bookWait)
        if v is not None and v >= 0:
            settings.book_wait_ms = v
        else:
            logger.warning("[warn] invalid or missing value for -bookWait; using default")

    if args.cooldown:
        n, m = (_int_or_none(x) for x in args.cooldown)
        if n is not None and n > 0 and m is not None and m >= 0:
            settings.cooldown_every, settings.cooldown_minutes = n, m
        else:
            logger.warning("[warn] invalid values for -cooldown; ignoring cooldown")

    if args.challengeCycles is not None or "-challengeCycles" in argv:
        v = _int_or_none(args.challengeCycles)
        if v is not None and v > 0:
            settings.max_challenge_cycles = v
        else:
            logger.warning("[warn] invalid value for -challengeCycles; captchas will be retried forever")

    for token in unknown:
        logger.warning(f"[warn] unknown option {token!r} ignored")

    requests: List[WorkRequest] = []
    for token in args.works:
        req = WorkRequest.parse(token)
        if req is None:
            logger.error(f"[warn] invalid book ID or URL: {token}")
        else:
            requests.append(req)
    return settings, requests, False


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )


async def scrape(settings: Settings, requests: Sequence[WorkRequest]):
    from joara_scrap.orchestrator import WorkOrchestrator
    from joara_scrap.session import SessionFactory

    async with SessionFactory() as sessions:
        return await WorkOrchestrator.build(sessions, settings).run(requests)


def run(argv: Optional[Sequence[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    settings, requests, show_help = parse_args(argv)
    setup_logging(settings.verbose)
    if show_help:
        build_parser().print_help()
        return 0
    if not requests:
        logger.error("[error] no valid book IDs or URLs provided")
        build_parser().print_help()
        return 1

    try:
        outcomes = asyncio.run(scrape(settings, requests))
    except Exception:
        logger.exception("[error] unexpected failure")
        return 1

    for o in outcomes:
        if o.ok:
            logger.info(f"[done] {o.work_id}: {o.fetched} chapters, {o.skipped} skipped -> {', '.join(map(str, o.paths))}")
        else:
            logger.info(f"[done] {o.work_id}: failed ({o.error})")
    return 0


if __name__ == "__main__":
    sys.exit(run())
