import logging
import time
from html import escape as hesc
from pathlib import Path
from typing import List, Optional, Sequence

import httpx
from ebooklib import epub
from slugify import slugify

from joara_scrap.config import COVER_TIMEOUT, DEFAULT_UA
from joara_scrap.models import FetchResult, WorkMetadata

logger = logging.getLogger(__name__)

CSS = "body{font-family:serif;line-height:1.6} h1{font-family:sans-serif}"


def artifact_stem(meta: WorkMetadata, stamp_ms: int) -> str:
    return f"joara_{meta.safe_title}_{meta.safe_author}_{stamp_ms}"


def compile_text(results: Sequence[FetchResult]) -> str:
    return "".join(f"\n\n=== {r.unit.title} ===\n\n{r.text}" for r in results)


def text_to_xhtml(title: str, text: str) -> str:
    paras = "".join(f"<p>{hesc(line)}</p>" for line in text.split("\n"))
    return f"<h1>{hesc(title)}</h1>{paras}"


async def fetch_cover_bytes(url: Optional[str]) -> Optional[bytes]:
    if not url:
        return None
    if url.startswith("//"):
        url = "https:" + url
    try:
        async with httpx.AsyncClient(timeout=COVER_TIMEOUT, headers={"User-Agent": DEFAULT_UA},
                                     follow_redirects=True) as client:
            r = await client.get(url)
            r.raise_for_status()
            return r.content
    except httpx.HTTPError as e:
        logger.warning(f"[warn] cover download failed: {e}")
        return None


def write_text(path: Path, results: Sequence[FetchResult]) -> Path:
    path.write_text(compile_text(results), encoding="utf-8")
    return path


def write_epub(path: Path, work_id: str, meta: WorkMetadata, results: Sequence[FetchResult],
               cover_bytes: Optional[bytes] = None) -> Path:
    book = epub.EpubBook()
    book.set_identifier(slugify(f"joara-{work_id}-{meta.title}") or f"joara-{work_id}")
    book.set_title(meta.title or "Untitled")
    book.set_language("ko")
    book.add_author(meta.author)
    if cover_bytes:
        book.set_cover("cover.jpg", cover_bytes)

    spine: List = ["nav"]
    toc = []
    for n, r in enumerate(results, start=1):
        file_name = f"{str(n).zfill(4)}.xhtml"
        chap = epub.EpubHtml(title=r.unit.title, file_name=file_name, lang="ko")
        chap.content = text_to_xhtml(r.unit.title, r.text)
        book.add_item(chap)
        spine.append(chap)
        toc.append(epub.Link(file_name, r.unit.title, f"ch{n}"))

    book.toc = tuple(toc)
    book.spine = spine
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.add_item(epub.EpubItem(uid="style_nav", file_name="style/style.css",
                                media_type="text/css", content=CSS))
    epub.write_epub(str(path), book, {})
    return path


class Emitter:
    """Writes the .txt and .epub for one finished book."""

    def __init__(self, out_dir: Path = Path("."), fetch_cover: bool = True):
        self.out_dir = Path(out_dir)
        self.fetch_cover = fetch_cover

    async def emit(self, work_id: str, meta: WorkMetadata, results: Sequence[FetchResult]) -> List[Path]:
        if not results:
            logger.warning(f"[warn] book {work_id}: no chapters fetched; writing empty artifacts")
        self.out_dir.mkdir(parents=True, exist_ok=True)
        stem = artifact_stem(meta, int(time.time() * 1000))
        written: List[Path] = []

        txt_path = self.out_dir / f"{stem}.txt"
        try:
            written.append(write_text(txt_path, results))
            logger.info(f"[save] text file saved as {txt_path}")
        except OSError as e:
            logger.error(f"[save] writing {txt_path} failed: {e}")

        cover = await fetch_cover_bytes(meta.cover_url) if self.fetch_cover else None
        epub_path = self.out_dir / f"{stem}.epub"
        try:
            written.append(write_epub(epub_path, work_id, meta, results, cover))
            logger.info(f"[save] EPUB saved as {epub_path}")
        except Exception as e:
            logger.error(f"[save] EPUB generation failed: {e}")
        return written
