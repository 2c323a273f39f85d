import re
from typing import Optional

from bs4 import BeautifulSoup, Comment, NavigableString

NOISE_SELECTORS = [
    "script", "style", "noscript", "button",
    ".comment", ".comments", ".comment-list", ".reply", "#comments",
]
BLOCK_TAGS = ["li", "p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote"]
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_SPACE_RUN_RE = re.compile(r"[ \t]+")


def _strip_noise(root) -> None:
    for sel in NOISE_SELECTORS:
        for el in root.select(sel):
            el.decompose()
    for c in root.find_all(string=lambda s: isinstance(s, Comment)):
        c.extract()


def _ends_inline(node) -> bool:
    if node is None:
        return False
    if isinstance(node, NavigableString):
        return bool(node.strip())
    return node.name not in BLOCK_TAGS


def _mark_line_breaks(root) -> None:
    # Source newlines are layout, not text; only <br> and block ends break a line.
    for s in list(root.find_all(string=True)):
        if "\n" not in s:
            continue
        if s.strip():
            s.replace_with(NavigableString(s.replace("\n", " ")))
        else:
            s.extract()
    for br in root.find_all("br"):
        br.replace_with(NavigableString("\n"))
    for el in root.find_all(BLOCK_TAGS):
        if _ends_inline(el.previous_sibling):
            el.insert_before(NavigableString("\n"))
        el.append(NavigableString("\n"))


def html_to_text(html: Optional[str]) -> str:
    """Chapter body HTML -> plain text, the way the page renders it.

    One line per paragraph or list item, ``<br>`` kept as a line break, and
    loose text between blocks kept on its own line.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    _strip_noise(soup)
    _mark_line_breaks(soup)

    lines = [_SPACE_RUN_RE.sub(" ", ln).strip() for ln in soup.get_text().splitlines()]
    text = "\n".join(lines).strip()
    return _BLANK_RUN_RE.sub("\n\n", text)
