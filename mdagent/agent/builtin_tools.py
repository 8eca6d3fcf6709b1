"""
Built-in tools available to markdown agents by name.

- load_file  - read a UTF-8 file below the agent directory
- fetch_urls - fetch web pages and reduce HTML to readable text (aiohttp + BeautifulSoup)
- fetch_rss  - fetch RSS/Atom feeds and list their items as markdown

Each entry in ``BUILTIN_TOOLS`` is a factory taking a :class:`ToolContext`.
"""

from __future__ import annotations

import asyncio
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import date, datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import aiohttp
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from mdagent.llm_native.tools import ToolSpec, callable_to_toolspec
from mdagent.utils.logger import get_logger

logger = get_logger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

NON_CONTENT_TAGS = (
    "style",
    "script",
    "noscript",
    "head",
    "header",
    "footer",
    "aside",
    "nav",
    "link",
    "meta",
    "title",
    "img",
    "picture",
    "svg",
)

SECTION_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class ToolContext:
    """What a tool factory may know about the agent it is loaded for."""

    base_path: Path


ToolFactory = Callable[[ToolContext], ToolSpec]


def _http_timeout() -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=30, connect=10)


# ==================== load_file ====================


class LoadFileArgs(BaseModel):
    path: str = Field(description="File path relative to the agent directory")


def resolve_agent_path(base_path: Path, path: str) -> Path:
    """Resolve ``path`` under ``base_path``; refuse escapes and hidden directories."""
    base = Path(base_path).resolve()
    resolved = (base / path).resolve()
    try:
        relative = resolved.relative_to(base)
    except ValueError:
        raise PermissionError(
            f'Access denied: File path "{path}" is outside the agent directory'
        ) from None

    if any(part.startswith(".") and part != "." for part in relative.parts):
        raise PermissionError(f'Access denied: File path "{path}" contains hidden directories')
    return resolved


def load_file_tool(context: ToolContext) -> ToolSpec:
    async def load_file(args: LoadFileArgs) -> str:
        target = resolve_agent_path(context.base_path, args.path)
        logger.debug("load_file %s", target)
        return await asyncio.to_thread(target.read_text, encoding="utf-8")

    return callable_to_toolspec(
        load_file,
        name="load_file",
        description="Load a file from the file system",
        args_model=LoadFileArgs,
        # Retrying cannot make a missing or forbidden file appear.
        max_retries=0,
    )


# ==================== fetch_urls ====================


class UrlTarget(BaseModel):
    url: str = Field(description="URL to fetch")
    content: Optional[str] = Field(default=None, description="CSS selector for the main content")
    exclude: Optional[List[str]] = Field(
        default=None, description="CSS selectors for content to exclude"
    )


class FetchUrlsArgs(BaseModel):
    urls: List[Union[str, UrlTarget]] = Field(
        description=(
            "The URL(s) to fetch and the CSS selectors for the main content and the content "
            "to exclude"
        )
    )


def html_to_text(
    html: str,
    content_selector: Optional[str] = None,
    exclude: Optional[List[str]] = None,
) -> str:
    soup = BeautifulSoup(html, "html.parser")
    root = soup.body or soup
    if content_selector:
        selected = root.select_one(content_selector)
        if selected is not None:
            root = selected

    for selector in exclude or []:
        for node in root.select(selector):
            node.decompose()
    for node in root.find_all(list(NON_CONTENT_TAGS)):
        node.decompose()

    lines = [line.strip() for line in root.get_text("\n").splitlines()]
    return "\n".join(line for line in lines if line)


async def _fetch_one(session: aiohttp.ClientSession, target: UrlTarget) -> str:
    async with session.get(target.url, headers=BROWSER_HEADERS) as response:
        if response.status != 200:
            raise RuntimeError(f"HTTP {response.status}: {response.reason}")
        body = await response.text()
        content_type = response.headers.get("Content-Type", "")

    if "html" in content_type:
        text = html_to_text(body, target.content, target.exclude)
    else:
        text = body
    return f"**URL: {target.url}**\n{text.strip()}"


async def fetch_urls(
    urls: Union[str, UrlTarget, List[Union[str, UrlTarget]]],
    *,
    session: Optional[aiohttp.ClientSession] = None,
) -> str:
    items = urls if isinstance(urls, list) else [urls]
    targets = [UrlTarget(url=item) if isinstance(item, str) else item for item in items]

    own_session = session is None
    session = session or aiohttp.ClientSession(timeout=_http_timeout())
    results: List[str] = []
    try:
        for target in targets:
            try:
                results.append(await _fetch_one(session, target))
            except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError) as exc:
                logger.warning("fetch_urls failed for %s: %s", target.url, exc)
                results.append(f"Failed to fetch URL {target.url}: {exc}")
    finally:
        if own_session:
            await session.close()

    return SECTION_SEPARATOR.join(results)


def fetch_urls_tool(context: ToolContext) -> ToolSpec:
    async def run(args: FetchUrlsArgs) -> str:
        return await fetch_urls(list(args.urls))

    return callable_to_toolspec(
        run,
        name="fetch_urls",
        description="Fetch one or more URLs and return text content.",
        args_model=FetchUrlsArgs,
    )


# ==================== fetch_rss ====================


class FetchRssArgs(BaseModel):
    urls: Union[str, List[str]] = Field(description="The RSS/Atom URL(s) to fetch")
    date: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}-\d{2}-\d{2}$",
        description="A single date to fetch in YYYY-MM-DD format",
    )


@dataclass
class FeedItem:
    title: str
    link: str
    description: str
    published: Optional[datetime] = None


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _child_text(element: ET.Element, *names: str) -> str:
    """First non-empty child text, trying ``names`` in priority order."""
    for name in names:
        for child in element:
            if _local(child.tag) == name and (child.text or "").strip():
                return child.text.strip()
    return ""


def _child_link(element: ET.Element) -> str:
    for child in element:
        if _local(child.tag) != "link":
            continue
        href = child.get("href")
        if href:
            return href
        if (child.text or "").strip():
            return child.text.strip()
    return ""


def _parse_feed_date(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("unparseable feed date: %s", value)
        return None


def parse_feed(xml_text: str) -> List[FeedItem]:
    root = ET.fromstring(xml_text)
    entries = [el for el in root.iter() if _local(el.tag) in ("item", "entry")]

    items: List[FeedItem] = []
    for index, entry in enumerate(entries, start=1):
        items.append(
            FeedItem(
                title=_child_text(entry, "title") or f"Item {index}",
                link=_child_link(entry),
                description=_child_text(entry, "content", "encoded", "description", "summary")
                or "No description",
                published=_parse_feed_date(_child_text(entry, "pubDate", "published", "updated")),
            )
        )
    return items


def format_feed_items(items: List[FeedItem], on_date: Optional[date] = None) -> str:
    if on_date is not None:
        items = [i for i in items if i.published is not None and i.published.date() == on_date]
    return SECTION_SEPARATOR.join(
        f"## [{item.title}]({item.link})\n{item.description}\n\n" for item in items
    )


async def fetch_rss(
    urls: Union[str, List[str]],
    on_date: Optional[str] = None,
    *,
    session: Optional[aiohttp.ClientSession] = None,
) -> str:
    url_list = [urls] if isinstance(urls, str) else list(urls)
    day = date.fromisoformat(on_date) if on_date else None

    own_session = session is None
    session = session or aiohttp.ClientSession(timeout=_http_timeout())
    results: List[str] = []
    try:
        for url in url_list:
            try:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise RuntimeError(f"HTTP {response.status}: {response.reason}")
                    xml_text = await response.text()
                items = parse_feed(xml_text)
                if not items:
                    raise RuntimeError("No RSS/Atom items found")
            except (aiohttp.ClientError, asyncio.TimeoutError, ET.ParseError, RuntimeError) as exc:
                raise RuntimeError(f"Failed to fetch RSS {url}: {exc}") from exc
            results.append(format_feed_items(items, day))
    finally:
        if own_session:
            await session.close()

    return SECTION_SEPARATOR.join(results)


def fetch_rss_tool(context: ToolContext) -> ToolSpec:
    async def run(args: FetchRssArgs) -> str:
        return await fetch_rss(args.urls, args.date)

    return callable_to_toolspec(
        run,
        name="fetch_rss",
        description="Fetch one or more RSS/Atom feeds and return recent items.",
        args_model=FetchRssArgs,
    )


BUILTIN_TOOLS: Dict[str, ToolFactory] = {
    "load_file": load_file_tool,
    "fetch_urls": fetch_urls_tool,
    "fetch_rss": fetch_rss_tool,
    # camelCase names used by older agent files
    "loadFile": load_file_tool,
    "fetchUrls": fetch_urls_tool,
    "fetchRss": fetch_rss_tool,
}
