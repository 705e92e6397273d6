"""YouTube tutorial search and URL helpers.

Scrapes the public results page instead of using the Data API, so results are
best effort: any failure means "no videos".
"""

import re
from typing import List, Optional
from urllib.parse import quote

import httpx

from ..config import get_settings
from ..log import get_logger
from ..mlops.tracing import tracer, traced_operation
from ..schemas.analysis import RepairAnalysis, VideoResult
from .fetch import fetcher

settings = get_settings()
logger = get_logger("youtube")

MAX_VIDEOS = 5
FALLBACK_VIDEO_URL = "https://www.youtube.com/watch?v=xDMP3i36naA"

ACTION_WORDS = ["fix", "repair", "install", "replace", "remove", "clean", "paint", "caulk", "seal", "patch"]
OBJECT_WORDS = [
    "drywall", "wall", "ceiling", "floor", "tile", "grout", "paint", "caulk", "pipe", "faucet",
    "outlet", "switch", "light", "door", "window", "toilet", "sink", "bathtub", "shower",
]
FILLER_WORDS = {"this", "that", "with", "have", "need", "want", "like", "would", "could", "should"}

_INVALID_TITLE_STARTS = (
    "and ", "but ", "or ", "so ", "then ", "that ", "this ", "the ", "a ",
    "because ", "since ", "when ", "where ", "what ", "why ", "who ",
    "cut a ", "that way", "mistake with",
)
_INVALID_TITLE_ENDS = (
    " and", " but", " or", " so", " that", " this", " the", " a",
    " about", " with", " from", " to", " in", " on", " at",
)
_GOOD_TITLE_RE = re.compile(
    r"how to|tutorial|guide|fix|repair|install|diy|step by step|easy way|best way|complete|full"
    r"|\d+ (steps?|ways?|methods?|tips?)",
    re.IGNORECASE,
)

_WATCH_ID_RE = re.compile(r"/watch\?v=([a-zA-Z0-9_-]{11})")
_VIDEO_JSON_RE = re.compile(
    r'"videoId":"([a-zA-Z0-9_-]{11})"[^{}]*"thumbnail":\s*\{(?:[^{}]|\{[^{}]*\})*\}[^{}]*'
    r'"title":\s*\{\s*"runs":\s*\[\s*\{\s*"text":"([^"]+)"'
)
_VIDEO_URL_RE = re.compile(r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/)|(.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})")
_PLACEHOLDER_ID_RE = re.compile(r"^[a-zA-Z_]+$")


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def generate_search_term(description: str, analysis: Optional[RepairAnalysis] = None) -> str:
    """Keyword search phrase built locally from the description (at most 6 words)."""
    desc = description.lower()
    keywords: List[str] = []

    has_how_to = "how to" in desc or "how do" in desc
    has_diy = "diy" in desc or "do it yourself" in desc
    if not has_how_to and not has_diy:
        keywords.append("how to")

    action = next((word for word in ACTION_WORDS if word in desc), None)
    if action:
        keywords.append(action)

    keywords.extend(word for word in OBJECT_WORDS if word in desc)

    if analysis:
        first_material = analysis.materials[0].name.lower() if analysis.materials else None
        first_tool = analysis.tools[0].name.lower() if analysis.tools else None
        if first_material and first_material not in keywords:
            keywords.append(first_material)
        if first_tool and first_tool not in keywords and len(keywords) < 4:
            keywords.append(first_tool)

    if len(keywords) < 2:
        words = re.sub(r"[^\w\s]", " ", desc).split()
        keywords.extend([w for w in words if len(w) > 3 and w not in FILLER_WORDS][:3])

    return " ".join(keywords[:6]) or description[:50]


def is_valid_video_title(title: str) -> bool:
    """Reject titles that look like sentence fragments scraped out of context."""
    lower = title.lower()
    if lower.startswith(_INVALID_TITLE_STARTS) or lower.endswith(_INVALID_TITLE_ENDS):
        return False
    if len(title.split(" ")) < 3:
        return False
    if _GOOD_TITLE_RE.search(title):
        return True
    return len(title) >= 25 and "..." not in lower


def _clean_title(title: str) -> str:
    return (
        title.replace("\\u0026", "&")
        .replace('\\"', '"')
        .replace("\\\\", "\\")
        .replace("&quot;", '"')
        .replace("&amp;", "&")
        .strip()
    )


def extract_videos(html: str) -> List[VideoResult]:
    """
    Pull up to five distinct videos out of a results page. Titled entries come
    from the embedded JSON; if none qualify, bare watch links are used with a
    generic title.
    """
    if not _WATCH_ID_RE.search(html):
        return []

    results: List[VideoResult] = []
    seen = set()
    for match in _VIDEO_JSON_RE.finditer(html):
        if len(results) >= MAX_VIDEOS:
            break
        video_id, raw_title = match.groups()
        if video_id in seen:
            continue
        seen.add(video_id)
        title = _clean_title(raw_title)
        if len(title) > 15 and is_valid_video_title(title):
            results.append(VideoResult(url=watch_url(video_id), title=title, channel="YouTube"))

    if results:
        return results

    logger.debug("No titled videos in results page, falling back to watch links")
    seen = set()
    for match in _WATCH_ID_RE.finditer(html):
        if len(results) >= MAX_VIDEOS:
            break
        video_id = match.group(1)
        if video_id not in seen:
            seen.add(video_id)
            results.append(VideoResult(url=watch_url(video_id), title="YouTube Tutorial", channel="YouTube"))
    return results


async def search_youtube(query: str) -> List[VideoResult]:
    url = f"https://www.youtube.com/results?search_query={quote(query, safe='')}"
    try:
        html = await fetcher.fetch_text(url, timeout=settings.YOUTUBE_TIMEOUT_SECONDS)
    except httpx.HTTPError as e:
        logger.warning(f"YouTube search request failed for {query!r}: {e}")
        return []
    return extract_videos(html)


@traced_operation("retrieval.youtube", span_type="RETRIEVER")
async def find_tutorial_videos(
    description: str, analysis: Optional[RepairAnalysis] = None
) -> Optional[List[VideoResult]]:
    """
    Find tutorial videos for a repair. Uses the model's search term when it
    gave one. Returns None when nothing was found; never raises.
    """
    try:
        if analysis and analysis.youtube_search_term:
            query = analysis.youtube_search_term
        else:
            query = generate_search_term(description, analysis)
        logger.info(f"Searching YouTube for {query!r}")

        videos = (await search_youtube(query))[:MAX_VIDEOS]
        tracer.trace_video_search(query=query, video_count=len(videos))
        return videos or None
    except Exception as e:
        logger.warning(f"YouTube search failed: {e}")
        return None


def get_video_id(url: str) -> Optional[str]:
    """The 11-character video ID of a watch, embed or short link; None for placeholders."""
    match = _VIDEO_URL_RE.search(url)
    video_id = match.group(2) if match else None
    if not video_id:
        return None

    lower = video_id.lower()
    if any(marker in lower for marker in ("example", "placeholder", "sample", "demo")) or _PLACEHOLDER_ID_RE.match(video_id):
        logger.warning(f"Placeholder YouTube video ID detected: {video_id}")
        return None
    return video_id


def normalize_youtube_url(url: str) -> Optional[str]:
    video_id = get_video_id(url)
    return watch_url(video_id) if video_id else None


def fallback_video_url(description: str = "") -> str:
    # One known-good tutorial serves every repair type
    return FALLBACK_VIDEO_URL
