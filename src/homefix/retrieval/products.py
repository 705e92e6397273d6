"""Product lookup for materials and tools.

Scrapes retailer search pages (Home Depot, then Lowe's), then a generic image
search, then a static table. Every strategy is best effort: failures are
logged and the next strategy runs.
"""

import asyncio
import re
from typing import List, Optional, Pattern, Tuple, Union
from urllib.parse import quote, unquote

import httpx

from ..config import load_data_table
from ..log import get_logger
from ..mlops.tracing import tracer, traced_operation
from ..schemas.analysis import Material, ProductInfo, ProductResult, RepairAnalysis, Tool
from .fetch import fetcher
from .relevance import enhance_search_query, image_search_suffix, is_irrelevant_image, is_product_relevant

logger = get_logger("products")

HOME_DEPOT = "Home Depot"
LOWES = "Lowe's"

# (pattern, names of the capture groups in order)
RetailerPattern = Tuple[Pattern[str], Tuple[str, ...]]

_HOME_DEPOT_PATTERNS: List[RetailerPattern] = [
    (re.compile(r'<div[^>]*data-testid="product-pod"[^>]*>[\s\S]*?href="([^"]*)"[\s\S]*?<img[^>]*src="([^"]+)"[^>]*alt="([^"]*)"[\s\S]*?>\$([0-9,]+\.?[0-9]*)'),
     ("product_url", "image_url", "name", "price")),
    (re.compile(r'<a[^>]*href="([^"]*/p/[^"]*)"[^>]*>[\s\S]*?<img[^>]*src="([^"]+)"[^>]*alt="([^"]*)"'),
     ("product_url", "image_url", "name")),
    (re.compile(r'<img[^>]*src="([^"]*(?:images\.homedepot-static\.com|hdstatic\.net)[^"]*)"[^>]*alt="([^"]*)"[\s\S]{0,2000}?\$([0-9,.]+)'),
     ("image_url", "name", "price")),
    (re.compile(r'<img[^>]*src="([^"]*images\.homedepot-static\.com[^"]*)"[^>]*alt="([^"]*)"[^>]*>'),
     ("image_url", "name")),
    (re.compile(r'<img[^>]*src="([^"]*(?:homedepot|hdstatic)[^"]*)"[^>]*alt="([^"]*)"[^>]*', re.IGNORECASE),
     ("image_url", "name")),
]

_LOWES_PATTERNS: List[RetailerPattern] = [
    (re.compile(r'<div[^>]*class="[^"]*productTile[^"]*"[^>]*>[\s\S]*?<img[^>]*src="([^"]+)"[^>]*alt="([^"]*)"[\s\S]*?<a[^>]*href="([^"]*)"[\s\S]*?\$([0-9,.]+)'),
     ("image_url", "name", "product_url", "price")),
    (re.compile(r'<a[^>]*href="([^"]*/pd/[^"]*)"[^>]*>[\s\S]*?<img[^>]*src="([^"]+)"[^>]*alt="([^"]*)"[\s\S]*?\$([0-9,.]+)'),
     ("product_url", "image_url", "name", "price")),
    (re.compile(r'<img[^>]*src="([^"]*mobileimages\.lowes\.com[^"]*)"[^>]*alt="([^"]*)"[^>]*>'),
     ("image_url", "name")),
]

# Price patterns tried near a product name, most specific first
_NEARBY_PRICE_PATTERNS = [
    re.compile(r'data-testid="sticky-nav__price-value--([0-9]+\.?[0-9]*)"'),
    re.compile(r'\$([0-9]+\.?[0-9]*)'),
    re.compile(r'<span[^>]*>\$([0-9]+\.?[0-9]*)</span>'),
    re.compile(r'<div[^>]*>\$([0-9]+\.?[0-9]*)</div>'),
    re.compile(r'data-price[^>]*="[^"]*\$([0-9]+\.?[0-9]*)"'),
    re.compile(r'price[^>]*>[^$]*\$([0-9]+\.?[0-9]*)', re.IGNORECASE),
    re.compile(r'"currentPrice"[^>]*>[^$]*\$([0-9]+\.?[0-9]*)'),
    re.compile(r'"price"[^>]*>[^$]*\$([0-9]+\.?[0-9]*)'),
    re.compile(r'[\s>]\$([0-9]{1,4}\.?[0-9]{0,2})[\s<]'),
    re.compile(r'product[^>]*>[^$]*\$([0-9]+\.?[0-9]*)', re.IGNORECASE),
]
# Around the product URL only the first six are worth trying
_URL_AREA_PRICE_PATTERNS = _NEARBY_PRICE_PATTERNS[:6]

_IMAGE_SEARCH_PATTERNS = [
    re.compile(r'"murl":"([^"]+)"'),
    re.compile(r'"imgurl":"([^"]+)"'),
    re.compile(r'mediaurl=([^&]+)'),
    re.compile(r'imgurl=([^&]+)'),
    re.compile(r'src="([^"]*\.(?:jpg|jpeg|png|webp)[^"]*)">', re.IGNORECASE),
]
_IMAGE_EXTENSIONS = (".jpg", ".png", ".jpeg", ".webp")


def home_depot_search_url(query: str) -> str:
    return f"https://www.homedepot.com/s/{quote(query, safe='')}?NCNI-5"


def lowes_search_url(query: str) -> str:
    return f"https://www.lowes.com/search?searchTerm={quote(query, safe='')}"


def image_search_url(search_query: str) -> str:
    return (
        f"https://www.bing.com/images/search?q={quote(search_query, safe='')}"
        "&form=HDRSC2&first=1&cw=1177&ch=745"
    )


def _first_price(text: str, patterns: List[Pattern[str]]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1)
    return None


def find_nearby_price(html: str, product_name: str, product_url: Optional[str]) -> Optional[str]:
    """
    Look for a price within 1000 characters of the product name, then within
    2000 characters of the product URL.
    """
    name_index = html.find(product_name)
    if name_index == -1:
        return None

    area = html[max(0, name_index - 1000): name_index + 1000]
    price = _first_price(area, _NEARBY_PRICE_PATTERNS)
    if price or not product_url:
        return price

    url_index = html.find(product_url)
    if url_index == -1:
        return None
    return _first_price(html[max(0, url_index - 2000): url_index + 2000], _URL_AREA_PRICE_PATTERNS)


def parse_retailer_html(
    html: str,
    query: str,
    search_url: str,
    patterns: List[RetailerPattern],
    base_url: str,
    store: str,
    scan_nearby_price: bool = False,
) -> Optional[ProductResult]:
    """
    Try each pattern in order against the page; the first match whose product
    name passes the relevance check wins.
    """
    for index, (pattern, fields) in enumerate(patterns):
        match = pattern.search(html)
        if not match:
            continue

        found = dict(zip(fields, match.groups()))
        image_url = found.get("image_url")
        name = found.get("name")
        product_url = found.get("product_url") or search_url
        price = found.get("price")

        if image_url and image_url.startswith("//"):
            image_url = "https:" + image_url
        if not (image_url and image_url.startswith("http") and name):
            continue

        if not is_product_relevant(query, name):
            logger.debug(f"Skipping irrelevant {store} product {name!r} for {query!r} (pattern {index})")
            continue

        if not price and scan_nearby_price:
            price = find_nearby_price(html, name, product_url)

        logger.info(f"Found {store} product {name.strip()!r} (pattern {index})")
        return ProductResult(
            name=name.strip(),
            image_url=image_url,
            product_url=product_url if product_url.startswith("http") else f"{base_url}{product_url}",
            price=f"${price}" if price else "Price not available",
            store=store,
        )
    return None


async def search_home_depot(query: str) -> Optional[ProductResult]:
    search_url = home_depot_search_url(query)
    try:
        html = await fetcher.fetch_text(search_url)
    except httpx.HTTPError as e:
        logger.warning(f"Home Depot search failed for {query!r}: {e}")
        return None
    return parse_retailer_html(
        html, query, search_url, _HOME_DEPOT_PATTERNS,
        base_url="https://www.homedepot.com", store=HOME_DEPOT, scan_nearby_price=True,
    )


async def search_lowes(query: str) -> Optional[ProductResult]:
    search_url = lowes_search_url(query)
    try:
        html = await fetcher.fetch_text(search_url)
    except httpx.HTTPError as e:
        logger.warning(f"Lowe's search failed for {query!r}: {e}")
        return None
    return parse_retailer_html(
        html, query, search_url, _LOWES_PATTERNS,
        base_url="https://www.lowes.com", store=LOWES,
    )


def parse_image_search_html(html: str, query: str) -> Optional[str]:
    """First plausible product image URL among the first three hits of each pattern."""
    for pattern in _IMAGE_SEARCH_PATTERNS:
        for match in list(pattern.finditer(html))[:3]:
            image_url = match.group(1)
            if "%" in image_url:
                image_url = unquote(image_url)
            if not image_url.startswith("http"):
                continue
            if not any(ext in image_url for ext in _IMAGE_EXTENSIONS):
                continue
            if is_irrelevant_image(image_url, query):
                continue
            return image_url
    return None


async def search_product_image(query: str) -> Optional[str]:
    search_query = f'"{query}" {image_search_suffix(query)}'
    try:
        html = await fetcher.fetch_text(image_search_url(search_query))
    except httpx.HTTPError as e:
        logger.warning(f"Image search failed for {query!r}: {e}")
        return None
    return parse_image_search_html(html, query)


def lookup_static_image(item_name: str) -> Optional[str]:
    """Exact key first, then a substring match in either direction, in table order."""
    images = load_data_table("static_images").get("images", {})
    name = item_name.lower()
    if name in images:
        return images[name]
    for key, image_url in images.items():
        if key in name or name in key:
            return image_url
    return None


async def find_product_info(item_name: str) -> ProductInfo:
    """
    Find an image (and where possible a product page) for one material or tool.
    Never raises; image_url is None when every strategy comes up empty.
    """
    query = enhance_search_query(item_name)
    logger.debug(f"Product search query for {item_name!r}: {query!r}")

    for search in (search_home_depot, search_lowes):
        product = await search(query)
        if product:
            return ProductInfo(
                image_url=product.image_url,
                product_url=product.product_url,
                store_name=product.store,
            )

    image_url = await search_product_image(item_name)
    if image_url:
        return ProductInfo(image_url=image_url)

    image_url = lookup_static_image(item_name)
    if not image_url:
        logger.info(f"No image found for {item_name!r}")
    return ProductInfo(image_url=image_url)


async def _enrich(item: Union[Material, Tool]) -> bool:
    try:
        info = await find_product_info(item.name)
    except Exception as e:
        logger.warning(f"Product lookup failed for {item.name!r}: {e}")
        info = ProductInfo()

    item.image_url = info.image_url
    if info.product_url:
        item.product_url = info.product_url
    if info.store_name:
        item.store_name = info.store_name
    return info.image_url is not None


@traced_operation("retrieval.products", span_type="RETRIEVER")
async def add_product_images(analysis: RepairAnalysis) -> RepairAnalysis:
    """Look up every material and tool concurrently and attach what was found, in place."""
    items: List[Union[Material, Tool]] = [*analysis.materials, *analysis.tools]
    found = await asyncio.gather(*(_enrich(item) for item in items))
    tracer.trace_enrichment(item_count=len(items), found_count=sum(found))
    return analysis
