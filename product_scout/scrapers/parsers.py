"""HTML parsers for FastMoss list and detail pages.

The list pages render ant-design tables; each parser maps the cell positions of
one page layout onto typed records. Parsers are pure: they take page HTML and
return records, so they are tested without a browser.
"""

import logging
import re
from datetime import date, datetime
from typing import Callable, Iterator, Optional

from pydantic import ValidationError
from selectolax.parser import HTMLParser, Node

from product_scout.schemas.items import (
    DiscoveredProduct,
    DiscoveredShop,
    ProductDetailData,
    ShopDetail,
    ShopInfo,
    ShopSnapshotData,
)
from product_scout.utils.numbers import parse_metric_number, parse_percentage, to_float

logger = logging.getLogger(__name__)

ROW_SELECTOR = "tr.ant-table-row.ant-table-row-level-0"
CELL_SELECTOR = "td.ant-table-cell"
PRODUCT_LINK_SELECTOR = 'a[href*="/e-commerce/detail/"]'
SHOP_LINK_SELECTOR = 'a[href*="/shop-marketing/detail/"]'

PRICE_MARKER = "售价"
SHOP_SALES_MARKER = "店铺销量"
BRAND_MARKER = "品牌"

SOURCE_SALESLIST = "saleslist"
SOURCE_NEW_PRODUCTS = "newProducts"
SOURCE_HOTLIST = "hotlist"
SOURCE_HOTVIDEO = "hotvideo"
SOURCE_SEARCH = "search"
SOURCE_SHOP_DETAIL = "shop-detail"
SOURCE_SHOP_SALESLIST = "shop-saleslist"
SOURCE_SHOP_HOTLIST = "shop-hotlist"

_WHITESPACE = re.compile(r"\s+")
_TRAILING_RATING = re.compile(r"(\d+\.\d+)\s*$")
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_CURRENCY_PREFIX = re.compile(r"^[A-Za-z₱$¥€£฿₫]+")

# Detail-page label patterns, applied to the page's flattened text
_DETAIL_PATTERNS = {
    "rating": re.compile(r"(\d+\.?\d*)\s*/\s*5"),
    "review_count": re.compile(r"评论数[：:]\s*([0-9,.]+[万亿]?)"),
    "hot_index": re.compile(r"([0-9,.]+)\s*商品热度指数"),
    "popularity_index": re.compile(r"([0-9,.]+)\s*人气指数"),
    "creator_count": re.compile(r"([0-9,.]+[万亿]?)\s*带货达人数"),
    "video_count": re.compile(r"([0-9,.]+[万亿]?)\s*视频数量"),
    "live_count": re.compile(r"商品关联直播\s*\(?\s*(\d+)\s*\)?"),
    "listed_at": re.compile(r"预估上架日期[：:]\s*(\d{4}-\d{2}-\d{2})"),
    "stock_status": re.compile(r"库存[：:]\s*\*?([^\s*]+)\*?"),
    "price": re.compile(r"价格[：:]\s*([^\s]+(?:\s*-\s*[0-9.,]+)?)"),
    "price_usd": re.compile(r"\(\s*\$\s*([0-9.,]+)\s*\)"),
    "commission_rate": re.compile(r"佣金率[：:]\s*(\d+\.?\d*%)"),
}


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------

def node_text(node: Optional[Node]) -> str:
    """Whitespace-collapsed text of a node ("" for None)."""
    if node is None:
        return ""
    return _WHITESPACE.sub(" ", node.text(separator=" ", strip=True)).strip()


def iter_table_rows(html: str, min_cells: int) -> Iterator[list[Node]]:
    """Yield the cells of each data row that has at least ``min_cells`` cells."""
    tree = HTMLParser(html)
    for row in tree.css(ROW_SELECTOR):
        cells = row.css(CELL_SELECTOR)
        if len(cells) < min_cells:
            continue
        yield cells


def text_before(text: str, marker: str) -> str:
    return text.split(marker)[0].strip()


def link_id(node: Node, selector: str) -> Optional[str]:
    """Last path segment of the first matching link inside ``node``."""
    link = node.css_first(selector)
    if link is None:
        return None
    href = (link.attributes.get("href") or "").split("?")[0].rstrip("/")
    segment = href.rsplit("/", 1)[-1]
    return segment or None


def parse_price(raw: Optional[str]) -> Optional[float]:
    """First value of a price or price range such as "$11.95 - 35.50"."""
    if not raw or not raw.strip():
        return None
    first = raw.split("-")[0].strip()
    cleaned = _CURRENCY_PREFIX.sub("", first).replace(",", "").strip()
    return to_float(cleaned)


def map_shop_type(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    if BRAND_MARKER in raw:
        return "brand"
    if "本土" in raw:
        return "local"
    if "跨境" in raw:
        return "cross-border"
    return None


def _optional_metric(raw: str) -> Optional[int]:
    return parse_metric_number(raw) if raw.strip() else None


def _local_revenue(raw: str) -> int:
    # "฿120.07万 ($3.45万)" keeps only the local-currency part
    return parse_metric_number(raw.split("(")[0])


def _build(model, log_name: str, **fields):
    try:
        return model(**fields)
    except ValidationError as e:
        logger.warning(f"[fastmoss:{log_name}] Skipping invalid row: {e.error_count()} errors")
        return None


def _product_name_cell(cell: Node) -> tuple[str, Optional[str]]:
    return text_before(node_text(cell), PRICE_MARKER), link_id(cell, PRODUCT_LINK_SELECTOR)


# ---------------------------------------------------------------------------
# Product list pages
# ---------------------------------------------------------------------------

def parse_saleslist(html: str, country: str, scraped_at: date) -> list[DiscoveredProduct]:
    """
    Sales ranking.

    Columns: rank | product | country | shop | category | commission |
    units sold | growth | sales amount | ...
    """
    items = []
    for cells in iter_table_rows(html, 9):
        name, fastmoss_id = _product_name_cell(cells[1])
        if not name:
            continue
        item = _build(
            DiscoveredProduct,
            SOURCE_SALESLIST,
            product_name=name,
            shop_name=text_before(node_text(cells[3]), SHOP_SALES_MARKER) or "unknown",
            country=country,
            category=node_text(cells[4]) or None,
            fastmoss_id=fastmoss_id,
            source=SOURCE_SALESLIST,
            scraped_at=scraped_at,
            rank=_optional_metric(node_text(cells[0])),
            commission_rate=parse_percentage(node_text(cells[5])),
            units_sold=parse_metric_number(node_text(cells[6])),
            growth_rate=parse_percentage(node_text(cells[7])),
            sales_amount=parse_metric_number(node_text(cells[8])),
        )
        if item:
            items.append(item)
    return items


def parse_new_products(html: str, country: str, scraped_at: date) -> list[DiscoveredProduct]:
    """
    New products.

    Columns: rank | product | country | shop | category | commission |
    3-day sales | 3-day revenue | total sales | total revenue | ...
    """
    items = []
    for cells in iter_table_rows(html, 11):
        name, fastmoss_id = _product_name_cell(cells[1])
        if not name:
            continue
        item = _build(
            DiscoveredProduct,
            SOURCE_NEW_PRODUCTS,
            product_name=name,
            shop_name=text_before(node_text(cells[3]), SHOP_SALES_MARKER) or "unknown",
            country=country,
            category=node_text(cells[4]) or None,
            fastmoss_id=fastmoss_id,
            source=SOURCE_NEW_PRODUCTS,
            scraped_at=scraped_at,
            commission_rate=parse_percentage(node_text(cells[5])),
            units_sold=parse_metric_number(node_text(cells[6])),
            sales_amount=parse_metric_number(node_text(cells[7])),
            total_units_sold=parse_metric_number(node_text(cells[8])),
            total_sales_amount=parse_metric_number(node_text(cells[9])),
        )
        if item:
            items.append(item)
    return items


def parse_hotlist(html: str, country: str, scraped_at: date) -> list[DiscoveredProduct]:
    """
    Hot list.

    Columns: rank | product | country | shop | category | commission |
    units sold | sales amount | creators | total creators | ...
    """
    items = []
    for cells in iter_table_rows(html, 11):
        name, fastmoss_id = _product_name_cell(cells[1])
        if not name:
            continue
        item = _build(
            DiscoveredProduct,
            SOURCE_HOTLIST,
            product_name=name,
            shop_name=text_before(node_text(cells[3]), SHOP_SALES_MARKER) or "unknown",
            country=country,
            category=node_text(cells[4]) or None,
            fastmoss_id=fastmoss_id,
            source=SOURCE_HOTLIST,
            scraped_at=scraped_at,
            commission_rate=parse_percentage(node_text(cells[5])),
            units_sold=parse_metric_number(node_text(cells[6])),
            sales_amount=parse_metric_number(node_text(cells[7])),
            creator_count=parse_metric_number(node_text(cells[8])),
        )
        if item:
            items.append(item)
    return items


def parse_hotvideo(html: str, country: str, scraped_at: date) -> list[DiscoveredProduct]:
    """
    Hot videos. The page has no shop column, so products land under "unknown".

    Columns: product | video | total sales | total revenue | views | likes |
    comments | ...
    """
    items = []
    for cells in iter_table_rows(html, 8):
        name, fastmoss_id = _product_name_cell(cells[0])
        if not name:
            continue
        item = _build(
            DiscoveredProduct,
            SOURCE_HOTVIDEO,
            product_name=name,
            country=country,
            fastmoss_id=fastmoss_id,
            source=SOURCE_HOTVIDEO,
            scraped_at=scraped_at,
            total_units_sold=parse_metric_number(node_text(cells[2])),
            total_sales_amount=parse_metric_number(node_text(cells[3])),
            video_views=parse_metric_number(node_text(cells[4])),
            video_likes=parse_metric_number(node_text(cells[5])),
            video_comments=parse_metric_number(node_text(cells[6])),
        )
        if item:
            items.append(item)
    return items


def parse_search(html: str, country: str, scraped_at: date) -> list[DiscoveredProduct]:
    """
    Product search. Column 3 is a trend chart and carries no text.

    Columns: product | shop | creator conversion | trend | 7-day sales |
    7-day revenue | total sales | total revenue | creators | ...
    """
    items = []
    for cells in iter_table_rows(html, 10):
        name, fastmoss_id = _product_name_cell(cells[0])
        if not name:
            continue
        item = _build(
            DiscoveredProduct,
            SOURCE_SEARCH,
            product_name=name,
            shop_name=text_before(node_text(cells[1]), SHOP_SALES_MARKER) or "unknown",
            country=country,
            fastmoss_id=fastmoss_id,
            source=SOURCE_SEARCH,
            scraped_at=scraped_at,
            creator_conversion_rate=parse_percentage(node_text(cells[2])),
            units_sold=parse_metric_number(node_text(cells[4])),
            sales_amount=parse_metric_number(node_text(cells[5])),
            total_units_sold=parse_metric_number(node_text(cells[6])),
            total_sales_amount=parse_metric_number(node_text(cells[7])),
            creator_count=parse_metric_number(node_text(cells[8])),
        )
        if item:
            items.append(item)
    return items


PRODUCT_PARSERS: dict[str, Callable[[str, str, date], list[DiscoveredProduct]]] = {
    SOURCE_SALESLIST: parse_saleslist,
    SOURCE_NEW_PRODUCTS: parse_new_products,
    SOURCE_HOTLIST: parse_hotlist,
    SOURCE_HOTVIDEO: parse_hotvideo,
}


# ---------------------------------------------------------------------------
# Shop pages
# ---------------------------------------------------------------------------

def split_shop_cell(text: str) -> tuple[str, Optional[str], Optional[str], Optional[float]]:
    """
    Split a shop cell such as "品牌 MS.Bra 女装与女士内衣 4.6".

    Returns:
        (shop_name, category, shop_type, rating)
    """
    shop_type = None
    if text.startswith(BRAND_MARKER):
        shop_type = "brand"
        text = text[len(BRAND_MARKER):].strip()

    rating = None
    match = _TRAILING_RATING.search(text)
    if match:
        rating = float(match.group(1))
        text = text[: match.start()].strip()

    name, _, category = text.rpartition(" ")
    if not name:
        return category, None, shop_type, rating
    return name.strip(), category.strip() or None, shop_type, rating


# Column positions of the two shop ranking layouts
_SHOP_LIST_COLUMNS = {
    SOURCE_SHOP_SALESLIST: {"units": 2, "growth": 3, "revenue": 4, "active": 6, "creators": 7},
    SOURCE_SHOP_HOTLIST: {"creators": 2, "units": 3, "growth": 4, "revenue": 5, "active": 7},
}


def parse_shop_list(html: str, country: str, source: str, scraped_at: date) -> list[DiscoveredShop]:
    """Shop sales ranking or shop hot list, selected by ``source``."""
    columns = _SHOP_LIST_COLUMNS[source]
    shops = []
    for cells in iter_table_rows(html, 9):
        name, category, shop_type, rating = split_shop_cell(node_text(cells[1]))
        shop_id = link_id(cells[1], SHOP_LINK_SELECTOR)
        if not name:
            continue
        if not shop_id:
            logger.debug(f"[fastmoss:{source}] Shop '{name}' has no detail link, skipping")
            continue
        shop = _build(
            ShopInfo,
            source,
            fastmoss_shop_id=shop_id,
            shop_name=name,
            country=country,
            category=category,
            shop_type=shop_type,
        )
        snapshot = _build(
            ShopSnapshotData,
            source,
            scraped_at=scraped_at,
            source=source,
            total_sales=parse_metric_number(node_text(cells[columns["units"]])),
            total_revenue=_local_revenue(node_text(cells[columns["revenue"]])),
            active_products=parse_metric_number(node_text(cells[columns["active"]])),
            creator_count=parse_metric_number(node_text(cells[columns["creators"]])),
            rating=rating,
            sales_growth_rate=parse_percentage(node_text(cells[columns["growth"]])),
        )
        if shop and snapshot:
            shops.append(DiscoveredShop(shop=shop, snapshot=snapshot))
    return shops


def _value_after_label(tree: HTMLParser, label: str) -> str:
    """Text following a "label:" pair on the shop detail card."""
    for node in tree.css("span, div, p, dt, td"):
        text = node_text(node)
        if not text.startswith(label) or len(text) > len(label) + 64:
            continue
        value = text[len(label):].lstrip("：:").strip()
        if value:
            return value
        sibling = node.next
        while sibling is not None and not node_text(sibling):
            sibling = sibling.next
        if sibling is not None:
            return node_text(sibling)
    return ""


def parse_shop_detail(html: str, fastmoss_shop_id: str, country: str, scraped_at: date) -> Optional[ShopDetail]:
    """
    Shop detail page: header card plus the shop's product table.

    Product columns: product | category | listed at | commission |
    28-day sales | 28-day revenue
    """
    tree = HTMLParser(html)
    shop_name = node_text(tree.css_first("h1, h2, .shop-name"))
    if not shop_name:
        logger.warning(f"[fastmoss:shop-detail] Empty shop name for {fastmoss_shop_id}")
        return None

    rating_raw = _value_after_label(tree, "店铺综合评分").split("/")[0].strip()
    shop = _build(
        ShopInfo,
        SOURCE_SHOP_DETAIL,
        fastmoss_shop_id=fastmoss_shop_id,
        shop_name=shop_name,
        country=country,
        category=_value_after_label(tree, "分类") or None,
        shop_type=map_shop_type(_value_after_label(tree, "店铺类型")),
    )
    snapshot = _build(
        ShopSnapshotData,
        SOURCE_SHOP_DETAIL,
        scraped_at=scraped_at,
        source=SOURCE_SHOP_DETAIL,
        total_sales=_optional_metric(_value_after_label(tree, "总销量")),
        total_revenue=_optional_metric(_value_after_label(tree, "总销售额")),
        active_products=_optional_metric(_value_after_label(tree, "在售商品数")),
        listed_products=_optional_metric(_value_after_label(tree, "在售商品数")),
        creator_count=_optional_metric(_value_after_label(tree, "带货达人数")),
        rating=to_float(rating_raw),
        positive_rate=parse_percentage(_value_after_label(tree, "好评率")) or None,
        ship_rate_48h=parse_percentage(_value_after_label(tree, "48h内发货率")) or None,
        national_rank=_optional_metric(_value_after_label(tree, "全国排名")),
        category_rank=_optional_metric(_value_after_label(tree, "分类排名")),
    )
    if shop is None or snapshot is None:
        return None

    products = []
    for cells in iter_table_rows(html, 6):
        name, fastmoss_id = _product_name_cell(cells[0])
        if not name:
            continue
        item = _build(
            DiscoveredProduct,
            SOURCE_SHOP_DETAIL,
            product_name=name,
            shop_name=shop_name,
            country=country,
            category=node_text(cells[1]) or None,
            fastmoss_id=fastmoss_id,
            source=SOURCE_SHOP_DETAIL,
            scraped_at=scraped_at,
            commission_rate=parse_percentage(node_text(cells[3])),
            units_sold=parse_metric_number(node_text(cells[4])),
            sales_amount=parse_metric_number(node_text(cells[5])),
        )
        if item:
            products.append(item)

    return ShopDetail(shop=shop, snapshot=snapshot, products=products)


# ---------------------------------------------------------------------------
# Product detail page
# ---------------------------------------------------------------------------

def _voc_points(tree: HTMLParser, kinds: tuple[str, ...]) -> Optional[list[str]]:
    section = tree.css_first('[id*="voc"], [class*="voc"], [class*="VOC"]')
    if section is None:
        return None
    selector = ", ".join(f'[class*="{kind}"] li' for kind in kinds)
    return [text for text in (node_text(li) for li in section.css(selector)) if text]


def parse_product_detail(html: str, fastmoss_id: str, scraped_at: datetime) -> Optional[ProductDetailData]:
    """Extract the detail card of one product; None when the page is unusable."""
    tree = HTMLParser(html)
    body = tree.body
    if body is None:
        return None
    page_text = node_text(body)
    if not page_text:
        return None

    found = {}
    for field_name, pattern in _DETAIL_PATTERNS.items():
        match = pattern.search(page_text)
        found[field_name] = match.group(1).strip() if match else ""

    listed_at = None
    if _ISO_DATE.fullmatch(found["listed_at"]):
        listed_at = datetime.strptime(found["listed_at"], "%Y-%m-%d")

    price = parse_price(found["price"])
    price_usd = to_float(found["price_usd"].replace(",", "")) if found["price_usd"] else None
    if price_usd is None and found["price"].startswith("$"):
        price_usd = price

    similar_section = tree.css_first('[id*="similar"], [class*="similar"]')
    similar_count = None
    if similar_section is not None:
        similar_count = len(similar_section.css('[class*="product"], [class*="card"], [class*="item"]'))

    return _build(
        ProductDetailData,
        "detail",
        fastmoss_id=fastmoss_id,
        hot_index=_optional_metric(found["hot_index"]),
        popularity_index=_optional_metric(found["popularity_index"]),
        price=price,
        price_usd=price_usd,
        commission_rate=parse_percentage(found["commission_rate"]) if found["commission_rate"] else None,
        rating=to_float(found["rating"]),
        review_count=_optional_metric(found["review_count"]),
        listed_at=listed_at,
        stock_status=found["stock_status"] or None,
        creator_count=_optional_metric(found["creator_count"]),
        video_count=_optional_metric(found["video_count"]),
        live_count=_optional_metric(found["live_count"]),
        voc_positive=_voc_points(tree, ("positive", "good")),
        voc_negative=_voc_points(tree, ("negative", "bad")),
        similar_product_count=similar_count,
        scraped_at=scraped_at,
    )
