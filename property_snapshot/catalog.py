# catalog.py
# Read side for the site renderer: snapshot first, live CMS next, built-in listings last.
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .cms_client import CMSClient, CMSError
from .normalizer import normalize_property
from .schemas import Property
from .settings import ExportConfig
from .steps.dedupe import deduplicate, slugify, to_properties
from .utils import read_json, safe_number

log = logging.getLogger(__name__)

MOCK_LISTINGS: List[Dict[str, Any]] = [
    {
        "id": 1,
        "title": "Luxury Villa in Seminyak",
        "description": "A beautiful luxury villa located in the heart of Seminyak. Features include private pool, garden, and modern amenities.",
        "price": 5000000000,
        "location": "Seminyak, Bali",
        "bedrooms": 4,
        "bathrooms": 5,
        "square_footage": 450,
        "property_type": "Villa",
        "featured_image": "/images/property-1.jpg",
        "status": "active",
        "featured": True,
        "created_at": "2023-06-15T08:00:00Z",
        "updated_at": "2023-07-01T10:30:00Z",
        "images": ["/images/property-1.jpg", "/images/property-2.jpg"],
        "amenities": ["Swimming Pool", "Garden", "AC", "Parking", "Security"],
    },
    {
        "id": 2,
        "title": "Modern Apartment in Jakarta",
        "description": "A stylish modern apartment in the business district of Jakarta. Perfect for professionals.",
        "price": 2500000000,
        "location": "Jakarta Selatan",
        "bedrooms": 2,
        "bathrooms": 2,
        "square_footage": 120,
        "property_type": "Apartment",
        "featured_image": "/images/property-2.jpg",
        "status": "active",
        "created_at": "2023-07-10T09:15:00Z",
        "updated_at": "2023-07-20T14:45:00Z",
        "images": ["/images/property-2.jpg", "/images/property-3.jpg"],
        "amenities": ["Gym", "Pool", "Security", "Parking"],
    },
    {
        "id": 3,
        "title": "Spacious Family Home",
        "description": "A spacious family home with a large garden, perfect for families looking for comfort and space.",
        "price": 3500000000,
        "location": "Bandung, West Java",
        "bedrooms": 4,
        "bathrooms": 3,
        "square_footage": 350,
        "property_type": "House",
        "featured_image": "/images/property-3.jpg",
        "status": "active",
        "created_at": "2023-08-05T10:20:00Z",
        "updated_at": "2023-08-15T09:30:00Z",
        "images": ["/images/property-3.jpg", "/images/property-1.jpg"],
        "amenities": ["Garden", "Parking", "Security", "Playground"],
    },
]

CURRENCY_SYMBOLS = {"IDR": "Rp", "USD": "$", "EUR": "€"}

def format_price(value: Any, currency: str = "IDR") -> str:
    """5000000000 -> 'Rp 5.000.000.000'. Empty values -> 'Price on request'."""
    if value is None or value == "" or value is False:
        return "Price on request"
    n = safe_number(value)
    if n is None:
        return str(value)
    amount = f"{round(n):,}"
    if currency == "IDR":
        amount = amount.replace(",", ".")
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    return f"{symbol} {amount}" if len(symbol) > 1 else f"{symbol}{amount}"


@dataclass
class SearchParams:
    keyword: Optional[str] = None
    location: Optional[str] = None
    property_type: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    page: int = 1
    per_page: int = 10


@dataclass
class SearchResults:
    properties: List[Property] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 10
    total_pages: int = 0


def _num(v: Union[int, float, str]) -> float:
    n = safe_number(v)
    return float(n) if n is not None else 0.0

def matches(prop: Property, params: SearchParams) -> bool:
    if params.keyword:
        kw = params.keyword.lower()
        if not any(kw in (s or "").lower() for s in (prop.title, prop.description, prop.location)):
            return False
    if params.location and params.location.lower() not in prop.location.lower():
        return False
    if params.property_type and params.property_type.lower() != prop.property_type.lower():
        return False
    if params.min_price is not None and _num(prop.price) < params.min_price:
        return False
    if params.max_price is not None and _num(prop.price) > params.max_price:
        return False
    if params.bedrooms is not None and _num(prop.bedrooms) < params.bedrooms:
        return False
    if params.bathrooms is not None and _num(prop.bathrooms) < params.bathrooms:
        return False
    return True


class PropertyCatalog:
    """
    Property reads for page rendering.
    - all(): snapshot file; when empty and static export is off, a live CMS fetch;
      when that also yields nothing, the built-in listings.
    - Results are cached per instance.
    """

    def __init__(self, config: ExportConfig, client: Optional[CMSClient] = None):
        self.config = config
        self.client = client
        self.source = ""
        self._cache: Optional[List[Property]] = None

    # ---------- sources ----------
    def _from_snapshot(self) -> List[Property]:
        path = self.config.data_dir / f"{self.config.property_collection}.json"
        docs = read_json(path, [])
        out: List[Property] = []
        for doc in docs if isinstance(docs, list) else []:
            try:
                out.append(normalize_property(doc, self.config.cms_url))
            except ValueError as e:
                log.warning(f"[catalog] bad snapshot record skipped: {e}")
        return out

    def _from_cms(self) -> List[Property]:
        client = self.client or CMSClient(self.config)
        try:
            records = client.fetch_collection(self.config.property_collection)
        except CMSError as e:
            log.warning(f"[catalog] live CMS fetch failed: {e}")
            return []
        results = deduplicate(records, self.config.preserve_cms_slugs)
        return to_properties(results, self.config.cms_url)

    def _from_mock(self) -> List[Property]:
        return [
            normalize_property(rec, self.config.cms_url, slug=slugify(rec["title"]))
            for rec in MOCK_LISTINGS
        ]

    def all(self) -> List[Property]:
        if self._cache is not None:
            return self._cache
        props, self.source = self._from_snapshot(), "snapshot"
        if not props and not self.config.static_export:
            props, self.source = self._from_cms(), "cms"
        if not props:
            log.info("[catalog] no snapshot or CMS data; using built-in listings")
            props, self.source = self._from_mock(), "mock"
        log.info(f"[catalog] {len(props)} properties from {self.source}")
        self._cache = props
        return props

    # ---------- lookups ----------
    def by_slug(self, slug: str) -> Optional[Property]:
        return next((p for p in self.all() if p.slug == slug), None)

    def by_id(self, property_id: Union[int, str]) -> Optional[Property]:
        pid = safe_number(property_id)
        return next((p for p in self.all() if p.id == pid), None)

    def featured(self, limit: int = 3) -> List[Property]:
        props = self.all()
        picked = [p for p in props if p.featured] or props
        return picked[:limit]

    def related(self, property_id: int, limit: int = 3) -> List[Property]:
        """Same type or same location first, never the property itself."""
        base = self.by_id(property_id)
        if base is None:
            return []
        others = [p for p in self.all() if p.id != base.id]
        same = [p for p in others if p.property_type == base.property_type or p.location == base.location]
        rest = [p for p in others if p not in same]
        return (same + rest)[:limit]

    def search(self, params: Optional[SearchParams] = None) -> SearchResults:
        params = params or SearchParams()
        hits = [p for p in self.all() if matches(p, params)]
        per_page = max(1, params.per_page)
        page = max(1, params.page)
        start = (page - 1) * per_page
        return SearchResults(
            properties=hits[start:start + per_page],
            total=len(hits),
            page=page,
            per_page=per_page,
            total_pages=math.ceil(len(hits) / per_page),
        )
