# normalizer.py
# Map CMS records of any shape (Title/title, nested attributes, v4 media relations)
# onto the canonical Property model.
#
# Every canonical field has an ordered tuple of accessors; each accessor reads one
# source shape. The first accessor that yields a present value wins, otherwise the
# field default applies. Nothing returns None for scalar fields.

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .cms_client import flatten_item
from .schemas import DEFAULT_TITLE, Amenity, ImageRef, Property
from .utils import safe_number

log = logging.getLogger(__name__)

Accessor = Callable[[Dict[str, Any]], Any]

FORMAT_NAMES = ("large", "medium", "small", "thumbnail")
NAME_KEYS = ("name", "Name", "title", "Title")

# ========================= accessors =========================

def key(name: str) -> Accessor:
    """Accessor reading one top-level key."""
    def _get(rec: Dict[str, Any]) -> Any:
        return rec.get(name)
    _get.__name__ = f"key[{name}]"
    return _get

def present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True

def resolve(rec: Dict[str, Any], chain: Tuple[Accessor, ...], default: Any = None) -> Any:
    for accessor in chain:
        value = accessor(rec)
        if present(value):
            return value
    return default

FIELD_CHAINS: Dict[str, Tuple[Accessor, ...]] = {
    "title": (key("Title"), key("title"), key("Name"), key("name")),
    "slug": (key("Slug"), key("slug")),
    "description": (key("Description"), key("description")),
    "price": (key("Price"), key("price")),
    "location": (key("Location"), key("location")),
    "property_type": (key("PropertyType"), key("property_type"), key("propertyType"), key("type")),
    "bedrooms": (key("Bedrooms"), key("bedrooms")),
    "bathrooms": (key("Bathrooms"), key("bathrooms")),
    "area": (key("Area"), key("area"), key("square_footage")),
    "status": (key("Status"), key("status")),
    "featured": (key("IsFeatured"), key("isFeatured"), key("Featured"), key("featured")),
    "created_at": (key("createdAt"), key("created_at")),
    "updated_at": (key("updatedAt"), key("updated_at")),
    "published_at": (key("publishedAt"), key("published_at")),
    "document_id": (key("documentId"), key("document_id")),
    "amenities": (key("Amenities"), key("amenities")),
}

FIELD_DEFAULTS: Dict[str, Any] = {
    "title": DEFAULT_TITLE,
    "slug": "",
    "description": "",
    "price": 0,
    "location": "",
    "property_type": "Property",
    "bedrooms": 0,
    "bathrooms": 0,
    "area": 0,
    "status": "published",
    "featured": False,
    "created_at": "",
    "updated_at": "",
    "published_at": "",
    "document_id": "",
    "amenities": [],
}

# ========================= scalar coercion =========================

def as_text(value: Any) -> str:
    # rich-text blocks: [{type: paragraph, children: [{text}]}]
    if isinstance(value, list):
        parts = []
        for block in value:
            if isinstance(block, dict):
                parts.append("".join(str(c.get("text", "")) for c in block.get("children") or [] if isinstance(c, dict)))
            elif block is not None:
                parts.append(str(block))
        return "\n\n".join(p for p in parts if p)
    return str(value).strip()

def _number(value: Any, default: Any = 0) -> Any:
    n = safe_number(value)
    if n is None or n < 0:
        return default
    return n

def _area(value: Any) -> Any:
    n = safe_number(value)
    if n is not None:
        return n
    return as_text(value) or 0

def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)

COERCE: Dict[str, Callable[[Any], Any]] = {
    "title": as_text,
    "slug": as_text,
    "description": as_text,
    "price": _number,
    "location": as_text,
    "property_type": as_text,
    "bedrooms": _number,
    "bathrooms": _number,
    "area": _area,
    "status": as_text,
    "featured": _flag,
    "created_at": str,
    "updated_at": str,
    "published_at": str,
    "document_id": str,
}

def resolve_field(rec: Dict[str, Any], field: str) -> Any:
    default = FIELD_DEFAULTS[field]
    value = resolve(rec, FIELD_CHAINS[field])
    if value is None:
        return default
    coerced = COERCE.get(field, lambda v: v)(value)
    return coerced if present(coerced) else default

# ========================= media =========================

LOCAL_PREFIXES = ("/property-images/", "/placeholder", "/images/")

def absolutize(url: str, cms_url: str) -> str:
    if url.startswith(LOCAL_PREFIXES):
        return url
    return f"{cms_url}{url}" if url.startswith("/") else url

def media_items(value: Any) -> List[Any]:
    """Flatten any media shape to a list of dicts/URL strings."""
    if not present(value):
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if present(v)]
    if isinstance(value, dict):
        if "data" in value:
            data = value["data"]
            if isinstance(data, list):
                return [flatten_item(d) for d in data if isinstance(d, dict)]
            if isinstance(data, dict):
                return [flatten_item(data)]
            return []
        if value.get("url"):
            return [value]
    return []

def to_image_ref(item: Any, cms_url: str, alt: str) -> Optional[ImageRef]:
    if isinstance(item, str):
        return ImageRef(url=absolutize(item, cms_url), alternative_text=alt)
    if not isinstance(item, dict):
        return None
    item = flatten_item(item)
    raw_formats = item.get("formats") if isinstance(item.get("formats"), dict) else {}
    formats: Dict[str, str] = {}
    for name in FORMAT_NAMES:
        fmt = raw_formats.get(name)
        if isinstance(fmt, dict):
            fmt = fmt.get("url")
        if isinstance(fmt, str) and fmt:
            formats[name] = absolutize(fmt, cms_url)
    url = item.get("url")
    if not url:
        # no original: promote the best format
        url = formats.get("large") or formats.get("medium") or formats.get("thumbnail")
        if not url:
            return None
    return ImageRef(
        url=absolutize(url, cms_url),
        alternative_text=item.get("alternativeText") or item.get("alternative_text") or alt,
        width=int(safe_number(item.get("width")) or 800),
        height=int(safe_number(item.get("height")) or 600),
        formats=formats,
    )

def _main_image(rec):
    items = media_items(rec.get("MainImage"))
    return items[0] if items else None

def _first_gallery_image(rec):
    items = media_items(rec.get("Image"))
    return items[0] if items else None

def _legacy_images_first(rec):
    images = rec.get("images")
    if isinstance(images, dict):
        items = media_items(images)
        return items[0] if items else None
    return None

def _featured_image(rec):
    items = media_items(rec.get("featured_image") or rec.get("featuredImage") or rec.get("main_image"))
    return items[0] if items else None

MAIN_IMAGE_CHAIN: Tuple[Accessor, ...] = (_main_image, _first_gallery_image, _legacy_images_first, _featured_image)

def _image_list(rec):
    return media_items(rec.get("Image"))

def _images_list(rec):
    images = rec.get("images")
    return media_items(images) if isinstance(images, list) else None

def _legacy_images_data(rec):
    images = rec.get("images")
    return media_items(images) if isinstance(images, dict) else None

GALLERY_CHAIN: Tuple[Accessor, ...] = (_image_list, _images_list, _legacy_images_data)

def resolve_images(rec: Dict[str, Any], cms_url: str, alt: str) -> Tuple[Optional[ImageRef], List[ImageRef]]:
    main_item = resolve(rec, MAIN_IMAGE_CHAIN)
    main = to_image_ref(main_item, cms_url, alt) if main_item is not None else None
    gallery = [ref for ref in (to_image_ref(i, cms_url, alt) for i in resolve(rec, GALLERY_CHAIN, [])) if ref]
    return main, gallery

# ========================= amenities =========================

def _amenity_name(item: Dict[str, Any]) -> Optional[str]:
    for k in NAME_KEYS:
        if present(item.get(k)):
            return str(item[k]).strip()
    return None

def normalize_amenities(value: Any) -> List[Amenity]:
    if isinstance(value, dict) and isinstance(value.get("data"), list):
        value = [flatten_item(d) for d in value["data"]]
    if not isinstance(value, list) or not value:
        if present(value):
            log.debug(f"[normalize] unsupported amenities shape: {type(value).__name__}")
        return []
    out: List[Amenity] = []
    if isinstance(value[0], dict) and (_amenity_name(flatten_item(value[0])) is not None):
        for item in value:
            if not isinstance(item, dict):
                continue
            item = flatten_item(item)
            name = _amenity_name(item)
            if name:
                desc = item.get("description") or item.get("Description") or ""
                out.append(Amenity(name=name, description=as_text(desc)))
        return out
    for item in value:
        if isinstance(item, (str, int, float)) and str(item).strip():
            out.append(Amenity(name=str(item).strip()))
    return out

# ========================= entry point =========================

def record_id(raw: Dict[str, Any]) -> Optional[int]:
    value = raw.get("id") if isinstance(raw, dict) else None
    if isinstance(value, bool):
        return None
    n = safe_number(value)
    if n is None or int(n) != n:
        return None
    return int(n)

def normalize_property(raw: Dict[str, Any], cms_url: str, slug: Optional[str] = None) -> Property:
    """Raw CMS/snapshot record -> Property. Raises ValueError when there is no numeric id."""
    rec = flatten_item(raw)
    pid = record_id(rec)
    if pid is None:
        raise ValueError(f"record has no numeric id: {str(raw)[:120]}")

    fields = {f: resolve_field(rec, f) for f in FIELD_CHAINS if f != "amenities"}
    fields["amenities"] = normalize_amenities(resolve(rec, FIELD_CHAINS["amenities"], []))
    main, gallery = resolve_images(rec, cms_url, fields["title"])
    if slug is not None:
        fields["slug"] = slug
    return Property(id=pid, main_image=main, images=gallery, **fields)
