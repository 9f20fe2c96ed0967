# steps/dedupe.py
# Consolidate candidate records per numeric id and assign slugs.
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..cms_client import flatten_item, unwrap_list
from ..normalizer import FIELD_CHAINS, FIELD_DEFAULTS, as_text, normalize_property, record_id, resolve
from ..schemas import DEFAULT_TITLE, Property
from ..utils import read_json

log = logging.getLogger(__name__)

# -------- slugs --------

_WS_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\-]+", re.ASCII)
_DASHES_RE = re.compile(r"\-\-+")
_DIGIT_DASH_LETTER_RE = re.compile(r"(\d+)-([a-z])")

def slugify(text: Any) -> str:
    """'3BR Villa in Seminyak' -> '3br-villa-in-seminyak'."""
    if text is None:
        return ""
    slug = str(text).lower().strip()
    slug = _WS_RE.sub("-", slug)
    slug = slug.replace("&", "-and-")
    slug = _NON_WORD_RE.sub("", slug)
    slug = _DASHES_RE.sub("-", slug)
    slug = slug.strip("-")
    # "3-br" -> "3br"
    return _DIGIT_DASH_LETTER_RE.sub(r"\1\2", slug)

def existing_slug(rec: Dict[str, Any]) -> str:
    value = resolve(flatten_item(rec), FIELD_CHAINS["slug"], "")
    return str(value).strip() if value else ""

def record_title(rec: Dict[str, Any]) -> str:
    value = resolve(flatten_item(rec), FIELD_CHAINS["title"])
    title = as_text(value) if value is not None else ""
    # a previous snapshot carries the normalizer default, not a real title
    return "" if title == DEFAULT_TITLE else title

def is_generic_slug(slug: str, pid: Any) -> bool:
    return slug == "property" or slug == f"property-{pid}"

def should_update_slug(record: Dict[str, Any]) -> bool:
    """True when the CMS slug is missing, generic, malformed or clearly unrelated to the title."""
    slug = existing_slug(record)
    if not slug:
        return True
    if is_generic_slug(slug, record.get("id")):
        return True
    if _DIGIT_DASH_LETTER_RE.search(slug):
        return True
    title = record_title(record)
    if title:
        expected = slugify(title)
        if slug != expected:
            log.debug(f"[slug] mismatch id={record.get('id')} slug={slug!r} expected={expected!r}")
            if len(slug) < 5 or expected[:3] not in slug:
                return True
    return False

def slug_for(record: Dict[str, Any], pid: int, preserve_cms_slugs: bool = False) -> str:
    if preserve_cms_slugs:
        existing = existing_slug(record)
        if (
            existing
            and slugify(existing) == existing
            and not is_generic_slug(existing, pid)
            and not _DIGIT_DASH_LETTER_RE.search(existing)
        ):
            return existing
    return slugify(record_title(record)) or f"property-{pid}"

# -------- completeness --------

def _first(rec: Dict[str, Any], *names: str) -> Any:
    for n in names:
        if rec.get(n):
            return rec[n]
    return None

def _non_empty_list(value: Any) -> bool:
    # v4 relations wrap the list: {"data": [...]}
    if isinstance(value, dict):
        value = value.get("data")
    return isinstance(value, list) and len(value) > 0

def _score_flat(rec: Dict[str, Any], nested: bool = False) -> int:
    score = 0
    for name, weight in (("title", 1), ("description", 1), ("location", 1),
                         ("bedrooms", 2), ("bathrooms", 2), ("area", 1)):
        value = _first(rec, name.capitalize(), name)
        if value and value != FIELD_DEFAULTS.get(name):
            score += weight
    if _non_empty_list(rec.get("Amenities")) or _non_empty_list(rec.get("amenities")):
        score += 3
    has_images = _non_empty_list(rec.get("Image")) or _non_empty_list(rec.get("images"))
    if nested and not has_images:
        has_images = bool(rec.get("featuredImage") or rec.get("main_image"))
    if has_images:
        score += 2
    return score

def completeness_score(record: Dict[str, Any]) -> int:
    """
    Weighted count of populated fields:
      title/description/location/area +1, bedrooms/bathrooms +2,
      non-empty amenities +3, non-empty images +2.
    A nested `attributes` object is scored the same way and added.
    """
    if not isinstance(record, dict):
        return 0
    score = _score_flat(record)
    attrs = record.get("attributes")
    if isinstance(attrs, dict):
        score += _score_flat(attrs, nested=True)
    return score

# -------- consolidation --------

@dataclass
class DedupResult:
    record: Dict[str, Any]
    slug: str
    score: int
    sources: int = 1

def deduplicate(records: Iterable[Dict[str, Any]], preserve_cms_slugs: bool = False) -> Dict[int, DedupResult]:
    """
    Group candidates by numeric id; a strictly higher score replaces the current
    winner, so ties keep the first seen. Output preserves first-seen id order.
    """
    out: Dict[int, DedupResult] = {}
    skipped = 0
    for rec in records:
        pid = record_id(rec) if isinstance(rec, dict) else None
        if pid is None:
            skipped += 1
            log.warning(f"[dedupe] skipping record without numeric id: {str(rec)[:80]}")
            continue
        score = completeness_score(rec)
        cur = out.get(pid)
        if cur is None:
            out[pid] = DedupResult(record=rec, slug="", score=score)
            continue
        cur.sources += 1
        if score > cur.score:
            log.debug(f"[dedupe] id={pid} replaced (score {cur.score} -> {score})")
            cur.record, cur.score = rec, score

    seen_slugs: Dict[str, int] = {}
    for pid, res in out.items():
        res.slug = slug_for(res.record, pid, preserve_cms_slugs)
        if res.slug in seen_slugs:
            log.warning(f"[dedupe] slug {res.slug!r} shared by ids {seen_slugs[res.slug]} and {pid}")
        else:
            seen_slugs[res.slug] = pid
    log.info(f"[dedupe] {len(out)} unique ids (skipped={skipped})")
    return out

def to_properties(results: Dict[int, DedupResult], cms_url: str) -> List[Property]:
    return [normalize_property(r.record, cms_url, slug=r.slug) for r in results.values()]

# -------- previous snapshot as candidates --------

def _as_list(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict) and "id" in payload:
        return [payload]
    data, _ = unwrap_list(payload)
    return [d for d in data if isinstance(d, dict)]

def load_local_candidates(data_dir: Path, collection: str, index_name: str = "property-index.json") -> List[Dict[str, Any]]:
    """
    Records from the previous snapshot, in this order:
      <collection>.json, property-index.json, <collection>-<id>.json, <collection>/<slug>.json
    Missing files contribute nothing.
    """
    out: List[Dict[str, Any]] = []
    sources: List[Path] = [data_dir / f"{collection}.json", data_dir / index_name]
    sources += sorted(data_dir.glob(f"{collection}-*.json"))
    sources += sorted((data_dir / collection).glob("*.json"))
    for path in sources:
        items = _as_list(read_json(path, []))
        log.debug(f"[dedupe] {path.name}: {len(items)} candidates")
        out.extend(items)
    log.info(f"[dedupe] loaded {len(out)} local candidates for {collection}")
    return out

def filter_known(candidates: List[Dict[str, Any]], known_ids: Optional[set]) -> List[Dict[str, Any]]:
    """Drop local candidates whose id is no longer in the CMS (None keeps everything)."""
    if known_ids is None:
        return candidates
    return [c for c in candidates if record_id(c) in known_ids]
