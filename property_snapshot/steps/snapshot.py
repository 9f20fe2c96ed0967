# steps/snapshot.py
# Write the static JSON snapshot consumed by the site build.
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List

from ..cms_client import flatten_item
from ..normalizer import record_id
from ..schemas import IndexEntry, Property, SnapshotMetadata
from ..settings import ExportConfig, now_utc_iso
from ..utils import write_json

log = logging.getLogger(__name__)

INDEX_FILE = "property-index.json"
METADATA_FILE = "metadata.json"
LAST_UPDATED_FILE = "last-updated.json"

# -------- cleanup --------

def clean_snapshot(data_dir: Path, collection: str) -> int:
    """Delete <collection>-<id>.json files and the <collection>/ slug files. Returns count removed."""
    per_id = re.compile(rf"^{re.escape(collection)}-\d+\.json$")
    removed = 0
    if data_dir.is_dir():
        for p in data_dir.iterdir():
            if p.is_file() and per_id.match(p.name):
                p.unlink()
                removed += 1
    slug_dir = data_dir / collection
    if slug_dir.is_dir():
        for p in slug_dir.glob("*.json"):
            p.unlink()
            removed += 1
    log.info(f"[snapshot] cleaned {removed} files for {collection}")
    return removed

# -------- writers --------

def write_snapshot(collection: str, properties: List[Property], config: ExportConfig) -> int:
    """
    <collection>.json            full array of {id, attributes} documents
    <collection>-<id>.json       one document per id
    <collection>/<slug>.json     one document per slug
    property-index.json          list-view subset (property collection only)
    Records are written in list order. Returns the number of records written.
    """
    data_dir = config.data_dir
    docs = [p.to_document() for p in properties]
    write_json(data_dir / f"{collection}.json", docs)

    for prop, doc in zip(properties, docs):
        write_json(data_dir / f"{collection}-{prop.id}.json", doc)
        if prop.slug:
            write_json(config.collection_dir(collection) / f"{prop.slug}.json", doc)
        else:
            log.warning(f"[snapshot] id={prop.id} has no slug; slug file skipped")

    if collection == config.property_collection:
        index = [IndexEntry.from_property(p).to_document() for p in properties]
        write_json(data_dir / INDEX_FILE, index)

    log.info(f"[snapshot] {collection}: wrote {len(docs)} records to {data_dir}")
    return len(docs)

def write_raw_collection(collection: str, records: List[Dict[str, Any]], config: ExportConfig) -> int:
    """Non-property collections: flattened CMS items, no normalization. Per-id files are regenerated."""
    clean_snapshot(config.data_dir, collection)
    items = [flatten_item(r) for r in records]
    write_json(config.data_dir / f"{collection}.json", items)
    for item in items:
        rid = record_id(item)
        if rid is not None:
            write_json(config.data_dir / f"{collection}-{rid}.json", item)
    log.info(f"[snapshot] {collection}: wrote {len(items)} raw records")
    return len(items)

def write_metadata(stats: Dict[str, Any], config: ExportConfig) -> SnapshotMetadata:
    """metadata.json (export summary) and last-updated.json (timestamp only)."""
    meta = SnapshotMetadata(
        exported_at=now_utc_iso(),
        source=config.cms_url,
        counts=dict(stats.get("counts") or {}),
        updated_slugs=int(stats.get("updated_slugs") or 0),
        images_downloaded=int(stats.get("images_downloaded") or 0),
        images_failed=int(stats.get("images_failed") or 0),
        placeholders=int(stats.get("placeholders") or 0),
        static_export=config.static_export,
    )
    write_json(config.data_dir / METADATA_FILE, meta.model_dump())
    write_json(config.data_dir / LAST_UPDATED_FILE, {"lastUpdated": meta.exported_at})
    return meta
