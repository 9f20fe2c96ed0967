# steps/backfill_slugs.py
# Push generated slugs back to the CMS for records whose slug is missing or stale.
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..cms_client import CMSClient, CMSError
from ..normalizer import record_id
from .dedupe import record_title, should_update_slug, slugify

log = logging.getLogger(__name__)

def backfill_slugs(
    client: CMSClient,
    collection: str,
    records: Optional[List[Dict[str, Any]]] = None,
    dry_run: bool = False,
) -> Dict[str, int]:
    """
    PUT {"data": {"Slug": ...}} for every record that needs one.
    Records default to a fresh fetch of the collection. Per-record failures are
    logged and counted; nothing is retried.
    """
    if records is None:
        records = client.fetch_collection(collection)
    stats = {"updated": 0, "skipped": 0, "failed": 0}

    for rec in records:
        pid = record_id(rec)
        if pid is None:
            log.warning(f"[backfill] invalid record, skipping: {str(rec)[:80]}")
            stats["skipped"] += 1
            continue
        if not should_update_slug(rec):
            stats["skipped"] += 1
            continue
        title = record_title(rec)
        if not title:
            log.info(f"[backfill] id={pid} has no title, skipping")
            stats["skipped"] += 1
            continue
        slug = slugify(title)
        if dry_run:
            log.info(f"[backfill] (dry-run) id={pid} -> {slug}")
            stats["updated"] += 1
            continue
        try:
            client.update_slug(collection, pid, slug)
        except CMSError as e:
            log.error(f"[backfill] id={pid} update failed: {e}")
            stats["failed"] += 1
            continue
        log.info(f"[backfill] id={pid} slug -> {slug}")
        stats["updated"] += 1

    log.info(f"[backfill] {collection}: updated={stats['updated']} skipped={stats['skipped']} failed={stats['failed']}")
    return stats
