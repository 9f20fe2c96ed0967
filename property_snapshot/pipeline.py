# property_snapshot/pipeline.py
# Orchestrate: check CMS → fetch → dedupe/normalize → (images) → snapshot → metadata

from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .cms_client import CMSClient, CMSConnectionError, CMSError
from .logging_setup import setup_logging
from .normalizer import normalize_property, record_id
from .schemas import Property
from .settings import ExportConfig, load_config
from .steps.backfill_slugs import backfill_slugs
from .steps.dedupe import (
    deduplicate,
    existing_slug,
    filter_known,
    load_local_candidates,
    to_properties,
)
from .steps.images import materialize_images, rewrite_property_images, write_image_mappings
from .steps.post_export import fix_exported_html
from .steps.snapshot import clean_snapshot, write_metadata, write_raw_collection, write_snapshot
from .utils import read_json

log = logging.getLogger(__name__)

ExportStats = Dict[str, Any]

def new_stats() -> ExportStats:
    return {"counts": {}, "updated_slugs": 0, "images_downloaded": 0, "images_failed": 0, "placeholders": 0}

# ---------------- helpers ----------------

def localize_images(props: List[Property], config: ExportConfig, stats: ExportStats) -> List[Property]:
    report = materialize_images(props, config)
    write_image_mappings(report.table, config)
    stats["images_downloaded"] += report.downloaded
    stats["images_failed"] += report.failed
    stats["placeholders"] += report.placeholders
    return [rewrite_property_images(p, report.table, config.placeholder_image) for p in props]

def load_snapshot_properties(config: ExportConfig) -> List[Property]:
    docs = read_json(config.data_dir / f"{config.property_collection}.json", [])
    return [normalize_property(d, config.cms_url) for d in docs if record_id(d) is not None]

def consolidate_records(
    records: List[Dict[str, Any]],
    config: ExportConfig,
    stats: ExportStats,
    static_export: Optional[bool] = None,
) -> List[Property]:
    """dedupe -> canonical properties -> optional image localization -> rewrite snapshot."""
    coll = config.property_collection
    results = deduplicate(records, config.preserve_cms_slugs)
    stats["updated_slugs"] += sum(1 for r in results.values() if existing_slug(r.record) != r.slug)
    props = to_properties(results, config.cms_url)
    if static_export is None:
        static_export = config.static_export
    if static_export:
        props = localize_images(props, config, stats)
    clean_snapshot(config.data_dir, coll)
    stats["counts"][coll] = write_snapshot(coll, props, config)
    return props

# ---------------- core steps ----------------

def export_properties(client: CMSClient, config: ExportConfig, stats: ExportStats) -> List[Property]:
    coll = config.property_collection
    raw = client.fetch_collection(coll)
    # previous snapshot is read before cleanup; ids gone from the CMS are dropped
    known = {record_id(r) for r in raw} - {None}
    local: List[Dict[str, Any]] = []
    if config.include_local_candidates:
        local = filter_known(load_local_candidates(config.data_dir, coll), known)
    log.info(f"[export] {coll}: {len(raw)} from CMS + {len(local)} local candidates")
    return consolidate_records(raw + local, config, stats)

def run_export(config: ExportConfig, client: Optional[CMSClient] = None) -> ExportStats:
    """
    Full export. Raises CMSConnectionError when the first connectivity check fails;
    any later CMS error only zeroes the collection it happened in.
    """
    client = client or CMSClient(config)
    client.check_connection()
    stats = new_stats()
    for coll in config.collections:
        try:
            if coll == config.property_collection:
                export_properties(client, config, stats)
            else:
                stats["counts"][coll] = write_raw_collection(coll, client.fetch_collection(coll), config)
        except CMSError as e:
            log.error(f"[export] {coll} failed: {e}")
            stats["counts"][coll] = 0
    write_metadata(stats, config)
    log.info(f"[export] done: {json.dumps(stats)}")
    return stats

def run_consolidate(config: ExportConfig) -> ExportStats:
    """Offline: previous snapshot files only, no CMS calls, no downloads."""
    stats = new_stats()
    local = load_local_candidates(config.data_dir, config.property_collection)
    consolidate_records(local, config, stats, static_export=False)
    write_metadata(stats, config)
    return stats

def run_images(config: ExportConfig) -> ExportStats:
    """Materialize images for the current snapshot and rewrite it with local paths."""
    stats = new_stats()
    coll = config.property_collection
    props = localize_images(load_snapshot_properties(config), config, stats)
    clean_snapshot(config.data_dir, coll)
    stats["counts"][coll] = write_snapshot(coll, props, config)
    return stats

def run_backfill(config: ExportConfig, dry_run: bool = False, client: Optional[CMSClient] = None) -> Dict[str, int]:
    client = client or CMSClient(config)
    client.check_connection()
    return backfill_slugs(client, config.property_collection, dry_run=dry_run)

def run_post_export(config: ExportConfig) -> int:
    return fix_exported_html(config.out_dir, None, config)

# ---------------- CLI ----------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="property-snapshot", description="Export CMS property listings to a static JSON snapshot")
    ap.add_argument("--config", type=Path, default=None, help="JSON config file")
    ap.add_argument("--verbose", action="store_true")
    sub = ap.add_subparsers(dest="cmd", required=True)
    sub.add_parser("check", help="verify the CMS is reachable")
    s_exp = sub.add_parser("export", help="fetch, consolidate and write the snapshot")
    s_exp.add_argument("--static-export", action="store_true", default=None, help="download images and rewrite URLs")
    sub.add_parser("consolidate", help="rebuild the snapshot from local files only")
    s_bf = sub.add_parser("backfill-slugs", help="write generated slugs back to the CMS")
    s_bf.add_argument("--dry-run", action="store_true")
    sub.add_parser("images", help="download images for the current snapshot")
    sub.add_parser("post-export", help="rewrite image URLs in exported HTML")
    s_run = sub.add_parser("run", help="export, then post-export")
    s_run.add_argument("--static-export", action="store_true", default=None)
    return ap

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)
    try:
        config = load_config(args.config, static_export=getattr(args, "static_export", None))
        if args.cmd == "check":
            CMSClient(config).check_connection()
        elif args.cmd == "export":
            run_export(config)
        elif args.cmd == "consolidate":
            run_consolidate(config)
        elif args.cmd == "backfill-slugs":
            run_backfill(config, dry_run=args.dry_run)
        elif args.cmd == "images":
            run_images(config)
        elif args.cmd == "post-export":
            run_post_export(config)
        elif args.cmd == "run":
            run_export(config)
            run_post_export(config)
    except CMSConnectionError as e:
        log.error(f"[pipeline] {e}")
        return 1
    except CMSError as e:
        log.error(f"[pipeline] CMS request failed: {e}")
        return 1
    except json.JSONDecodeError as e:
        log.error(f"[pipeline] malformed JSON: {e}")
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
