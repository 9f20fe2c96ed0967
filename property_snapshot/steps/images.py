# steps/images.py
# Download CMS media into public/property-images/<slug>/ and build the remote -> local table.
from __future__ import annotations

import json
import logging
import os
import posixpath
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import requests

from ..normalizer import LOCAL_PREFIXES
from ..schemas import ImageRef, Property
from ..settings import IMAGE_VARIANTS, ExportConfig
from ..utils import write_json, write_text

log = logging.getLogger(__name__)

IMAGES_URL_PREFIX = "/property-images"
CHUNK = 64 * 1024
PLACEHOLDER_SUFFIX = "-placeholder.jpg"

CONVERTER_JS = """/**
 * Image URL Converter
 *
 * Rewrites CMS image URLs to their local copies using the export mappings.
 * Include this script in exported pages; it exposes window.convertImageUrl.
 */
window.imageUrlMappings = __MAPPINGS__;

window.convertImageUrl = function(originalUrl) {
  // already local, or not served by the CMS
  if (!originalUrl || originalUrl.startsWith('/property-images/') || !originalUrl.includes('__CMS_URL__')) {
    return originalUrl;
  }
  return window.imageUrlMappings[originalUrl] || originalUrl;
};

window.addEventListener('load', function() {
  document.querySelectorAll('img').forEach(function(img) {
    var originalSrc = img.getAttribute('src');
    if (originalSrc) {
      var newSrc = window.convertImageUrl(originalSrc);
      if (newSrc !== originalSrc) {
        img.setAttribute('src', newSrc);
      }
    }
  });
});
"""

@dataclass
class ImageReport:
    table: Dict[str, str] = field(default_factory=dict)
    downloaded: int = 0
    failed: int = 0
    placeholders: int = 0

# -------- paths --------

def is_local(url: str) -> bool:
    return url.startswith(LOCAL_PREFIXES)

def filename_from_url(url: str) -> str:
    name = posixpath.basename(urlparse(url).path)
    return name or "image"

def local_image_path(slug: str, variant: str, url: str) -> str:
    """/property-images/<slug>/<variant>-<original-filename>"""
    return f"{IMAGES_URL_PREFIX}/{slug}/{variant}-{filename_from_url(url)}"

def collect_image_refs(prop: Property, variants: Optional[Iterable[str]] = None) -> List[Tuple[str, str]]:
    """(variant, remote_url) for every named format plus the original, in image order."""
    wanted = list(variants) if variants is not None else IMAGE_VARIANTS
    pairs: List[Tuple[str, str]] = []
    seen = set()
    for img in prop.all_images():
        candidates = [(name, img.formats.get(name)) for name in wanted if name != "original"]
        if "original" in wanted:
            candidates.append(("original", img.url))
        for variant, url in candidates:
            if not url or is_local(url) or url in seen:
                continue
            seen.add(url)
            pairs.append((variant, url))
    return pairs

# -------- download --------

def download_file(session: requests.Session, url: str, dest: Path, timeout: float) -> bool:
    """Stream one file to disk. Errors are logged and reported as False, never raised."""
    tmp = dest.with_name(f".{dest.name}.part")
    try:
        with session.get(url, stream=True, timeout=timeout) as res:
            res.raise_for_status()
            with open(tmp, "wb") as f:
                for chunk in res.iter_content(CHUNK):
                    if chunk:
                        f.write(chunk)
        os.replace(tmp, dest)
        return True
    except (requests.RequestException, OSError) as e:
        log.error(f"[images] download failed url={url} err={e}")
        if tmp.exists():
            tmp.unlink()
        return False

def _image_files(folder: Path) -> List[Path]:
    """Materialized images in a property folder; placeholder copies and partial downloads excluded."""
    if not folder.is_dir():
        return []
    return [
        p for p in folder.iterdir()
        if p.is_file() and not p.name.startswith(".") and not p.name.endswith(PLACEHOLDER_SUFFIX)
    ]

def _copy_placeholders(folder: Path, config: ExportConfig) -> Dict[str, str]:
    """Copy the shared placeholder once per variant. Returns variant -> local URL."""
    src = config.placeholder_path
    if not src.exists():
        log.warning(f"[images] placeholder missing at {src}; nothing copied")
        return {}
    folder.mkdir(parents=True, exist_ok=True)
    out: Dict[str, str] = {}
    for variant in config.image_variants:
        name = f"{variant}{PLACEHOLDER_SUFFIX}"
        shutil.copyfile(src, folder / name)
        out[variant] = f"{IMAGES_URL_PREFIX}/{folder.name}/{name}"
    return out

def materialize_images(
    properties: List[Property],
    config: ExportConfig,
    session: Optional[requests.Session] = None,
) -> ImageReport:
    """
    For each property and each (variant, url) pair: record url -> local path and try
    one download. A failed download keeps pointing at a copy left by an earlier run.
    A property whose folder holds no image files afterwards gets placeholder copies
    and its table entries point at them (or at the shared placeholder when none exists).
    """
    session = session or requests.Session()
    report = ImageReport()
    for prop in properties:
        pairs = collect_image_refs(prop, config.image_variants)
        folder = config.images_dir / prop.slug
        if pairs:
            folder.mkdir(parents=True, exist_ok=True)
        log.info(f"[images] id={prop.id} slug={prop.slug} refs={len(pairs)}")
        for variant, url in pairs:
            local = local_image_path(prop.slug, variant, url)
            dest = folder / posixpath.basename(local)
            report.table[url] = local
            if download_file(session, url, dest, config.image_timeout_sec):
                report.downloaded += 1
                continue
            report.failed += 1
            if dest.exists():
                log.info(f"[images] keeping earlier copy {local}")

        if not pairs or _image_files(folder):
            continue
        copies = _copy_placeholders(folder, config)
        if copies:
            report.placeholders += 1
        for variant, url in pairs:
            report.table[url] = copies.get(variant, config.placeholder_image)
    log.info(
        f"[images] done: downloaded={report.downloaded} failed={report.failed} "
        f"placeholders={report.placeholders} mapped={len(report.table)}"
    )
    return report

# -------- rewrite --------

def resolve_url(url: str, table: Dict[str, str], placeholder: str) -> str:
    if not url or is_local(url):
        return url or placeholder
    return table.get(url, placeholder)

def _rewrite_ref(img: ImageRef, table: Dict[str, str], placeholder: str) -> ImageRef:
    return img.model_copy(update={
        "url": resolve_url(img.url, table, placeholder),
        "formats": {k: resolve_url(v, table, placeholder) for k, v in img.formats.items()},
    })

def rewrite_property_images(prop: Property, table: Dict[str, str], placeholder: str) -> Property:
    """Copy of `prop` with every image URL routed through the table, else the placeholder."""
    return prop.model_copy(update={
        "main_image": _rewrite_ref(prop.main_image, table, placeholder) if prop.main_image else None,
        "images": [_rewrite_ref(i, table, placeholder) for i in prop.images],
    })

# -------- mapping files --------

def render_converter(table: Dict[str, str], cms_url: str) -> str:
    return (
        CONVERTER_JS
        .replace("__MAPPINGS__", json.dumps(table, ensure_ascii=False))
        .replace("__CMS_URL__", cms_url)
    )

def write_image_mappings(table: Dict[str, str], config: ExportConfig) -> List[Path]:
    """image-mappings.json + image-converter.js into public/ and, when it exists, out/."""
    targets = [config.public_dir]
    if config.out_dir.exists():
        targets.append(config.out_dir)
    script = render_converter(table, config.cms_url)
    written: List[Path] = []
    for base in targets:
        write_json(base / "image-mappings.json", table)
        write_text(base / "image-converter.js", script)
        written += [base / "image-mappings.json", base / "image-converter.js"]
    log.info(f"[images] wrote mappings ({len(table)} entries) to {', '.join(str(t) for t in targets)}")
    return written
