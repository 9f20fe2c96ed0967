# steps/post_export.py
# After the site build: point any CMS image URLs left in out/**/*.html at the local copies.
from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Dict, Optional

from bs4 import BeautifulSoup

from ..settings import ExportConfig
from ..utils import read_json, write_text
from .images import IMAGES_URL_PREFIX, filename_from_url, is_local

log = logging.getLogger(__name__)

FORMAT_PREFIX_RE = re.compile(r"^(large|medium|small|thumbnail)_(.+)$")
SLUG_FROM_PAGE_RE = re.compile(r"(?:^|/)properties/([^/]+?)(?:/index)?\.html$")

URL_ATTRS = ("src", "data-src")
SRCSET_ATTRS = ("srcset", "data-srcset")


class ImageUrlFixer:
    """Rewrites CMS media URLs for one exported page."""

    def __init__(self, table: Dict[str, str], cms_url: str, page_slug: Optional[str] = None):
        self.table = table
        self.cms_url = cms_url
        self.page_slug = page_slug
        self._by_name = {}
        for remote, local in table.items():
            self._by_name.setdefault(filename_from_url(remote), local)

    def is_cms_url(self, url: str) -> bool:
        return url.startswith(self.cms_url) or url.startswith("/uploads/")

    def convert(self, url: str) -> str:
        if not url or is_local(url) or not self.is_cms_url(url):
            return url
        absolute = f"{self.cms_url}{url}" if url.startswith("/") else url
        if absolute in self.table:
            return self.table[absolute]
        name = filename_from_url(absolute)
        if name in self._by_name:
            log.debug(f"[post-export] filename match {name} -> {self._by_name[name]}")
            return self._by_name[name]
        if "/uploads/" in absolute and self.page_slug:
            m = FORMAT_PREFIX_RE.match(name)
            variant = m.group(1) if m else "original"
            return f"{IMAGES_URL_PREFIX}/{self.page_slug}/{variant}-{name}"
        return url

    def convert_srcset(self, value: str) -> str:
        parts = []
        for entry in value.split(","):
            bits = entry.strip().split(None, 1)
            if not bits:
                continue
            bits[0] = self.convert(bits[0])
            parts.append(" ".join(bits))
        return ", ".join(parts)

    def fix_html(self, html: str) -> Optional[str]:
        """Rewritten document, or None when nothing changed."""
        soup = BeautifulSoup(html, "html.parser")
        changed = 0
        for attr in URL_ATTRS:
            for tag in soup.find_all(attrs={attr: True}):
                old = tag[attr]
                new = self.convert(old)
                if new != old:
                    tag[attr] = new
                    changed += 1
        for attr in SRCSET_ATTRS:
            for tag in soup.find_all(attrs={attr: True}):
                old = tag[attr]
                new = self.convert_srcset(old)
                if new != old:
                    tag[attr] = new
                    changed += 1
        return str(soup) if changed else None


def page_slug(rel_path: str) -> Optional[str]:
    m = SLUG_FROM_PAGE_RE.search(rel_path.replace("\\", "/"))
    return m.group(1) if m else None

def fix_exported_html(out_dir: Path, table: Optional[Dict[str, str]], config: ExportConfig) -> int:
    """Rewrite every out/**/*.html in place. Returns the number of files changed."""
    if not out_dir.exists():
        log.warning(f"[post-export] output directory {out_dir} not found; skipping HTML fixes")
        return 0
    if table is None:
        table = read_json(config.public_dir / "image-mappings.json", {})
    log.info(f"[post-export] {len(table)} image mappings loaded")

    fixed = 0
    for path in sorted(out_dir.rglob("*.html")):
        rel = path.relative_to(out_dir).as_posix()
        fixer = ImageUrlFixer(table, config.cms_url, page_slug(rel))
        try:
            html = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.error(f"[post-export] cannot read {rel}: {e}")
            continue
        new_html = fixer.fix_html(html)
        if new_html is not None:
            write_text(path, new_html)
            fixed += 1
            log.info(f"[post-export] fixed {rel}")

    src = config.public_dir / "image-converter.js"
    dest = out_dir / "image-converter.js"
    if src.exists() and not dest.exists():
        shutil.copyfile(src, dest)
        log.info(f"[post-export] copied {src.name} to {out_dir}")
    log.info(f"[post-export] fixed image paths in {fixed} files")
    return fixed
