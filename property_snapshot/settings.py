# property_snapshot/settings.py
# Purpose: Build the per-run export config (defaults -> JSON file -> env), paths, timestamps.

from __future__ import annotations
import datetime
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# ---------- paths ----------
def get_project_root() -> Path:
    return Path(__file__).resolve().parent.parent

PROJECT_ROOT = get_project_root()
CONFIG_PATH = PROJECT_ROOT / "config" / "snapshot_config.json"

DEFAULT_CMS_URL = "http://localhost:1337"
IMAGE_VARIANTS = ["large", "medium", "small", "thumbnail", "original"]
TRUTHY = {"1", "true", "yes", "on"}

# env var -> config field; the first variable that is set wins
ENV_KEYS: Dict[str, List[str]] = {
    "cms_url": ["STRAPI_URL", "NEXT_PUBLIC_STRAPI_URL"],
    "api_token": ["STRAPI_API_TOKEN", "NEXT_PUBLIC_STRAPI_API_TOKEN"],
    "static_export": ["STATIC_EXPORT", "NEXT_PUBLIC_STATIC_EXPORT"],
    "data_dir": ["SNAPSHOT_DATA_DIR"],
    "public_dir": ["SNAPSHOT_PUBLIC_DIR"],
    "out_dir": ["SNAPSHOT_OUT_DIR"],
    "collections": ["CMS_COLLECTIONS"],
}


class ExportConfig(BaseModel):
    """Everything one pipeline run needs. Built once, passed to every stage."""

    cms_url: str = DEFAULT_CMS_URL
    api_token: Optional[str] = None
    static_export: bool = False

    data_dir: Path = PROJECT_ROOT / "data"
    public_dir: Path = PROJECT_ROOT / "public"
    out_dir: Path = PROJECT_ROOT / "out"

    collections: List[str] = Field(default_factory=lambda: ["properties"])
    property_collection: str = "properties"
    page_size: int = 100

    request_timeout_sec: float = 10.0
    image_timeout_sec: float = 30.0
    image_variants: List[str] = Field(default_factory=lambda: list(IMAGE_VARIANTS))
    placeholder_image: str = "/placeholder-property.jpg"

    preserve_cms_slugs: bool = False
    include_local_candidates: bool = False

    @field_validator("cms_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return (v or DEFAULT_CMS_URL).rstrip("/")

    @field_validator("request_timeout_sec")
    @classmethod
    def _bound_timeout(cls, v: float) -> float:
        # CMS calls are bounded to 5-30s
        return min(30.0, max(5.0, float(v)))

    @field_validator("static_export", "preserve_cms_slugs", "include_local_candidates", mode="before")
    @classmethod
    def _truthy(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in TRUTHY
        return bool(v)

    @field_validator("collections", mode="before")
    @classmethod
    def _split_collections(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            v = v.split(",")
        return [str(c).strip() for c in (v or []) if str(c).strip()]

    # ---------- derived paths ----------
    @property
    def images_dir(self) -> Path:
        return self.public_dir / "property-images"

    @property
    def placeholder_path(self) -> Path:
        return self.public_dir / self.placeholder_image.lstrip("/")

    def collection_dir(self, collection: str) -> Path:
        return self.data_dir / collection


# ---------- config loading ----------
def _read_config_file(path: Optional[Path]) -> Dict[str, Any]:
    p = path or CONFIG_PATH
    if not p.exists():
        if path is not None:
            raise FileNotFoundError(f"Config not found at {p}")
        return {}
    return json.loads(p.read_text(encoding="utf-8"))

def _env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    out: Dict[str, Any] = {}
    for field, names in ENV_KEYS.items():
        for name in names:
            val = env.get(name)
            if val is not None and val != "":
                out[field] = val
                break
    return out

def load_config(
    path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
    **overrides: Any,
) -> ExportConfig:
    """
    defaults < JSON config file < env (.env, .env.local) < explicit overrides.
    Pass `environ` to bypass the process environment (tests).
    """
    if environ is None:
        load_dotenv(PROJECT_ROOT / ".env")
        load_dotenv(PROJECT_ROOT / ".env.local", override=True)
    values: Dict[str, Any] = {}
    values.update(_read_config_file(path))
    values.update(_env_overrides(environ))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ExportConfig(**values)

# ---------- time helpers ----------
def now_utc_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
