# property_snapshot/schemas.py
from __future__ import annotations
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator

DEFAULT_TITLE = "Untitled Property"

# -----------------------------
# Canonical property
# -----------------------------

class ImageRef(BaseModel):
    url: str
    alternative_text: str = ""
    width: int = 800
    height: int = 600
    formats: Dict[str, str] = Field(default_factory=dict, description="variant name -> absolute URL")


class Amenity(BaseModel):
    name: str
    description: str = ""


class Property(BaseModel):
    id: int
    slug: str = ""
    title: str = DEFAULT_TITLE
    description: str = ""
    price: Union[int, float] = 0
    location: str = ""
    property_type: str = "Property"
    bedrooms: Union[int, float] = 0
    bathrooms: Union[int, float] = 0
    area: Union[int, float, str] = 0  # numeric, or free text with a unit
    status: str = "published"
    featured: bool = False
    created_at: str = ""
    updated_at: str = ""
    published_at: str = ""
    document_id: str = ""
    amenities: List[Amenity] = Field(default_factory=list)
    main_image: Optional[ImageRef] = None
    images: List[ImageRef] = Field(default_factory=list)

    @field_validator("price", "bedrooms", "bathrooms")
    @classmethod
    def _non_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    def all_images(self) -> List[ImageRef]:
        """Main image first, then the gallery, deduplicated by URL."""
        seen = set()
        out: List[ImageRef] = []
        for img in ([self.main_image] if self.main_image else []) + self.images:
            if img.url in seen:
                continue
            seen.add(img.url)
            out.append(img)
        return out

    def to_document(self) -> Dict:
        """Snapshot shape consumed by the site: {id, attributes: {...}}."""
        attrs = self.model_dump(exclude={"id"})
        return {"id": self.id, "attributes": attrs}


class IndexEntry(BaseModel):
    """List-view subset written to property-index.json."""

    id: int
    slug: str
    title: str
    status: str
    price: Union[int, float]
    property_type: str
    location: str
    bedrooms: Union[int, float]
    bathrooms: Union[int, float]
    area: Union[int, float, str]
    featured: bool
    image: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_property(cls, prop: Property) -> "IndexEntry":
        first = prop.all_images()
        return cls(
            id=prop.id,
            slug=prop.slug,
            title=prop.title,
            status=prop.status,
            price=prop.price,
            property_type=prop.property_type,
            location=prop.location,
            bedrooms=prop.bedrooms,
            bathrooms=prop.bathrooms,
            area=prop.area,
            featured=prop.featured,
            image=first[0].url if first else None,
            created_at=prop.created_at,
            updated_at=prop.updated_at,
        )

    def to_document(self) -> Dict:
        return {"id": self.id, "attributes": self.model_dump(exclude={"id"})}


# -----------------------------
# Run metadata
# -----------------------------

class SnapshotMetadata(BaseModel):
    exported_at: str
    source: str
    counts: Dict[str, int] = Field(default_factory=dict)
    updated_slugs: int = 0
    images_downloaded: int = 0
    images_failed: int = 0
    placeholders: int = 0
    static_export: bool = False
