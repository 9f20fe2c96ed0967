from __future__ import annotations

import pytest

from property_snapshot.normalizer import (
    FIELD_CHAINS,
    MAIN_IMAGE_CHAIN,
    normalize_amenities,
    normalize_property,
    resolve,
    resolve_field,
)

CMS = "http://cms.test"


def test_v4_record(v4_villa):
    p = normalize_property(v4_villa, CMS)
    assert p.id == 7
    assert p.title == "3BR Villa in Seminyak"
    assert p.price == 1500000
    assert p.bedrooms == 3
    assert p.bathrooms == 2
    assert p.area == "250 m2"
    assert p.slug == "3-br-villa-in-seminyak"
    assert [a.name for a in p.amenities] == ["Pool", "Garden"]
    assert p.amenities[0].description == "Private"
    assert p.main_image.url == f"{CMS}/uploads/villa.jpg"
    assert p.main_image.alternative_text == "Front"
    assert p.main_image.width == 1600
    assert p.main_image.formats == {
        "large": f"{CMS}/uploads/large_villa.jpg",
        "thumbnail": f"{CMS}/uploads/thumbnail_villa.jpg",
    }
    assert len(p.images) == 1
    assert p.created_at == "2025-03-01T10:00:00.000Z"


def test_defaults_never_none():
    p = normalize_property({"id": 3}, CMS)
    assert p.title == "Untitled Property"
    assert p.description == ""
    assert p.price == 0
    assert p.location == ""
    assert p.property_type == "Property"
    assert p.bedrooms == 0 and p.bathrooms == 0 and p.area == 0
    assert p.status == "published"
    assert p.featured is False
    assert p.amenities == []
    assert p.main_image is None
    assert p.images == []


def test_explicit_slug_overrides_record():
    p = normalize_property({"id": 3, "Title": "A", "Slug": "old"}, CMS, slug="a")
    assert p.slug == "a"


def test_missing_id_raises():
    with pytest.raises(ValueError):
        normalize_property({"Title": "orphan"}, CMS)


def test_title_chain_order():
    assert resolve_field({"Title": "A", "title": "B"}, "title") == "A"
    assert resolve_field({"Title": "  ", "title": "B"}, "title") == "B"
    assert resolve_field({"name": "C"}, "title") == "C"
    assert [a.__name__ for a in FIELD_CHAINS["title"]][:2] == ["key[Title]", "key[title]"]


def test_numeric_coercion():
    assert resolve_field({"Price": "2"}, "price") == 2
    assert resolve_field({"Price": "1,500.5"}, "price") == 1500.5
    assert resolve_field({"Price": "call us"}, "price") == 0
    assert resolve_field({"Bedrooms": -1}, "bedrooms") == 0
    assert resolve_field({"Area": "120"}, "area") == 120
    assert resolve_field({"square_footage": 450}, "area") == 450


def test_rich_text_description():
    blocks = [
        {"type": "paragraph", "children": [{"type": "text", "text": "Line one."}]},
        {"type": "paragraph", "children": [{"type": "text", "text": "Line two."}]},
    ]
    assert resolve_field({"Description": blocks}, "description") == "Line one.\n\nLine two."


def test_featured_flag_variants():
    assert resolve_field({"IsFeatured": True}, "featured") is True
    assert resolve_field({"featured": "yes"}, "featured") is True
    assert resolve_field({"featured": "false"}, "featured") is False


def test_main_image_prefers_main_then_gallery():
    rec = {"MainImage": {"url": "/uploads/main.jpg"}, "Image": [{"url": "/uploads/g1.jpg"}]}
    assert resolve(rec, MAIN_IMAGE_CHAIN)["url"] == "/uploads/main.jpg"
    rec = {"Image": [{"url": "/uploads/g1.jpg"}, {"url": "/uploads/g2.jpg"}]}
    p = normalize_property({"id": 1, **rec}, CMS)
    assert p.main_image.url == f"{CMS}/uploads/g1.jpg"
    assert [i.url for i in p.images] == [f"{CMS}/uploads/g1.jpg", f"{CMS}/uploads/g2.jpg"]


def test_legacy_images_data_and_url_strings():
    legacy = {"id": 1, "images": {"data": [{"id": 2, "attributes": {"url": "/uploads/old.jpg"}}]}}
    p = normalize_property(legacy, CMS)
    assert p.main_image.url == f"{CMS}/uploads/old.jpg"
    assert len(p.images) == 1

    strings = {"id": 2, "featured_image": "/images/p1.jpg", "images": ["/images/p1.jpg", "https://cdn.test/p2.jpg"]}
    p = normalize_property(strings, CMS)
    assert p.main_image.url == "/images/p1.jpg"
    assert [i.url for i in p.images] == ["/images/p1.jpg", "https://cdn.test/p2.jpg"]
    assert [i.url for i in p.all_images()] == ["/images/p1.jpg", "https://cdn.test/p2.jpg"]


def test_amenity_shapes():
    assert [a.name for a in normalize_amenities(["Pool", " Gym ", ""])] == ["Pool", "Gym"]
    assert [a.name for a in normalize_amenities([{"Name": "Wifi"}, {"title": "AC"}])] == ["Wifi", "AC"]
    legacy = {"data": [{"id": 1, "attributes": {"name": "Parking"}}]}
    assert [a.name for a in normalize_amenities(legacy)] == ["Parking"]
    assert normalize_amenities("Pool, Gym") == []
    assert normalize_amenities(None) == []


def test_snapshot_document_round_trips(v4_villa):
    p = normalize_property(v4_villa, CMS, slug="3br-villa-in-seminyak")
    again = normalize_property(p.to_document(), CMS)
    assert again == p
