from __future__ import annotations

import requests

from fakes import CMS, FakeResponse
from property_snapshot.catalog import PropertyCatalog, SearchParams, format_price
from property_snapshot.schemas import Property
from property_snapshot.steps.snapshot import write_snapshot


def seed(config):
    props = [
        Property(id=1, slug="beach-house", title="Beach House", location="Canggu, Bali", property_type="Villa",
                 price=3000000000, bedrooms=3, bathrooms=2, featured=True),
        Property(id=2, slug="city-flat", title="City Flat", location="Jakarta Selatan", property_type="Apartment",
                 price=900000000, bedrooms=1, bathrooms=1),
        Property(id=3, slug="rice-field-villa", title="Rice Field Villa", location="Ubud, Bali", property_type="Villa",
                 price=4500000000, bedrooms=4, bathrooms=4, description="Quiet views over the paddies"),
    ]
    write_snapshot("properties", props, config)
    return props


def test_reads_snapshot_first(config):
    seed(config)
    cat = PropertyCatalog(config)
    assert [p.id for p in cat.all()] == [1, 2, 3]
    assert cat.source == "snapshot"
    assert cat.by_slug("city-flat").id == 2
    assert cat.by_id("3").slug == "rice-field-villa"
    assert cat.by_slug("nope") is None


def test_live_cms_when_snapshot_empty(config, http):
    http.add("GET", f"{CMS}/api/properties", FakeResponse(json_data={
        "data": [{"id": 5, "attributes": {"Title": "Live One"}}],
        "meta": {"pagination": {"pageCount": 1}},
    }))
    cat = PropertyCatalog(config)
    assert [p.slug for p in cat.all()] == ["live-one"]
    assert cat.source == "cms"


def test_mock_listings_when_cms_down(config, http):
    http.add("GET", f"{CMS}/api/properties", requests.exceptions.ConnectionError("refused"))
    cat = PropertyCatalog(config)
    props = cat.all()
    assert cat.source == "mock"
    assert [p.slug for p in props] == ["luxury-villa-in-seminyak", "modern-apartment-in-jakarta", "spacious-family-home"]
    assert props[0].main_image.url == "/images/property-1.jpg"
    assert props[0].area == 450


def test_mock_listings_when_cms_answers_html(config, http):
    http.add("GET", f"{CMS}/api/properties", FakeResponse(content=b"<html>maintenance</html>"))
    cat = PropertyCatalog(config)
    assert len(cat.all()) == 3
    assert cat.source == "mock"


def test_static_export_never_calls_cms(config, http):
    config.static_export = True
    cat = PropertyCatalog(config)
    assert cat.all()
    assert cat.source == "mock"
    assert http.calls == []


def test_featured_and_related(config):
    seed(config)
    cat = PropertyCatalog(config)
    assert [p.id for p in cat.featured()] == [1]
    assert [p.id for p in cat.related(1)] == [3, 2]
    assert cat.related(99) == []


def test_search_filters_and_pagination(config):
    seed(config)
    cat = PropertyCatalog(config)
    assert [p.id for p in cat.search(SearchParams(location="bali")).properties] == [1, 3]
    assert [p.id for p in cat.search(SearchParams(keyword="paddies")).properties] == [3]
    assert [p.id for p in cat.search(SearchParams(property_type="villa", min_price=4e9)).properties] == [3]
    assert [p.id for p in cat.search(SearchParams(max_price=1e9)).properties] == [2]
    assert [p.id for p in cat.search(SearchParams(bedrooms=3, bathrooms=3)).properties] == [3]

    res = cat.search(SearchParams(page=2, per_page=2))
    assert [p.id for p in res.properties] == [3]
    assert (res.total, res.page, res.per_page, res.total_pages) == (3, 2, 2, 2)


def test_format_price():
    assert format_price(5000000000) == "Rp 5.000.000.000"
    assert format_price("2500000", "USD") == "$2,500,000"
    assert format_price(0) == "Rp 0"
    assert format_price(None) == "Price on request"
    assert format_price("") == "Price on request"
    assert format_price("call us") == "call us"
