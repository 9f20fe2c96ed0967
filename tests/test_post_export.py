from __future__ import annotations

import json

from property_snapshot.steps.post_export import ImageUrlFixer, fix_exported_html, page_slug

CMS = "http://cms.test"
TABLE = {
    f"{CMS}/uploads/a.jpg": "/property-images/villa/original-a.jpg",
    f"{CMS}/uploads/large_a.jpg": "/property-images/villa/large-large_a.jpg",
}


def test_convert_rules():
    fixer = ImageUrlFixer(TABLE, CMS, page_slug="villa")
    assert fixer.convert(f"{CMS}/uploads/a.jpg") == "/property-images/villa/original-a.jpg"
    assert fixer.convert("/uploads/a.jpg") == "/property-images/villa/original-a.jpg"
    # same file name behind a different host path
    assert fixer.convert(f"{CMS}/uploads/sub/large_a.jpg") == "/property-images/villa/large-large_a.jpg"
    # unknown file: derived from the page slug
    assert fixer.convert(f"{CMS}/uploads/medium_z.png") == "/property-images/villa/medium-medium_z.png"
    assert fixer.convert(f"{CMS}/uploads/z.png") == "/property-images/villa/original-z.png"
    assert fixer.convert("https://cdn.other/x.jpg") == "https://cdn.other/x.jpg"
    assert fixer.convert("/property-images/villa/original-a.jpg") == "/property-images/villa/original-a.jpg"
    assert fixer.convert("/placeholder-property.jpg") == "/placeholder-property.jpg"


def test_no_guess_without_page_slug():
    fixer = ImageUrlFixer(TABLE, CMS)
    assert fixer.convert(f"{CMS}/uploads/z.png") == f"{CMS}/uploads/z.png"


def test_page_slug():
    assert page_slug("properties/villa.html") == "villa"
    assert page_slug("properties/villa/index.html") == "villa"
    assert page_slug("index.html") is None


def test_fix_html_attributes():
    html = (
        f'<div><img src="{CMS}/uploads/a.jpg" alt="a">'
        f'<img data-src="{CMS}/uploads/large_a.jpg">'
        f'<img srcset="{CMS}/uploads/large_a.jpg 1024w, {CMS}/uploads/a.jpg 2048w">'
        f'<img src="https://cdn.other/x.jpg"></div>'
    )
    out = ImageUrlFixer(TABLE, CMS).fix_html(html)
    assert out is not None
    assert 'src="/property-images/villa/original-a.jpg"' in out
    assert 'data-src="/property-images/villa/large-large_a.jpg"' in out
    assert "/property-images/villa/large-large_a.jpg 1024w, /property-images/villa/original-a.jpg 2048w" in out
    assert "https://cdn.other/x.jpg" in out
    assert ImageUrlFixer(TABLE, CMS).fix_html('<img src="/property-images/villa/original-a.jpg">') is None


def test_fix_exported_html_tree(config):
    pages = config.out_dir / "properties"
    pages.mkdir(parents=True)
    (pages / "villa.html").write_text(f'<img src="{CMS}/uploads/a.jpg">', encoding="utf-8")
    (config.out_dir / "index.html").write_text("<p>nothing here</p>", encoding="utf-8")
    config.public_dir.mkdir(parents=True)
    (config.public_dir / "image-mappings.json").write_text(json.dumps(TABLE), encoding="utf-8")
    (config.public_dir / "image-converter.js").write_text("// converter", encoding="utf-8")

    assert fix_exported_html(config.out_dir, None, config) == 1
    assert "/property-images/villa/original-a.jpg" in (pages / "villa.html").read_text(encoding="utf-8")
    assert (config.out_dir / "image-converter.js").read_text(encoding="utf-8") == "// converter"


def test_fix_exported_html_without_out_dir(config):
    assert fix_exported_html(config.out_dir, TABLE, config) == 0
