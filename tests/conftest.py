from __future__ import annotations

import pytest

from fakes import CMS, FakeSession
from property_snapshot.settings import ExportConfig


@pytest.fixture
def http(monkeypatch: pytest.MonkeyPatch) -> FakeSession:
    session = FakeSession()
    monkeypatch.setattr("requests.Session", lambda: session)
    return session


@pytest.fixture
def config(tmp_path):
    return ExportConfig(
        cms_url=CMS,
        api_token="secret-token",
        data_dir=tmp_path / "data",
        public_dir=tmp_path / "public",
        out_dir=tmp_path / "out",
    )


@pytest.fixture
def v4_villa():
    return {
        "id": 7,
        "attributes": {
            "Title": "3BR Villa in Seminyak",
            "Description": "Walk to the beach.",
            "Price": "1,500,000",
            "Location": "Seminyak, Bali",
            "Bedrooms": "3",
            "Bathrooms": 2,
            "Area": "250 m2",
            "Slug": "3-br-villa-in-seminyak",
            "Amenities": [{"name": "Pool", "description": "Private"}, {"name": "Garden"}],
            "Image": {
                "data": [
                    {
                        "id": 11,
                        "attributes": {
                            "url": "/uploads/villa.jpg",
                            "alternativeText": "Front",
                            "width": 1600,
                            "height": 900,
                            "formats": {
                                "large": {"url": "/uploads/large_villa.jpg"},
                                "thumbnail": {"url": "/uploads/thumbnail_villa.jpg"},
                            },
                        },
                    }
                ]
            },
            "createdAt": "2025-03-01T10:00:00.000Z",
            "updatedAt": "2025-03-02T10:00:00.000Z",
        },
    }
