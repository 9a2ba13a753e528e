from __future__ import annotations

from datetime import date, datetime

import pytest
from backend.happio.sitemap import SITEMAP_NS, build_sitemap
from backend.happio.urls import admin_path, city_path, claim_path, cuisine_path, restaurant_path


def test_public_paths():
    assert city_path("amsterdam") == "/amsterdam"
    assert restaurant_path("amsterdam", "de-kas") == "/amsterdam/de-kas"
    assert cuisine_path("italiaans") == "/keukens/italiaans"
    assert claim_path("amsterdam", "de-kas") == "/claimen/amsterdam/de-kas"
    assert admin_path().startswith("/admin")


@pytest.mark.parametrize("bad", ["", "a/b"])
def test_paths_reject_bad_segments(bad):
    with pytest.raises(ValueError):
        city_path(bad)


def test_sitemap_lists_every_public_page():
    xml = build_sitemap(
        "https://happio.nl/",
        cities=[{"slug": "amsterdam", "updated_at": datetime(2026, 1, 2, 9, 0)}],
        cuisines=[{"slug": "italiaans"}],
        restaurants=[
            {"slug": "de-kas", "updated_at": datetime(2026, 2, 3), "city": {"slug": "amsterdam"}},
            {"slug": "zwerver", "updated_at": None, "city": None},
        ],
        today=date(2026, 3, 1),
    )
    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert f'xmlns="{SITEMAP_NS}"' in xml
    assert "<loc>https://happio.nl/</loc>" in xml
    assert "<loc>https://happio.nl/keukens/italiaans</loc>" in xml
    assert "<loc>https://happio.nl/amsterdam</loc>" in xml
    assert "<lastmod>2026-01-02</lastmod>" in xml
    assert "<loc>https://happio.nl/amsterdam/de-kas</loc>" in xml
    assert "<lastmod>2026-02-03</lastmod>" in xml
    # restaurants without a city have no public page
    assert "zwerver" not in xml


def test_sitemap_endpoint(client, seed):
    city = seed.city()
    seed.restaurant(city, name="De Kas")
    resp = client.get("/sitemap.xml")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/xml")
    assert "/amsterdam/de-kas</loc>" in resp.text
