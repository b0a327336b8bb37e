"""Tests for market seeding."""

import pytest

from campscout.models.development_request import DevelopmentRequest
from campscout.models.organization import Organization
from campscout.models.source import Source
from campscout.services.market_seeding import name_from_url, seed_market


@pytest.mark.parametrize("url,expected", [
    ("https://www.hill-country-camps.com/summer", "Hill Country Camps"),
    ("https://zilker_nature.example.org", "Zilker Nature"),
    ("riverbend.org", "Riverbend"),
])
def test_name_from_url(url, expected):
    assert name_from_url(url) == expected


class TestSeedMarket:
    def test_creates_org_source_and_request(self, db):
        result = seed_market(db, "austin", [
            {"url": "https://www.zilkercamps.example.com/summer", "notes": "Weekly sessions"},
            {"url": "https://paddle.example.org/camps", "name": "Paddle Camp"},
        ])

        assert result["summary"] == {"total": 2, "created": 2, "existing": 0, "errors": 0}
        source = db.query(Source).filter(Source.url == "https://paddle.example.org/camps").one()
        assert not source.is_active
        assert source.discovered_by == "market_seed"
        assert source.organization.name == "Paddle Camp"
        requests = db.query(DevelopmentRequest).all()
        assert {r.requested_by for r in requests} == {"market-seeding"}
        assert {r.market for r in requests} == {"austin"}

    def test_reseeding_is_idempotent(self, db):
        entries = [{"url": "https://paddle.example.org/camps"}]
        seed_market(db, "austin", entries)

        result = seed_market(db, "austin", entries)

        assert result["summary"]["existing"] == 1
        assert result["results"][0]["development_request_id"] is None
        assert db.query(DevelopmentRequest).count() == 1
        assert db.query(Organization).count() == 1
