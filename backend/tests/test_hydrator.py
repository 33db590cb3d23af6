"""Tests for the record hydrator."""

import pytest

from crmkit.hydration import RecordHydrator


@pytest.fixture
def seeded(recording_source):
    src = recording_source
    src.seed("media", {"id": 10, "title": "Acme logo", "url": "https://cdn.test/acme.png"})
    src.seed("contact", {"id": 1, "title": "Ann"}, {"id": 2, "title": "Bo"})
    src.seed(
        "company_contact",
        {"id": 100, "company_id": 5, "contact_id": 1},
        {"id": 101, "company_id": 5, "contact_id": 2},
    )
    src.seed("note", {"id": 20, "title": "Kickoff", "company_id": 5})
    return src


def _company(**extra):
    return {"id": 5, "title": "Acme", "status": "active", "logo": 10, **extra}


class TestHydrate:
    @pytest.mark.asyncio
    async def test_media_and_status(self, registry, seeded):
        hydrator = RecordHydrator(seeded, registry)
        result = await hydrator.hydrate(_company(), registry.require("company"))
        assert result["logo_label"] == "Acme logo"
        assert result["logo_details"]["url"] == "https://cdn.test/acme.png"
        assert result["status_label"] == "Active"

    @pytest.mark.asyncio
    async def test_junction_ids_and_labels(self, registry, seeded):
        hydrator = RecordHydrator(seeded, registry)
        result = await hydrator.hydrate(_company(), registry.require("company"))
        assert result["contacts"] == ["1", "2"]
        assert result["contacts_labels"] == ["Ann", "Bo"]
        assert [d["id"] for d in result["contacts_details"]] == [1, 2]

    @pytest.mark.asyncio
    async def test_one_to_many_children(self, registry, seeded):
        hydrator = RecordHydrator(seeded, registry)
        result = await hydrator.hydrate(_company(), registry.require("company"))
        assert result["notes"] == ["20"]
        assert result["notes_labels"] == ["Kickoff"]

    @pytest.mark.asyncio
    async def test_is_additive(self, registry, seeded):
        hydrator = RecordHydrator(seeded, registry)
        record = _company(logo_label="Custom", contacts=["2"])
        result = await hydrator.hydrate(record, registry.require("company"))
        assert result["logo_label"] == "Custom"
        assert result["contacts"] == ["2"]
        assert result["contacts_labels"] == ["Bo"]
        for key, value in record.items():
            assert result[key] == value
        assert "contacts_labels" not in record

    @pytest.mark.asyncio
    async def test_embedded_details_skip_lookup(self, registry, seeded):
        hydrator = RecordHydrator(seeded, registry)
        record = _company(logo_details={"id": 10, "title": "Inline", "url": "/x.png"})
        result = await hydrator.hydrate(record, registry.require("company"))
        assert result["logo_label"] == "Inline"
        assert ("select", "media") not in seeded.calls

    @pytest.mark.asyncio
    async def test_failed_lookup_degrades_single_field(self, registry, seeded, caplog):
        seeded.fail_on[("select", "media")] = "media store offline"
        hydrator = RecordHydrator(seeded, registry)
        result = await hydrator.hydrate(_company(), registry.require("company"))
        assert result["logo_label"] is None
        assert result["logo_details"] is None
        assert result["contacts_labels"] == ["Ann", "Bo"]
        assert "media store offline" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_related_row(self, registry, seeded):
        hydrator = RecordHydrator(seeded, registry)
        result = await hydrator.hydrate(_company(logo=999), registry.require("company"))
        assert result["logo_label"] is None

    @pytest.mark.asyncio
    async def test_repeater_labels(self, registry, recording_source):
        hydrator = RecordHydrator(recording_source, registry)
        record = {"id": 1, "title": "Ann", "addresses": [{"street": "Main St"}, {"city": "Oslo"}]}
        result = await hydrator.hydrate(record, registry.require("contact"))
        assert [d["label"] for d in result["addresses_details"]] == ["Main St", "Addresses 2"]

    @pytest.mark.asyncio
    async def test_repeater_json_string(self, registry, recording_source):
        hydrator = RecordHydrator(recording_source, registry)
        record = {"id": 1, "addresses": '[{"street": "Elm"}]'}
        result = await hydrator.hydrate(record, registry.require("contact"))
        assert result["addresses_details"][0]["label"] == "Elm"


class TestHydrateMany:
    @pytest.mark.asyncio
    async def test_single_relation_lookups_are_batched(self, registry, seeded):
        seeded.seed("media", {"id": 11, "title": "Globex logo"})
        hydrator = RecordHydrator(seeded, registry)
        records = [_company(), {"id": 6, "title": "Globex", "logo": 11}, {"id": 7, "logo": 10}]
        result = await hydrator.hydrate_many(records, registry.require("company"))
        assert [r["logo_label"] for r in result] == ["Acme logo", "Globex logo", "Acme logo"]
        assert seeded.calls.count(("select", "media")) == 1

    @pytest.mark.asyncio
    async def test_empty_page(self, registry, seeded):
        hydrator = RecordHydrator(seeded, registry)
        assert await hydrator.hydrate_many([], registry.require("company")) == []
