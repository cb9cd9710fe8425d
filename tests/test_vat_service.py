"""
VAT validation service tests with an in-test VIES registry.
"""

import pytest

from conftest import audit_entries, raise_unavailable, timeline_events
from ledgercrm.core.exceptions import ConflictError, NotFoundError, RateLimitError, ValidationError
from ledgercrm.models.client import Client
from ledgercrm.models.timeline_event import TimelineEventType
from ledgercrm.models.vat_validation import VatStatus
from ledgercrm.services.vat_service import CACHED_RESULT_NOTE, VatService, cache_key

KNOWN_VAT = "PL5252248481"


@pytest.fixture
def service(session, vat_registry, cache, rate_limiter, clock, fake_sleep):
    vat_registry.valid[KNOWN_VAT] = "ACME SP. Z O.O."
    return VatService(
        session,
        registry=vat_registry,
        cache=cache,
        rate_limiter=rate_limiter,
        clock=clock,
        sleep=fake_sleep,
    )


class TestValidateVat:
    async def test_valid_number_is_persisted_and_cached(self, service, vat_registry, cache, session, actor):
        result = await service.validate_vat("pl 525-224-84-81", actor)

        assert result.vat_number == KNOWN_VAT
        assert result.country_code == "PL"
        assert result.valid is True
        assert result.status == VatStatus.VALID
        assert result.company_name == "ACME SP. Z O.O."
        assert result.record_id is not None
        assert vat_registry.calls == [KNOWN_VAT]

        cached = await cache.get(cache_key(KNOWN_VAT))
        assert cached["status"] == "VALID"
        assert cached["record_id"] is None

        audits = await audit_entries(session, "VALIDATE")
        assert len(audits) == 1
        assert audits[0].entity_id == str(result.record_id)

    async def test_unknown_number_is_invalid(self, service, actor):
        result = await service.validate_vat("DE123456789", actor)
        assert result.valid is False
        assert result.status == VatStatus.INVALID

    async def test_format_mismatch_skips_registry(self, service, vat_registry, actor):
        result = await service.validate_vat("PL123", actor)

        assert result.status == VatStatus.INVALID
        assert result.record_id is None
        assert "format" in result.message
        assert vat_registry.calls == []

    async def test_unknown_country_prefix(self, service, vat_registry, actor):
        with pytest.raises(ValidationError):
            await service.validate_vat("XX123456789", actor)
        assert vat_registry.calls == []

    async def test_cache_hit_skips_registry(self, service, vat_registry, actor):
        first = await service.validate_vat(KNOWN_VAT, actor)
        second = await service.validate_vat(KNOWN_VAT, actor)

        assert vat_registry.calls == [KNOWN_VAT]
        assert second.status == VatStatus.VALID
        assert second.record_id is None
        assert second.company_name == first.company_name
        history = await service.list_history(KNOWN_VAT, actor)
        assert len(history) == 1

    async def test_outbound_budget_is_enforced(self, service, actor):
        for i in range(10):
            await service.validate_vat(f"PL10000000{i:02d}", actor)

        with pytest.raises(RateLimitError):
            await service.validate_vat("PL1000000099", actor)

    async def test_budget_renews_with_the_next_window(self, service, clock, actor):
        for i in range(10):
            await service.validate_vat(f"PL10000000{i:02d}", actor)
        clock.advance(seconds=60)

        result = await service.validate_vat("PL1000000099", actor)
        assert result.status == VatStatus.INVALID

    async def test_outage_falls_back_to_recent_record(self, service, vat_registry, cache, clock, actor):
        stored = await service.validate_vat(KNOWN_VAT, actor)
        await cache.delete(cache_key(KNOWN_VAT))
        clock.advance(hours=3)
        vat_registry.error = raise_unavailable()

        result = await service.validate_vat(KNOWN_VAT, actor)

        assert result.status == VatStatus.SERVICE_UNAVAILABLE
        assert result.valid is True
        assert result.message == CACHED_RESULT_NOTE
        assert result.record_id == stored.record_id
        assert result.company_name == "ACME SP. Z O.O."

    async def test_outage_ignores_stale_records(self, service, vat_registry, cache, clock, actor):
        await service.validate_vat(KNOWN_VAT, actor)
        await cache.delete(cache_key(KNOWN_VAT))
        clock.advance(hours=25)
        vat_registry.error = raise_unavailable()

        result = await service.validate_vat(KNOWN_VAT, actor)

        assert result.status == VatStatus.SERVICE_UNAVAILABLE
        assert result.valid is False
        assert result.record_id is None

    async def test_outage_without_any_record(self, service, vat_registry, actor):
        vat_registry.error = raise_unavailable()

        result = await service.validate_vat(KNOWN_VAT, actor)

        assert result.status == VatStatus.SERVICE_UNAVAILABLE
        assert result.valid is False
        assert result.message != CACHED_RESULT_NOTE

    async def test_fallback_is_scoped_to_the_organization(self, service, vat_registry, cache, actor, other_actor):
        await service.validate_vat(KNOWN_VAT, actor)
        await cache.delete(cache_key(KNOWN_VAT))
        vat_registry.error = raise_unavailable()

        result = await service.validate_vat(KNOWN_VAT, other_actor)

        assert result.record_id is None
        assert result.valid is False

    async def test_client_validation_lands_on_timeline(self, service, session, client, actor):
        result = await service.validate_vat(KNOWN_VAT, actor, client_id=client.id)

        assert result.client_id == client.id
        events = await timeline_events(session, client.id, TimelineEventType.VAT_VALIDATED)
        assert len(events) == 1
        assert events[0].event_metadata["status"] == "VALID"
        assert events[0].event_metadata["record_id"] == str(result.record_id)

    async def test_client_of_another_organization(self, service, client, other_actor):
        with pytest.raises(NotFoundError):
            await service.validate_vat(KNOWN_VAT, other_actor, client_id=client.id)


class TestBatchValidate:
    async def test_results_keep_input_order(self, service, actor):
        numbers = [KNOWN_VAT, "PL123", "XX999", "DE123456789"]

        response = await service.batch_validate_vat(numbers, actor)

        assert [r.status for r in response.results] == [
            VatStatus.VALID,
            VatStatus.INVALID,
            VatStatus.ERROR,
            VatStatus.INVALID,
        ]
        assert response.results[2].vat_number == "XX999"
        assert response.summary == {"VALID": 1, "INVALID": 2, "ERROR": 1}

    async def test_chunks_are_paced(self, service, fake_sleep, vat_registry, actor):
        numbers = [f"PL20000000{i:02d}" for i in range(25)]

        response = await service.batch_validate_vat(numbers, actor)

        assert len(response.results) == 25
        assert fake_sleep.calls == [60.0, 60.0]
        assert len(vat_registry.calls) == 25
        assert [r.vat_number for r in response.results] == numbers

    async def test_small_batch_does_not_pause(self, service, fake_sleep, actor):
        await service.batch_validate_vat([f"PL30000000{i:02d}" for i in range(10)], actor)
        assert fake_sleep.calls == []

    async def test_outage_inside_a_batch_is_not_an_error(self, service, vat_registry, actor):
        vat_registry.error = raise_unavailable()
        response = await service.batch_validate_vat([KNOWN_VAT], actor)
        assert response.results[0].status == VatStatus.SERVICE_UNAVAILABLE

    async def test_unexpected_failure_stays_with_its_item(self, service, vat_registry, actor):
        numbers = [f"PL40000000{i:02d}" for i in range(15)]
        original = vat_registry.check_vat

        async def flaky_check(country_code, local_number):
            if local_number == "4000000007":
                raise RuntimeError("unexpected registry payload")
            return await original(country_code, local_number)

        vat_registry.check_vat = flaky_check

        response = await service.batch_validate_vat(numbers, actor)

        assert len(response.results) == 15
        assert response.results[7].status == VatStatus.ERROR
        assert response.results[7].message == "Unexpected error: RuntimeError"
        assert response.summary == {"INVALID": 14, "ERROR": 1}

    async def test_malformed_registry_answer_falls_back(self, service, vat_registry, actor):
        vat_registry.error = ValueError("not a SOAP envelope")

        response = await service.batch_validate_vat([KNOWN_VAT, "PL123"], actor)

        assert [r.status for r in response.results] == [VatStatus.SERVICE_UNAVAILABLE, VatStatus.INVALID]

    @pytest.mark.parametrize("size", [0, 101])
    async def test_batch_size_is_bounded(self, service, actor, size):
        with pytest.raises(ValidationError):
            await service.batch_validate_vat([KNOWN_VAT] * size, actor)


class TestLinkToClient:
    async def test_link_record(self, service, session, client, actor):
        result = await service.validate_vat(KNOWN_VAT, actor)

        linked = await service.link_to_client(result.record_id, client.id, actor)

        assert linked.client_id == client.id
        events = await timeline_events(session, client.id, TimelineEventType.VAT_VALIDATED)
        assert len(events) == 1

    async def test_relinking_to_same_client_is_idempotent(self, service, session, client, actor):
        result = await service.validate_vat(KNOWN_VAT, actor, client_id=client.id)

        linked = await service.link_to_client(result.record_id, client.id, actor)

        assert linked.client_id == client.id
        assert len(await timeline_events(session, client.id, TimelineEventType.VAT_VALIDATED)) == 1

    async def test_record_of_another_client(self, service, session, client, actor):
        other = Client(organization_id=actor.organization_id, name="Other")
        session.add(other)
        await session.commit()
        result = await service.validate_vat(KNOWN_VAT, actor, client_id=client.id)

        with pytest.raises(ConflictError):
            await service.link_to_client(result.record_id, other.id, actor)

    async def test_unknown_record(self, service, client, actor):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            await service.link_to_client(uuid4(), client.id, actor)


class TestClientVatStatus:
    async def test_client_without_validations(self, service, client, actor):
        status = await service.get_vat_status(client.id, actor)

        assert status.client_id == client.id
        assert status.status is None
        assert status.record_id is None
        assert status.is_expired is True

    async def test_latest_linked_validation_wins(self, service, client, clock, actor):
        await service.validate_vat("DE123456789", actor, client_id=client.id)
        clock.advance(hours=1)
        latest = await service.validate_vat(KNOWN_VAT, actor, client_id=client.id)

        status = await service.get_vat_status(client.id, actor)

        assert status.record_id == latest.record_id
        assert status.vat_number == KNOWN_VAT
        assert status.status == VatStatus.VALID
        assert status.valid is True
        assert status.company_name == "ACME SP. Z O.O."
        assert status.expires_at == latest.cache_expires_at
        assert status.is_expired is False

    async def test_unlinked_validations_are_ignored(self, service, client, actor):
        await service.validate_vat(KNOWN_VAT, actor)

        status = await service.get_vat_status(client.id, actor)

        assert status.record_id is None

    async def test_status_expires_with_the_cached_answer(self, service, client, clock, actor):
        await service.validate_vat(KNOWN_VAT, actor, client_id=client.id)
        clock.advance(hours=25)

        status = await service.get_vat_status(client.id, actor)

        assert status.status == VatStatus.VALID
        assert status.is_expired is True

    async def test_client_of_another_organization(self, service, client, other_actor):
        with pytest.raises(NotFoundError):
            await service.get_vat_status(client.id, other_actor)
