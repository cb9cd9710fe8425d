"""
Whitelist verification service tests with an in-test registry.
"""

from datetime import date

import pytest
from sqlalchemy import select

from conftest import BAD_CHECKSUM_NIP, OTHER_VALID_NIP, VALID_NIP, raise_unavailable, timeline_events
from ledgercrm.core.exceptions import RegistryUnavailableError, ValidationError
from ledgercrm.core.integrations.whitelist_client import WhitelistSubject, parse_search_response
from ledgercrm.models.timeline_event import TimelineEventType
from ledgercrm.models.whitelist_verification import WhitelistStatus, WhitelistVerificationRecord
from ledgercrm.schemas.whitelist import WhitelistVerifyRequest
from ledgercrm.services.whitelist_service import WhitelistService, classify

ACCOUNT = "61 1090 1014 0000 0712 1981 2874"
ACCOUNT_DIGITS = "61109010140000071219812874"
OTHER_ACCOUNT = "27 1140 2004 0000 3002 0135 5387"


@pytest.fixture
def service(session, whitelist_registry, cache, clock):
    return WhitelistService(session, registry=whitelist_registry, cache=cache, clock=clock)


async def stored_records(session):
    result = await session.execute(select(WhitelistVerificationRecord))
    return list(result.scalars().all())


class TestClassify:
    def test_active_taxpayer(self):
        subject = WhitelistSubject(status_vat="Czynny", account_numbers=[ACCOUNT_DIGITS])
        assert classify(subject, None) == (WhitelistStatus.ON_WHITELIST, None)
        assert classify(subject, ACCOUNT_DIGITS) == (WhitelistStatus.ON_WHITELIST, True)
        assert classify(subject, "00000000000000000000000000") == (WhitelistStatus.ACCOUNT_NOT_FOUND, False)

    @pytest.mark.parametrize("status_vat", ["Zwolniony", "Niezarejestrowany"])
    def test_not_registered_statuses(self, status_vat):
        subject = WhitelistSubject(status_vat=status_vat)
        assert classify(subject, None) == (WhitelistStatus.NOT_REGISTERED, None)

    def test_missing_subject(self):
        assert classify(None, ACCOUNT_DIGITS) == (WhitelistStatus.NOT_REGISTERED, False)

    def test_unknown_status(self):
        assert classify(WhitelistSubject(status_vat="Wykreslony"), None)[0] == WhitelistStatus.NIP_INVALID


class TestVerify:
    async def test_active_taxpayer_with_registered_account(self, service, whitelist_registry, session, actor):
        whitelist_registry.register(VALID_NIP, accounts=[ACCOUNT_DIGITS])

        result = await service.verify(VALID_NIP, actor, bank_account=ACCOUNT)

        assert result.status == WhitelistStatus.ON_WHITELIST
        assert result.nip_valid is True
        assert result.account_valid is True
        assert result.bank_account == ACCOUNT_DIGITS
        assert result.verification_date == date(2026, 3, 10)
        assert result.historical is False
        assert result.subject_name == "ACME SP. Z O.O."
        assert result.record_id is not None
        assert len(await stored_records(session)) == 1

    async def test_account_not_on_the_list(self, service, whitelist_registry, actor):
        whitelist_registry.register(VALID_NIP, accounts=[ACCOUNT_DIGITS])

        result = await service.verify(VALID_NIP, actor, bank_account=OTHER_ACCOUNT)

        assert result.status == WhitelistStatus.ACCOUNT_NOT_FOUND
        assert result.nip_valid is True
        assert result.account_valid is False

    async def test_unknown_subject(self, service, actor):
        result = await service.verify(OTHER_VALID_NIP, actor)
        assert result.status == WhitelistStatus.NOT_REGISTERED
        assert result.nip_valid is True

    async def test_exempt_taxpayer(self, service, whitelist_registry, actor):
        whitelist_registry.register(VALID_NIP, status_vat="Zwolniony")
        result = await service.verify(VALID_NIP, actor)
        assert result.status == WhitelistStatus.NOT_REGISTERED

    async def test_checksum_mismatch_skips_registry(self, service, whitelist_registry, session, actor):
        result = await service.verify(BAD_CHECKSUM_NIP, actor)

        assert result.status == WhitelistStatus.NIP_INVALID
        assert result.nip_valid is False
        assert whitelist_registry.calls == []
        assert await stored_records(session) == []

    @pytest.mark.parametrize("nip", ["12345", "525224848A", "52522484811"])
    async def test_malformed_nip(self, service, actor, nip):
        with pytest.raises(ValidationError):
            await service.verify(nip, actor)

    async def test_prefixed_nip_is_normalized(self, service, whitelist_registry, actor):
        whitelist_registry.register(VALID_NIP)
        result = await service.verify("PL 525-224-84-81", actor)
        assert result.nip == VALID_NIP
        assert result.status == WhitelistStatus.ON_WHITELIST

    async def test_future_date_is_rejected(self, service, actor):
        with pytest.raises(ValidationError):
            await service.verify(VALID_NIP, actor, verification_date=date(2026, 3, 11))

    async def test_same_day_results_are_cached(self, service, whitelist_registry, actor):
        whitelist_registry.register(VALID_NIP)

        first = await service.verify(VALID_NIP, actor)
        second = await service.verify(VALID_NIP, actor)

        assert len(whitelist_registry.calls) == 1
        assert second.status == first.status
        assert second.record_id is None

    async def test_cache_expires_after_an_hour(self, service, whitelist_registry, clock, actor):
        whitelist_registry.register(VALID_NIP)
        await service.verify(VALID_NIP, actor)
        clock.advance(minutes=61)

        await service.verify(VALID_NIP, actor)

        assert len(whitelist_registry.calls) == 2

    async def test_historical_lookup_always_calls_registry(self, service, whitelist_registry, actor):
        whitelist_registry.register(VALID_NIP)
        past = date(2025, 12, 31)

        first = await service.verify(VALID_NIP, actor, verification_date=past)
        await service.verify(VALID_NIP, actor, verification_date=past)

        assert first.historical is True
        assert whitelist_registry.calls == [(VALID_NIP, past), (VALID_NIP, past)]

    async def test_registry_outage_is_a_result(self, service, whitelist_registry, session, actor):
        whitelist_registry.error = raise_unavailable("whitelist")

        result = await service.verify(VALID_NIP, actor)

        assert result.status == WhitelistStatus.SERVICE_ERROR
        assert result.record_id is None
        assert await stored_records(session) == []

    async def test_malformed_registry_payload_is_a_result(self, service, whitelist_registry, session, actor):
        whitelist_registry.error = ValueError("Expecting value: line 1 column 1 (char 0)")

        result = await service.verify(VALID_NIP, actor)

        assert result.status == WhitelistStatus.SERVICE_ERROR
        assert result.nip_valid is True
        assert await stored_records(session) == []

    async def test_client_verification_lands_on_timeline(self, service, whitelist_registry, session, client, actor):
        whitelist_registry.register(VALID_NIP)

        await service.verify(VALID_NIP, actor, client_id=client.id)

        events = await timeline_events(session, client.id, TimelineEventType.WHITELIST_VERIFIED)
        assert len(events) == 1
        assert events[0].event_metadata["status"] == "ON_WHITELIST"
        assert events[0].event_metadata["verification_date"] == "2026-03-10"


class TestBatchVerify:
    async def test_entries_are_isolated(self, service, whitelist_registry, actor):
        whitelist_registry.register(VALID_NIP)
        entries = [
            WhitelistVerifyRequest(nip=VALID_NIP),
            WhitelistVerifyRequest(nip="1234567890"),
            WhitelistVerifyRequest(nip="ABCDEFGHIJ"),
            WhitelistVerifyRequest(nip=OTHER_VALID_NIP),
            WhitelistVerifyRequest(nip=VALID_NIP, verification_date=date(2027, 1, 1)),
        ]

        response = await service.batch_verify(entries, actor)

        assert [r.status for r in response.results] == [
            WhitelistStatus.ON_WHITELIST,
            WhitelistStatus.NIP_INVALID,
            WhitelistStatus.NIP_INVALID,
            WhitelistStatus.NOT_REGISTERED,
            WhitelistStatus.NIP_INVALID,
        ]
        assert response.summary == {"ON_WHITELIST": 1, "NIP_INVALID": 3, "NOT_REGISTERED": 1}

    async def test_unexpected_failure_stays_with_its_entry(self, service, whitelist_registry, actor):
        whitelist_registry.register(VALID_NIP)
        original = whitelist_registry.search_nip

        async def flaky_search(nip, as_of):
            if nip == OTHER_VALID_NIP:
                raise RuntimeError("connection pool exhausted")
            return await original(nip, as_of)

        whitelist_registry.search_nip = flaky_search
        entries = [WhitelistVerifyRequest(nip=VALID_NIP), WhitelistVerifyRequest(nip=OTHER_VALID_NIP)]

        response = await service.batch_verify(entries, actor)

        assert [r.status for r in response.results] == [WhitelistStatus.ON_WHITELIST, WhitelistStatus.SERVICE_ERROR]
        assert response.results[1].message == "Unexpected error: RuntimeError"

    async def test_concurrency_is_bounded(self, session, whitelist_registry, cache, clock, actor):
        import asyncio

        in_flight = 0
        peak = 0
        original = whitelist_registry.search_nip

        async def slow_search(nip, as_of):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await original(nip, as_of)

        whitelist_registry.search_nip = slow_search
        service = WhitelistService(session, registry=whitelist_registry, cache=cache, clock=clock, batch_concurrency=2)
        past = date(2026, 1, 15)
        entries = [WhitelistVerifyRequest(nip=VALID_NIP, verification_date=past) for _ in range(6)]

        response = await service.batch_verify(entries, actor)

        assert len(response.results) == 6
        assert peak == 2

    async def test_batch_size_is_bounded(self, service, actor):
        with pytest.raises(ValidationError):
            await service.batch_verify([], actor)


class TestParseSearchResponse:
    def test_active_subject(self):
        subject = {"name": "ACME", "statusVat": "Czynny", "accountNumbers": [ACCOUNT_DIGITS]}

        lookup = parse_search_response({"result": {"subject": subject, "requestId": "r-1"}})

        assert lookup.subject.status_vat == "Czynny"
        assert lookup.subject.account_numbers == [ACCOUNT_DIGITS]
        assert lookup.request_id == "r-1"

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            {"error": "boom"},
            {"result": {"subject": {"accountNumbers": "not-a-list"}}},
        ],
    )
    def test_malformed_payloads_mean_unavailable(self, payload):
        with pytest.raises(RegistryUnavailableError):
            parse_search_response(payload)
