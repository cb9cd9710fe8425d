"""
Whitelist verification service.

Checks a Polish NIP, and optionally a bank account, against the Ministry of
Finance VAT taxpayer whitelist. Lookups for past dates always go to the
registry; same-day lookups are cached for an hour.
"""

import asyncio
from collections import Counter
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.core.cache import Cache
from ledgercrm.core.config import settings
from ledgercrm.core.exceptions import AppException, NotFoundError, RegistryUnavailableError, ValidationError
from ledgercrm.core.integrations.whitelist_client import WhitelistRegistry, WhitelistSubject
from ledgercrm.core.logging import get_logger
from ledgercrm.db.repositories.client_repository import ClientRepository
from ledgercrm.db.repositories.whitelist_verification_repository import WhitelistVerificationRepository
from ledgercrm.models.whitelist_verification import WhitelistStatus, WhitelistVerificationRecord
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.whitelist import (
    WhitelistBatchVerificationResponse,
    WhitelistVerificationResult,
    WhitelistVerifyRequest,
)
from ledgercrm.services.audit_service import audited
from ledgercrm.services.base_service import BaseService
from ledgercrm.services.timeline_service import TimelineService
from ledgercrm.utils.clock import utcnow
from ledgercrm.utils.tax_identifiers import (
    is_nip_shape,
    is_valid_nip_checksum,
    normalize_bank_account,
    normalize_nip,
)

logger = get_logger(__name__)

# Registration statuses ("statusVat") published by the registry
STATUS_ACTIVE = "Czynny"
STATUS_EXEMPT = "Zwolniony"
STATUS_UNREGISTERED = "Niezarejestrowany"


def cache_key(nip: str, bank_account: Optional[str], as_of: date) -> str:
    return f"whitelist:{nip}:{bank_account or '-'}:{as_of.isoformat()}"


def classify(subject: Optional[WhitelistSubject], bank_account: Optional[str]) -> Tuple[WhitelistStatus, Optional[bool]]:
    """
    Map a registry subject to a verification status.

    Returns:
        (status, account_valid); account_valid is None when no account was requested
    """
    if subject is None:
        return WhitelistStatus.NOT_REGISTERED, None if bank_account is None else False
    if subject.status_vat == STATUS_ACTIVE:
        if bank_account is None:
            return WhitelistStatus.ON_WHITELIST, None
        registered = {normalize_bank_account(account) for account in subject.account_numbers}
        if bank_account in registered:
            return WhitelistStatus.ON_WHITELIST, True
        return WhitelistStatus.ACCOUNT_NOT_FOUND, False
    account_valid = None if bank_account is None else False
    if subject.status_vat in (STATUS_EXEMPT, STATUS_UNREGISTERED):
        return WhitelistStatus.NOT_REGISTERED, account_valid
    return WhitelistStatus.NIP_INVALID, account_valid


class WhitelistService(BaseService):
    """Service for whitelist verification."""

    def __init__(
        self,
        session: AsyncSession,
        registry: WhitelistRegistry,
        cache: Cache,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl_seconds: int = settings.WHITELIST_CACHE_TTL_SECONDS,
        batch_concurrency: int = settings.WHITELIST_BATCH_CONCURRENCY,
        registry_timeout_seconds: float = settings.WHITELIST_TIMEOUT_SECONDS,
    ):
        super().__init__(session)
        self.registry = registry
        self.cache = cache
        self.record_repo = WhitelistVerificationRepository(session)
        self.client_repo = ClientRepository(session)
        self.timeline = TimelineService(session, clock=clock)
        self.cache_ttl_seconds = cache_ttl_seconds
        self.batch_concurrency = batch_concurrency
        self.registry_timeout_seconds = registry_timeout_seconds
        self._clock = clock
        self._db_lock = asyncio.Lock()

    @audited("VERIFY", "WHITELIST")
    async def verify(
        self,
        nip: str,
        actor: Actor,
        bank_account: Optional[str] = None,
        verification_date: Optional[date] = None,
        client_id: Optional[UUID] = None,
    ) -> WhitelistVerificationResult:
        """
        Verify a NIP, optionally with a bank account, as of a date (default today).

        A registry outage is reported as a SERVICE_ERROR result, never raised.

        Raises:
            ValidationError: The NIP is not ten digits, or the date lies in the future
            NotFoundError: `client_id` names no client of the actor's organization
        """
        result = await self._verify(nip, actor, bank_account, verification_date, client_id)
        await self.session.commit()
        return result

    async def _verify(
        self,
        nip: str,
        actor: Actor,
        bank_account: Optional[str] = None,
        verification_date: Optional[date] = None,
        client_id: Optional[UUID] = None,
    ) -> WhitelistVerificationResult:
        normalized_nip = normalize_nip(nip)
        if not is_nip_shape(normalized_nip):
            raise ValidationError("NIP must consist of exactly 10 digits", details={"nip": nip})
        account = normalize_bank_account(bank_account)

        now = self._clock()
        today = now.date()
        as_of = verification_date or today
        if as_of > today:
            raise ValidationError(
                "Verification date cannot be in the future",
                details={"verification_date": as_of.isoformat()},
            )
        historical = as_of < today
        if client_id is not None:
            await self._require_client(client_id, actor)

        base = {
            "nip": normalized_nip,
            "bank_account": account,
            "verification_date": as_of,
            "historical": historical,
            "verified_at": now,
        }

        if not is_valid_nip_checksum(normalized_nip):
            return WhitelistVerificationResult(
                **base,
                status=WhitelistStatus.NIP_INVALID,
                nip_valid=False,
                account_valid=None if account is None else False,
                message="NIP checksum mismatch",
            )

        key = cache_key(normalized_nip, account, as_of)
        if not historical:
            cached = await self.cache.get(key)
            if cached is not None:
                logger.debug(f"Whitelist cache hit for {normalized_nip}")
                result = WhitelistVerificationResult.model_validate(cached)
                return await self._record_on_timeline(result, actor, client_id)

        try:
            lookup = await asyncio.wait_for(
                self.registry.search_nip(normalized_nip, as_of),
                timeout=self.registry_timeout_seconds,
            )
        except (RegistryUnavailableError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(
                f"Whitelist registry unavailable for {normalized_nip}",
                extra={"nip": normalized_nip, "reason": str(e) or type(e).__name__},
            )
            return WhitelistVerificationResult(
                **base,
                status=WhitelistStatus.SERVICE_ERROR,
                nip_valid=True,
                message="Whitelist registry unavailable",
            )

        status, account_valid = classify(lookup.subject, account)
        subject = lookup.subject
        record = WhitelistVerificationRecord(
            organization_id=actor.organization_id,
            client_id=client_id,
            nip=normalized_nip,
            bank_account=account,
            verification_date=as_of,
            status=status,
            nip_valid=status != WhitelistStatus.NIP_INVALID,
            account_valid=account_valid,
            subject_name=subject.name if subject else None,
            registration_status=subject.status_vat if subject else None,
            registered_accounts=list(subject.account_numbers) if subject else [],
            request_identifier=lookup.request_id,
            verified_at=now,
            raw_response=lookup.raw,
            verified_by=actor.user_id,
        )
        async with self._db_lock:
            await self.record_repo.add(record)

        result = WhitelistVerificationResult(
            **base,
            status=status,
            nip_valid=record.nip_valid,
            account_valid=account_valid,
            subject_name=record.subject_name,
            registration_status=record.registration_status,
            registered_accounts=record.registered_accounts,
            request_identifier=record.request_identifier,
            record_id=record.id,
            client_id=client_id,
        )
        if not historical:
            await self.cache.set(
                key,
                result.model_copy(update={"record_id": None, "client_id": None}).model_dump(mode="json"),
                self.cache_ttl_seconds,
            )
        logger.info(
            f"Whitelist verification of {normalized_nip}: {status.value}",
            extra={"record_id": str(record.id), "historical": historical},
        )
        return await self._record_on_timeline(result, actor, client_id)

    async def _record_on_timeline(
        self,
        result: WhitelistVerificationResult,
        actor: Actor,
        client_id: Optional[UUID],
    ) -> WhitelistVerificationResult:
        if client_id is None:
            return result
        async with self._db_lock:
            await self.timeline.record_whitelist_verified(
                client_id,
                result.nip,
                result.status.value,
                result.verification_date,
                actor,
                bank_account=result.bank_account,
                record_id=result.record_id,
            )
        return result

    async def _require_client(self, client_id: UUID, actor: Actor) -> None:
        async with self._db_lock:
            client = await self.client_repo.get(client_id, actor.organization_id)
        if not client:
            raise NotFoundError("Client not found", details={"client_id": str(client_id)})

    @audited("BATCH_VERIFY", "WHITELIST")
    async def batch_verify(
        self,
        entries: List[WhitelistVerifyRequest],
        actor: Actor,
    ) -> WhitelistBatchVerificationResponse:
        """
        Verify up to BATCH_MAX_SIZE entries with a bounded number in flight.

        A failing entry becomes a result with the status it failed on
        (NIP_INVALID for malformed input); results keep the input order.
        """
        if not 1 <= len(entries) <= settings.BATCH_MAX_SIZE:
            raise ValidationError(
                f"Batch must contain between 1 and {settings.BATCH_MAX_SIZE} entries",
                details={"size": len(entries)},
            )

        semaphore = asyncio.Semaphore(self.batch_concurrency)

        async def run(entry: WhitelistVerifyRequest) -> WhitelistVerificationResult:
            async with semaphore:
                return await self._verify_item(entry, actor)

        results = list(await asyncio.gather(*(run(entry) for entry in entries)))
        await self.session.commit()
        summary = Counter(result.status.value for result in results)
        logger.info(f"Batch whitelist verification finished: {len(results)} entries", extra={"summary": dict(summary)})
        return WhitelistBatchVerificationResponse(results=results, summary=dict(summary))

    async def _verify_item(self, entry: WhitelistVerifyRequest, actor: Actor) -> WhitelistVerificationResult:
        try:
            return await self._verify(
                entry.nip,
                actor,
                bank_account=entry.bank_account,
                verification_date=entry.verification_date,
                client_id=entry.client_id,
            )
        except ValidationError as e:
            status = WhitelistStatus.NIP_INVALID
            message = e.message
        except AppException as e:
            status = WhitelistStatus.SERVICE_ERROR
            message = e.message
        except Exception as e:
            # One broken entry never takes its siblings down with it
            logger.exception(f"Batch entry {entry.nip} failed unexpectedly: {e!r}")
            status = WhitelistStatus.SERVICE_ERROR
            message = f"Unexpected error: {type(e).__name__}"
        logger.warning(f"Batch entry {entry.nip} failed: {message}")
        now = self._clock()
        return WhitelistVerificationResult(
            nip=normalize_nip(entry.nip),
            bank_account=normalize_bank_account(entry.bank_account),
            verification_date=entry.verification_date or now.date(),
            status=status,
            nip_valid=False,
            verified_at=now,
            message=message,
        )
