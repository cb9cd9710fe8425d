"""
VAT validation service.

Validates EU VAT numbers against the VIES registry. Calls are fronted by a
format pre-check, a shared cache and an outbound rate limiter; registry
outages degrade to the latest stored answer instead of failing.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.core.cache import Cache
from ledgercrm.core.config import settings
from ledgercrm.core.exceptions import (
    AppException,
    ConflictError,
    NotFoundError,
    RegistryUnavailableError,
    ValidationError,
)
from ledgercrm.core.integrations.vies_client import VatRegistry
from ledgercrm.core.logging import get_logger
from ledgercrm.core.rate_limiter import FixedWindowRateLimiter
from ledgercrm.db.repositories.client_repository import ClientRepository
from ledgercrm.db.repositories.vat_validation_repository import VatValidationRepository
from ledgercrm.models.vat_validation import VatStatus, VatValidationRecord
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.vat import (
    ClientVatStatus,
    VatBatchValidationResponse,
    VatValidationRecordResponse,
    VatValidationResult,
)
from ledgercrm.services.audit_service import audited
from ledgercrm.services.base_service import BaseService
from ledgercrm.services.timeline_service import TimelineService
from ledgercrm.utils.clock import utcnow
from ledgercrm.utils.tax_identifiers import is_valid_vat_format, normalize_vat_number, split_vat_number

logger = get_logger(__name__)

BATCH_CHUNK_SIZE = 10
FALLBACK_WINDOW = timedelta(hours=24)
CACHED_RESULT_NOTE = "Registry unavailable, using cached result"


def cache_key(vat_number: str) -> str:
    return f"vat:{vat_number}"


class VatService(BaseService):
    """Service for VAT number validation."""

    def __init__(
        self,
        session: AsyncSession,
        registry: VatRegistry,
        cache: Cache,
        rate_limiter: FixedWindowRateLimiter,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        cache_ttl_seconds: int = settings.VAT_CACHE_TTL_SECONDS,
        batch_pause_seconds: float = settings.VAT_BATCH_PAUSE_SECONDS,
        registry_timeout_seconds: float = settings.VIES_TIMEOUT_SECONDS,
    ):
        super().__init__(session)
        self.registry = registry
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.record_repo = VatValidationRepository(session)
        self.client_repo = ClientRepository(session)
        self.timeline = TimelineService(session, clock=clock)
        self.cache_ttl_seconds = cache_ttl_seconds
        self.batch_pause_seconds = batch_pause_seconds
        self.registry_timeout_seconds = registry_timeout_seconds
        self._clock = clock
        self._sleep = sleep
        # Batch items share this session; only one of them may touch it at a time
        self._db_lock = asyncio.Lock()

    @audited("VALIDATE", "VAT_NUMBER")
    async def validate_vat(
        self,
        vat_number: str,
        actor: Actor,
        client_id: Optional[UUID] = None,
    ) -> VatValidationResult:
        """
        Validate one full VAT number (country prefix included).

        Raises:
            ValidationError: The number has no known two-letter country prefix
            NotFoundError: `client_id` names no client of the actor's organization
            RateLimitError: The outbound call budget for this minute is spent
        """
        result = await self._validate(vat_number, actor, client_id)
        await self.session.commit()
        return result

    async def _validate(
        self,
        vat_number: str,
        actor: Actor,
        client_id: Optional[UUID] = None,
    ) -> VatValidationResult:
        parts = split_vat_number(vat_number)
        if parts is None:
            raise ValidationError(
                "VAT number must start with a supported EU country code",
                details={"vat_number": vat_number},
            )
        country_code, local_number = parts
        full_number = f"{country_code}{local_number}"
        if client_id is not None:
            await self._require_client(client_id, actor)

        now = self._clock()
        if not is_valid_vat_format(country_code, local_number):
            result = VatValidationResult(
                vat_number=full_number,
                country_code=country_code,
                valid=False,
                status=VatStatus.INVALID,
                validated_at=now,
                message=f"VAT number does not match the {country_code} format",
            )
            return await self._record_on_timeline(result, actor, client_id)

        cached = await self.cache.get(cache_key(full_number))
        if cached is not None:
            logger.debug(f"VAT cache hit for {full_number}")
            result = VatValidationResult.model_validate(cached)
            return await self._record_on_timeline(result, actor, client_id)

        await self.rate_limiter.acquire()

        try:
            response = await asyncio.wait_for(
                self.registry.check_vat(country_code, local_number),
                timeout=self.registry_timeout_seconds,
            )
        except (RegistryUnavailableError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(
                f"VIES unavailable for {full_number}, falling back",
                extra={"vat_number": full_number, "reason": str(e) or type(e).__name__},
            )
            result = await self._fallback(full_number, country_code, actor, now)
            return await self._record_on_timeline(result, actor, client_id)

        record = VatValidationRecord(
            organization_id=actor.organization_id,
            client_id=client_id,
            vat_number=full_number,
            country_code=country_code,
            valid=response.valid,
            status=VatStatus.VALID if response.valid else VatStatus.INVALID,
            company_name=response.name,
            company_address=response.address,
            request_identifier=response.request_identifier,
            validated_at=now,
            cache_expires_at=now + timedelta(seconds=self.cache_ttl_seconds),
            raw_response=response.raw,
            validated_by=actor.user_id,
        )
        async with self._db_lock:
            await self.record_repo.add(record)

        result = self._record_result(record)
        # Cached answers are shared across organizations, so they carry registry data only
        await self.cache.set(
            cache_key(full_number),
            result.model_copy(update={"record_id": None, "client_id": None}).model_dump(mode="json"),
            self.cache_ttl_seconds,
        )
        logger.info(
            f"VAT number {full_number} validated: {record.status.value}",
            extra={"record_id": str(record.id), "client_id": str(client_id) if client_id else None},
        )
        return await self._record_on_timeline(result, actor, client_id)

    async def _fallback(
        self,
        full_number: str,
        country_code: str,
        actor: Actor,
        now: datetime,
    ) -> VatValidationResult:
        """Latest stored answer from the last 24 hours, or a synthetic unavailable result."""
        async with self._db_lock:
            record = await self.record_repo.get_latest_since(
                full_number, now - FALLBACK_WINDOW, actor.organization_id
            )
        if record is not None:
            return self._record_result(record).model_copy(
                update={"status": VatStatus.SERVICE_UNAVAILABLE, "message": CACHED_RESULT_NOTE}
            )
        return VatValidationResult(
            vat_number=full_number,
            country_code=country_code,
            valid=False,
            status=VatStatus.SERVICE_UNAVAILABLE,
            validated_at=now,
            message="Registry unavailable and no recent result on record",
        )

    async def _record_on_timeline(
        self,
        result: VatValidationResult,
        actor: Actor,
        client_id: Optional[UUID],
    ) -> VatValidationResult:
        if client_id is None:
            return result
        async with self._db_lock:
            await self.timeline.record_vat_validated(
                client_id,
                result.vat_number,
                result.status.value,
                result.valid,
                actor,
                record_id=result.record_id,
                company_name=result.company_name,
            )
        return result

    async def _require_client(self, client_id: UUID, actor: Actor) -> None:
        async with self._db_lock:
            client = await self.client_repo.get(client_id, actor.organization_id)
        if not client:
            raise NotFoundError("Client not found", details={"client_id": str(client_id)})

    @audited("BATCH_VALIDATE", "VAT_NUMBER")
    async def batch_validate_vat(self, vat_numbers: List[str], actor: Actor) -> VatBatchValidationResponse:
        """
        Validate up to BATCH_MAX_SIZE numbers.

        Numbers are processed in chunks of ten; the items of a chunk run
        concurrently and chunks are separated by a pause that keeps the batch
        inside the registry's per-minute budget. A failing item becomes an
        ERROR result; results keep the input order.
        """
        if not 1 <= len(vat_numbers) <= settings.BATCH_MAX_SIZE:
            raise ValidationError(
                f"Batch must contain between 1 and {settings.BATCH_MAX_SIZE} VAT numbers",
                details={"size": len(vat_numbers)},
            )

        results: List[VatValidationResult] = []
        for start in range(0, len(vat_numbers), BATCH_CHUNK_SIZE):
            if start:
                await self._sleep(self.batch_pause_seconds)
            chunk = vat_numbers[start:start + BATCH_CHUNK_SIZE]
            results.extend(await asyncio.gather(*(self._validate_item(number, actor) for number in chunk)))

        await self.session.commit()
        summary = Counter(result.status.value for result in results)
        logger.info(f"Batch VAT validation finished: {len(results)} numbers", extra={"summary": dict(summary)})
        return VatBatchValidationResponse(results=results, summary=dict(summary))

    async def _validate_item(self, vat_number: str, actor: Actor) -> VatValidationResult:
        try:
            return await self._validate(vat_number, actor)
        except AppException as e:
            logger.warning(f"Batch item {vat_number} failed: {e.message}", extra={"code": e.code})
            return self._error_result(vat_number, e.message)
        except Exception as e:
            # One broken item never takes its siblings down with it
            logger.exception(f"Batch item {vat_number} failed unexpectedly: {e!r}")
            return self._error_result(vat_number, f"Unexpected error: {type(e).__name__}")

    def _error_result(self, vat_number: str, message: str) -> VatValidationResult:
        return VatValidationResult(
            vat_number=normalize_vat_number(vat_number),
            valid=False,
            status=VatStatus.ERROR,
            validated_at=self._clock(),
            message=message,
        )

    @audited("LINK", "VAT_VALIDATION", id_arg="record_id")
    async def link_to_client(self, record_id: UUID, client_id: UUID, actor: Actor) -> VatValidationRecordResponse:
        """
        Attach a stored validation record to a client.

        Raises:
            NotFoundError: Unknown record or client
            ConflictError: The record already belongs to another client
        """
        record = await self.record_repo.get(record_id, actor.organization_id)
        if not record:
            raise NotFoundError("VAT validation record not found", details={"record_id": str(record_id)})
        await self._require_client(client_id, actor)
        if record.client_id == client_id:
            return VatValidationRecordResponse.model_validate(record)
        if record.client_id is not None:
            raise ConflictError(
                "VAT validation record is already linked to another client",
                details={"record_id": str(record_id), "client_id": str(record.client_id)},
            )

        record.client_id = client_id
        await self.session.flush()
        await self.timeline.record_vat_validated(
            client_id,
            record.vat_number,
            record.status.value,
            record.valid,
            actor,
            record_id=record.id,
            company_name=record.company_name,
        )
        await self.session.commit()
        return VatValidationRecordResponse.model_validate(record)

    async def list_history(self, vat_number: str, actor: Actor, limit: int = 50) -> List[VatValidationRecordResponse]:
        """Stored validations of a VAT number, newest first."""
        parts = split_vat_number(vat_number)
        if parts is None:
            raise ValidationError(
                "VAT number must start with a supported EU country code",
                details={"vat_number": vat_number},
            )
        records = await self.record_repo.list_by_vat_number("".join(parts), actor.organization_id, limit=limit)
        return [VatValidationRecordResponse.model_validate(record) for record in records]

    async def get_vat_status(self, client_id: UUID, actor: Actor) -> ClientVatStatus:
        """
        Latest VAT standing of a client.

        A client with no linked validation reports no status and counts as
        expired, as does one whose latest validation is past its cache expiry.
        """
        await self._require_client(client_id, actor)
        record = await self.record_repo.get_latest_for_client(client_id, actor.organization_id)
        if record is None:
            return ClientVatStatus(client_id=client_id)
        return ClientVatStatus(
            client_id=client_id,
            vat_number=record.vat_number,
            country_code=record.country_code,
            status=record.status,
            valid=record.valid,
            company_name=record.company_name,
            validated_at=record.validated_at,
            expires_at=record.cache_expires_at,
            is_expired=self._clock() >= record.cache_expires_at,
            record_id=record.id,
        )

    def _record_result(self, record: VatValidationRecord) -> VatValidationResult:
        return VatValidationResult(
            vat_number=record.vat_number,
            country_code=record.country_code,
            valid=record.valid,
            status=record.status,
            company_name=record.company_name,
            company_address=record.company_address,
            request_identifier=record.request_identifier,
            validated_at=record.validated_at,
            cache_expires_at=record.cache_expires_at,
            record_id=record.id,
            client_id=record.client_id,
        )
