import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from .artifacts import ArtifactStore
from .credits import CreditLedger, DeclineReason
from .errors import LedgerIntegrityFault, PersistenceFailure, QuotaExhausted
from .fingerprint import ProductInput, compute_fingerprint
from .onboarding import get_onboarded_shop
from .schemas import validate_schema

logger = logging.getLogger(__name__)

CREDITS_PER_GENERATION = 1


class Generator(Protocol):
    def generate(self, product: ProductInput, brand_voice: str) -> dict: ...


class Delivery(Protocol):
    def deliver(self, product_id: str, artifact: dict) -> bool: ...


class ProcessStatus(str, Enum):
    CACHED = 'cached'
    FRESH = 'fresh'
    SUPERSEDED = 'superseded'


@dataclass(frozen=True)
class GenerationResult:
    schema: dict
    credits_remaining: int


@dataclass(frozen=True)
class ProcessResult:
    status: ProcessStatus
    product_id: str
    schema: dict
    credits_remaining: Optional[int] = None
    is_synced: bool = False


class SchemaOrchestrator:
    """
    Decides whether a product needs a new schema and, if so, pays for it.

    Order per attempt: fingerprint check, balance check, generation, debit,
    persistence, delivery. A failure at any step ends the attempt with the
    ledger untouched, except persistence, which fails after the debit.
    """

    def __init__(
        self,
        ledger: CreditLedger,
        store: ArtifactStore,
        generator: Generator,
        delivery: Optional[Delivery] = None,
        using: str = 'default',
    ):
        self._ledger = ledger
        self._store = store
        self._generator = generator
        self._delivery = delivery
        self._using = using

    def generate_product_schema(self, shop: str, product: ProductInput, brand_voice: str) -> GenerationResult:
        balance = self._ledger.check_balance(shop)
        if not balance.has_credits:
            logger.warning("Shop %s has no credits; product %s not generated.", shop, product.product_id)
            raise QuotaExhausted(shop, balance.balance)

        # Both raise GenerationFailure; nothing has been spent yet.
        schema = validate_schema(self._generator.generate(product, brand_voice))

        debit = self._ledger.deduct_credit(shop, CREDITS_PER_GENERATION)
        if not debit.success:
            if debit.reason == DeclineReason.INSUFFICIENT:
                # Another attempt spent the last credit between check and debit.
                raise QuotaExhausted(shop, debit.new_balance)
            logger.error(
                "Generated schema for product %s of shop %s could not be paid for: %s.",
                product.product_id, shop, debit.reason.value,
            )
            raise LedgerIntegrityFault(shop, debit.reason.value)

        return GenerationResult(schema=schema, credits_remaining=debit.new_balance)

    def process_product(self, shop: str, product: ProductInput) -> ProcessResult:
        """
        Run one product through the Stale Data Guard and, when it changed, the credit flow.

        Unchanged content returns the stored schema without touching the
        ledger or the generator.
        """
        tenant = get_onboarded_shop(shop, using=self._using)

        fingerprint = compute_fingerprint(product)
        state = self._store.record_scan(shop, product.product_id)
        previous = state.content_hash

        if previous == fingerprint and state.schema_blob is not None:
            logger.debug("Product %s unchanged, serving cached schema.", product.product_id)
            return ProcessResult(
                status=ProcessStatus.CACHED,
                product_id=product.product_id,
                schema=state.schema_blob,
                is_synced=state.is_synced,
            )

        result = self.generate_product_schema(shop, product, tenant.brand_voice or '')

        try:
            stored = self._store.save_artifact(
                shop, product.product_id, fingerprint, result.schema, expected_fingerprint=previous,
            )
        except Exception as exc:
            # Anything raised here happens after the debit.
            logger.error(
                "Shop %s was debited but schema for product %s was not stored (credits left: %d). "
                "Refund with add_credits if the attempt is not retried. Cause: %r",
                shop, product.product_id, result.credits_remaining, exc,
            )
            raise PersistenceFailure(shop, product.product_id, result.credits_remaining) from exc

        if not stored:
            return ProcessResult(
                status=ProcessStatus.SUPERSEDED,
                product_id=product.product_id,
                schema=result.schema,
                credits_remaining=result.credits_remaining,
            )

        return ProcessResult(
            status=ProcessStatus.FRESH,
            product_id=product.product_id,
            schema=result.schema,
            credits_remaining=result.credits_remaining,
            is_synced=self._deliver(product.product_id, fingerprint, result.schema),
        )

    def _deliver(self, product_id: str, fingerprint: str, schema: dict) -> bool:
        if self._delivery is None:
            return False
        try:
            delivered = self._delivery.deliver(product_id, schema)
        except Exception as exc:
            logger.error("Delivery of schema for product %s failed: %s", product_id, exc)
            return False
        if not delivered:
            logger.warning("Delivery of schema for product %s was not confirmed.", product_id)
            return False
        return self._store.mark_synced(product_id, fingerprint)
