import logging

from celery import shared_task
from celery.signals import worker_process_init, worker_process_shutdown
from django.conf import settings

from .artifacts import ArtifactStore
from .credits import CreditLedger
from .errors import GeoSchemaError, QuotaExhausted, TenantNotOnboarded
from .fingerprint import normalize_product
from .generation_client import GenerationClient
from .orchestrator import ProcessStatus, SchemaOrchestrator

logger = logging.getLogger(__name__)


def build_orchestrator(generator=None) -> SchemaOrchestrator:
    """Construct an orchestrator bound to the configured database alias."""
    using = settings.GEOSCHEMA_DATABASE
    return SchemaOrchestrator(
        ledger=CreditLedger(using=using),
        store=ArtifactStore(using=using),
        generator=generator or GenerationClient(),
        using=using,
    )


class WorkerRuntime:
    """
    Owns the orchestrator of one worker process between start() and stop().

    Celery worker processes start it from `worker_process_init` and stop it
    from `worker_process_shutdown`; any other process running tasks (eager
    mode, shell) must call start() itself.
    """

    def __init__(self):
        self._client = None
        self._orchestrator = None

    @property
    def started(self) -> bool:
        return self._orchestrator is not None

    def start(self) -> SchemaOrchestrator:
        if self._orchestrator is None:
            self._client = GenerationClient()
            self._orchestrator = build_orchestrator(generator=self._client)
            logger.info("Schema orchestrator started (database=%s).", settings.GEOSCHEMA_DATABASE)
        return self._orchestrator

    def stop(self):
        if self._orchestrator is None:
            return
        self._client.close()
        self._client = None
        self._orchestrator = None
        logger.info("Schema orchestrator stopped.")

    @property
    def orchestrator(self) -> SchemaOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError('Schema orchestrator is not started; call runtime.start() at process startup.')
        return self._orchestrator


runtime = WorkerRuntime()


@worker_process_init.connect
def start_worker_runtime(**kwargs):
    runtime.start()


@worker_process_shutdown.connect
def stop_worker_runtime(**kwargs):
    runtime.stop()


@shared_task(bind=True, name='geoschema.process_product')
def process_product_task(self, shop: str, raw_product: dict):
    """Handle one product event: normalize it and run it through the orchestrator."""
    product = normalize_product(raw_product)
    if product is None:
        return {'status': 'skipped', 'product_id': None, 'credits_remaining': None, 'error': None}

    try:
        result = runtime.orchestrator.process_product(shop, product)
    except GeoSchemaError as exc:
        logger.error("Product %s of shop %s failed (%s): %s", product.product_id, shop, exc.kind.value, exc)
        return {
            'status': 'error',
            'product_id': product.product_id,
            'credits_remaining': getattr(exc, 'credits_remaining', None),
            'error': exc.kind.value,
        }

    logger.info("Product %s of shop %s: %s.", product.product_id, shop, result.status.value)
    return {
        'status': result.status.value,
        'product_id': product.product_id,
        'credits_remaining': result.credits_remaining,
        'error': None,
    }


@shared_task(bind=True, name='geoschema.scan_catalog')
def scan_catalog_task(self, shop: str, raw_products: list):
    """
    Run the change-detection gate over a shop's catalog snapshot.

    Steps:
      1. Normalize each product payload; invalid ones are skipped.
      2. Unchanged products are served from the stored schema.
      3. Changed products are generated and paid for one by one.
      4. The scan stops at the first QuotaExhausted (or a shop that is not
         onboarded); the rest are counted as skipped.
    """
    logger.info("Starting catalog scan for shop %s (%d products).", shop, len(raw_products))

    orchestrator = runtime.orchestrator
    counts = {'generated': 0, 'cached': 0, 'superseded': 0, 'skipped': 0, 'errors': 0}

    for index, raw in enumerate(raw_products):
        product = normalize_product(raw)
        if product is None:
            counts['skipped'] += 1
            continue

        try:
            result = orchestrator.process_product(shop, product)
        except (QuotaExhausted, TenantNotOnboarded) as exc:
            remaining = len(raw_products) - index
            logger.warning("Stopping scan for shop %s, skipping %d product(s): %s", shop, remaining, exc)
            counts['skipped'] += remaining
            break
        except GeoSchemaError as exc:
            counts['errors'] += 1
            logger.error("Failed to process product %s (%s): %s", product.product_id, exc.kind.value, exc)
            continue

        if result.status == ProcessStatus.FRESH:
            counts['generated'] += 1
        elif result.status == ProcessStatus.CACHED:
            counts['cached'] += 1
        else:
            counts['superseded'] += 1

    logger.info(
        "Catalog scan complete for shop %s. generated=%d, cached=%d, superseded=%d, skipped=%d, errors=%d.",
        shop, counts['generated'], counts['cached'], counts['superseded'], counts['skipped'], counts['errors'],
    )
    return counts
