import logging
from typing import Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, Q
from django.utils import timezone

from .errors import PersistenceFailure
from .models import ProductState

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Per-product fingerprint and generated JSON-LD, bound to one database alias."""

    def __init__(self, using: str = 'default'):
        self._using = using

    def _states(self):
        return ProductState.objects.using(self._using)

    def get(self, product_id: str) -> Optional[ProductState]:
        return self._states().filter(product_id=product_id).first()

    def record_scan(self, shop: str, product_id: str) -> ProductState:
        """Return the product's record, creating it on first scan, with last_scanned_at refreshed."""
        now = timezone.now()
        state, created = self._states().get_or_create(
            product_id=product_id,
            defaults={'shop': shop},
        )
        if not created:
            self._states().filter(pk=state.pk).update(last_scanned_at=now)
            state.last_scanned_at = now
        return state

    def save_artifact(
        self,
        shop: str,
        product_id: str,
        fingerprint: str,
        artifact: dict,
        expected_fingerprint: Optional[str],
    ) -> bool:
        """
        Store `artifact` with its `fingerprint`, unless a concurrent scan got there first.

        The write only applies while the stored fingerprint still equals
        `expected_fingerprint`, the value seen when this attempt loaded the
        record. Returns False when the guard rejected the write.
        """
        values = {
            'content_hash': fingerprint,
            'schema_blob': artifact,
            'is_synced': False,
            'last_scanned_at': timezone.now(),
        }
        stored = self._states().filter(product_id=product_id)
        if expected_fingerprint is None:
            guarded = stored.filter(content_hash__isnull=True)
        else:
            guarded = stored.filter(content_hash=expected_fingerprint)

        try:
            with transaction.atomic(using=self._using):
                updated = guarded.update(**values)
                if not updated and not stored.exists():
                    try:
                        with transaction.atomic(using=self._using):
                            self._states().create(shop=shop, product_id=product_id, **values)
                        updated = 1
                    except IntegrityError:
                        updated = 0
            current = None if updated else self.get(product_id)
        except DatabaseError as exc:
            raise PersistenceFailure(shop, product_id) from exc

        if not updated:
            if current is not None and current.content_hash == fingerprint:
                logger.info("Product %s already stored with fingerprint %s.", product_id, fingerprint[:8])
                return True
            logger.warning(
                "Skipped stale write for product %s: fingerprint changed under this scan.", product_id,
            )
            return False

        logger.info("Stored schema for product %s (hash=%s...).", product_id, fingerprint[:8])
        return True

    def mark_synced(self, product_id: str, fingerprint: str) -> bool:
        """Flag the artifact as delivered, if it is still the one with `fingerprint`."""
        updated = (
            self._states()
            .filter(product_id=product_id, content_hash=fingerprint)
            .update(is_synced=True)
        )
        if not updated:
            logger.warning("Delivery confirmation for product %s no longer matches stored fingerprint.", product_id)
        return bool(updated)

    def sync_summary(self, shop: str) -> dict:
        counts = self._states().filter(shop=shop).aggregate(
            synced=Count('pk', filter=Q(is_synced=True)),
            pending=Count('pk', filter=Q(is_synced=False)),
        )
        return {'synced': counts['synced'], 'pending': counts['pending']}
