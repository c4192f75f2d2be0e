from django.conf import settings
from django.db import models


def default_credits():
    return settings.DEFAULT_CREDITS


class Shop(models.Model):
    domain = models.CharField(max_length=255, unique=True)
    credits = models.PositiveIntegerField(default=default_credits)
    brand_voice = models.TextField(null=True, blank=True)
    is_onboarded = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(credits__gte=0),
                name='shop_credits_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.domain} (credits={self.credits})"


class ProductState(models.Model):
    shop = models.CharField(max_length=255, db_index=True)
    product_id = models.CharField(max_length=255, unique=True)
    content_hash = models.CharField(max_length=64, null=True, blank=True)
    schema_blob = models.JSONField(null=True, blank=True)
    is_synced = models.BooleanField(default=False)
    last_scanned_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            # An artifact is only ever stored together with the hash of its inputs.
            models.CheckConstraint(
                condition=models.Q(schema_blob__isnull=True) | models.Q(content_hash__isnull=False),
                name='product_state_blob_has_hash',
            ),
        ]

    def __str__(self):
        short = self.content_hash[:8] if self.content_hash else 'none'
        return f"{self.product_id} (hash={short}...)"
