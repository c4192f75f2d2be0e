from enum import Enum


class ErrorKind(str, Enum):
    QUOTA_EXHAUSTED = 'quota_exhausted'
    GENERATION_FAILURE = 'generation_failure'
    LEDGER_INTEGRITY = 'ledger_integrity'
    PERSISTENCE_FAILURE = 'persistence_failure'
    NOT_ONBOARDED = 'not_onboarded'


class GeoSchemaError(Exception):
    """Base for every terminal failure of a product-processing attempt.

    Callers branch on `kind`; `retryable` tells a trigger whether re-running
    the same attempt later can succeed without outside intervention.
    """

    kind: ErrorKind
    retryable = False
    user_message = 'Something went wrong.'


class QuotaExhausted(GeoSchemaError):
    kind = ErrorKind.QUOTA_EXHAUSTED
    user_message = 'Payment required: no credits left. Please purchase more credits.'

    def __init__(self, shop: str, balance: int = 0):
        self.shop = shop
        self.balance = balance
        super().__init__(f"Shop {shop} has no credits left (balance={balance}).")


class GenerationFailure(GeoSchemaError):
    kind = ErrorKind.GENERATION_FAILURE
    retryable = True
    user_message = 'Schema generation failed. Please try again.'


class LedgerIntegrityFault(GeoSchemaError):
    kind = ErrorKind.LEDGER_INTEGRITY

    def __init__(self, shop: str, reason: str):
        self.shop = shop
        self.reason = reason
        super().__init__(f"Credit ledger fault for shop {shop}: {reason}.")


class PersistenceFailure(GeoSchemaError):
    """The shop was debited but the generated artifact could not be stored."""

    kind = ErrorKind.PERSISTENCE_FAILURE

    def __init__(self, shop: str, product_id: str, credits_remaining=None):
        self.shop = shop
        self.product_id = product_id
        self.credits_remaining = credits_remaining
        super().__init__(
            f"Artifact for product {product_id} (shop {shop}) was paid for but not persisted."
        )


class TenantNotOnboarded(GeoSchemaError):
    kind = ErrorKind.NOT_ONBOARDED
    user_message = 'Finish onboarding before products can be processed.'

    def __init__(self, shop: str):
        self.shop = shop
        super().__init__(f"Shop {shop} has not completed onboarding.")
