import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F

from .models import Shop

logger = logging.getLogger(__name__)


class DeclineReason(str, Enum):
    INSUFFICIENT = 'insufficient'
    MISSING_TENANT = 'missing_tenant'
    STORAGE_ERROR = 'storage_error'


@dataclass(frozen=True)
class BalanceResult:
    has_credits: bool
    balance: int


@dataclass(frozen=True)
class LedgerResult:
    success: bool
    new_balance: int
    reason: Optional[DeclineReason] = None


class CreditLedger:
    """
    Per-shop credit balance.

    Every mutation is a single relative UPDATE evaluated by the database
    (`credits = credits - n`), so concurrent attempts against one shop are
    serialized by the row lock instead of by application code. The ledger
    is bound to one database alias, passed in at construction.
    """

    def __init__(self, using: str = 'default', default_credits: Optional[int] = None):
        self._using = using
        self._default_credits = (
            settings.DEFAULT_CREDITS if default_credits is None else default_credits
        )

    def _shops(self):
        return Shop.objects.using(self._using)

    def check_balance(self, shop: str) -> BalanceResult:
        """Report the shop's balance, provisioning the shop with the default balance if absent."""
        state, created = self._shops().get_or_create(
            domain=shop,
            defaults={'credits': self._default_credits},
        )
        if created:
            logger.info("Provisioned shop %s with %d credits.", shop, state.credits)
        return BalanceResult(has_credits=state.credits > 0, balance=state.credits)

    def get_balance(self, shop: str) -> int:
        return self.check_balance(shop).balance

    def deduct_credit(self, shop: str, amount: int = 1) -> LedgerResult:
        """
        Atomically take `amount` credits from the shop.

        The decrement only applies while the balance covers it, so the balance
        never goes negative. An unknown shop is declined, not provisioned.
        """
        if amount <= 0:
            raise ValueError(f"Deduction amount must be positive, got {amount}.")

        try:
            with transaction.atomic(using=self._using):
                updated = (
                    self._shops()
                    .filter(domain=shop, credits__gte=amount)
                    .update(credits=F('credits') - amount)
                )
                if updated:
                    new_balance = self._shops().values_list('credits', flat=True).get(domain=shop)
                    logger.info("Deducted %d credit(s) from shop %s, %d left.", amount, shop, new_balance)
                    return LedgerResult(success=True, new_balance=new_balance)

                current = self._shops().filter(domain=shop).values_list('credits', flat=True).first()
        except DatabaseError as exc:
            logger.error("Credit deduction for shop %s failed at storage level: %s", shop, exc)
            return LedgerResult(success=False, new_balance=0, reason=DeclineReason.STORAGE_ERROR)

        if current is None:
            logger.error("Credit deduction for unknown shop %s declined.", shop)
            return LedgerResult(success=False, new_balance=0, reason=DeclineReason.MISSING_TENANT)

        logger.warning(
            "Credit deduction of %d declined for shop %s: balance is %d.", amount, shop, current,
        )
        return LedgerResult(success=False, new_balance=current, reason=DeclineReason.INSUFFICIENT)

    def add_credits(self, shop: str, amount: int) -> LedgerResult:
        """Atomically add credits; an unknown shop is provisioned with default + amount."""
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}.")

        try:
            with transaction.atomic(using=self._using):
                updated = self._shops().filter(domain=shop).update(credits=F('credits') + amount)
                if not updated:
                    try:
                        with transaction.atomic(using=self._using):
                            self._shops().create(domain=shop, credits=self._default_credits + amount)
                    except IntegrityError:
                        # Created concurrently; fall back to the relative update.
                        self._shops().filter(domain=shop).update(credits=F('credits') + amount)
                new_balance = self._shops().values_list('credits', flat=True).get(domain=shop)
        except DatabaseError as exc:
            logger.error("Adding credits to shop %s failed at storage level: %s", shop, exc)
            return LedgerResult(success=False, new_balance=0, reason=DeclineReason.STORAGE_ERROR)

        logger.info("Added %d credit(s) to shop %s, balance now %d.", amount, shop, new_balance)
        return LedgerResult(success=True, new_balance=new_balance)
