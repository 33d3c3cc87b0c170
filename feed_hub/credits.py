"""
Metered AI credits with a soft warning and a hard ceiling.

Per subscriber and billing cycle, ``used`` starts at 0 and only increments.
The plan limit (5 free, 150 paid) is advertised but not enforced; the hard
ceiling (180) applies to every plan. The call that brings ``used`` to the
warning threshold (151) carries a one-time warning.

Cycle bounds come from the subscriber's billing period when the payment
record has one, otherwise from the calendar month containing "now". The
active cycle is found by boundary lookup and lazily created.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable

from .billing import BillingDirectory
from .config import CreditConfig
from .core.types import ConsumeResult, CreditStatus, Plan, ensure_utc, utcnow
from .logging_utils import get_logger, log_event
from .storage.base import Repository


logger = get_logger("credits")

LIMIT_EXCEEDED_MESSAGE = (
    "AI credit limit exceeded. Please upgrade your plan or wait for next billing cycle."
)
SOFT_LIMIT_WARNING = (
    "You have exceeded your plan limit. You can still use AI features until you reach {ceiling} credits."
)


def calendar_month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return ``[first of month, first of next month)`` in UTC for ``now``."""
    now = now.astimezone(timezone.utc)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return start, end


class CreditLedger:
    """Track and enforce AI-credit usage per subscriber.

    Args:
        repository: Stores credit cycles and performs the atomic increment
        billing: Resolves plans and billing periods
        cfg: Limits and thresholds
        clock: Callable returning the current UTC time
    """

    def __init__(
        self,
        repository: Repository,
        billing: BillingDirectory,
        cfg: CreditConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.billing = billing
        self.cfg = cfg or CreditConfig()
        self.clock = clock

    def plan_for(self, subscriber_id: str) -> Plan:
        return self.billing.plan_for(subscriber_id)

    def limit_for(self, plan: Plan) -> int:
        return self.cfg.paid_limit if plan.is_paid else self.cfg.free_limit

    def current_cycle(self, subscriber_id: str, now: datetime | None = None) -> CreditStatus:
        """Return the subscriber's active cycle, creating it if needed."""
        now = ensure_utc(now or self.clock())
        payment = self.billing.active_payment(subscriber_id)
        plan = payment.plan if payment is not None else Plan.FREE

        cycle_start, cycle_end = calendar_month_bounds(now)
        if payment is not None and payment.current_period_start and payment.current_period_end:
            if payment.current_period_start <= now < payment.current_period_end:
                cycle_start, cycle_end = payment.current_period_start, payment.current_period_end

        cycle = self.repository.find_or_create_credit_cycle(subscriber_id, now, cycle_start, cycle_end)
        return CreditStatus(
            used=cycle.used,
            limit=self.limit_for(plan),
            cycle_start=cycle.cycle_start,
            cycle_end=cycle.cycle_end,
            plan=plan,
        )

    def can_use(self, subscriber_id: str, now: datetime | None = None) -> bool:
        """Return False exactly when the hard ceiling has been reached."""
        return self.current_cycle(subscriber_id, now).used < self.cfg.hard_ceiling

    def consume(self, subscriber_id: str, now: datetime | None = None) -> ConsumeResult:
        """Consume one credit.

        Returns:
            ConsumeResult with ok=False and an error once ``used`` reached the
            hard ceiling; otherwise ok=True and, on the call that reaches the
            warning threshold, a warning
        """
        now = ensure_utc(now or self.clock())
        status = self.current_cycle(subscriber_id, now)
        if status.used >= self.cfg.hard_ceiling:
            return ConsumeResult(ok=False, used=status.used, error=LIMIT_EXCEEDED_MESSAGE)

        used = self.repository.increment_credit_usage(subscriber_id, now, self.cfg.hard_ceiling)
        if used is None:
            # Lost the race to the ceiling against a concurrent request.
            return ConsumeResult(ok=False, used=self.cfg.hard_ceiling, error=LIMIT_EXCEEDED_MESSAGE)

        warning = None
        if used == self.cfg.warning_threshold:
            warning = SOFT_LIMIT_WARNING.format(ceiling=self.cfg.hard_ceiling)
            log_event(
                logger,
                "Subscriber exceeded soft credit limit",
                level=logging.INFO,
                event="soft_limit_crossed",
                subscriber_id=subscriber_id,
                used=used,
            )
        return ConsumeResult(ok=True, used=used, warning=warning)

    def reset_cycle(self, subscriber_id: str, cycle_start: datetime, cycle_end: datetime) -> CreditStatus:
        """Open a fresh cycle with ``used = 0``; earlier cycles are left as they were."""
        cycle = self.repository.create_credit_cycle(subscriber_id, cycle_start, cycle_end)
        plan = self.plan_for(subscriber_id)
        log_event(
            logger,
            "Reset credits",
            event="credits_reset",
            subscriber_id=subscriber_id,
            cycle_start=cycle_start.isoformat(),
        )
        return CreditStatus(
            used=cycle.used,
            limit=self.limit_for(plan),
            cycle_start=cycle.cycle_start,
            cycle_end=cycle.cycle_end,
            plan=plan,
        )
