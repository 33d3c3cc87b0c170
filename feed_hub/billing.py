"""
Plan resolution from external payment records.

The payment provider and its webhooks live outside this package; the core
only needs to ask which paid plan (if any) a subscriber currently holds and
what billing period it covers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .core.types import PaymentRecord, Plan, ensure_utc


class BillingDirectory(ABC):
    """Lookup boundary for subscribers' payment records."""

    @abstractmethod
    def active_payment(self, subscriber_id: str) -> PaymentRecord | None:
        """Return the subscriber's active payment record, or None."""
        raise NotImplementedError

    def plan_for(self, subscriber_id: str) -> Plan:
        payment = self.active_payment(subscriber_id)
        if payment is None:
            return Plan.FREE
        return payment.plan


class StaticBillingDirectory(BillingDirectory):
    """Billing directory backed by an in-process mapping.

    Records whose status is not "active" are ignored, so a canceled
    subscription resolves to the free plan.
    """

    def __init__(self, records: dict[str, PaymentRecord] | None = None):
        self._records: dict[str, PaymentRecord] = dict(records or {})

    def set_payment(self, subscriber_id: str, record: PaymentRecord) -> None:
        self._records[subscriber_id] = record

    def active_payment(self, subscriber_id: str) -> PaymentRecord | None:
        record = self._records.get(subscriber_id)
        if record is None or record.status != "active":
            return None
        return record

    @classmethod
    def from_yaml(cls, path: str | Path | None) -> "StaticBillingDirectory":
        """Load records from a YAML mapping of subscriber id to payment fields.

        Example file::

            alice:
              plan: pro
              current_period_start: 2026-10-01T00:00:00Z
              current_period_end: 2026-11-01T00:00:00Z
            team:7:
              plan: power
        """
        if not path:
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        records = {str(key): _record_from_dict(value or {}) for key, value in raw.items()}
        return cls(records)


def _record_from_dict(data: dict[str, Any]) -> PaymentRecord:
    return PaymentRecord(
        plan=Plan(str(data.get("plan", "pro")).lower()),
        status=str(data.get("status", "active")),
        current_period_start=_parse_datetime(data.get("current_period_start")),
        current_period_end=_parse_datetime(data.get("current_period_end")),
    )


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    # PyYAML already turns unquoted timestamps into datetimes.
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return ensure_utc(value)
