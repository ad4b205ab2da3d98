# CREATE FILE: services/order_service/order_number.py

import re
import time
from datetime import datetime
from typing import Callable, Dict, Any, Optional

from services.order_service.store import OrderStore, StoreError
from utils.config import load_config
from utils.logging import get_logger


class OrderNumberAllocator:
    """Allocates ``PREFIX-YYYYMMDD-NNNN`` order numbers.

    The day's latest number is read from the store and incremented, then the
    candidate is claimed with the store's insert-if-absent. A lost claim
    means a concurrent allocator won; the loop retries up to
    ``max_allocation_attempts`` times. After that, or when the store errors,
    a ``PREFIX-YYYYMMDD-T<microseconds>`` number is used instead.
    """

    def __init__(self, store: OrderStore, config: Dict[str, Any] = None,
                 now: Callable[[], datetime] = None,
                 timestamp_us: Callable[[], int] = None):
        self.store = store
        self.config = config if config is not None else load_config("orders")
        self.prefix = self.config.get("prefix", "F2T")
        self.max_attempts = int(self.config.get("max_allocation_attempts", 5))
        self.now = now or datetime.now
        self.timestamp_us = timestamp_us or (lambda: time.time_ns() // 1000)
        self.logger = get_logger("order_service.order_number")

        self.sequential_re = re.compile(rf"^{re.escape(self.prefix)}-(\d{{8}})-(\d{{4}})$")
        self.fallback_re = re.compile(rf"^{re.escape(self.prefix)}-(\d{{8}})-T(\d+)$")

    def is_valid_order_number(self, order_number: str) -> bool:
        return bool(self.sequential_re.match(order_number) or self.fallback_re.match(order_number))

    def _next_increment(self, latest: Optional[str], date_part: str) -> int:
        if latest is None:
            return 1
        match = self.sequential_re.match(latest)
        if not match or match.group(1) != date_part:
            return 1
        return int(match.group(2)) + 1

    def allocate(self) -> str:
        created_at = self.now()
        date_part = created_at.strftime("%Y%m%d")
        start_of_day = created_at.replace(hour=0, minute=0, second=0, microsecond=0)
        end_of_day = created_at.replace(hour=23, minute=59, second=59, microsecond=999999)

        floor = 1
        try:
            for attempt in range(1, self.max_attempts + 1):
                latest = self.store.latest_order_number(start_of_day, end_of_day,
                                                        pattern=self.sequential_re)
                increment = max(floor, self._next_increment(latest, date_part))
                if increment > 9999:
                    self.logger.warning("Daily order sequence exhausted", date=date_part)
                    break

                candidate = f"{self.prefix}-{date_part}-{increment:04d}"
                if self.store.claim_order_number(candidate, created_at):
                    self.logger.debug("Allocated order number", order_number=candidate,
                                      attempt=attempt)
                    return candidate

                self.logger.warning("Order number already taken, retrying",
                                    order_number=candidate, attempt=attempt)
                floor = increment + 1
        except StoreError as e:
            self.logger.error("Order number lookup failed, using timestamp fallback", error=e)
            return self._fallback(date_part, created_at, claim=False)

        return self._fallback(date_part, created_at, claim=True)

    def _fallback(self, date_part: str, created_at: datetime, claim: bool) -> str:
        """Timestamp order number; a taken suffix is bumped to the next microsecond"""
        stamp = self.timestamp_us()
        for _ in range(self.max_attempts):
            candidate = f"{self.prefix}-{date_part}-T{stamp}"
            if not claim:
                return self._use_fallback(candidate)
            try:
                if self.store.claim_order_number(candidate, created_at):
                    return self._use_fallback(candidate)
            except StoreError as e:
                self.logger.error("Fallback claim failed", error=e, order_number=candidate)
                return self._use_fallback(candidate)
            stamp = max(self.timestamp_us(), stamp + 1)

        raise StoreError(f"No free fallback order number after {self.max_attempts} attempts")

    def _use_fallback(self, candidate: str) -> str:
        self.logger.warning("Using fallback order number", order_number=candidate)
        return candidate
