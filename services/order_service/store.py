# CREATE FILE: services/order_service/store.py

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern


class StoreError(Exception):
    """Raised by store implementations when the backing datastore fails"""


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass
class OrderRecord:
    order_number: str
    buyer_id: str
    created_at: datetime
    status: OrderStatus
    fulfillment: str
    items: List[Dict[str, Any]]
    seller_orders: List[Dict[str, Any]]
    breakdown: Dict[str, float]
    delivery_option: Optional[Dict[str, Any]] = None
    payment_reference: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class CatalogStore:
    """Read access to product listings, filtered like a document-store query"""

    def __init__(self, products: List[Dict[str, Any]] = None):
        self._products: List[Dict[str, Any]] = list(products or [])
        self._lock = threading.RLock()

    def add_product(self, product: Dict[str, Any]):
        with self._lock:
            self._products.append(dict(product))

    def query_products(self, category: str = None, status: str = None,
                       seller_id: str = None) -> List[Dict[str, Any]]:
        with self._lock:
            results = []
            for product in self._products:
                if category is not None and product.get("category") != category:
                    continue
                if status is not None and product.get("status") != status:
                    continue
                if seller_id is not None and product.get("seller_id") != seller_id:
                    continue
                results.append(dict(product))
            return results


class OrderStore:
    """In-memory order store.

    Order numbers are claimed with an atomic insert-if-absent before the
    order itself is written; claims are visible to ``latest_order_number``
    and ``order_number_exists`` immediately (read-your-write).
    """

    def __init__(self):
        self._orders: Dict[str, OrderRecord] = {}
        self._claims: Dict[str, datetime] = {}
        self._lock = threading.RLock()

    def latest_order_number(self, created_from: datetime, created_to: datetime,
                            pattern: Pattern = None) -> Optional[str]:
        """Most recently created order number in [created_from, created_to], or None.

        ``pattern`` restricts the lookup to order numbers it matches.
        """
        with self._lock:
            in_range = [
                (created_at, number) for number, created_at in self._claims.items()
                if created_from <= created_at <= created_to
                and (pattern is None or pattern.match(number))
            ]
            if not in_range:
                return None
            in_range.sort(reverse=True)
            return in_range[0][1]

    def order_number_exists(self, order_number: str) -> bool:
        with self._lock:
            return order_number in self._claims

    def claim_order_number(self, order_number: str, created_at: datetime) -> bool:
        """Reserve an order number; False if it is already taken"""
        with self._lock:
            if order_number in self._claims:
                return False
            self._claims[order_number] = created_at
            return True

    def save_order(self, record: OrderRecord):
        with self._lock:
            if record.order_number not in self._claims:
                raise StoreError(f"Order number {record.order_number} was never claimed")
            if record.order_number in self._orders:
                raise StoreError(f"Order {record.order_number} already written")
            self._orders[record.order_number] = record

    def get_order(self, order_number: str) -> Optional[OrderRecord]:
        with self._lock:
            return self._orders.get(order_number)

    def update_status(self, order_number: str, status: OrderStatus, **metadata):
        with self._lock:
            record = self._orders.get(order_number)
            if record is None:
                raise StoreError(f"Order {order_number} not found")
            record.status = status
            record.metadata.update(metadata)

    def list_orders_by_buyer(self, buyer_id: str) -> List[OrderRecord]:
        with self._lock:
            return sorted(
                (r for r in self._orders.values() if r.buyer_id == buyer_id),
                key=lambda r: r.created_at,
                reverse=True
            )
