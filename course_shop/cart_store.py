"""
Cart store: CRUD over the persisted cart collection.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as SchemaValidationError

from course_shop.catalog import CATALOG, FALLBACK_METADATA
from course_shop.config import Config
from course_shop.exceptions import MigrationError, NotFoundError, ValidationError
from course_shop.migrations import migrate_cart
from course_shop.models import CartItem, CartRecord, CartTotals, CategoryMetadata
from course_shop.projector import compute_totals
from course_shop.storage import StorageAdapter

logger = logging.getLogger(__name__)

Listener = Callable[[Tuple[CartItem, ...]], None]


def parse_price(price: Any) -> Decimal:
    """Convert a user supplied price, rejecting anything not strictly positive"""
    if isinstance(price, bool):
        raise ValidationError(f"Price must be numeric: {price!r}")
    try:
        value = price if isinstance(price, Decimal) else Decimal(str(price).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Price must be numeric: {price!r}")
    if not value.is_finite():
        raise ValidationError(f"Price must be numeric: {price!r}")
    if value <= 0:
        raise ValidationError("Price must be greater than 0")
    return value


class CartStore:
    """
    Cart operations over one persisted key.

    Every mutation is a synchronous read-mutate-write cycle. When a write
    fails the new state is kept in memory and is what the next operation
    reads, so the write is retried by the next mutation.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        key: str = Config.CART_KEY,
        catalog: Optional[Dict[str, CategoryMetadata]] = None,
        notify: Optional[Callable[[str], None]] = None,
        tax_rate: Decimal = Config.TAX_RATE
    ):
        self.storage = storage
        self.key = key
        self.catalog = CATALOG if catalog is None else catalog
        self.tax_rate = tax_rate
        self._notify = notify
        self._listeners: List[Listener] = []
        self._unsynced: Optional[List[CartItem]] = None

    # ---- persistence ----

    def _read_record(self) -> Tuple[List[CartItem], bool]:
        """Return (items, migrated); migrated means the stored blob is outdated"""
        if self._unsynced is not None:
            return [item.model_copy(deep=True) for item in self._unsynced], False

        raw = self.storage.read_json(self.key)
        if raw is None:
            return [], False
        try:
            record = migrate_cart(raw, self.catalog)
            items = CartRecord.model_validate(record).items
        except (MigrationError, SchemaValidationError) as e:
            # The blob is left as is; the next successful write replaces it
            logger.warning("Unreadable cart record, starting empty", extra={"key": self.key, "error": str(e)})
            return [], False
        return items, record != raw

    def _write(self, items: List[CartItem]) -> bool:
        record = CartRecord(items=items).model_dump(mode="json")
        if self.storage.write_json(self.key, record):
            self._unsynced = None
            return True
        logger.warning("Cart kept in memory until next write", extra={"key": self.key, "items": len(items)})
        self._unsynced = [item.model_copy(deep=True) for item in items]
        return False

    # ---- change events ----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _publish(self, items: List[CartItem]) -> None:
        snapshot = tuple(item.model_copy(deep=True) for item in items)
        for listener in list(self._listeners):
            listener(snapshot)

    def _commit(self, items: List[CartItem]) -> None:
        self._write(items)
        self._publish(items)

    # ---- queries ----

    def load(self) -> List[CartItem]:
        """Initial read for a page: migrate, re-persist if upgraded, render"""
        items, migrated = self._read_record()
        if migrated:
            logger.info("Cart record upgraded", extra={"key": self.key, "items": len(items)})
            self._write(items)
        self._publish(items)
        return items

    def items(self) -> List[CartItem]:
        return self._read_record()[0]

    def get_item(self, product_id: str) -> CartItem:
        for item in self.items():
            if item.id == product_id:
                return item
        raise NotFoundError("cart", product_id)

    def totals(self) -> CartTotals:
        return compute_totals(self.items(), self.tax_rate)

    # ---- mutations ----

    def add(
        self,
        product_id: str,
        name: str,
        price: Any,
        image: str = "",
        author: str = ""
    ) -> CartItem:
        """
        Add one unit of a product.

        Raises:
            ValidationError: empty id or a price that is not a positive number
        """
        if not product_id or not str(product_id).strip():
            raise ValidationError("Product id is required")
        unit_price = parse_price(price)

        items, _ = self._read_record()
        for item in items:
            if item.id == product_id:
                item.quantity += 1
                added = item
                break
        else:
            added = CartItem(
                id=product_id,
                name=name,
                unit_price=unit_price,
                quantity=1,
                image=image or "",
                author=author or "",
                category=self.catalog.get(product_id) or FALLBACK_METADATA,
            )
            items.append(added)

        self._commit(items)
        logger.info("Cart item added", extra={"product_id": product_id, "quantity": added.quantity})
        if self._notify is not None:
            self._notify(f'"{name}" ajouté au panier !')
        return added

    def increment(self, product_id: str) -> bool:
        items, _ = self._read_record()
        for item in items:
            if item.id == product_id:
                item.quantity += 1
                self._commit(items)
                return True
        return False

    def decrement(self, product_id: str) -> bool:
        items, _ = self._read_record()
        for item in items:
            if item.id == product_id:
                if item.quantity > 1:
                    item.quantity -= 1
                    self._commit(items)
                    return True
                return self.remove(product_id, remove_all=True)
        return False

    def remove(self, product_id: str, remove_all: bool = False) -> bool:
        """Drop a product, or one unit of it; unknown ids are ignored"""
        items, _ = self._read_record()
        for index, item in enumerate(items):
            if item.id != product_id:
                continue
            if remove_all or item.quantity <= 1:
                del items[index]
            else:
                item.quantity -= 1
            self._commit(items)
            return True
        return False

    def clear(self) -> None:
        self._commit([])
        logger.info("Cart cleared", extra={"key": self.key})
