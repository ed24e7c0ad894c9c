"""Shopping cart state engine with local persistence."""

import logging
from decimal import Decimal
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from .models import Cart, CartItem, CartLine, CartSnapshot, Product

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "up-pelucias-cart"

CartListener = Callable[["CartEngine"], None]


class KeyValueStore(Protocol):
    """Durable string store used to keep the cart between sessions."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> bool: ...


class CartNotInitializedError(RuntimeError):
    """Raised when cart operations are used before the engine is wired up."""


class CartEngine:
    """Owns the cart entries and the drawer visibility flag."""

    def __init__(self, store: Optional[KeyValueStore] = None, storage_key: str = CART_STORAGE_KEY) -> None:
        """
        Initialize the engine and restore the saved cart.

        Args:
            store: Durable key-value store. Without one the cart lives in memory only.
            storage_key: Key the snapshot is stored under
        """
        self.store = store
        self.storage_key = storage_key
        self._items: list[CartItem] = []
        self._is_open = False
        self._listeners: list[CartListener] = []
        self._restore()

    def _restore(self) -> None:
        """Load the saved snapshot, starting empty if it is missing or unreadable."""
        if self.store is None:
            return

        try:
            raw = self.store.get(self.storage_key)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read saved cart, starting empty: {e}")
            return

        if raw is None:
            return

        try:
            snapshot = CartSnapshot.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Saved cart is corrupt, starting empty: {e}")
            return

        self._items = _merge_duplicates(snapshot.items)
        logger.info(f"Restored cart with {len(self._items)} item(s)")

    def _persist(self) -> None:
        """Write the current snapshot to the store."""
        if self.store is None:
            return

        payload = self.snapshot().model_dump_json()
        try:
            if not self.store.set(self.storage_key, payload):
                logger.warning("Cart not persisted, keeping it in memory for this session")
        except OSError as e:
            logger.warning(f"Cart not persisted, keeping it in memory for this session: {e}")

    def _changed(self, persist: bool = True) -> None:
        if persist:
            self._persist()
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Cart listener failed: {e}", exc_info=True)

    def _index_of(self, product_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.product.id == product_id:
                return index
        return None

    @property
    def items(self) -> tuple[CartItem, ...]:
        """Cart entries in insertion order."""
        return tuple(self._items)

    @property
    def is_open(self) -> bool:
        return self._is_open

    def get_item(self, product_id: str) -> Optional[CartItem]:
        index = self._index_of(product_id)
        return None if index is None else self._items[index]

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """
        Register a listener called after every state change.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_item(self, product: Product) -> None:
        """
        Add one unit of a product.

        An existing entry keeps its position and gets its quantity increased,
        otherwise a new entry is appended with quantity 1.
        """
        index = self._index_of(product.id)
        if index is None:
            self._items.append(CartItem(product=product, quantity=1))
        else:
            current = self._items[index]
            self._items[index] = CartItem(product=current.product, quantity=current.quantity + 1)
        self._changed()

    def remove_item(self, product_id: str) -> None:
        """Remove a product entirely. Unknown ids are ignored."""
        index = self._index_of(product_id)
        if index is None:
            return
        del self._items[index]
        self._changed()

    def set_quantity(self, product_id: str, quantity: int) -> None:
        """
        Set the quantity of a product already in the cart.

        Args:
            product_id: Product ID
            quantity: New quantity (0 or less removes the item)
        """
        if quantity <= 0:
            self.remove_item(product_id)
            return

        index = self._index_of(product_id)
        if index is None:
            return
        self._items[index] = CartItem(product=self._items[index].product, quantity=quantity)
        self._changed()

    def clear(self) -> None:
        """Empty the cart."""
        self._items = []
        self._changed()

    def total_price(self) -> Decimal:
        """Sum of price times quantity over all entries."""
        return sum((item.product.price * item.quantity for item in self._items), Decimal("0"))

    def total_item_count(self) -> int:
        """Sum of quantities over all entries."""
        return sum(item.quantity for item in self._items)

    def open(self) -> None:
        self._is_open = True
        self._changed(persist=False)

    def close(self) -> None:
        self._is_open = False
        self._changed(persist=False)

    def toggle(self) -> None:
        self._is_open = not self._is_open
        self._changed(persist=False)

    def snapshot(self) -> CartSnapshot:
        """Copy of the current entries."""
        return CartSnapshot(items=list(self._items))

    def to_cart(self) -> Cart:
        """Build the client-facing cart with subtotals and totals."""
        lines = [
            CartLine(
                product=item.product,
                quantity=item.quantity,
                subtotal=item.product.price * item.quantity,
            )
            for item in self._items
        ]
        return Cart(
            items=lines,
            total=self.total_price(),
            item_count=self.total_item_count(),
            is_open=self._is_open,
        )


def _merge_duplicates(items: list[CartItem]) -> list[CartItem]:
    """Collapse repeated product ids from a hand-edited snapshot into their first entry."""
    merged: dict[str, CartItem] = {}
    for item in items:
        existing = merged.get(item.product.id)
        if existing is None:
            merged[item.product.id] = item
        else:
            logger.warning(f"Saved cart had product {item.product.id} twice, merging quantities")
            merged[item.product.id] = CartItem(
                product=existing.product, quantity=existing.quantity + item.quantity
            )
    return list(merged.values())


# Engine shared by the server entry points
_engine: Optional[CartEngine] = None


def install_cart(engine: Optional[CartEngine]) -> Optional[CartEngine]:
    """Make an engine the one returned by require_cart(). Pass None to unset it."""
    global _engine
    _engine = engine
    return engine


def require_cart() -> CartEngine:
    """
    Get the installed cart engine.

    Raises:
        CartNotInitializedError: If no engine was installed
    """
    if _engine is None:
        raise CartNotInitializedError("Cart engine used before initialization; call install_cart() at startup")
    return _engine
