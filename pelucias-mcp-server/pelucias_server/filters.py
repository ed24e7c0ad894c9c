"""Catalog filtering, option lists and display ordering."""

import logging
import re
import unicodedata
from typing import Awaitable, Callable, Iterable, Optional

from .models import FilterSelection, Product

logger = logging.getLogger(__name__)

# Marketing prefix ignored when ordering product names
_NAME_PREFIX = re.compile(r"^pelúcia\s+", re.IGNORECASE)

FilterListener = Callable[["FilterCoordinator"], None]


def filter_products(products: Iterable[Product], selection: FilterSelection) -> list[Product]:
    """
    Get the products visible under a selection.

    A non-empty search term wins over category and subcategory; the two
    filter modes are never combined.
    """
    products = list(products)

    term = selection.search_term.strip()
    if term:
        needle = term.lower()
        return [p for p in products if needle in p.name.lower()]

    if selection.category or selection.subcategory:
        return [
            p
            for p in products
            if (not selection.category or p.category == selection.category)
            and (not selection.subcategory or p.subcategory == selection.subcategory)
        ]

    return products


def category_options(products: Iterable[Product]) -> set[str]:
    """Distinct categories of a catalog."""
    return {p.category for p in products}


def subcategory_options(products: Iterable[Product], category: str) -> set[str]:
    """Distinct non-null subcategories of a category."""
    return {p.subcategory for p in products if p.category == category and p.subcategory is not None}


def display_name_key(name: str) -> tuple[str, str]:
    """
    Sort key for product names.

    Lower-cases the name, drops a leading "Pelúcia " and compares without
    accents first, using the accented form to break ties.
    """
    normalized = _NAME_PREFIX.sub("", unicodedata.normalize("NFC", name).lower()).strip()
    folded = "".join(
        c for c in unicodedata.normalize("NFKD", normalized) if not unicodedata.combining(c)
    )
    return folded, normalized


def sort_for_display(products: Iterable[Product]) -> list[Product]:
    """Order products by display name without changing which products are shown."""
    return sorted(products, key=lambda p: display_name_key(p.name))


class FilterCoordinator:
    """Holds the catalog and the current filter selection."""

    def __init__(self, products: Optional[Iterable[Product]] = None) -> None:
        self._products: list[Product] = list(products or [])
        self._selection = FilterSelection()
        self._listeners: list[FilterListener] = []

    @property
    def products(self) -> tuple[Product, ...]:
        return tuple(self._products)

    @property
    def selection(self) -> FilterSelection:
        return self._selection

    def subscribe(self, listener: FilterListener) -> Callable[[], None]:
        """Register a listener called after every catalog or selection change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Filter listener failed: {e}", exc_info=True)

    def set_catalog(self, products: Iterable[Product]) -> None:
        self._products = list(products)
        self._changed()

    def select_category(self, category: Optional[str]) -> None:
        """Select a top-level category (None for all). Resets the subcategory."""
        self._selection = self._selection.model_copy(update={"category": category, "subcategory": None})
        self._changed()

    def select_subcategory(self, subcategory: Optional[str]) -> None:
        """
        Select a subcategory of the current category (None for all).

        Raises:
            ValueError: If no category is selected
        """
        self._selection = FilterSelection(
            category=self._selection.category,
            subcategory=subcategory,
            search_term=self._selection.search_term,
        )
        self._changed()

    def set_search_term(self, term: str) -> None:
        self._selection = self._selection.model_copy(update={"search_term": term})
        self._changed()

    def reset(self) -> None:
        self._selection = FilterSelection()
        self._changed()

    def visible_products(self) -> list[Product]:
        """Products matching the current selection, recomputed on every call."""
        return filter_products(self._products, self._selection)

    def categories(self) -> set[str]:
        return category_options(self._products)

    def subcategories(self) -> set[str]:
        """Subcategories of the selected category, empty when none is selected."""
        if self._selection.category is None:
            return set()
        return subcategory_options(self._products, self._selection.category)


class CatalogLoader:
    """
    Applies catalog fetches to a coordinator in request order.

    Each load gets an increasing request id. When fetches complete out of
    order, only the result of the most recent request is applied; older
    results are dropped. A fetch that raises leaves the catalog unchanged.
    """

    def __init__(self, coordinator: FilterCoordinator) -> None:
        self.coordinator = coordinator
        self._latest_request = 0
        self._loading_request: Optional[int] = None

    @property
    def is_loading(self) -> bool:
        return self._loading_request is not None

    async def load(self, fetch: Callable[[], Awaitable[list[Product]]]) -> bool:
        """
        Run a fetch and apply its products if no newer load started meanwhile.

        Returns:
            True if the result was applied to the coordinator
        """
        self._latest_request += 1
        request_id = self._latest_request
        self._loading_request = request_id

        try:
            products = await fetch()
        except Exception as e:
            logger.error(f"Catalog fetch {request_id} failed, keeping previous catalog: {e}")
            if self._loading_request == request_id:
                self._loading_request = None
            return False

        if request_id != self._latest_request:
            logger.debug(f"Dropping stale catalog fetch {request_id} (latest is {self._latest_request})")
            return False

        self._loading_request = None
        self.coordinator.set_catalog(products)
        logger.info(f"✓ Catalog loaded with {len(products)} product(s)")
        return True
