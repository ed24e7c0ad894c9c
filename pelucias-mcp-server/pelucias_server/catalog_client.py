"""Supabase catalog client for the products table."""

import logging
from decimal import Decimal
from typing import Any, Optional

import httpx
from .models import Product

logger = logging.getLogger(__name__)


class CatalogClient:
    """Client for reading products from the Supabase REST API."""

    TABLE = "products"

    def __init__(
        self,
        url: Optional[str],
        anon_key: Optional[str],
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize the catalog client.

        Args:
            url: Supabase project URL
            anon_key: Supabase anon public key
            transport: Optional httpx transport (used by tests)
        """
        if not url or not anon_key:
            logger.warning("SUPABASE_URL or SUPABASE_ANON_KEY not set, catalog requests will fail")

        self.url = url or ""
        self.client = httpx.Client(
            base_url=self.url,
            timeout=30.0,
            transport=transport,
            headers={
                "apikey": anon_key or "",
                "Authorization": f"Bearer {anon_key or ''}",
                "Accept": "application/json",
            },
        )

    def _select(self, params: dict[str, str]) -> list[dict[str, Any]]:
        """
        Run a select on the products table.

        Raises:
            httpx.HTTPError: On network or HTTP status errors
            ValueError: If the response is not a JSON list
        """
        response = self.client.get(f"/rest/v1/{self.TABLE}", params=params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise ValueError(f"Unexpected response from Supabase: {type(data).__name__}")
        return data

    def fetch_all(self) -> list[Product]:
        """
        Get every product, newest first.

        Raises:
            httpx.HTTPError: On network or HTTP status errors
            ValueError: If the response is not a JSON list
        """
        rows = self._select({"select": "*", "order": "created_at.desc"})
        return self._parse_products(rows)

    def list_all(self) -> list[Product]:
        """
        Get every product, newest first.

        Returns:
            List of products, empty on failure
        """
        try:
            return self.fetch_all()
        except Exception as e:
            logger.error(f"Error listing products: {e}")
            return []

    def list_by_category(self, category: Optional[str], subcategory: Optional[str]) -> list[Product]:
        """
        Get products of a category and subcategory.

        Args:
            category: Category to match, None for every category
            subcategory: Subcategory to match, None for every subcategory

        Returns:
            List of matching products, newest first; empty on failure
        """
        params = {"select": "*", "order": "created_at.desc"}
        if category:
            params["categoria"] = f"eq.{category}"
        if subcategory:
            params["subcategoria"] = f"eq.{subcategory}"

        try:
            return self._parse_products(self._select(params))
        except Exception as e:
            logger.error(f"Error listing products for category={category} subcategory={subcategory}: {e}")
            return []

    def search(self, term: str) -> list[Product]:
        """
        Search products whose name contains a term, ignoring case.

        A blank term returns the whole catalog.
        """
        if not term.strip():
            return self.list_all()

        try:
            rows = self._select({
                "select": "*",
                "nome": f"ilike.*{term}*",
                "order": "created_at.desc",
            })
            return self._parse_products(rows)
        except Exception as e:
            logger.error(f"Error searching products for '{term}': {e}")
            return []

    def get_by_id(self, product_id: str) -> Optional[Product]:
        """Get a single product, or None if it does not exist or the request fails."""
        try:
            rows = self._select({"select": "*", "id": f"eq.{product_id}", "limit": "1"})
        except Exception as e:
            logger.error(f"Error fetching product {product_id}: {e}")
            return None

        products = self._parse_products(rows)
        return products[0] if products else None

    def list_categories(self) -> set[str]:
        """Get the distinct categories of the catalog."""
        try:
            rows = self._select({"select": "categoria"})
        except Exception as e:
            logger.error(f"Error listing categories: {e}")
            return set()

        return {row["categoria"] for row in rows if row.get("categoria")}

    def list_subcategories(self, category: str) -> set[str]:
        """Get the distinct non-null subcategories of a category."""
        try:
            rows = self._select({
                "select": "subcategoria",
                "categoria": f"eq.{category}",
                "subcategoria": "not.is.null",
            })
        except Exception as e:
            logger.error(f"Error listing subcategories of {category}: {e}")
            return set()

        return {row["subcategoria"] for row in rows if row.get("subcategoria")}

    # Helper methods for parsing responses

    def _parse_products(self, rows: list[dict[str, Any]]) -> list[Product]:
        """Parse product rows, skipping the ones that do not validate."""
        products = []

        for row in rows:
            try:
                product = Product(
                    id=str(row["id"]),
                    name=row.get("nome", ""),
                    price=Decimal(str(row.get("preco", 0))),
                    category=row.get("categoria", ""),
                    subcategory=row.get("subcategoria"),
                    images=row.get("imagens") or [],
                    created_at=row.get("created_at"),
                )
                products.append(product)
            except Exception as e:
                logger.warning(f"Failed to parse product: {e}")
                continue

        return products

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()
