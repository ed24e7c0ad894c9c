"""Shared fixtures for the storefront tests."""

from decimal import Decimal
from typing import Optional

import httpx
import pytest

from pelucias_server.cart import install_cart
from pelucias_server.catalog_client import CatalogClient
from pelucias_server.models import Product


class MemoryStore:
    """In-memory key-value store that counts writes."""

    def __init__(self, data: Optional[dict[str, str]] = None) -> None:
        self.data = dict(data or {})
        self.writes = 0

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        self.writes += 1
        return True


class BrokenStore:
    """Store whose reads and writes always fail."""

    def get(self, key: str) -> Optional[str]:
        raise OSError("storage unavailable")

    def set(self, key: str, value: str) -> bool:
        raise OSError("quota exceeded")


class FullStore(MemoryStore):
    """Store that reports failure on every write."""

    def set(self, key: str, value: str) -> bool:
        return False


SUPABASE_ROWS = [
    {
        "id": "a",
        "nome": "Pelúcia Stitch",
        "preco": 89.90,
        "categoria": "Personagens",
        "subcategoria": "Disney",
        "imagens": ["https://cdn.example.com/stitch-1.jpg", "https://cdn.example.com/stitch-2.jpg"],
        "created_at": "2024-05-03T10:00:00+00:00",
    },
    {
        "id": "b",
        "nome": "Pelúcia Angel",
        "preco": 65.90,
        "categoria": "Personagens",
        "subcategoria": "Disney",
        "imagens": ["https://cdn.example.com/angel.jpg"],
        "created_at": "2024-05-02T10:00:00+00:00",
    },
    {
        "id": "c",
        "nome": "Urso Gigante 1,10m",
        "preco": 249.90,
        "categoria": "Gigantes",
        "subcategoria": None,
        "imagens": None,
        "created_at": "2024-05-04T10:00:00+00:00",
    },
    {
        "id": "d",
        "nome": "Pelúcia Homem-Aranha",
        "preco": 79.90,
        "categoria": "Personagens",
        "subcategoria": "Marvel",
        "imagens": [],
        "created_at": "2024-05-01T10:00:00+00:00",
    },
]


def make_supabase_transport(rows: list[dict], requests: Optional[list[httpx.Request]] = None) -> httpx.MockTransport:
    """Mock transport answering the PostgREST queries the catalog client sends."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)

        params = request.url.params
        result = list(rows)

        for column in ("id", "categoria", "subcategoria", "nome"):
            if column not in params:
                continue
            op, _, value = params[column].partition(".")
            if op == "eq":
                result = [r for r in result if str(r.get(column)) == value]
            elif op == "ilike":
                needle = value.strip("*").lower()
                result = [r for r in result if needle in (r.get(column) or "").lower()]
            elif op == "not" and value == "is.null":
                result = [r for r in result if r.get(column) is not None]

        if params.get("order") == "created_at.desc":
            result.sort(key=lambda r: r.get("created_at") or "", reverse=True)

        if "limit" in params:
            result = result[: int(params["limit"])]

        select = params.get("select", "*")
        if select != "*":
            columns = select.split(",")
            result = [{c: r.get(c) for c in columns} for r in result]

        return httpx.Response(200, json=result)

    return httpx.MockTransport(handler)


@pytest.fixture
def stitch() -> Product:
    return Product(id="a", name="Pelúcia Stitch", price=Decimal("89.90"), category="Personagens", subcategory="Disney")


@pytest.fixture
def angel() -> Product:
    return Product(id="b", name="Pelúcia Angel", price=Decimal("65.90"), category="Personagens", subcategory="Disney")


@pytest.fixture
def urso() -> Product:
    return Product(id="c", name="Urso Gigante 1,10m", price=Decimal("249.90"), category="Gigantes")


@pytest.fixture
def aranha() -> Product:
    return Product(
        id="d", name="Pelúcia Homem-Aranha", price=Decimal("79.90"), category="Personagens", subcategory="Marvel"
    )


@pytest.fixture
def catalog(stitch, angel, urso, aranha) -> list[Product]:
    return [stitch, angel, urso, aranha]


@pytest.fixture
def supabase_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def catalog_client(supabase_requests):
    client = CatalogClient(
        "https://test.supabase.co",
        "anon-key",
        transport=make_supabase_transport(SUPABASE_ROWS, supabase_requests),
    )
    yield client
    client.close()


@pytest.fixture(autouse=True)
def reset_installed_cart():
    yield
    install_cart(None)
