"""Tests for the Supabase catalog client."""

from decimal import Decimal

import httpx
import pytest

from conftest import SUPABASE_ROWS, make_supabase_transport
from pelucias_server.catalog_client import CatalogClient


def ids(products) -> list[str]:
    return [p.id for p in products]


def make_client(handler) -> CatalogClient:
    return CatalogClient("https://test.supabase.co", "anon-key", transport=httpx.MockTransport(handler))


class TestQueries:
    def test_list_all_newest_first(self, catalog_client, supabase_requests):
        products = catalog_client.list_all()

        assert ids(products) == ["c", "a", "b", "d"]

        request = supabase_requests[0]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/products"
        assert request.url.params["select"] == "*"
        assert request.url.params["order"] == "created_at.desc"

    def test_auth_headers(self, catalog_client, supabase_requests):
        catalog_client.list_all()

        headers = supabase_requests[0].headers
        assert headers["apikey"] == "anon-key"
        assert headers["authorization"] == "Bearer anon-key"

    def test_row_mapping(self, catalog_client):
        product = catalog_client.get_by_id("a")

        assert product.name == "Pelúcia Stitch"
        assert product.price == Decimal("89.90")
        assert product.category == "Personagens"
        assert product.subcategory == "Disney"
        assert product.images[0] == "https://cdn.example.com/stitch-1.jpg"
        assert product.created_at.year == 2024

    def test_null_images_become_empty_list(self, catalog_client):
        product = catalog_client.get_by_id("c")

        assert product.images == []
        assert product.subcategory is None

    def test_get_by_id_query(self, catalog_client, supabase_requests):
        catalog_client.get_by_id("b")

        params = supabase_requests[0].url.params
        assert params["id"] == "eq.b"
        assert params["limit"] == "1"

    def test_get_by_id_missing(self, catalog_client):
        assert catalog_client.get_by_id("zzz") is None

    def test_list_by_category(self, catalog_client, supabase_requests):
        products = catalog_client.list_by_category("Personagens", None)

        assert ids(products) == ["a", "b", "d"]
        params = supabase_requests[0].url.params
        assert params["categoria"] == "eq.Personagens"
        assert "subcategoria" not in params

    def test_list_by_subcategory(self, catalog_client, supabase_requests):
        products = catalog_client.list_by_category("Personagens", "Disney")

        assert ids(products) == ["a", "b"]
        assert supabase_requests[0].url.params["subcategoria"] == "eq.Disney"

    def test_search(self, catalog_client, supabase_requests):
        products = catalog_client.search("aranha")

        assert ids(products) == ["d"]
        assert supabase_requests[0].url.params["nome"] == "ilike.*aranha*"

    def test_blank_search_lists_everything(self, catalog_client, supabase_requests):
        products = catalog_client.search("   ")

        assert len(products) == 4
        assert "nome" not in supabase_requests[0].url.params

    def test_list_categories(self, catalog_client, supabase_requests):
        assert catalog_client.list_categories() == {"Personagens", "Gigantes"}
        assert supabase_requests[0].url.params["select"] == "categoria"

    def test_list_subcategories(self, catalog_client, supabase_requests):
        assert catalog_client.list_subcategories("Personagens") == {"Disney", "Marvel"}
        assert catalog_client.list_subcategories("Gigantes") == set()

        params = supabase_requests[0].url.params
        assert params["select"] == "subcategoria"
        assert params["subcategoria"] == "not.is.null"


class TestTimestamps:
    def test_postgrest_timestamp_forms(self):
        rows = [
            dict(SUPABASE_ROWS[0], created_at="2024-05-03T10:00:00.12345+00:00"),
            dict(SUPABASE_ROWS[1], created_at="2024-05-02T10:00:00Z"),
            dict(SUPABASE_ROWS[2], created_at=None),
        ]
        client = CatalogClient("https://test.supabase.co", "anon-key", transport=make_supabase_transport(rows))

        products = {p.id: p for p in client.list_all()}

        assert sorted(products) == ["a", "b", "c"]
        assert products["a"].created_at.microsecond == 123450
        assert products["a"].created_at.tzinfo is not None
        assert products["b"].created_at.utcoffset().total_seconds() == 0
        assert products["c"].created_at is None


class TestFailures:
    def test_fetch_all_raises_on_server_error(self):
        client = make_client(lambda request: httpx.Response(503, json={"message": "unavailable"}))

        with pytest.raises(httpx.HTTPStatusError):
            client.fetch_all()

    def test_fetch_all_raises_on_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        with pytest.raises(httpx.ConnectError):
            make_client(handler).fetch_all()

    def test_server_error_returns_empty(self, caplog):
        client = make_client(lambda request: httpx.Response(500, json={"message": "boom"}))

        assert client.list_all() == []
        assert client.search("stitch") == []
        assert client.get_by_id("a") is None
        assert client.list_categories() == set()
        assert client.list_subcategories("Personagens") == set()
        assert "Error listing products" in caplog.text

    def test_connection_error_returns_empty(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        client = make_client(handler)

        assert client.list_all() == []
        assert client.list_by_category("Personagens", None) == []

    def test_non_list_response_returns_empty(self):
        client = make_client(lambda request: httpx.Response(200, json={"error": "unexpected"}))

        assert client.list_all() == []

    def test_invalid_rows_are_skipped(self):
        rows = SUPABASE_ROWS + [
            {"id": "x", "nome": "Sem preço", "preco": "abc", "categoria": "Personagens"},
            {"id": "y", "nome": "Preço negativo", "preco": -10, "categoria": "Personagens"},
            {"nome": "Sem id", "preco": 10, "categoria": "Personagens"},
        ]
        client = CatalogClient("https://test.supabase.co", "anon-key", transport=make_supabase_transport(rows))

        assert sorted(ids(client.list_all())) == ["a", "b", "c", "d"]

    def test_missing_configuration_warns(self, caplog):
        client = CatalogClient(None, None, transport=make_supabase_transport([]))

        assert "SUPABASE_URL or SUPABASE_ANON_KEY not set" in caplog.text
        client.close()
