"""HTTP server for the UP Pelúcias storefront with SSE cart updates."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from .cart import CartEngine, CartNotInitializedError, install_cart, require_cart
from .catalog_client import CatalogClient
from .checkout import DEFAULT_WHATSAPP_NUMBER, build_checkout_url, build_order_message
from .filters import CatalogLoader, FilterCoordinator, sort_for_display
from .models import Product
from .storage import JsonFileStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("pelucias-http-server")

# Global state
catalog_client: CatalogClient
coordinator: FilterCoordinator
loader: CatalogLoader
whatsapp_number: str = DEFAULT_WHATSAPP_NUMBER


def init_state(client: CatalogClient, cart: CartEngine, phone_number: Optional[str] = None) -> None:
    """Wire the catalog client, cart engine and filter state used by the endpoints."""
    global catalog_client, coordinator, loader, whatsapp_number

    catalog_client = client
    install_cart(cart)
    coordinator = FilterCoordinator()
    loader = CatalogLoader(coordinator)
    whatsapp_number = phone_number or DEFAULT_WHATSAPP_NUMBER


async def refresh_catalog() -> bool:
    """Reload the whole catalog into the filter coordinator."""
    return await loader.load(lambda: asyncio.to_thread(catalog_client.fetch_all))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    # Startup
    logger.info("Starting UP Pelúcias HTTP Server...")
    init_state(
        CatalogClient(os.environ.get("SUPABASE_URL"), os.environ.get("SUPABASE_ANON_KEY")),
        CartEngine(JsonFileStore(os.environ.get("PELUCIAS_CART_FILE"))),
        os.environ.get("PELUCIAS_WHATSAPP_NUMBER"),
    )
    await refresh_catalog()

    yield

    # Shutdown
    logger.info("Shutting down UP Pelúcias HTTP Server...")
    catalog_client.close()


app = FastAPI(
    title="UP Pelúcias Storefront",
    description="HTTP API for browsing the UP Pelúcias catalog and building WhatsApp orders",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class CategoryRequest(BaseModel):
    category: Optional[str] = None


class SubcategoryRequest(BaseModel):
    subcategory: Optional[str] = None


class SearchRequest(BaseModel):
    term: str = ""


class AddToCartRequest(BaseModel):
    product_id: str


class RemoveFromCartRequest(BaseModel):
    product_id: str


class UpdateCartRequest(BaseModel):
    product_id: str
    quantity: int


class CheckoutResponse(BaseModel):
    message: str
    url: str


def _products_payload(products: list[Product]) -> dict:
    return {
        "count": len(products),
        "products": [product.model_dump(mode="json") for product in sort_for_display(products)],
    }


def _filters_payload() -> dict:
    return {
        "selection": coordinator.selection.model_dump(),
        "categories": sorted(coordinator.categories()),
        "subcategories": sorted(coordinator.subcategories()),
    }


async def _find_product(product_id: str) -> Optional[Product]:
    """Look the product up in the loaded catalog, then in Supabase."""
    for product in coordinator.products:
        if product.id == product_id:
            return product
    return await asyncio.to_thread(catalog_client.get_by_id, product_id)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "UP Pelúcias Storefront",
        "version": "0.1.0",
        "description": "HTTP API for browsing the UP Pelúcias catalog and building WhatsApp orders",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "catalog": {"refresh": "POST /catalog/refresh"},
            "products": {"list": "GET /products", "get": "GET /products/{product_id}"},
            "categories": {
                "list": "GET /categories",
                "subcategories": "GET /categories/{category}/subcategories",
            },
            "filters": {
                "get": "GET /filters",
                "category": "POST /filters/category",
                "subcategory": "POST /filters/subcategory",
                "search": "POST /filters/search",
                "reset": "POST /filters/reset",
            },
            "cart": {
                "get": "GET /cart",
                "add": "POST /cart/add",
                "remove": "POST /cart/remove",
                "update": "POST /cart/update",
                "clear": "POST /cart/clear",
                "open": "POST /cart/open",
                "close": "POST /cart/close",
                "toggle": "POST /cart/toggle",
                "events": "GET /cart/events - SSE stream of cart changes",
            },
            "checkout": "POST /checkout",
        },
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "catalog_size": len(coordinator.products),
        "loading": loader.is_loading,
    }


# Catalog endpoints
@app.post("/catalog/refresh")
async def catalog_refresh():
    """Reload the catalog from Supabase."""
    applied = await refresh_catalog()
    return {"success": applied, "count": len(coordinator.products)}


@app.get("/products")
async def list_products():
    """Products visible under the current filters, in display order."""
    payload = _products_payload(coordinator.visible_products())
    payload["loading"] = loader.is_loading
    payload["selection"] = coordinator.selection.model_dump()
    return payload


@app.get("/products/{product_id}")
async def get_product(product_id: str):
    """Get a single product."""
    product = await asyncio.to_thread(catalog_client.get_by_id, product_id)
    if not product:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return product.model_dump(mode="json")


@app.get("/categories")
async def list_categories():
    """List the categories stored in Supabase."""
    categories = await asyncio.to_thread(catalog_client.list_categories)
    return {"categories": sorted(categories)}


@app.get("/categories/{category}/subcategories")
async def list_subcategories(category: str):
    """List the subcategories of a category stored in Supabase."""
    subcategories = await asyncio.to_thread(catalog_client.list_subcategories, category)
    return {"category": category, "subcategories": sorted(subcategories)}


# Filter endpoints
@app.get("/filters")
async def get_filters():
    """Current selection and the options derived from the loaded catalog."""
    return _filters_payload()


@app.post("/filters/category")
async def select_category(request: CategoryRequest):
    """Select a category (null for all). Resets the subcategory."""
    coordinator.select_category(request.category)
    return _filters_payload()


@app.post("/filters/subcategory")
async def select_subcategory(request: SubcategoryRequest):
    """Select a subcategory of the current category (null for all)."""
    try:
        coordinator.select_subcategory(request.subcategory)
    except ValueError:
        raise HTTPException(status_code=400, detail="Select a category before a subcategory")
    return _filters_payload()


@app.post("/filters/search")
async def set_search(request: SearchRequest):
    """Set the search term. A non-empty term overrides the category filters."""
    coordinator.set_search_term(request.term)
    return _filters_payload()


@app.post("/filters/reset")
async def reset_filters():
    """Clear category, subcategory and search term."""
    coordinator.reset()
    return _filters_payload()


# Cart endpoints
@app.get("/cart")
async def get_cart():
    """Get current shopping cart."""
    return require_cart().to_cart().model_dump(mode="json")


@app.post("/cart/add")
async def add_to_cart(request: AddToCartRequest):
    """Add one unit of a product to the cart."""
    try:
        product = await _find_product(request.product_id)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product {request.product_id} not found")

        cart = require_cart()
        cart.add_item(product)
        return cart.to_cart().model_dump(mode="json")
    except (HTTPException, CartNotInitializedError):
        raise
    except Exception as e:
        logger.error(f"Add to cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/cart/remove")
async def remove_from_cart(request: RemoveFromCartRequest):
    """Remove a product from the cart."""
    cart = require_cart()
    cart.remove_item(request.product_id)
    return cart.to_cart().model_dump(mode="json")


@app.post("/cart/update")
async def update_cart(request: UpdateCartRequest):
    """Set the quantity of a product in the cart (0 or less removes it)."""
    cart = require_cart()
    cart.set_quantity(request.product_id, request.quantity)
    return cart.to_cart().model_dump(mode="json")


@app.post("/cart/clear")
async def clear_cart():
    """Remove every product from the cart."""
    cart = require_cart()
    cart.clear()
    return cart.to_cart().model_dump(mode="json")


@app.post("/cart/open")
async def open_cart():
    cart = require_cart()
    cart.open()
    return {"is_open": cart.is_open}


@app.post("/cart/close")
async def close_cart():
    cart = require_cart()
    cart.close()
    return {"is_open": cart.is_open}


@app.post("/cart/toggle")
async def toggle_cart():
    cart = require_cart()
    cart.toggle()
    return {"is_open": cart.is_open}


@app.get("/cart/events")
async def cart_events(request: Request):
    """
    Server-Sent Events (SSE) stream of cart changes.

    Sends the current cart on connect and again after every change. A
    keepalive comment is sent every 30 seconds without changes.
    """
    cart = require_cart()

    async def event_stream():
        """Generate cart events until the client disconnects."""
        queue: asyncio.Queue[str] = asyncio.Queue()

        def on_change(engine: CartEngine) -> None:
            queue.put_nowait(engine.to_cart().model_dump_json())

        # Listener lives only as long as the body is being streamed
        unsubscribe = cart.subscribe(on_change)
        on_change(cart)
        try:
            logger.info("SSE client connected for cart events")
            while True:
                if await request.is_disconnected():
                    logger.info("SSE client disconnected")
                    break

                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=30)
                except asyncio.TimeoutError:
                    yield ": ping\n\n"
                    continue

                yield f"event: cart\ndata: {payload}\n\n"
        except asyncio.CancelledError:
            logger.info("SSE stream cancelled")
        finally:
            unsubscribe()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# Checkout endpoint
@app.post("/checkout", response_model=CheckoutResponse)
async def checkout():
    """Compose the order message and the WhatsApp link that sends it."""
    cart = require_cart()
    if not cart.items:
        raise HTTPException(status_code=400, detail="The cart is empty")

    message = build_order_message(cart.items)
    return CheckoutResponse(message=message, url=build_checkout_url(message, whatsapp_number))


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """
    Run the HTTP server.

    Args:
        host: Host to bind to
        port: Port to bind to
        reload: Enable hot reloading (default: False)
    """
    import uvicorn

    logger.info(f"Starting server on {host}:{port} (reload={'enabled' if reload else 'disabled'})")

    if reload:
        uvicorn.run(
            "pelucias_server.http_server:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["pelucias_server"],
            log_level="info"
        )
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
