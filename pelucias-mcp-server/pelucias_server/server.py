"""MCP Server for the UP Pelúcias storefront."""

import asyncio
import logging
import os
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, Tool, TextContent
from pydantic import AnyUrl

from .cart import CartEngine, CartNotInitializedError, install_cart, require_cart
from .catalog_client import CatalogClient
from .checkout import DEFAULT_WHATSAPP_NUMBER, build_checkout_url, build_order_message, format_brl
from .filters import sort_for_display
from .models import Product
from .storage import JsonFileStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("pelucias-mcp-server")

NOTHING_FOUND = "Nenhum produto encontrado."

# Initialize server
app = Server("pelucias-mcp-server")

# Global state
catalog_client: CatalogClient
whatsapp_number: str = DEFAULT_WHATSAPP_NUMBER


def init_state(client: CatalogClient, cart: CartEngine, phone_number: Optional[str] = None) -> None:
    """Wire the catalog client and cart engine used by the tools."""
    global catalog_client, whatsapp_number

    catalog_client = client
    install_cart(cart)
    whatsapp_number = phone_number or DEFAULT_WHATSAPP_NUMBER


def _format_products(products: list[Product]) -> str:
    if not products:
        return NOTHING_FOUND

    result_lines = [f"Found {len(products)} product(s):\n"]
    for i, product in enumerate(sort_for_display(products), 1):
        result_lines.append(f"\n{i}. {product.name}")
        result_lines.append(f"   Product ID: {product.id}")
        result_lines.append(f"   Price: {format_brl(product.price)}")
        category = product.category
        if product.subcategory:
            category = f"{category} / {product.subcategory}"
        result_lines.append(f"   Category: {category}")
    return "\n".join(result_lines)


def _format_cart(cart: CartEngine) -> str:
    if not cart.items:
        return "Seu carrinho está vazio"

    view = cart.to_cart()
    result_lines = [f"Shopping Cart ({view.item_count} items):\n"]
    for i, line in enumerate(view.items, 1):
        result_lines.append(f"\n{i}. {line.product.name}")
        result_lines.append(f"   Product ID: {line.product.id}")
        result_lines.append(f"   Price: {format_brl(line.product.price)}")
        result_lines.append(f"   Quantity: {line.quantity}")
        result_lines.append(f"   Subtotal: {format_brl(line.subtotal)}")

    result_lines.append(f"\n{'='*50}")
    result_lines.append(f"Total: {format_brl(view.total)}")
    return "\n".join(result_lines)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=AnyUrl("pelucias://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents",
        )
    ]


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    if str(uri) == "pelucias://cart":
        return require_cart().to_cart().model_dump_json(indent=2)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="pelucias_search_products",
            description="List products, optionally by name search or by category/subcategory. "
                        "A search query takes precedence over the category filters.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Text contained in the product name (e.g., 'stitch')",
                    },
                    "category": {
                        "type": "string",
                        "description": "Top-level category (e.g., 'Personagens')",
                    },
                    "subcategory": {
                        "type": "string",
                        "description": "Subcategory inside the category (e.g., 'Marvel')",
                    },
                },
            },
        ),
        Tool(
            name="pelucias_get_product",
            description="Get a product by its ID",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="pelucias_list_categories",
            description="List the product categories",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="pelucias_list_subcategories",
            description="List the subcategories of a category",
            inputSchema={
                "type": "object",
                "properties": {
                    "category": {"type": "string", "description": "Top-level category"},
                },
                "required": ["category"],
            },
        ),
        Tool(
            name="pelucias_add_to_cart",
            description="Add one unit of a product to the cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID from search results"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="pelucias_remove_from_cart",
            description="Remove a product from the cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to remove"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="pelucias_update_cart_quantity",
            description="Set the quantity of a product in the cart (0 or less removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                    "quantity": {"type": "integer", "description": "New quantity"},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="pelucias_clear_cart",
            description="Remove every product from the cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="pelucias_get_cart",
            description="Get current shopping cart contents",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="pelucias_checkout",
            description="Compose the order message and the WhatsApp link that sends it to the store",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "pelucias_search_products":
            query = (arguments.get("query") or "").strip()
            category = arguments.get("category") or None
            subcategory = arguments.get("subcategory") or None

            if subcategory and not category:
                return [TextContent(type="text", text="Error: subcategory requires a category")]

            if query:
                products = await asyncio.to_thread(catalog_client.search, query)
            elif category:
                products = await asyncio.to_thread(catalog_client.list_by_category, category, subcategory)
            else:
                products = await asyncio.to_thread(catalog_client.list_all)

            return [TextContent(type="text", text=_format_products(products))]

        elif name == "pelucias_get_product":
            product_id = arguments["product_id"]
            product = await asyncio.to_thread(catalog_client.get_by_id, product_id)

            if not product:
                return [TextContent(type="text", text=f"Product {product_id} not found")]

            return [TextContent(type="text", text=product.model_dump_json(indent=2))]

        elif name == "pelucias_list_categories":
            categories = await asyncio.to_thread(catalog_client.list_categories)

            if not categories:
                return [TextContent(type="text", text="No categories found")]

            return [TextContent(type="text", text="\n".join(sorted(categories)))]

        elif name == "pelucias_list_subcategories":
            category = arguments["category"]
            subcategories = await asyncio.to_thread(catalog_client.list_subcategories, category)

            if not subcategories:
                return [TextContent(type="text", text=f"No subcategories found for: {category}")]

            return [TextContent(type="text", text="\n".join(sorted(subcategories)))]

        elif name == "pelucias_add_to_cart":
            cart = require_cart()
            product_id = arguments["product_id"]
            product = await asyncio.to_thread(catalog_client.get_by_id, product_id)

            if not product:
                return [TextContent(type="text", text=f"❌ Product {product_id} not found")]

            cart.add_item(product)
            item = cart.get_item(product.id)
            return [
                TextContent(
                    type="text",
                    text=f"✅ Added {product.name} to cart (quantity: {item.quantity})\n"
                         f"Cart total: {format_brl(cart.total_price())}",
                )
            ]

        elif name == "pelucias_remove_from_cart":
            cart = require_cart()
            product_id = arguments["product_id"]

            if not cart.get_item(product_id):
                return [TextContent(type="text", text=f"Product {product_id} is not in the cart")]

            cart.remove_item(product_id)
            return [TextContent(type="text", text=f"✅ Removed product {product_id} from cart")]

        elif name == "pelucias_update_cart_quantity":
            cart = require_cart()
            product_id = arguments["product_id"]
            quantity = int(arguments["quantity"])

            if not cart.get_item(product_id):
                return [TextContent(type="text", text=f"Product {product_id} is not in the cart")]

            cart.set_quantity(product_id, quantity)
            if quantity <= 0:
                return [TextContent(type="text", text=f"✅ Removed product {product_id} from cart")]
            return [
                TextContent(
                    type="text",
                    text=f"✅ Updated product {product_id} to quantity {quantity}",
                )
            ]

        elif name == "pelucias_clear_cart":
            require_cart().clear()
            return [TextContent(type="text", text="✅ Cart cleared")]

        elif name == "pelucias_get_cart":
            return [TextContent(type="text", text=_format_cart(require_cart()))]

        elif name == "pelucias_checkout":
            cart = require_cart()

            if not cart.items:
                return [TextContent(type="text", text="Error: the cart is empty")]

            message = build_order_message(cart.items)
            url = build_checkout_url(message, whatsapp_number)
            return [TextContent(type="text", text=f"{message}\n\nSend the order: {url}")]

        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

    except CartNotInitializedError:
        raise
    except KeyError as e:
        return [TextContent(type="text", text=f"Error: missing argument {e}")]
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return [
            TextContent(
                type="text",
                text=f"Error: {str(e)}",
            )
        ]


async def main() -> None:
    """Main entry point for the MCP server."""
    supabase_url = os.environ.get("SUPABASE_URL")
    supabase_key = os.environ.get("SUPABASE_ANON_KEY")
    cart_file = os.environ.get("PELUCIAS_CART_FILE")
    phone_number = os.environ.get("PELUCIAS_WHATSAPP_NUMBER")

    init_state(
        CatalogClient(supabase_url, supabase_key),
        CartEngine(JsonFileStore(cart_file)),
        phone_number,
    )

    if phone_number:
        logger.info(f"WhatsApp number configured: {phone_number}")
    else:
        logger.warning(
            f"No WhatsApp number configured (PELUCIAS_WHATSAPP_NUMBER), using {DEFAULT_WHATSAPP_NUMBER}"
        )

    logger.info("Starting UP Pelúcias MCP Server...")

    # Import and run the server
    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        catalog_client.close()


if __name__ == "__main__":
    asyncio.run(main())
