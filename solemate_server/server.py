"""MCP Server for the SoleMate storefront."""

import asyncio
import logging
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .config import Settings
from .errors import InvalidCredentials, SoleMateError, ValidationError
from .models import AuthCredentials, Cart, Registration
from .storefront import Storefront

logger = logging.getLogger("solemate-mcp-server")

CART_URI = "solemate://cart"

TOOLS = [
    Tool(
        name="solemate_login",
        description="Authenticate with SoleMate. Uses SOLEMATE_EMAIL/SOLEMATE_PASSWORD if not provided. "
                    "Guest cart items are merged into the account cart.",
        inputSchema={
            "type": "object",
            "properties": {
                "email": {
                    "type": "string",
                    "description": "Email address (optional if SOLEMATE_EMAIL configured)",
                },
                "password": {
                    "type": "string",
                    "description": "Password (optional if SOLEMATE_PASSWORD configured)",
                },
            },
        },
    ),
    Tool(
        name="solemate_register",
        description="Create a SoleMate account and log in",
        inputSchema={
            "type": "object",
            "properties": {
                "email": {"type": "string", "description": "Email address"},
                "password": {"type": "string", "description": "Password (at least 8 characters)"},
                "name": {"type": "string", "description": "Display name"},
            },
            "required": ["email", "password", "name"],
        },
    ),
    Tool(
        name="solemate_logout",
        description="Logout and clear session",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="solemate_whoami",
        description="Show the logged in user",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="solemate_get_cart",
        description="Get current shopping cart contents (guest cart when not logged in)",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="solemate_add_to_cart",
        description="Add a product variant to the cart",
        inputSchema={
            "type": "object",
            "properties": {
                "variant_id": {"type": "string", "description": "Product variant ID"},
                "quantity": {
                    "type": "integer",
                    "description": "Quantity to add (default: 1)",
                    "default": 1,
                },
            },
            "required": ["variant_id"],
        },
    ),
    Tool(
        name="solemate_update_cart_item",
        description="Set the quantity of a cart line (0 removes the line)",
        inputSchema={
            "type": "object",
            "properties": {
                "line_id": {"type": "string", "description": "Cart line ID from solemate_get_cart"},
                "quantity": {"type": "integer", "description": "New quantity"},
            },
            "required": ["line_id", "quantity"],
        },
    ),
    Tool(
        name="solemate_remove_from_cart",
        description="Remove a line from the cart",
        inputSchema={
            "type": "object",
            "properties": {
                "line_id": {"type": "string", "description": "Cart line ID from solemate_get_cart"},
            },
            "required": ["line_id"],
        },
    ),
    Tool(
        name="solemate_clear_cart",
        description="Remove every line from the cart",
        inputSchema={"type": "object", "properties": {}},
    ),
]


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def format_cart(cart: Cart, authenticated: bool) -> str:
    """Render a cart as plain text."""
    if not cart.items:
        return "Your cart is empty"

    label = "Shopping Cart" if authenticated else "Guest Cart"
    result_lines = [f"{label} ({cart.total_items} items):\n"]
    result_lines.append(f"Total: €{cart.total_price:.2f}")
    result_lines.append("\nItems:")
    for line in cart.items:
        details = ", ".join(part for part in (line.variant.size, line.variant.color) if part)
        title = f"{line.product.title} ({details})" if details else line.product.title
        result_lines.append(
            f"  - {title} x{line.quantity} @ €{line.unit_price:.2f} "
            f"[line: {line.id}, variant: {line.product_variant_id}]"
        )
    return "\n".join(result_lines)


async def handle_tool(storefront: Storefront, name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    client = storefront.client
    cart = storefront.cart

    try:
        if name == "solemate_login":
            email = arguments.get("email")
            password = arguments.get("password")

            # Use provided credentials or fall back to environment
            if not email or not password:
                configured = storefront.settings.credentials
                if not configured:
                    return _text(
                        "Error: No credentials provided and SOLEMATE_EMAIL/SOLEMATE_PASSWORD not configured."
                    )
                email = email or configured.email
                password = password or configured.password

            cart.last_merge = None
            try:
                user = client.login(AuthCredentials(email=email, password=password))
            except InvalidCredentials:
                return _text("❌ Login failed. Check your email and password.")

            result = f"✅ Successfully logged in as {user.email}\nCart: {cart.total_items} item(s)"
            if cart.unmerged_count:
                result += f"\n⚠️ {cart.unmerged_count} line(s) could not be merged and were kept in the guest cart"
            return _text(result)

        elif name == "solemate_register":
            cart.last_merge = None
            try:
                user = client.register(
                    Registration(
                        email=arguments["email"],
                        password=arguments["password"],
                        name=arguments["name"],
                    )
                )
            except ValidationError as e:
                return _text(f"❌ Registration failed: {e.detail}")
            result = f"✅ Registered and logged in as {user.email}"
            if cart.unmerged_count:
                result += f"\n⚠️ {cart.unmerged_count} line(s) could not be merged and were kept in the guest cart"
            return _text(result)

        elif name == "solemate_logout":
            client.logout()
            return _text("✅ Successfully logged out")

        elif name == "solemate_whoami":
            user = storefront.auth_manager.user
            if not storefront.auth_manager.is_authenticated() or user is None:
                return _text("Not logged in (guest)")
            return _text(f"Logged in as {user.name or user.email} <{user.email}> (role: {user.role})")

        elif name == "solemate_get_cart":
            cart.load()
            cart.resolve_placeholders()
            return _text(format_cart(cart.cart, storefront.auth_manager.is_authenticated()))

        elif name == "solemate_add_to_cart":
            variant_id = arguments["variant_id"]
            quantity = int(arguments.get("quantity", 1))
            cart.add_item(variant_id, quantity)
            return _text(
                f"✅ Added {variant_id} (quantity: {quantity}) to cart\n"
                f"Cart: {cart.total_items} item(s), total €{cart.total_price:.2f}"
            )

        elif name == "solemate_update_cart_item":
            line_id = arguments["line_id"]
            quantity = int(arguments["quantity"])
            cart.update_quantity(line_id, quantity)
            if quantity <= 0:
                return _text(f"✅ Removed line {line_id} from cart")
            return _text(f"✅ Set quantity of line {line_id} to {quantity}")

        elif name == "solemate_remove_from_cart":
            line_id = arguments["line_id"]
            cart.remove_item(line_id)
            return _text(f"✅ Removed line {line_id} from cart")

        elif name == "solemate_clear_cart":
            cart.clear()
            return _text("✅ Cart cleared")

        else:
            return _text(f"Unknown tool: {name}")

    except SoleMateError as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return _text(f"Error: {e}")
    except (KeyError, ValueError) as e:
        return _text(f"Error: Invalid arguments for {name}: {e}")


def create_server(storefront: Storefront) -> Server:
    """Build the MCP server around a storefront."""
    app = Server("solemate-mcp-server")

    @app.list_resources()
    async def list_resources() -> list[Resource]:
        """List available resources."""
        return [
            Resource(
                uri=AnyUrl(CART_URI),
                name="Shopping Cart",
                mimeType="application/json",
                description="Current shopping cart contents",
            )
        ]

    @app.read_resource()
    async def read_resource(uri: AnyUrl) -> str:
        """Read a resource by URI."""
        if str(uri) == CART_URI:
            return storefront.cart.cart.model_dump_json(indent=2, by_alias=True)

        raise ValueError(f"Unknown resource: {uri}")

    @app.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return TOOLS

    @app.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        return await handle_tool(storefront, name, arguments)

    return app


async def main() -> None:
    """Main entry point."""
    settings = Settings.from_env()
    storefront = Storefront(settings)

    if settings.credentials:
        logger.info(f"Credentials loaded from environment for: {settings.email}")
    else:
        logger.warning("No credentials found in environment variables (SOLEMATE_EMAIL, SOLEMATE_PASSWORD)")
        logger.warning("You can login manually via solemate_login tool")

    logger.info(f"Using storefront API at {settings.api_url}")
    storefront.start()

    logger.info("Starting SoleMate MCP Server...")

    from mcp.server.stdio import stdio_server

    app = create_server(storefront)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
