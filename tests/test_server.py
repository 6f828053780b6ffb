"""Tests for the MCP tool handlers"""
from decimal import Decimal

import pytest

from solemate_server.config import Settings
from solemate_server.models import Cart, CartLine, CartProduct, CartVariant
from solemate_server.server import TOOLS, create_server, format_cart, handle_tool
from solemate_server.storefront import Storefront
from tests.conftest import PASSWORD, RUNNER_42


@pytest.fixture
def storefront(tmp_path, api_http):
    settings = Settings(
        session_file=str(tmp_path / "session.json"),
        storage_file=str(tmp_path / "storage.json"),
    )
    app_state = Storefront(settings, http_client=api_http)
    yield app_state
    app_state.cart.close()


async def call(storefront, name, arguments=None):
    result = await handle_tool(storefront, name, arguments)
    assert len(result) == 1
    return result[0].text


def test_tool_names():
    assert [tool.name for tool in TOOLS] == [
        "solemate_login",
        "solemate_register",
        "solemate_logout",
        "solemate_whoami",
        "solemate_get_cart",
        "solemate_add_to_cart",
        "solemate_update_cart_item",
        "solemate_remove_from_cart",
        "solemate_clear_cart",
    ]


def test_format_empty_cart():
    assert format_cart(Cart(), authenticated=True) == "Your cart is empty"


def test_format_cart():
    line = CartLine(
        id="line-1",
        product_variant_id=RUNNER_42,
        product=CartProduct(id="prod-runner", title="SoleMate Runner"),
        variant=CartVariant(id=RUNNER_42, size="42", color="Black", price=Decimal("129.99")),
        quantity=2,
    )

    text = format_cart(Cart(items=[line]), authenticated=False)

    assert text.startswith("Guest Cart (2 items):")
    assert "Total: €259.98" in text
    assert f"SoleMate Runner (42, Black) x2 @ €129.99 [line: line-1, variant: {RUNNER_42}]" in text


@pytest.mark.asyncio
async def test_login_and_whoami(storefront, account):
    assert await call(storefront, "solemate_whoami") == "Not logged in (guest)"

    text = await call(storefront, "solemate_login", {"email": account.email, "password": PASSWORD})
    assert text.startswith("✅ Successfully logged in as ada@example.com")

    assert await call(storefront, "solemate_whoami") == "Logged in as Ada <ada@example.com> (role: user)"


@pytest.mark.asyncio
async def test_login_failure(storefront, account):
    text = await call(storefront, "solemate_login", {"email": account.email, "password": "wrong-password"})
    assert text.startswith("❌ Login failed")


@pytest.mark.asyncio
async def test_login_without_credentials(storefront):
    text = await call(storefront, "solemate_login", {})
    assert "not configured" in text


@pytest.mark.asyncio
async def test_login_uses_configured_credentials(tmp_path, api_http, account):
    settings = Settings(
        session_file=str(tmp_path / "session.json"),
        storage_file=str(tmp_path / "storage.json"),
        email=account.email,
        password=PASSWORD,
    )
    storefront = Storefront(settings, http_client=api_http)

    text = await call(storefront, "solemate_login")

    assert text.startswith("✅ Successfully logged in")
    storefront.cart.close()


@pytest.mark.asyncio
async def test_register(storefront):
    text = await call(
        storefront,
        "solemate_register",
        {"email": "grace@example.com", "password": PASSWORD, "name": "Grace"},
    )
    assert text == "✅ Registered and logged in as grace@example.com"

    text = await call(
        storefront,
        "solemate_register",
        {"email": "grace@example.com", "password": PASSWORD, "name": "Grace"},
    )
    assert text.startswith("❌ Registration failed")


@pytest.mark.asyncio
async def test_cart_tools(storefront, account):
    assert await call(storefront, "solemate_get_cart") == "Your cart is empty"

    text = await call(storefront, "solemate_add_to_cart", {"variant_id": RUNNER_42, "quantity": 2})
    assert "Cart: 2 item(s)" in text

    cart_text = await call(storefront, "solemate_get_cart")
    assert cart_text.startswith("Guest Cart (2 items):")
    assert "SoleMate Runner" in cart_text

    await call(storefront, "solemate_login", {"email": account.email, "password": PASSWORD})
    cart_text = await call(storefront, "solemate_get_cart")
    assert cart_text.startswith("Shopping Cart (2 items):")

    line_id = storefront.cart.items[0].id
    assert await call(
        storefront, "solemate_update_cart_item", {"line_id": line_id, "quantity": 5}
    ) == f"✅ Set quantity of line {line_id} to 5"
    assert storefront.cart.total_items == 5

    assert await call(storefront, "solemate_clear_cart") == "✅ Cart cleared"
    assert storefront.cart.items == []


@pytest.mark.asyncio
async def test_remove_unknown_line(storefront):
    text = await call(storefront, "solemate_remove_from_cart", {"line_id": "guest-nope"})
    assert text.startswith("Error:")


@pytest.mark.asyncio
async def test_missing_arguments(storefront):
    text = await call(storefront, "solemate_add_to_cart", {})
    assert text.startswith("Error: Invalid arguments for solemate_add_to_cart")


@pytest.mark.asyncio
async def test_unknown_tool(storefront):
    assert await call(storefront, "solemate_checkout") == "Unknown tool: solemate_checkout"


@pytest.mark.asyncio
async def test_logout(storefront, account):
    await call(storefront, "solemate_login", {"email": account.email, "password": PASSWORD})
    assert await call(storefront, "solemate_logout") == "✅ Successfully logged out"
    assert not storefront.auth_manager.is_authenticated()


def test_create_server(storefront):
    assert create_server(storefront).name == "solemate-mcp-server"


@pytest.mark.asyncio
async def test_login_reports_unmerged_guest_lines(storefront, account):
    await call(storefront, "solemate_add_to_cart", {"variant_id": "var-discontinued"})
    await call(storefront, "solemate_add_to_cart", {"variant_id": RUNNER_42, "quantity": 2})

    text = await call(storefront, "solemate_login", {"email": account.email, "password": PASSWORD})

    assert text.startswith("✅ Successfully logged in as ada@example.com")
    assert "Cart: 2 item(s)" in text
    assert "⚠️ 1 line(s) could not be merged and were kept in the guest cart" in text


@pytest.mark.asyncio
async def test_clean_login_has_no_merge_warning(storefront, account):
    await call(storefront, "solemate_add_to_cart", {"variant_id": RUNNER_42})
    text = await call(storefront, "solemate_login", {"email": account.email, "password": PASSWORD})
    assert "could not be merged" not in text
