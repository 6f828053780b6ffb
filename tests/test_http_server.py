"""Tests for the local HTTP API"""
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from solemate_server.cart import GUEST_CART_KEY
from solemate_server.config import Settings
from solemate_server.http_server import create_app
from solemate_server.storefront import Storefront
from tests.conftest import LOAFER_41, PASSWORD, RUNNER_42, expire_access_tokens


@pytest.fixture
def storefront(tmp_path, api_http):
    settings = Settings(
        session_file=str(tmp_path / "session.json"),
        storage_file=str(tmp_path / "storage.json"),
    )
    app_state = Storefront(settings, http_client=api_http)
    yield app_state
    app_state.cart.close()


@pytest.fixture
def storage_lines(storefront):
    """Guest cart lines as persisted"""
    return lambda: storefront.cart.storage.get_item(GUEST_CART_KEY) or []


@pytest.fixture
def http(storefront):
    with TestClient(create_app(storefront)) as client:
        yield client


def login(http, password=PASSWORD):
    return http.post("/auth/login", json={"email": "ada@example.com", "password": password}).json()


def test_root(http):
    response = http.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "SoleMate MCP Server"
    assert data["authenticated"] is False
    assert data["endpoints"]["cart"]["add"] == "POST /cart/add"


def test_health(http):
    assert http.get("/health").json() == {"status": "healthy", "authenticated": False}


def test_login_and_status(http, account):
    assert login(http) == {
        "success": True,
        "message": "Successfully logged in as ada@example.com",
        "unmerged": 0,
    }

    status = http.get("/auth/status").json()
    assert status == {"authenticated": True, "email": "ada@example.com", "role": "user"}


def test_login_bad_credentials(http, account):
    data = login(http, password="wrong-password")
    assert data["success"] is False
    assert http.get("/auth/status").json()["authenticated"] is False


def test_register(http):
    response = http.post(
        "/auth/register", json={"email": "grace@example.com", "password": PASSWORD, "name": "Grace"}
    )
    assert response.json()["success"] is True
    assert http.get("/auth/status").json()["email"] == "grace@example.com"


def test_register_duplicate(http, account):
    response = http.post(
        "/auth/register", json={"email": "ada@example.com", "password": PASSWORD, "name": "Ada"}
    )
    data = response.json()
    assert data["success"] is False
    assert "already registered" in data["message"]


def test_guest_cart_flow(http):
    http.post("/cart/add", json={"variant_id": RUNNER_42, "quantity": 2})
    added = http.post("/cart/add", json={"variant_id": RUNNER_42}).json()
    assert added["totalItems"] == 3
    assert added["items"][0]["product"]["title"] == "Loading..."

    cart = http.get("/cart").json()
    assert cart["items"][0]["product"]["title"] == "SoleMate Runner"
    assert cart["totalPrice"] == "389.97"

    line_id = cart["items"][0]["id"]
    updated = http.post("/cart/update", json={"line_id": line_id, "quantity": 1}).json()
    assert updated["totalItems"] == 1

    removed = http.post("/cart/update", json={"line_id": line_id, "quantity": 0}).json()
    assert removed["items"] == []


def test_guest_cart_merged_on_login(http, store, account):
    http.post("/cart/add", json={"variant_id": LOAFER_41})

    login(http)

    cart = http.get("/cart").json()
    assert [item["productVariantId"] for item in cart["items"]] == [LOAFER_41]
    assert cart["items"][0]["product"]["title"] == "Classic Loafer"
    user_id = store.accounts["ada@example.com"].user.id
    assert len(store.carts[user_id]) == 1


def test_logout_returns_to_guest_cart(http, account):
    login(http)
    http.post("/cart/add", json={"variant_id": RUNNER_42})

    assert http.post("/auth/logout").json()["success"] is True

    assert http.get("/cart").json()["items"] == []
    assert http.get("/auth/status").json()["authenticated"] is False


def test_clear_cart(http, account):
    login(http)
    http.post("/cart/add", json={"variant_id": RUNNER_42})
    assert http.post("/cart/clear").json()["items"] == []


@pytest.mark.parametrize(
    "path, body, status",
    [
        ("/cart/remove", {"line_id": "guest-nope"}, 404),
        ("/cart/update", {"line_id": "guest-nope", "quantity": 2}, 404),
        ("/cart/add", {"variant_id": RUNNER_42, "quantity": 0}, 400),
    ],
)
def test_cart_errors(http, path, body, status):
    response = http.post(path, json=body)
    assert response.status_code == status
    assert "detail" in response.json()


def test_server_rejects_unknown_variant(http, account):
    login(http)
    response = http.post("/cart/add", json={"variant_id": "var-nope"})
    assert response.status_code == 404


def test_login_reports_unmerged_guest_lines(http, storage_lines, account):
    http.post("/cart/add", json={"variant_id": "var-discontinued"})
    http.post("/cart/add", json={"variant_id": RUNNER_42})

    data = login(http)

    assert data["success"] is True
    assert data["unmerged"] == 1
    assert "1 line(s) could not be merged" in data["message"]
    assert [item["productVariantId"] for item in http.get("/cart").json()["items"]] == [RUNNER_42]
    assert [line["productVariantId"] for line in storage_lines()] == ["var-discontinued"]


# Concurrent requests


def test_concurrent_requests_share_one_refresh(http, store, account):
    login(http)
    expire_access_tokens(store)

    with ThreadPoolExecutor(max_workers=4) as pool:
        responses = list(pool.map(lambda _: http.get("/cart"), range(4)))

    assert [response.status_code for response in responses] == [200] * 4
    assert http.get("/auth/status").json()["authenticated"] is True


def test_concurrent_guest_adds_are_not_lost(http):
    with ThreadPoolExecutor(max_workers=8) as pool:
        responses = list(
            pool.map(lambda _: http.post("/cart/add", json={"variant_id": RUNNER_42}), range(8))
        )

    assert all(response.status_code == 200 for response in responses)
    cart = http.get("/cart").json()
    assert [item["quantity"] for item in cart["items"]] == [8]


def test_concurrent_authenticated_adds(http, store, account):
    login(http)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: http.post("/cart/add", json={"variant_id": LOAFER_41}), range(8)))

    user_id = store.accounts["ada@example.com"].user.id
    assert [line.quantity for line in store.carts[user_id]] == [8]
    assert http.get("/cart").json()["totalItems"] == 8
