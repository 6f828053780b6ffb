"""Pytest configuration and fixtures"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from solemate_server.auth import AuthManager
from solemate_server.cart import CartReconciler
from solemate_server.client import SoleMateClient
from solemate_server.models import AuthCredentials, Registration, utcnow
from solemate_server.storage import LocalStorage
from solemate_server.storefront_api import StorefrontStore, create_storefront_api

PASSWORD = "correct-horse"
RUNNER_42 = "var-runner-42-black"
RUNNER_43 = "var-runner-43-black"
LOAFER_41 = "var-loafer-41-brown"


@pytest.fixture
def store():
    """In-memory storefront backend"""
    return StorefrontStore(bcrypt_rounds=4)


@pytest.fixture
def api_app(store):
    return create_storefront_api(store, environment="test")


@pytest.fixture
def api_http(api_app):
    """httpx client talking to the reference API"""
    client = TestClient(api_app, base_url="http://testserver/api")
    yield client
    client.close()


@pytest.fixture
def requested_paths(api_http):
    """Paths requested through api_http, in order"""
    paths = []
    api_http.event_hooks = {"request": [lambda request: paths.append(request.url.path)], "response": []}
    return paths


@pytest.fixture
def account(store):
    """A registered user"""
    store.register(Registration(email="ada@example.com", password=PASSWORD, name="Ada"))
    return AuthCredentials(email="ada@example.com", password=PASSWORD)


@pytest.fixture
def auth_manager(tmp_path):
    return AuthManager(session_file=str(tmp_path / "session.json"))


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "storage.json"))


@pytest.fixture
def client(auth_manager, api_http):
    return SoleMateClient(auth_manager, http_client=api_http)


@pytest.fixture
def reconciler(client, storage):
    cart = CartReconciler(client, storage)
    yield cart
    cart.close()


def expire_access_tokens(store):
    """Make every issued access token expired server-side"""
    past = utcnow() - timedelta(seconds=1)
    for token, grant in list(store.access_tokens.items()):
        store.access_tokens[token] = grant._replace(expires_at=past)
