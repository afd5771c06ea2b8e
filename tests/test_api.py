import os
import importlib

import httpx
import pytest
from fastapi.testclient import TestClient

from library_app.services.http_client import HTTPClient
from library_app.services.librarian_verifier import LibrarianVerifier


@pytest.fixture
def api_module(tmp_path, request):
    # Create a unique per-test DB and ensure api picks it up at import time
    db_file = str(tmp_path / f"api_test_{request.node.name}.db")
    os.environ["LIBRARY_DB_FILE"] = db_file

    import library_app.api as api_module
    # Reload api so its module-level services use the test-specific DB
    importlib.reload(api_module)
    # Use the local prefix rule regardless of LIBRARIAN_VERIFICATION_URL
    api_module.services.users.verifier = LibrarianVerifier(url="", prefix="L")
    try:
        yield api_module
    finally:
        os.environ.pop("LIBRARY_DB_FILE", None)


@pytest.fixture
def client(api_module):
    return TestClient(api_module.app)


def _register_and_login(client, name, email, password="secret1", librarian_id=None):
    if librarian_id:
        payload = {"name": name, "email": email, "password": password, "librarian_id": librarian_id}
        response = client.post("/auth/register/librarian", json=payload)
    else:
        response = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    login = client.post("/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200, login.text
    body = login.json()
    return body["user"], {"Authorization": f"Bearer {body['access_token']}"}


@pytest.fixture
def librarian(client):
    return _register_and_login(client, "Libby", "libby@example.com", librarian_id="L-100")


@pytest.fixture
def member(client):
    return _register_and_login(client, "Mia", "mia@example.com")


@pytest.fixture
def copy_id(client, librarian):
    _, headers = librarian
    library = client.post("/api/libraries", headers=headers, json={"name": "Main", "address": "1 Street"})
    assert library.status_code == 201, library.text
    payload = {
        "title": "Dune",
        "author": "Frank Herbert",
        "category": "SF",
        "book_type": "MODERN",
        "libraries": [{"library_id": library.json()["id"], "copies": 2}],
    }
    created = client.post("/books/with-copies", headers=headers, json=payload)
    assert created.status_code == 201, created.text
    copies = client.get(f"/books/{created.json()['id']}/copies")
    return copies.json()[0]["id"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["db"] is True


def test_register_login_and_me(client, member):
    user, headers = member
    response = client.get("/users/me", headers=headers)
    assert response.status_code == 200
    assert response.json()["email"] == "mia@example.com"
    assert response.json()["role"] == "MEMBER"
    assert "password_hash" not in response.json()


def test_register_duplicate_email(client, member):
    response = client.post("/auth/register", json={"name": "X", "email": "mia@example.com", "password": "secret1"})
    assert response.status_code == 409
    assert response.json()["detail"] == "Email already exists"


def test_register_short_password(client):
    response = client.post("/auth/register", json={"name": "X", "email": "x@example.com", "password": "123"})
    assert response.status_code == 400


def test_check_email(client, member):
    assert client.get("/auth/check-email", params={"email": "mia@example.com"}).json() == {"exists": True}
    assert client.get("/auth/check-email", params={"email": "no@example.com"}).json() == {"exists": False}


def test_login_with_wrong_password(client, member):
    response = client.post("/auth/login", json={"email": "mia@example.com", "password": "nope!!"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_librarian_registration_with_invalid_id(client):
    payload = {"name": "Fake", "email": "fake@example.com", "password": "secret1", "librarian_id": "X-1"}
    response = client.post("/auth/register/librarian", json=payload)
    assert response.status_code == 409
    assert "Librarian verification failed" in response.json()["detail"]


def test_missing_or_invalid_token(client):
    assert client.get("/users/me").status_code == 401
    assert client.get("/users/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_member_cannot_write_catalog(client, member):
    _, headers = member
    response = client.post("/books", headers=headers, json={"title": "T", "author": "A", "category": "C"})
    assert response.status_code == 403


def test_book_endpoints(client, librarian, copy_id):
    _, headers = librarian
    created = client.post(
        "/books", headers=headers, json={"title": "Emma", "author": "Jane Austen", "category": "Novel"}
    )
    assert created.status_code == 201
    assert created.json()["book_type"] == "TRADITIONAL"
    assert created.json()["book_type_label"] == "圖書"

    search = client.get("/books/search", params={"author": "austen"})
    assert [b["title"] for b in search.json()] == ["Emma"]

    listing = client.get("/books", params={"page": 0, "size": 10})
    assert listing.json()["total"] == 2

    assert client.get("/books/count", params={"category": "Novel"}).json() == {"count": 1}

    missing = client.get("/books/999")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Book not found"

    updated = client.put(f"/books/{created.json()['id']}", headers=headers, json={"book_type": "書籍"})
    assert updated.json()["book_type"] == "MODERN"


def test_copy_summary_and_availability(client, librarian, copy_id):
    summary = client.get("/books/search/copies", params={"title": "dune"})
    assert summary.status_code == 200
    item = summary.json()["items"][0]
    assert item["total_copies"] == 2
    library_id = item["libraries"][0]["library_id"]

    availability = client.get(f"/books/{item['id']}/availability", params={"library_id": library_id})
    assert availability.json()["available_copies"] == 2
    assert availability.json()["available"] is True


def test_borrow_and_return_flow(client, member, copy_id):
    user, headers = member

    borrowed = client.post(f"/api/borrows/{copy_id}/borrow", headers=headers)
    assert borrowed.status_code == 201, borrowed.text
    record = borrowed.json()
    assert record["status"] == "BORROWED"
    assert record["user_id"] == user["id"]

    again = client.post(f"/api/borrows/{copy_id}/borrow", headers=headers)
    assert again.status_code == 409
    assert again.json()["detail"] == "Book is not available"

    active = client.get(f"/api/borrows/user/{user['id']}/active", headers=headers)
    assert [r["id"] for r in active.json()] == [record["id"]]
    assert client.get(f"/api/borrows/user/{user['id']}/active-count", headers=headers).json() == {"count": 1}
    assert client.get(f"/api/borrows/user/{user['id']}/has-overdue", headers=headers).json() == {
        "has_overdue": False
    }
    quota = client.get(f"/api/borrows/user/{user['id']}/quota", headers=headers).json()
    assert quota["MODERN"]["remaining"] == 9

    returned = client.post(f"/api/borrows/{record['id']}/return", headers=headers)
    assert returned.status_code == 200
    assert returned.json()["status"] == "RETURNED"

    twice = client.post(f"/api/borrows/{record['id']}/return", headers=headers)
    assert twice.status_code == 409
    assert twice.json()["detail"] == "Book already returned"

    notifications = client.get("/api/v1/notifications/me", headers=headers).json()
    assert {n["notification_type"] for n in notifications} == {"BORROW_CONFIRMATION", "RETURN_CONFIRMATION"}


def test_borrow_unknown_copy(client, member):
    _, headers = member
    response = client.post("/api/borrows/999/borrow", headers=headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Book copy not found"


def test_member_cannot_borrow_for_someone_else(client, member, librarian, copy_id):
    _, headers = member
    librarian_user, _ = librarian
    response = client.post(f"/api/borrows/{copy_id}/borrow", headers=headers, json={"user_id": librarian_user["id"]})
    assert response.status_code == 403


def test_librarian_can_borrow_on_behalf_of_member(client, member, librarian, copy_id):
    member_user, member_headers = member
    _, headers = librarian
    response = client.post(f"/api/borrows/{copy_id}/borrow", headers=headers, json={"user_id": member_user["id"]})
    assert response.status_code == 201
    assert response.json()["user_id"] == member_user["id"]

    other = client.get(f"/api/borrows/user/{member_user['id']}", headers=headers)
    assert len(other.json()) == 1


def test_member_cannot_read_other_users_loans(client, member, librarian):
    _, headers = member
    librarian_user, _ = librarian
    assert client.get(f"/api/borrows/user/{librarian_user['id']}", headers=headers).status_code == 403


def test_trigger_overdue_check(client, member, librarian):
    _, member_headers = member
    _, headers = librarian

    assert client.post("/api/v1/notifications/trigger-overdue-check", headers=member_headers).status_code == 403
    response = client.post("/api/v1/notifications/trigger-overdue-check", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"sent": 0, "notifications": []}


def test_library_endpoints(client, librarian):
    _, headers = librarian
    created = client.post("/api/libraries", headers=headers, json={"name": "Annex", "address": "9 Road"})
    assert created.status_code == 201
    library_id = created.json()["id"]

    duplicate = client.post("/api/libraries", headers=headers, json={"name": "Annex", "address": "Elsewhere"})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Library name already exists"

    assert client.get("/api/libraries/exists", params={"name": "Annex"}).json() == {"exists": True}
    assert client.get("/api/libraries/name/Annex").json()["id"] == library_id

    renamed = client.put(f"/api/libraries/{library_id}", headers=headers, json={"name": "Annex II"})
    assert renamed.json()["name"] == "Annex II"

    assert client.delete(f"/api/libraries/{library_id}", headers=headers).status_code == 204
    assert client.get(f"/api/libraries/{library_id}").status_code == 404


def test_verification_update_requires_staff(client, member, librarian):
    member_user, member_headers = member
    _, headers = librarian
    url = f"/users/{member_user['id']}/verification"

    assert client.put(url, headers=member_headers, json={"is_verified": True}).status_code == 403
    response = client.put(url, headers=headers, json={"is_verified": True})
    assert response.status_code == 200
    assert response.json()["is_verified"] is True


def test_revoked_librarian_token_loses_staff_access(client, librarian):
    libby, libby_headers = librarian
    _, other_headers = _register_and_login(client, "Lou", "lou@example.com", librarian_id="L-200")

    revoked = client.put(f"/users/{libby['id']}/verification", headers=other_headers, json={"is_verified": False})
    assert revoked.status_code == 200

    login = client.post("/auth/login", json={"email": "libby@example.com", "password": "secret1"})
    assert login.status_code == 403

    response = client.post("/api/libraries", headers=libby_headers, json={"name": "Late", "address": "2 Road"})
    assert response.status_code == 403
    assert response.json()["detail"] == "Librarian account is not verified"


def test_shutdown_closes_verifier_client(api_module, monkeypatch):
    monkeypatch.setattr(api_module.settings, "enable_notification_scheduler", False)
    http_client = HTTPClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    api_module.services.users.verifier = LibrarianVerifier(url="https://registry.example.com", http_client=http_client)

    with TestClient(api_module.app) as client:
        assert client.get("/health").status_code == 200
        assert http_client.is_closed is False

    assert http_client.is_closed is True
