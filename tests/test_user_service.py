import httpx
import pytest

from library_app import security
from library_app.exceptions import AuthenticationError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from library_app.models import RoleName
from library_app.services.http_client import HTTPClient
from library_app.services.librarian_verifier import LibrarianVerifier
from library_app.services.user_service import UserService


def test_register_member(services):
    user = services.users.register("Carol", "Carol@Example.com", "pa55word")

    assert user.role == RoleName.MEMBER
    assert user.is_verified is False
    assert user.email == "carol@example.com"
    assert user.password_hash != "pa55word"
    assert "password_hash" not in user.to_dict()


@pytest.mark.parametrize(
    "name, email, password",
    [
        ("", "a@example.com", "secret1"),
        ("Ann", "not-an-email", "secret1"),
        ("Ann", "a@example.com", "12345"),
        ("Ann", "a@example.com", "x" * 73),
    ],
)
def test_register_validation(services, name, email, password):
    with pytest.raises(ValidationError):
        services.users.register(name, email, password)


def test_register_duplicate_email(services, member):
    with pytest.raises(ConflictError, match="Email already exists"):
        services.users.register("Other", "ALICE@example.com", "secret9")


def test_register_librarian_verified_by_prefix(services):
    user = services.users.register_librarian("Lib", "lib@example.com", "secret1", "L-1001")
    assert user.role == RoleName.LIBRARIAN
    assert user.is_verified is True
    assert user.librarian_id == "L-1001"


def test_register_librarian_requires_id(services):
    with pytest.raises(ValidationError, match="Librarian ID is required"):
        services.users.register_librarian("Lib", "lib@example.com", "secret1", " ")


def test_register_librarian_rejected_by_verifier(services):
    with pytest.raises(ConflictError, match="Librarian verification failed"):
        services.users.register_librarian("Lib", "lib@example.com", "secret1", "x-1001")
    assert services.users.exists_by_email("lib@example.com") is False


def test_authenticate_and_login(services, member):
    assert services.users.authenticate("alice@example.com", "secret1").id == member.id

    token, user = services.users.login("alice@example.com", "secret1")
    assert user.id == member.id
    assert services.users.get_user_from_token(token).id == member.id


@pytest.mark.parametrize("email, password", [("alice@example.com", "wrong!"), ("nobody@example.com", "secret1")])
def test_authenticate_bad_credentials(services, member, email, password):
    with pytest.raises(AuthenticationError, match="Invalid email or password"):
        services.users.authenticate(email, password)


def test_unverified_librarian_cannot_login(services):
    librarian = services.users.register_librarian("Lib", "lib@example.com", "secret1", "L-7")
    services.users.update_verification_status(librarian.id, False)

    with pytest.raises(ForbiddenError, match="Librarian account is not verified"):
        services.users.login("lib@example.com", "secret1")


def test_invalid_token(services, member):
    with pytest.raises(AuthenticationError):
        services.users.get_user_from_token("not-a-token")

    expired = security.create_access_token(member, expires_minutes=-5)
    with pytest.raises(AuthenticationError):
        services.users.get_user_from_token(expired)


def test_token_of_unverified_librarian_is_rejected(services):
    librarian = services.users.register_librarian("Lib", "lib@example.com", "secret1", "L-8")
    token, _ = services.users.login("lib@example.com", "secret1")
    services.users.update_verification_status(librarian.id, False)

    with pytest.raises(ForbiddenError, match="Librarian account is not verified"):
        services.users.get_user_from_token(token)


def test_token_for_deleted_user_is_rejected(services):
    ghost = services.users.register("Ghost", "ghost@example.com", "secret1")
    token = security.create_access_token(ghost)
    with services.users.unit_of_work() as uow:
        uow.users.delete(ghost.id)

    with pytest.raises(AuthenticationError):
        services.users.get_user_from_token(token)


def test_lookup_and_counts(services, member, other_member):
    services.users.register_librarian("Lib", "lib@example.com", "secret1", "L-1")

    assert services.users.find_by_id(member.id).email == "alice@example.com"
    assert services.users.find_by_email("BOB@example.com").id == other_member.id
    assert [u.id for u in services.users.find_by_role(RoleName.MEMBER)] == [member.id, other_member.id]
    assert services.users.count_by_role(RoleName.MEMBER) == 2
    assert services.users.count_by_role(RoleName.LIBRARIAN) == 1
    assert services.users.count_by_role(RoleName.ADMIN) == 0

    with pytest.raises(NotFoundError, match="User not found"):
        services.users.find_by_id(999)


def test_update_user(services, member, other_member):
    updated = services.users.update_user(member.id, name="Alice R.", password="newsecret")
    assert updated.name == "Alice R."
    assert services.users.authenticate("alice@example.com", "newsecret").id == member.id

    with pytest.raises(ConflictError, match="Email already exists"):
        services.users.update_user(member.id, email="bob@example.com")


def _verifier_with(handler, url="https://registry.example.com/verify"):
    client = HTTPClient(transport=httpx.MockTransport(handler))
    return LibrarianVerifier(url=url, authorization="Bearer registry-token", http_client=client)


def test_remote_verifier_sends_authorization_and_accepts_2xx():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["id"] = request.url.params.get("librarian_id")
        return httpx.Response(200, json={"valid": True})

    assert _verifier_with(handler).verify("ANY-123") is True
    assert seen == {"auth": "Bearer registry-token", "id": "ANY-123"}


def test_remote_verifier_rejects_non_2xx():
    assert _verifier_with(lambda request: httpx.Response(404)).verify("L-1") is False


def test_remote_verifier_treats_transport_error_as_unverified(monkeypatch):
    monkeypatch.setattr("library_app.services.http_client.time.sleep", lambda seconds: None)

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert _verifier_with(handler).verify("L-1") is False


def test_register_librarian_with_remote_verifier(db_file, clock):
    verifier = _verifier_with(lambda request: httpx.Response(204))
    service = UserService(clock=clock, verifier=verifier)

    user = service.register_librarian("Remote", "remote@example.com", "secret1", "R-55")
    assert user.is_verified is True


def test_local_verifier_prefix_rule():
    verifier = LibrarianVerifier(url="", prefix="L")
    assert verifier.verify("L123") is True
    assert verifier.verify("l123") is False
    assert verifier.verify("") is False
    assert verifier.verify(None) is False


def test_verifier_close_releases_http_client():
    client = HTTPClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    verifier = LibrarianVerifier(url="https://registry.example.com/verify", http_client=client)
    assert verifier.verify("L-1") is True

    verifier.close()
    assert client.is_closed is True
    # İkinci çağrı etkisizdir
    verifier.close()
