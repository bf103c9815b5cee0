"""Tests for grant strategy selection and session authentication."""

import asyncio
import json

import httpx
import pytest

from ema_client.emarestapi import (
    ClientCredentialsGrant,
    ConfigurationError,
    Credential,
    DomainCredentials,
    ErrorKind,
    PasswordGrant,
    Session,
    select_grant_strategy,
)

# ---------------------------------------------------------------------------
# select_grant_strategy
# ---------------------------------------------------------------------------


def test_select_domain_credentials():
    assert isinstance(select_grant_strategy(True), DomainCredentials)


@pytest.mark.parametrize(
    ("grant_type", "expected"),
    [("password", PasswordGrant), ("client_credentials", ClientCredentialsGrant)],
)
def test_select_oauth_grant(grant_type, expected):
    assert isinstance(select_grant_strategy(False, grant_type), expected)


def test_select_without_grant_type_raises():
    """OAuth mode without a grant type is a configuration error."""
    with pytest.raises(ConfigurationError, match="without a grant type"):
        select_grant_strategy(False)


def test_select_domain_with_grant_type_raises():
    """Domain mode plus a grant type is ambiguous."""
    with pytest.raises(ConfigurationError, match="both"):
        select_grant_strategy(True, "password")


def test_select_unknown_grant_type_raises():
    with pytest.raises(ConfigurationError, match="Invalid grant type"):
        select_grant_strategy(False, "implicit")


def test_credential_repr_hides_secret():
    credential = Credential(host="h", principal="p", secret="hunter2")
    assert "hunter2" not in repr(credential)


# ---------------------------------------------------------------------------
# Configuration errors never reach the network
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_authenticate_without_grant_type_sends_nothing(ema, fake_ema):
    with pytest.raises(ConfigurationError):
        await ema.authenticate(use_domain_credentials=False)
    assert fake_ema.requests == []


@pytest.mark.asyncio
async def test_authenticate_with_both_modes_sends_nothing(ema, fake_ema):
    with pytest.raises(ConfigurationError):
        await ema.authenticate(use_domain_credentials=True, grant_type="password")
    assert fake_ema.requests == []


# ---------------------------------------------------------------------------
# Token requests per grant strategy
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_domain_credentials_request(ema, fake_ema):
    result = await ema.authenticate(use_domain_credentials=True)

    assert result.ok
    assert result.value is ema
    (request,) = fake_ema.requests
    assert request.method == "POST"
    assert request.url.path == "/api/latest/accessTokens/getUsingWindowsCredentials"
    assert json.loads(request.content) == {
        "Upn": ema.session.credential.principal,
        "Password": ema.session.credential.secret,
    }
    assert ema.session.token == "token-1"
    assert ema.session.uses_domain_credentials


@pytest.mark.asyncio
async def test_password_grant_request(ema, fake_ema):
    result = await ema.authenticate(use_domain_credentials=False, grant_type="password")

    assert result.ok
    (request,) = fake_ema.requests
    assert request.url.path == "/api/token"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {
        "username": ema.session.credential.principal,
        "password": ema.session.credential.secret,
    }
    assert not ema.session.uses_domain_credentials
    assert isinstance(ema.session.strategy, PasswordGrant)


@pytest.mark.asyncio
async def test_client_credentials_grant_request(ema, fake_ema):
    result = await ema.authenticate(
        use_domain_credentials=False, grant_type="client_credentials"
    )

    assert result.ok
    (request,) = fake_ema.requests
    assert request.url.path == "/api/token"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {
        "client_id": ema.session.credential.principal,
        "client_secret": ema.session.credential.secret,
    }


# ---------------------------------------------------------------------------
# Authentication failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rejected_credentials_return_error(ema, fake_ema):
    fake_ema.token_failures.append(
        httpx.Response(
            400,
            json={"error": "invalid_grant", "error_description": "Bad username or password"},
        ),
    )

    result = await ema.authenticate(use_domain_credentials=False, grant_type="password")

    assert not result.ok
    assert result.code == 400
    assert result.message == "Bad username or password"
    assert result.error.kind is ErrorKind.AUTHENTICATION
    assert not ema.session.is_authenticated
    assert ema.session.strategy is None


@pytest.mark.asyncio
async def test_missing_access_token_is_an_authentication_failure(ema, fake_ema):
    fake_ema.token_failures.append(httpx.Response(200, json={"token_type": "bearer"}))

    result = await ema.authenticate(use_domain_credentials=True)

    assert not result.ok
    assert result.code == 401
    assert result.message == "Could not retrieve access token"
    assert not ema.session.is_authenticated


@pytest.mark.asyncio
async def test_token_endpoint_unreachable():
    def unreachable(request):
        raise httpx.ConnectError("Name or service not known", request=request)

    session = Session(Credential(host="h", principal="admin", secret="pw"))
    async with httpx.AsyncClient(
        base_url="https://ema.example.com/api",
        transport=httpx.MockTransport(unreachable),
    ) as client:
        result = await session.authenticate(client, DomainCredentials())

    assert not result.ok
    assert result.code == 500
    assert result.message == "Name or service not known"
    assert result.error.kind is ErrorKind.TRANSPORT


@pytest.mark.asyncio
async def test_failed_reauthentication_keeps_previous_token(ema, fake_ema):
    await ema.authenticate(use_domain_credentials=True)
    fake_ema.token_failures.append(httpx.Response(503))

    result = await ema.authenticate(use_domain_credentials=False, grant_type="password")

    assert not result.ok
    assert result.code == 503
    assert result.message == "Service Unavailable"
    assert ema.session.token == "token-1"
    assert isinstance(ema.session.strategy, DomainCredentials)


# ---------------------------------------------------------------------------
# reauthenticate
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reauthenticate_reuses_recorded_strategy(ema, fake_ema):
    await ema.authenticate(use_domain_credentials=False, grant_type="client_credentials")

    result = await ema.session.reauthenticate(ema.client, stale_token="token-1")

    assert result.ok
    assert ema.session.token == "token-2"
    assert [r.url.path for r in fake_ema.token_requests] == ["/api/token", "/api/token"]
    assert json.loads(fake_ema.token_requests[-1].content) == {
        "client_id": ema.session.credential.principal,
        "client_secret": ema.session.credential.secret,
    }


@pytest.mark.asyncio
async def test_reauthenticate_skips_when_token_already_replaced(ema, fake_ema):
    await ema.authenticate(use_domain_credentials=True)

    result = await ema.session.reauthenticate(ema.client, stale_token="token-0")

    assert result.ok
    assert len(fake_ema.token_requests) == 1


@pytest.mark.asyncio
async def test_reauthenticate_without_strategy_fails(ema, fake_ema):
    result = await ema.session.reauthenticate(ema.client, stale_token=None)

    assert not result.ok
    assert result.error.kind is ErrorKind.AUTHENTICATION
    assert fake_ema.requests == []


@pytest.mark.asyncio
async def test_concurrent_reauthentication_is_single_flight(ema, fake_ema):
    """Callers racing on the same stale token trigger one token request."""
    await ema.authenticate(use_domain_credentials=True)

    results = await asyncio.gather(
        *(ema.session.reauthenticate(ema.client, stale_token="token-1") for _ in range(5)),
    )

    assert all(r.ok for r in results)
    assert len(fake_ema.token_requests) == 2
    assert ema.session.token == "token-2"
