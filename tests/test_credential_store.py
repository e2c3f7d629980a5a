from datetime import datetime

import pytest

from models.account import TokenGrant
from models.event import ProviderType
from services.errors import CredentialError


@pytest.mark.asyncio
async def test_live_token_is_returned_without_refresh(make_account, credential_store, adapter):
    account = await make_account()

    token, same = await credential_store.get_valid_access_token(account)

    assert token == "access-1"
    assert same is account
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_persisted(make_account, credential_store, adapter, account_db, cipher):
    account = await make_account(expired=True)
    adapter.refresh_grant = TokenGrant(access_token="access-2", refresh_token="refresh-2", expires_in=3600)

    token, refreshed = await credential_store.get_valid_access_token(account)

    assert token == "access-2"
    assert adapter.calls == [("refresh", "refresh-1")]
    assert refreshed.token_expires_at > datetime.utcnow()
    stored = await account_db.get_account(account.id)
    assert cipher.decrypt(stored.access_token) == "access-2"
    assert cipher.decrypt(stored.refresh_token) == "refresh-2"
    assert stored.access_token != "access-2"


@pytest.mark.asyncio
async def test_refresh_without_new_refresh_token_keeps_the_old_one(make_account, credential_store, adapter,
                                                                 account_db, cipher):
    account = await make_account(expired=True)
    adapter.refresh_grant = TokenGrant(access_token="access-2", expires_in=3600)

    _, refreshed = await credential_store.get_valid_access_token(account)

    stored = await account_db.get_account(account.id)
    assert cipher.decrypt(stored.refresh_token) == "refresh-1"
    assert cipher.decrypt(refreshed.refresh_token) == "refresh-1"


@pytest.mark.asyncio
async def test_failed_refresh_leaves_account_unchanged(make_account, credential_store, adapter, account_db):
    account = await make_account(expired=True)
    adapter.refresh_error = CredentialError("invalid_grant", reconnect_required=True)
    before = await account_db.get_account(account.id)

    with pytest.raises(CredentialError) as exc_info:
        await credential_store.get_valid_access_token(account)

    assert exc_info.value.reconnect_required is True
    after = await account_db.get_account(account.id)
    assert after == before


@pytest.mark.asyncio
async def test_missing_refresh_token_requires_reconnect(make_account, credential_store, adapter):
    account = await make_account(expired=True, refresh_token=None)

    with pytest.raises(CredentialError):
        await credential_store.get_valid_access_token(account)
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_losing_the_refresh_race_uses_the_stored_winner(make_account, credential_store, adapter,
                                                            account_db, cipher):
    account = await make_account(expired=True)
    # Another worker refreshed first
    await account_db.swap_tokens(
        account.id,
        expected_access_token=account.access_token,
        access_token=cipher.encrypt("winner"),
        refresh_token=None,
        token_expires_at=datetime(2099, 1, 1)
    )
    adapter.refresh_grant = TokenGrant(access_token="loser", expires_in=3600)

    token, current = await credential_store.get_valid_access_token(account)

    assert token == "winner"
    stored = await account_db.get_account(account.id)
    assert cipher.decrypt(stored.access_token) == "winner"
    assert current.token_expires_at == datetime(2099, 1, 1)


@pytest.mark.asyncio
async def test_custom_account_needs_no_credentials(account_db, credential_store):
    account = await account_db.get_or_create_custom_account("user-1", "owner@example.com")

    token, same = await credential_store.get_valid_access_token(account)

    assert token is None
    assert same.provider_type == ProviderType.CUSTOM


@pytest.mark.asyncio
async def test_undecryptable_token_is_a_credential_error(make_account, credential_store, account_db):
    account = await make_account()
    tampered = account.model_copy(update={"access_token": "not-a-fernet-token"})

    with pytest.raises(CredentialError):
        await credential_store.get_valid_access_token(tampered)


@pytest.mark.asyncio
async def test_connect_account_encrypts_and_upserts(credential_store, account_db, cipher):
    token = {"access_token": "a1", "refresh_token": "r1", "expires_in": 3599}

    first = await credential_store.connect_account(
        "user-1", ProviderType.GOOGLE, "Owner@Example.com", "primary", "Owner", token
    )
    second = await credential_store.connect_account(
        "user-1", ProviderType.GOOGLE, "owner@example.com", "primary", "Owner", {"access_token": "a2"}
    )

    assert first.id == second.id
    assert len(await account_db.get_user_accounts("user-1")) == 1
    stored = await account_db.get_account(first.id)
    assert cipher.decrypt(stored.access_token) == "a2"
    assert cipher.decrypt(stored.refresh_token) == "r1"
    assert stored.display_color == "#FF4285F4"
    assert "access_token" not in stored.public_dict()
