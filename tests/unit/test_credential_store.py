import json
import os
import stat
from datetime import datetime, timedelta, timezone

import pytest

from credgate.core.credentials import CredentialStore, CredentialWatcher
from credgate.core.exceptions import CredentialCorrupt, CredentialNotFound
from tests.fixtures.credentials import gemini_document, kiro_document, qwen_document


@pytest.fixture
def store(creds_env):
    return CredentialStore(env=creds_env)


@pytest.mark.asyncio
async def test_load_kiro_camel_case_document(store, write_credential):
    write_credential("kiro", kiro_document(auth_method="IdC", region="eu-west-1"))

    credential = await store.load("kiro")

    assert credential.loaded
    assert credential.valid
    assert credential.access_token == "kiro-access"
    assert credential.refresh_token == "kiro-refresh"
    assert credential.extra["auth_method"] == "IdC"
    assert credential.extra["region"] == "eu-west-1"
    assert credential.extra["login_provider"] == "Github"
    assert credential.expires_at > datetime.now(timezone.utc)
    assert store.get("kiro") is credential


@pytest.mark.asyncio
async def test_load_gemini_epoch_millisecond_expiry(store, write_credential):
    write_credential("gemini", gemini_document(expires_in=600))

    credential = await store.load("gemini")

    remaining = credential.expires_at - datetime.now(timezone.utc)
    assert timedelta(seconds=590) < remaining <= timedelta(seconds=600)
    assert credential.extra["token_type"] == "Bearer"


@pytest.mark.asyncio
async def test_expired_credential_is_loaded_but_not_valid(store, write_credential):
    write_credential("qwen", qwen_document(expires_in=-60))

    credential = await store.load("qwen")

    assert credential.loaded
    assert credential.expired
    assert not credential.valid


@pytest.mark.asyncio
async def test_missing_file_raises_not_found(store):
    with pytest.raises(CredentialNotFound) as exc_info:
        await store.load("gemini")

    assert exc_info.value.provider_id == "gemini"
    assert not store.get("gemini").loaded


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    ["{truncated", "[1, 2, 3]", json.dumps({"access_token": 42})],
)
async def test_corrupt_file_raises_and_leaves_not_loaded(store, write_credential, content):
    write_credential("gemini", content)

    with pytest.raises(CredentialCorrupt):
        await store.load("gemini")

    record = store.get("gemini")
    assert not record.loaded
    assert not record.valid
    assert record.error


@pytest.mark.asyncio
async def test_corrupt_reload_replaces_previously_valid_record(store, write_credential):
    write_credential("gemini", gemini_document())
    assert (await store.load("gemini")).valid

    write_credential("gemini", "{broken")
    with pytest.raises(CredentialCorrupt):
        await store.load("gemini")

    assert not store.get("gemini").valid


@pytest.mark.asyncio
async def test_load_all_never_raises(store, write_credential):
    write_credential("kiro", kiro_document())
    write_credential("qwen", "not json")

    results = await store.load_all()

    assert set(results) == {"kiro", "gemini", "qwen"}
    assert results["kiro"].valid
    assert not results["gemini"].loaded
    assert not results["qwen"].loaded
    assert "invalid JSON" in results["qwen"].error


@pytest.mark.asyncio
async def test_persist_merges_native_document(store, write_credential):
    path = write_credential("kiro", {**kiro_document(), "customField": "keep-me"})
    await store.load("kiro")
    new_expiry = datetime.now(timezone.utc) + timedelta(hours=2)

    refreshed = await store.persist("kiro", "kiro-new", None, new_expiry, {"profileArn": "arn:aws:kiro"})

    on_disk = json.loads(path.read_text())
    assert on_disk["accessToken"] == "kiro-new"
    assert on_disk["refreshToken"] == "kiro-refresh"
    assert on_disk["customField"] == "keep-me"
    assert on_disk["profileArn"] == "arn:aws:kiro"
    assert on_disk["expiresAt"].endswith("Z")
    assert refreshed.access_token == "kiro-new"
    assert refreshed.extra["profile_arn"] == "arn:aws:kiro"
    assert store.get("kiro") == refreshed
    if os.name == "posix":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


@pytest.mark.asyncio
async def test_persist_writes_epoch_ms_for_gemini(store, write_credential):
    path = write_credential("gemini", gemini_document())
    await store.load("gemini")
    new_expiry = datetime(2030, 1, 1, tzinfo=timezone.utc)

    await store.persist("gemini", "ya29.new", "1//rotated", new_expiry)

    on_disk = json.loads(path.read_text())
    assert on_disk["access_token"] == "ya29.new"
    assert on_disk["refresh_token"] == "1//rotated"
    assert on_disk["expiry_date"] == int(new_expiry.timestamp() * 1000)


@pytest.mark.asyncio
async def test_invalidate_notifies_listeners(store, write_credential):
    write_credential("gemini", gemini_document())
    await store.load("gemini")
    seen = []
    store.add_listener(seen.append)

    store.invalidate("gemini", "revoked")

    assert len(seen) == 1
    assert seen[0].invalidated
    assert seen[0].error == "revoked"
    assert not store.get("gemini").valid


def test_failing_listener_does_not_block_others(store):
    seen = []

    def broken(_credential):
        raise RuntimeError("listener bug")

    store.add_listener(broken)
    store.add_listener(seen.append)

    store.invalidate("qwen")

    assert len(seen) == 1


def test_summary_has_no_secret_values(store):
    summary = store.get("kiro").summary()

    assert set(summary) == {
        "provider",
        "creds_path",
        "loaded",
        "is_valid",
        "has_access_token",
        "has_refresh_token",
        "expires_at",
        "invalidated",
        "error",
    }
    assert summary["creds_path"].endswith("kiro-auth-token.json")


def test_unknown_provider_is_rejected(store):
    with pytest.raises(KeyError):
        store.get("openai")


# === Watcher ===


@pytest.mark.asyncio
async def test_watcher_reloads_changed_file(store, write_credential):
    write_credential("gemini", gemini_document(access_token="ya29.first"))
    await store.load_all()
    watcher = CredentialWatcher(store, interval=0.01)

    assert await watcher.check_once() == []

    write_credential("gemini", gemini_document(access_token="ya29.second-and-longer"))
    assert await watcher.check_once() == ["gemini"]
    assert store.get("gemini").access_token == "ya29.second-and-longer"
    assert await watcher.check_once() == []


@pytest.mark.asyncio
async def test_watcher_picks_up_new_and_deleted_files(store, write_credential):
    await store.load_all()
    watcher = CredentialWatcher(store, interval=0.01)

    path = write_credential("qwen", qwen_document())
    assert await watcher.check_once() == ["qwen"]
    assert store.get("qwen").valid

    path.unlink()
    assert await watcher.check_once() == ["qwen"]
    assert not store.get("qwen").loaded
    assert await watcher.check_once() == []


@pytest.mark.asyncio
async def test_watcher_ignores_its_own_write_back(store, write_credential):
    write_credential("gemini", gemini_document())
    await store.load_all()
    watcher = CredentialWatcher(store, interval=0.01)

    await store.persist("gemini", "ya29.refreshed", None, None)

    assert await watcher.check_once() == []


@pytest.mark.asyncio
async def test_watcher_start_stop():
    store = CredentialStore(env={})
    watcher = CredentialWatcher(store, interval=10)

    watcher.start()
    assert watcher.running
    await watcher.stop()
    assert not watcher.running
