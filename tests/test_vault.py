import json
import os
import stat

import pytest

from autodeploy.errors import CredentialInvalid, CredentialMissing, VaultError
from autodeploy.providers import CredentialCheck
from autodeploy.vault import (
    CredentialMode,
    CredentialStore,
    CredentialVault,
    FileCredentialStore,
    is_demo_secret,
)
from autodeploy.vault import crypto

from conftest import MASTER_KEY, ScriptedAdapter


class TestCrypto:
    def test_round_trip_for_owner(self):
        envelope = crypto.encrypt("tok_123", "owner-a", MASTER_KEY)
        assert envelope.startswith("v1.")
        assert "tok_123" not in envelope
        assert crypto.decrypt(envelope, "owner-a", MASTER_KEY) == "tok_123"

    def test_wrong_owner_fails(self):
        envelope = crypto.encrypt("tok_123", "owner-a", MASTER_KEY)
        with pytest.raises(VaultError):
            crypto.decrypt(envelope, "owner-b", MASTER_KEY)

    def test_wrong_master_key_fails(self):
        envelope = crypto.encrypt("tok_123", "owner-a", MASTER_KEY)
        with pytest.raises(VaultError):
            crypto.decrypt(envelope, "owner-a", bytes(32))

    def test_envelopes_are_unique(self):
        a = crypto.encrypt("same", "o", MASTER_KEY)
        b = crypto.encrypt("same", "o", MASTER_KEY)
        assert a != b

    def test_malformed_envelope(self):
        with pytest.raises(VaultError):
            crypto.decrypt("v2.abc", "o", MASTER_KEY)
        with pytest.raises(VaultError):
            crypto.decrypt("v1.AAAA", "o", MASTER_KEY)

    def test_key_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AUTODEPLOY_VAULT_KEY", crypto.generate_master_key())
        assert len(crypto.load_or_create_master_key(tmp_path / "vault.key")) == 32
        assert not (tmp_path / "vault.key").exists()

    def test_key_file_generated_private(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AUTODEPLOY_VAULT_KEY", raising=False)
        key_file = tmp_path / "vault.key"
        first = crypto.load_or_create_master_key(key_file)
        assert stat.S_IMODE(os.stat(key_file).st_mode) == 0o600
        assert crypto.load_or_create_master_key(key_file) == first

    def test_bad_key_rejected(self, monkeypatch):
        monkeypatch.setenv("AUTODEPLOY_VAULT_KEY", "dG9vLXNob3J0")
        with pytest.raises(VaultError):
            crypto.load_or_create_master_key()


class TestVault:
    def test_demo_markers(self):
        assert is_demo_secret("demo-vercel-token", "vercel")
        assert is_demo_secret("demo", "netlify")
        assert is_demo_secret("", "netlify")
        assert is_demo_secret(None, "netlify")
        assert not is_demo_secret("demo-netlify-token", "vercel")
        assert not is_demo_secret("tok_live", "vercel")

    def test_connect_real_validates(self, vault, adapter):
        credential = vault.connect("u1", "vercel", secret="tok_live")
        assert credential.mode == CredentialMode.REAL
        assert credential.identity == "octocat"
        assert ("validate", "tok_live") in adapter.calls
        with vault.open_secret("u1", "vercel") as handle:
            assert handle.value == "tok_live"
            assert handle.demo is False
        with pytest.raises(RuntimeError):
            handle.value

    def test_connect_rejected_token(self, vault, adapter):
        adapter.check = CredentialCheck(valid=False, error="nope")
        with pytest.raises(CredentialInvalid):
            vault.connect("u1", "vercel", secret="tok_bad")
        assert vault.status("u1", "vercel").connected is False

    def test_connect_demo_skips_provider(self, vault, adapter):
        credential = vault.connect("u1", "vercel", secret="demo-vercel-token")
        assert credential.mode == CredentialMode.DEMO
        assert adapter.calls == []
        status = vault.status("u1", "vercel")
        assert status.connected and status.mode == CredentialMode.DEMO

    def test_list_connections_for_owner(self, adapter):
        vault = CredentialVault(store=CredentialStore(), master_key=MASTER_KEY,
                                adapters={"vercel": adapter, "netlify": ScriptedAdapter()})
        vault.connect("u1", "vercel", secret="tok_live")
        vault.connect("u1", "netlify", demo=True)
        vault.connect("u2", "vercel", demo=True)
        rows = vault.list("u1")
        assert [r.provider for r in rows] == ["netlify", "vercel"]
        assert [r.mode for r in rows] == [CredentialMode.DEMO, CredentialMode.REAL]
        assert all(r.connected and r.owner_id == "u1" for r in rows)
        assert "tok_live" not in str([r.to_dict() for r in rows])
        assert vault.list("nobody") == []

    def test_open_missing(self, vault):
        with pytest.raises(CredentialMissing):
            with vault.open_secret("nobody", "vercel"):
                pass

    def test_envelope_bound_to_owner(self, vault):
        vault.connect("u1", "vercel", secret="tok_live")
        row = vault.store.get("u1", "vercel")
        vault.store.put(type(row)(owner_id="u2", provider="vercel", envelope=row.envelope, mode=row.mode))
        with pytest.raises(VaultError):
            with vault.open_secret("u2", "vercel"):
                pass

    def test_file_store_has_no_plaintext(self, tmp_path, adapter):
        store = FileCredentialStore(tmp_path / "credentials.json")
        vault = CredentialVault(store=store, master_key=MASTER_KEY, adapters={"vercel": adapter})
        vault.connect("u1", "vercel", secret="tok_live_secret")
        raw = (tmp_path / "credentials.json").read_text()
        assert "tok_live_secret" not in raw
        assert json.loads(raw)["credentials"][0]["mode"] == "real"
        reloaded = CredentialVault(store=FileCredentialStore(tmp_path / "credentials.json"),
                                   master_key=MASTER_KEY, adapters={"vercel": adapter})
        with reloaded.open_secret("u1", "vercel") as handle:
            assert handle.value == "tok_live_secret"


class TestRotation:
    def test_rotation_reencrypts_and_isolates_failures(self):
        adapter = ScriptedAdapter()
        vault = CredentialVault(store=CredentialStore(), master_key=MASTER_KEY, adapters={"vercel": adapter})
        vault.connect("good", "vercel", secret="tok_good")
        vault.connect("bad", "vercel", secret="tok_bad")
        vault.connect("demo", "vercel", demo=True)
        before = {c.owner_id: c.envelope for c in vault.store.all()}

        def check(secret):
            if secret == "tok_bad":
                return CredentialCheck(valid=False, error="revoked")
            return CredentialCheck(valid=True, identity="octocat")

        adapter.validate_credential = check
        report = vault.rotate_all()

        assert report.rotated == 2
        assert report.failed == 1
        failed = [i for i in report.items if not i.ok]
        assert failed[0].owner_id == "bad"
        assert failed[0].error_code == "credential_invalid"
        after = {c.owner_id: c.envelope for c in vault.store.all()}
        assert after["good"] != before["good"]
        assert after["bad"] == before["bad"]
        with vault.open_secret("good", "vercel") as handle:
            assert handle.value == "tok_good"

    def test_rotation_refreshes_when_supported(self):
        class Refreshing(ScriptedAdapter):
            @property
            def supports_refresh(self):
                return True

            def refresh_credential(self, secret):
                return secret + "-fresh"

        vault = CredentialVault(store=CredentialStore(), master_key=MASTER_KEY,
                                adapters={"vercel": Refreshing()})
        vault.connect("u1", "vercel", secret="tok")
        assert vault.rotate_all().rotated == 1
        with vault.open_secret("u1", "vercel") as handle:
            assert handle.value == "tok-fresh"
