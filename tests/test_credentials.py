"""Tests for credential backends and the credential manager"""

import pytest

from ai_gateway import credentials
from ai_gateway.credentials import (
    APICredential,
    CredentialBackend,
    CredentialManager,
    EncryptedFileBackend,
    EnvironmentBackend,
    configure_credentials_interactive,
)


class DictBackend(CredentialBackend):
    def __init__(self, secure=True, available=True, data=None):
        self.secure = secure
        self.available = available
        self.data = dict(data or {})
        self.lookups = 0

    def get(self, provider):
        self.lookups += 1
        return self.data.get(provider)

    def set(self, provider, api_key):
        self.data[provider] = api_key
        return True

    def delete(self, provider):
        self.data.pop(provider, None)
        return True

    def list_providers(self):
        return list(self.data)

    @property
    def is_available(self):
        return self.available

    @property
    def is_secure(self):
        return self.secure


class TestAPICredential:
    def test_key_is_never_printed(self):
        credential = APICredential(provider="openai", _key="sk-secret-value-123")
        assert "sk-secret" not in repr(credential)
        assert "sk-secret" not in str(credential)
        assert credential.get_key() == "sk-secret-value-123"


class TestEnvironmentBackend:
    def test_known_variable(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-from-env")
        assert EnvironmentBackend().get("claude") == "sk-ant-from-env"

    def test_gemini_uses_google_variable(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
        assert EnvironmentBackend().get("gemini") == "google-key"

    def test_unknown_provider_variable(self):
        assert EnvironmentBackend().env_var("mistral") == "MISTRAL_API_KEY"

    def test_empty_value_is_missing(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "")
        assert EnvironmentBackend().get("openai") is None

    def test_list_providers(self, monkeypatch):
        for var in EnvironmentBackend.ENV_VAR_MAP.values():
            monkeypatch.delenv(var, raising=False)
        monkeypatch.setenv("DEEPSEEK_API_KEY", "ds-key")
        assert EnvironmentBackend().list_providers() == ["deepseek"]

    def test_not_secure(self):
        assert EnvironmentBackend().is_secure is False


class TestEncryptedFileBackend:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "creds" / "credentials.enc"
        backend = EncryptedFileBackend(path)
        assert backend.is_available

        assert backend.set("claude", "sk-ant-1234567890")
        assert b"sk-ant" not in path.read_bytes()
        assert EncryptedFileBackend(path).get("claude") == "sk-ant-1234567890"
        assert backend.list_providers() == ["claude"]

        assert backend.delete("claude")
        assert backend.get("claude") is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "credentials.enc"
        path.write_bytes(b"garbage")
        assert EncryptedFileBackend(path).get("claude") is None


class TestCredentialManager:
    def test_first_backend_wins(self):
        first = DictBackend(data={"openai": "sk-first-0000000"})
        second = DictBackend(data={"openai": "sk-second-000000"})
        manager = CredentialManager([first, second])
        assert manager.get_api_key("openai") == "sk-first-0000000"

    def test_falls_through_backends(self):
        first = DictBackend()
        second = DictBackend(secure=False, data={"gemini": "gm-key-00000000"})
        manager = CredentialManager([first, second])
        assert manager.get_api_key("GEMINI") == "gm-key-00000000"

    def test_unavailable_backend_skipped(self):
        broken = DictBackend(available=False, data={"claude": "nope-nope-nope"})
        manager = CredentialManager([broken])
        assert manager.get_api_key("claude") is None
        assert broken.lookups == 0

    def test_hits_are_cached(self):
        backend = DictBackend(data={"claude": "sk-ant-000000000"})
        manager = CredentialManager([backend])
        manager.get_api_key("claude")
        manager.get_api_key("claude")
        assert backend.lookups == 1

        manager.clear_cache()
        manager.get_api_key("claude")
        assert backend.lookups == 2

    def test_set_prefers_secure_backend(self):
        insecure = DictBackend(secure=False)
        secure = DictBackend()
        manager = CredentialManager([insecure, secure])
        assert manager.set_credential("openai", "sk-0123456789")
        assert "openai" in secure.data
        assert "openai" not in insecure.data

    def test_set_falls_back_to_insecure(self):
        insecure = DictBackend(secure=False)
        manager = CredentialManager([DictBackend(available=False), insecure])
        assert manager.set_credential("openai", "sk-0123456789")
        assert insecure.data["openai"] == "sk-0123456789"

    def test_short_key_rejected(self):
        backend = DictBackend()
        manager = CredentialManager([backend])
        assert manager.set_credential("openai", "short") is False
        assert backend.data == {}

    def test_set_invalidates_cache(self):
        backend = DictBackend(data={"claude": "sk-ant-old-00000"})
        manager = CredentialManager([backend])
        manager.get_api_key("claude")
        manager.set_credential("claude", "sk-ant-new-00000")
        assert manager.get_api_key("claude") == "sk-ant-new-00000"

    def test_delete_and_list(self):
        first = DictBackend(data={"claude": "sk-ant-000000000"})
        second = DictBackend(data={"claude": "sk-ant-000000000", "openai": "sk-0000000000"})
        manager = CredentialManager([first, second])
        assert manager.list_configured_providers() == ["claude", "openai"]

        assert manager.delete_credential("claude")
        assert manager.get_api_key("claude") is None
        assert manager.list_configured_providers() == ["openai"]

    def test_module_level_helpers(self, monkeypatch):
        manager = CredentialManager([DictBackend()])
        monkeypatch.setattr(credentials, "_manager", manager)

        assert credentials.set_api_key("deepseek", "ds-0123456789")
        assert credentials.get_api_key("deepseek") == "ds-0123456789"
        assert credentials.get_credential_manager() is manager


class TestInteractiveConfiguration:
    def test_configure_and_clear(self, monkeypatch, capsys):
        backend = DictBackend(data={"openai": "sk-old-0000000"})
        manager = CredentialManager([backend])
        answers = iter(["y", "clear", "", "", ""])
        monkeypatch.setattr("builtins.input", lambda prompt: next(answers))
        monkeypatch.setattr(credentials.getpass, "getpass", lambda prompt: "sk-ant-0123456789")

        configure_credentials_interactive(manager)

        assert backend.data == {"claude": "sk-ant-0123456789"}
        output = capsys.readouterr().out
        assert "Saved claude credentials" in output
        assert "Cleared openai credentials" in output
        assert "Configured providers: ['claude']" in output


@pytest.mark.parametrize("provider", ["claude", "openai", "gemini", "deepseek", "ollama"])
def test_every_provider_has_label_and_env_var(provider):
    assert provider in credentials.PROVIDER_LABELS
    assert provider in EnvironmentBackend.ENV_VAR_MAP
