"""
Provider Credentials
====================
API keys for the gateway's providers, looked up through a chain of backends:

1. System keyring (OS credential store)
2. Encrypted file under CONFIG_DIR, keyed to this machine
3. Environment variables (ANTHROPIC_API_KEY, OPENAI_API_KEY, ...)

Keys are never written to the config file and never logged.
"""

from __future__ import annotations

import base64
import getpass
import hashlib
import json
import logging
import os
import platform
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import keyring
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

SERVICE_NAME = "ai_gateway"
CONFIG_DIR = Path.home() / ".ai_gateway"
ENCRYPTED_CREDS_FILE = CONFIG_DIR / "credentials.enc"

PROVIDER_LABELS = {
    "claude": "Anthropic Claude",
    "openai": "OpenAI",
    "gemini": "Google Gemini",
    "deepseek": "DeepSeek",
    "ollama": "Ollama (local, no API key needed)",
}


@dataclass(frozen=True)
class APICredential:
    """Credential holder that never prints its key"""

    provider: str
    _key: str

    def get_key(self) -> str:
        logger.debug(f"API key accessed for provider: {self.provider}")
        return self._key

    def __repr__(self) -> str:
        return f"APICredential(provider={self.provider}, key=****)"

    def __str__(self) -> str:
        return self.__repr__()


class CredentialBackend(ABC):
    """Abstract base class for credential storage backends"""

    @abstractmethod
    def get(self, provider: str) -> str | None:
        pass

    @abstractmethod
    def set(self, provider: str, api_key: str) -> bool:
        pass

    @abstractmethod
    def delete(self, provider: str) -> bool:
        pass

    @abstractmethod
    def list_providers(self) -> list[str]:
        pass

    @property
    @abstractmethod
    def is_available(self) -> bool:
        pass

    @property
    def is_secure(self) -> bool:
        return True


class KeyringBackend(CredentialBackend):
    """OS keychain / secret service"""

    def __init__(self, service_name: str = SERVICE_NAME) -> None:
        self.service_name = service_name
        self._available: bool | None = None

    @property
    def is_available(self) -> bool:
        if self._available is None:
            try:
                keyring.get_password(self.service_name, "__availability__")
                self._available = True
            except KeyringError:
                self._available = False
        return self._available

    def get(self, provider: str) -> str | None:
        if not self.is_available:
            return None
        try:
            return keyring.get_password(self.service_name, provider)
        except KeyringError as e:
            logger.warning(f"Keyring lookup failed for {provider}: {e}")
            return None

    def set(self, provider: str, api_key: str) -> bool:
        if not self.is_available:
            return False
        try:
            keyring.set_password(self.service_name, provider, api_key)
        except KeyringError as e:
            logger.error(f"Keyring store failed for {provider}: {e}")
            return False
        logger.info(f"Stored credential in keyring for: {provider}")
        return True

    def delete(self, provider: str) -> bool:
        if not self.is_available:
            return False
        try:
            keyring.delete_password(self.service_name, provider)
        except KeyringError as e:
            logger.debug(f"Keyring delete skipped for {provider}: {e}")
            return False
        return True

    def list_providers(self) -> list[str]:
        # Keyring cannot enumerate; look up the providers we know about
        return [p for p in PROVIDER_LABELS if self.get(p)]


class EncryptedFileBackend(CredentialBackend):
    """Fernet-encrypted JSON file, key derived from machine identifiers"""

    SALT = b"ai_gateway_v1"
    ITERATIONS = 480000

    def __init__(self, path: Path = ENCRYPTED_CREDS_FILE) -> None:
        self.path = path
        self._fernet: Fernet | None = None
        try:
            self._fernet = Fernet(self._derive_key())
        except (OSError, ValueError) as e:
            logger.error(f"Failed to initialize credential encryption: {e}")

    @property
    def is_available(self) -> bool:
        return self._fernet is not None

    @staticmethod
    def _machine_id() -> bytes:
        identifiers: list[str] = []
        if sys.platform == "linux":
            machine_id = Path("/etc/machine-id")
            if machine_id.exists():
                identifiers.append(machine_id.read_text(encoding="utf-8").strip())
        identifiers.extend([getpass.getuser(), platform.node() or "unknown"])
        return hashlib.sha256(":".join(identifiers).encode()).digest()

    def _derive_key(self) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self.SALT,
            iterations=self.ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(self._machine_id()))

    def _load(self) -> dict[str, str]:
        if self._fernet is None or not self.path.exists():
            return {}
        try:
            decrypted = self._fernet.decrypt(self.path.read_bytes())
            loaded = json.loads(decrypted.decode())
        except (OSError, InvalidToken, ValueError) as e:
            logger.error(f"Failed to read encrypted credentials: {e}")
            return {}
        return loaded if isinstance(loaded, dict) else {}

    def _save(self, creds: dict[str, str]) -> bool:
        if self._fernet is None:
            return False
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            temp_file = self.path.with_suffix(".tmp")
            temp_file.write_bytes(self._fernet.encrypt(json.dumps(creds).encode()))
            os.chmod(temp_file, 0o600)
            temp_file.replace(self.path)
        except OSError as e:
            logger.error(f"Failed to write encrypted credentials: {e}")
            return False
        return True

    def get(self, provider: str) -> str | None:
        return self._load().get(provider)

    def set(self, provider: str, api_key: str) -> bool:
        creds = self._load()
        creds[provider] = api_key
        if not self._save(creds):
            return False
        logger.info(f"Stored credential in encrypted file for: {provider}")
        return True

    def delete(self, provider: str) -> bool:
        creds = self._load()
        if provider not in creds:
            return True
        del creds[provider]
        return self._save(creds)

    def list_providers(self) -> list[str]:
        return list(self._load())


class EnvironmentBackend(CredentialBackend):
    """Environment variables (always available, not persistent)"""

    ENV_VAR_MAP = {
        "claude": "ANTHROPIC_API_KEY",
        "openai": "OPENAI_API_KEY",
        "gemini": "GOOGLE_API_KEY",
        "deepseek": "DEEPSEEK_API_KEY",
        "ollama": "OLLAMA_API_KEY",
    }

    @property
    def is_available(self) -> bool:
        return True

    @property
    def is_secure(self) -> bool:
        return False

    def env_var(self, provider: str) -> str:
        return self.ENV_VAR_MAP.get(provider.lower(), f"{provider.upper()}_API_KEY")

    def get(self, provider: str) -> str | None:
        return os.environ.get(self.env_var(provider)) or None

    def set(self, provider: str, api_key: str) -> bool:
        os.environ[self.env_var(provider)] = api_key
        logger.warning(f"Set API key in environment (non-persistent) for: {provider}")
        return True

    def delete(self, provider: str) -> bool:
        os.environ.pop(self.env_var(provider), None)
        return True

    def list_providers(self) -> list[str]:
        return [p for p, var in self.ENV_VAR_MAP.items() if os.environ.get(var)]


class CredentialManager:
    """Looks credentials up through the backend chain, caching hits"""

    def __init__(self, backends: list[CredentialBackend] | None = None) -> None:
        if backends is None:
            backends = [KeyringBackend(), EncryptedFileBackend(), EnvironmentBackend()]
        self._backends = backends
        self._cache: dict[str, APICredential] = {}

        available = [type(b).__name__ for b in self._backends if b.is_available]
        logger.debug(f"Available credential backends: {available}")
        if not any(b.is_available and b.is_secure for b in self._backends):
            logger.warning("No secure credential storage available; using environment only")

    def get_credential(self, provider: str) -> APICredential | None:
        provider = provider.lower()
        if provider in self._cache:
            return self._cache[provider]

        for backend in self._backends:
            if not backend.is_available:
                continue
            api_key = backend.get(provider)
            if api_key:
                credential = APICredential(provider=provider, _key=api_key)
                self._cache[provider] = credential
                logger.debug(f"Retrieved credential for {provider} from {type(backend).__name__}")
                return credential

        logger.debug(f"No credential found for provider: {provider}")
        return None

    def set_credential(self, provider: str, api_key: str) -> bool:
        """Store in the first secure backend that accepts it"""
        provider = provider.lower()
        if not api_key or len(api_key) < 10:
            logger.error("Invalid API key: too short")
            return False

        self._cache.pop(provider, None)
        for backend in self._backends:
            if backend.is_available and backend.is_secure and backend.set(provider, api_key):
                return True

        insecure = [b for b in self._backends if b.is_available and not b.is_secure]
        return bool(insecure) and insecure[0].set(provider, api_key)

    def delete_credential(self, provider: str) -> bool:
        provider = provider.lower()
        self._cache.pop(provider, None)
        success = True
        for backend in self._backends:
            if backend.is_available:
                success = backend.delete(provider) and success
        return success

    def list_configured_providers(self) -> list[str]:
        providers: set[str] = set()
        for backend in self._backends:
            if backend.is_available:
                providers.update(backend.list_providers())
        return sorted(providers)

    def get_api_key(self, provider: str) -> str | None:
        credential = self.get_credential(provider)
        return credential.get_key() if credential else None

    def clear_cache(self) -> None:
        self._cache.clear()


_manager: CredentialManager | None = None


def get_credential_manager() -> CredentialManager:
    global _manager
    if _manager is None:
        _manager = CredentialManager()
    return _manager


def get_api_key(provider: str) -> str | None:
    """Get API key for a provider"""
    return get_credential_manager().get_api_key(provider)


def set_api_key(provider: str, api_key: str) -> bool:
    """Store API key for a provider"""
    return get_credential_manager().set_credential(provider, api_key)


def configure_credentials_interactive(manager: CredentialManager | None = None) -> None:
    """Prompt for each provider's API key on the terminal"""
    manager = manager or get_credential_manager()
    print("\nAI Gateway credential configuration\n")
    print("=" * 50)

    for provider_id, label in PROVIDER_LABELS.items():
        status = "configured" if manager.get_credential(provider_id) else "not set"
        print(f"\n{label}: [{status}]")

        answer = input(f"Configure {provider_id}? (y/N/clear): ").strip().lower()
        if answer == "clear":
            manager.delete_credential(provider_id)
            print(f"  -> Cleared {provider_id} credentials")
        elif answer == "y":
            api_key = getpass.getpass(f"  Enter API key for {provider_id}: ")
            if api_key and manager.set_credential(provider_id, api_key):
                print(f"  -> Saved {provider_id} credentials")
            elif api_key:
                print(f"  -> Failed to save {provider_id} credentials")

    print("\n" + "=" * 50)
    print(f"Configured providers: {manager.list_configured_providers()}")
