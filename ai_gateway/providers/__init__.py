"""Provider backends for the gateway"""

from ..models import ProviderID
from .base import BaseProvider, ProviderRegistry, RegisteredProvider, format_http_error
from .claude import ClaudeProvider
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai import DeepSeekProvider, OpenAIProvider

PROVIDER_CLASSES: dict[ProviderID, type[BaseProvider]] = {
    ProviderID.CLAUDE: ClaudeProvider,
    ProviderID.OPENAI: OpenAIProvider,
    ProviderID.GEMINI: GeminiProvider,
    ProviderID.DEEPSEEK: DeepSeekProvider,
    ProviderID.OLLAMA: OllamaProvider,
}

__all__ = [
    "BaseProvider",
    "ClaudeProvider",
    "DeepSeekProvider",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "PROVIDER_CLASSES",
    "ProviderRegistry",
    "RegisteredProvider",
    "format_http_error",
]
