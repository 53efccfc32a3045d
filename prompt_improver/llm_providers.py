"""
Multi-Cloud LLM Provider Support

Provides a unified interface for configuring and using LLMs from:
- OpenAI
- Anthropic
- Google Gemini
- OpenRouter
- Google Vertex AI
- Amazon Bedrock
- Microsoft Azure OpenAI
- mock (offline simulation, no credentials)

This module uses litellm model strings for provider abstraction. Credentials
travel with each ProviderConfig instead of being written to os.environ, so
concurrent runs for different tasks never see each other's keys.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .core.config import settings

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OPENROUTER = "openrouter"
    VERTEX = "vertex"
    BEDROCK = "bedrock"
    AZURE = "azure"
    MOCK = "mock"


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider."""
    provider: LLMProvider
    model_name: str
    api_key: Optional[str] = field(default=None, repr=False)
    base_url: Optional[str] = None
    extra_params: Dict[str, Any] = field(default_factory=dict)

    def completion_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for litellm.acompletion (minus messages and sampling)."""
        kwargs: Dict[str, Any] = {"model": self.model_name}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["api_base"] = self.base_url
        kwargs.update(self.extra_params)
        return kwargs

    def describe(self) -> Dict[str, Any]:
        """Non-secret view for logs and stored task records."""
        return {
            "provider": self.provider.value,
            "model": self.model_name,
            "key_present": bool(self.api_key),
        }


# Default model mappings for each provider
DEFAULT_MODELS = {
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.ANTHROPIC: "claude-3-5-sonnet-20240620",
    LLMProvider.GOOGLE: "gemini-1.5-pro",
    LLMProvider.OPENROUTER: "openai/gpt-4o-mini",
    LLMProvider.VERTEX: "gemini-1.5-pro",
    LLMProvider.BEDROCK: "anthropic.claude-3-sonnet-20240229-v1:0",
    LLMProvider.AZURE: "gpt-4o",
    LLMProvider.MOCK: "simulation",
}

# litellm routes on a "<prefix>/<model>" string
MODEL_PREFIXES = {
    LLMProvider.ANTHROPIC: "anthropic",
    LLMProvider.GOOGLE: "gemini",
    LLMProvider.OPENROUTER: "openrouter",
    LLMProvider.VERTEX: "vertex_ai",
    LLMProvider.BEDROCK: "bedrock",
    LLMProvider.AZURE: "azure",
}

# Setting holding each provider's server-side credential
KEY_SETTINGS = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
    LLMProvider.GOOGLE: "GEMINI_API_KEY",
    LLMProvider.OPENROUTER: "OPENROUTER_API_KEY",
    LLMProvider.AZURE: "AZURE_OPENAI_API_KEY",
}

# Settings that must be present for the provider to work without a per-task key.
# Bedrock can authenticate through an IAM role, mock needs nothing.
REQUIRED_SETTINGS = {
    LLMProvider.OPENAI: ["OPENAI_API_KEY"],
    LLMProvider.ANTHROPIC: ["ANTHROPIC_API_KEY"],
    LLMProvider.GOOGLE: ["GEMINI_API_KEY"],
    LLMProvider.OPENROUTER: ["OPENROUTER_API_KEY"],
    LLMProvider.VERTEX: ["GOOGLE_PROJECT_ID"],
    LLMProvider.AZURE: ["AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT"],
}


def parse_provider(provider: Optional[str]) -> LLMProvider:
    """Resolve a provider name, falling back to MODEL_PROVIDER and then openai."""
    provider_str = (provider or settings.MODEL_PROVIDER or "openai").lower()
    try:
        return LLMProvider(provider_str)
    except ValueError:
        logger.warning(f"Unknown provider '{provider_str}', falling back to openai")
        return LLMProvider.OPENAI


def _routing_params(llm_provider: LLMProvider) -> Dict[str, Any]:
    if llm_provider == LLMProvider.OPENROUTER:
        return {"base_url": settings.OPENROUTER_BASE_URL}
    if llm_provider == LLMProvider.VERTEX:
        return {"extra_params": {
            "vertex_project": settings.GOOGLE_PROJECT_ID,
            "vertex_location": settings.GOOGLE_LOCATION,
        }}
    if llm_provider == LLMProvider.BEDROCK:
        return {"extra_params": {"aws_region_name": settings.AWS_REGION}}
    if llm_provider == LLMProvider.AZURE:
        return {
            "base_url": settings.AZURE_OPENAI_ENDPOINT,
            "extra_params": {"api_version": settings.AZURE_OPENAI_API_VERSION},
        }
    return {}


def get_provider_config(
    provider: Optional[str] = None,
    model_name: Optional[str] = None,
    api_key: Optional[str] = None,
) -> ProviderConfig:
    """
    Get configuration for the specified provider.

    Args:
        provider: Provider name (defaults to MODEL_PROVIDER setting)
        model_name: Model name (defaults to MODEL_NAME setting or provider default)
        api_key: Caller-supplied credential; overrides the configured key

    Returns:
        ProviderConfig with all necessary settings
    """
    llm_provider = parse_provider(provider)
    final_model = model_name or settings.MODEL_NAME or DEFAULT_MODELS[llm_provider]
    if llm_provider == LLMProvider.AZURE:
        # Azure routes on the deployment name
        final_model = settings.AZURE_OPENAI_DEPLOYMENT or final_model

    prefix = MODEL_PREFIXES.get(llm_provider)
    key_setting = KEY_SETTINGS.get(llm_provider)
    return ProviderConfig(
        provider=llm_provider,
        model_name=f"{prefix}/{final_model}" if prefix else final_model,
        api_key=api_key or (getattr(settings, key_setting) if key_setting else None),
        **_routing_params(llm_provider),
    )


def validate_provider_config(provider: str) -> Dict[str, Any]:
    """
    Validate that the required configuration is present for a provider.

    Args:
        provider: Provider name to validate

    Returns:
        Dict with 'valid' bool and 'missing' list of missing config keys
    """
    provider_str = provider.lower()
    try:
        required = REQUIRED_SETTINGS.get(LLMProvider(provider_str), [])
    except ValueError:
        required = []
    missing = [name for name in required if not getattr(settings, name)]
    return {
        "valid": len(missing) == 0,
        "missing": missing,
        "provider": provider_str
    }


def list_available_providers() -> Dict[str, Dict[str, Any]]:
    """
    List all providers and their configuration status.

    Keys supplied per task are not visible here; a provider reported as
    unconfigured still works when the task carries its own api_key.
    """
    providers = {}
    for p in LLMProvider:
        validation = validate_provider_config(p.value)
        providers[p.value] = {
            "configured": validation["valid"],
            "missing_config": validation["missing"],
            "default_model": DEFAULT_MODELS.get(p),
        }
    return providers
