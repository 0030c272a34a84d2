from autoclipper_core.backends.anthropic_backend import AnthropicBackend
from autoclipper_core.backends.base import BaseBackend
from autoclipper_core.backends.openai_compat import OllamaBackend, OpenAICompatibleBackend, OpenRouterBackend
from autoclipper_core.config_manager import LLMConfig
from autoclipper_core.errors import ConfigurationError

DEFAULT_MODELS = {
    "ollama": "qwen2.5:7b-instruct",
    "openrouter": "moonshotai/kimi-k2:free",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-latest",
}


def create_backend(cfg: LLMConfig) -> BaseBackend:
    """Builds the configured backend; raises ConfigurationError when it cannot be used."""
    model = cfg.model_name or DEFAULT_MODELS.get(cfg.provider)
    timeout = cfg.request_timeout_seconds

    if cfg.provider == "ollama":
        return OllamaBackend(model=model, host=cfg.base_url or cfg.ollama_host, timeout=timeout, keep_alive=cfg.keep_alive)

    elif cfg.provider == "openrouter":
        if not cfg.openrouter_api_key:
            raise ConfigurationError("OpenRouter API key not configured. Get one at openrouter.ai/keys")
        return OpenRouterBackend(model=model, api_key=cfg.openrouter_api_key, timeout=timeout, base_url=cfg.base_url)

    elif cfg.provider == "openai":
        if not cfg.openai_api_key:
            raise ConfigurationError("OpenAI API key not configured (OPENAI_API_KEY).")
        return OpenAICompatibleBackend(model=model, api_key=cfg.openai_api_key, base_url=cfg.base_url, timeout=timeout)

    elif cfg.provider == "anthropic":
        if not cfg.anthropic_api_key:
            raise ConfigurationError("Anthropic API key not configured (ANTHROPIC_API_KEY).")
        return AnthropicBackend(model=model, api_key=cfg.anthropic_api_key, timeout=timeout)

    else:
        raise ConfigurationError(f"Unsupported LLM provider: {cfg.provider}")
