"""Registry of configured completion providers."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ..config import OrchestratorConfig, ProviderConfig, ProviderKind
from ..exceptions import ConfigurationError
from .base import CompletionProvider
from .openai_compatible import OpenAICompatibleProvider
from .static import StaticProvider


@dataclass
class RegisteredProvider:
    config: ProviderConfig
    adapter: CompletionProvider
    enabled: bool = True
    disabled_reason: str | None = None


class ProviderRegistry:
    """Holds one adapter per configured provider, in configuration order.

    Providers without credentials stay registered but disabled so health
    and status endpoints still list them.
    """

    def __init__(self):
        self._providers: dict[str, RegisteredProvider] = {}

    @classmethod
    def from_config(cls, config: OrchestratorConfig) -> "ProviderRegistry":
        registry = cls()
        for pc in config.providers:
            if pc.kind == ProviderKind.OPENAI_COMPATIBLE and not pc.models:
                raise ConfigurationError(
                    f"orchestrator.providers.{pc.name}.models",
                    "at least one model is required",
                )
            registry.register(pc, _build_adapter(pc), enabled=pc.enabled)
            if not pc.enabled:
                registry._providers[pc.name].disabled_reason = "disabled in config"
            elif (
                pc.kind == ProviderKind.OPENAI_COMPATIBLE
                and not pc.resolved_api_key()
            ):
                registry.disable(pc.name, "missing API key")
        logger.info(
            f"Provider registry: {len(registry.enabled())}/{len(registry)} enabled"
        )
        return registry

    def register(
        self,
        config: ProviderConfig,
        adapter: CompletionProvider,
        enabled: bool = True,
    ) -> None:
        if config.name in self._providers:
            raise ValueError(f"Provider '{config.name}' already registered")
        self._providers[config.name] = RegisteredProvider(
            config=config, adapter=adapter, enabled=enabled,
        )

    def disable(self, name: str, reason: str) -> None:
        entry = self._providers[name]
        entry.enabled = False
        entry.disabled_reason = reason
        logger.warning(f"Provider '{name}' disabled: {reason}")

    def get(self, name: str) -> RegisteredProvider | None:
        return self._providers.get(name)

    def all(self) -> list[RegisteredProvider]:
        return list(self._providers.values())

    def enabled(self) -> list[RegisteredProvider]:
        return [p for p in self._providers.values() if p.enabled]

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    async def close(self) -> None:
        for entry in self._providers.values():
            close = getattr(entry.adapter, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error closing provider '{entry.config.name}': {e}")


def _build_adapter(config: ProviderConfig) -> CompletionProvider:
    if config.kind == ProviderKind.STATIC:
        return StaticProvider(config)
    return OpenAICompatibleProvider(config)
