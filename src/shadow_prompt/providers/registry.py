"""Provider factory registry keyed by provider kind."""

from __future__ import annotations

from collections.abc import Callable

from shadow_prompt.config import ProviderKind, ProvidersConfig, ProviderSpec
from shadow_prompt.providers.base import Provider
from shadow_prompt.providers.chain import ProviderChain
from shadow_prompt.providers.openai_compat import OpenAICompatibleProvider

ProviderFactory = Callable[[ProviderSpec], Provider]


class ProviderRegistry:
    """Builds provider instances from immutable `ProviderSpec`s."""

    def __init__(self) -> None:
        self._factories: dict[ProviderKind, ProviderFactory] = {}

    def register(
        self, kind: ProviderKind, factory: ProviderFactory, *, replace: bool = False
    ) -> None:
        if kind in self._factories and not replace:
            raise ValueError(f"Provider kind already registered: {kind.value}")
        self._factories[kind] = factory

    def kinds(self) -> list[ProviderKind]:
        return list(self._factories)

    def create(self, spec: ProviderSpec) -> Provider:
        factory = self._factories.get(spec.kind)
        if factory is None:
            raise KeyError(f"Unknown provider kind: {spec.kind.value}")
        return factory(spec)

    def build_chain(self, config: ProvidersConfig) -> ProviderChain:
        providers = [self.create(spec) for spec in config.ordered()]
        return ProviderChain(providers, mode=config.mode)


def default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    for kind in ProviderKind:
        registry.register(kind, OpenAICompatibleProvider)
    return registry
