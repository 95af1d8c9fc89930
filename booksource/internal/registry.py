"""
Provider registry.

The catalogue of providers is built once at startup and read-only after
that. Orchestrators ask it for the providers serving a capability, either
statically (:meth:`ProviderRegistry.get_by_capability`) or filtered by a
live availability check (:meth:`ProviderRegistry.get_available_providers`).
"""
import asyncio
from typing import Iterable

from pydantic import BaseModel, ConfigDict

from booksource.internal.capabilities import (
    CAPABILITY_CONTRACTS,
    Capability,
    ProviderAdapter,
    ProviderDescriptor,
    ProviderType,
)
from booksource.internal.context import ServiceContext
from booksource.util.exceptions import DuplicateProviderError, UnsupportedCapabilityError
from booksource.util.log import logger

DEFAULT_AVAILABILITY_TIMEOUT = 5.0


class RegisteredProvider(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    descriptor: ProviderDescriptor
    adapter: ProviderAdapter

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def provider_type(self) -> ProviderType:
        return self.descriptor.provider_type


class RegistryStats(BaseModel):
    total_providers: int
    count_by_type: dict[ProviderType, int]
    count_by_capability: dict[Capability, int]


class ProviderRegistry:
    _providers: dict[str, RegisteredProvider]
    _availability_timeout: float

    def __init__(self, availability_timeout: float = DEFAULT_AVAILABILITY_TIMEOUT):
        self._providers = {}
        self._availability_timeout = availability_timeout

    def register(self, descriptor: ProviderDescriptor, adapter: ProviderAdapter) -> RegisteredProvider:
        """
        Add a provider. Fails fast on a duplicate name, on a capability outside
        the closed set, and on an adapter that does not implement the interface
        of a declared capability.
        """
        if descriptor.name in self._providers:
            raise DuplicateProviderError(descriptor.name)

        for capability in descriptor.capabilities:
            contract = CAPABILITY_CONTRACTS.get(capability)  # pyright: ignore[reportArgumentType]
            if contract is None:
                raise UnsupportedCapabilityError(descriptor.name, capability, "unknown capability")
            if not isinstance(adapter, contract.interface):
                raise UnsupportedCapabilityError(
                    descriptor.name,
                    capability,
                    f"adapter {type(adapter).__name__} does not implement {contract.interface.__name__}",
                )

        if not descriptor.capabilities:
            logger.warning("Provider registered without capabilities", provider=descriptor.name)

        entry = RegisteredProvider(descriptor=descriptor, adapter=adapter)
        self._providers[descriptor.name] = entry
        logger.debug(
            "Provider registered",
            provider=descriptor.name,
            provider_type=descriptor.provider_type.value,
            capabilities=sorted(c.value for c in descriptor.capabilities),
        )
        return entry

    def register_all(self, providers: Iterable[tuple[ProviderDescriptor, ProviderAdapter]]) -> None:
        for descriptor, adapter in providers:
            self.register(descriptor, adapter)

    def get(self, name: str) -> RegisteredProvider | None:
        return self._providers.get(name)

    def get_all(self) -> list[RegisteredProvider]:
        return list(self._providers.values())

    def get_by_type(self, provider_type: ProviderType) -> list[RegisteredProvider]:
        return [p for p in self._providers.values() if p.provider_type == provider_type]

    def get_by_capability(self, capability: Capability) -> list[RegisteredProvider]:
        """Providers declaring ``capability``, in registration order."""
        return [p for p in self._providers.values() if capability in p.descriptor.capabilities]

    def has_capability(self, capability: Capability) -> bool:
        return any(capability in p.descriptor.capabilities for p in self._providers.values())

    async def _is_available(self, provider: RegisteredProvider, context: ServiceContext) -> bool:
        try:
            available = await asyncio.wait_for(
                provider.adapter.is_available(context), timeout=self._availability_timeout
            )
        except TimeoutError:
            context.logger.warning(
                "Provider availability check timed out",
                provider=provider.name,
                timeout=self._availability_timeout,
            )
            return False
        except Exception as e:
            context.logger.warning(
                "Provider availability check failed",
                provider=provider.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if not available:
            context.logger.debug("Provider unavailable", provider=provider.name)
        return bool(available)

    async def get_available_providers(
        self, capability: Capability, context: ServiceContext
    ) -> list[RegisteredProvider]:
        """
        Providers declaring ``capability`` whose availability check passed,
        in registration order. Checks run concurrently; never raises.
        """
        candidates = self.get_by_capability(capability)
        if not candidates:
            return []

        checks = await asyncio.gather(*(self._is_available(p, context) for p in candidates))
        available = [p for p, ok in zip(candidates, checks) if ok]

        context.logger.debug(
            "Availability filtered",
            capability=capability.value,
            candidates=len(candidates),
            available=[p.name for p in available],
        )
        return available

    def get_stats(self) -> RegistryStats:
        count_by_type: dict[ProviderType, int] = {}
        count_by_capability: dict[Capability, int] = {}
        for provider in self._providers.values():
            count_by_type[provider.provider_type] = count_by_type.get(provider.provider_type, 0) + 1
            for capability in provider.descriptor.capabilities:
                count_by_capability[capability] = count_by_capability.get(capability, 0) + 1
        return RegistryStats(
            total_providers=len(self._providers),
            count_by_type=count_by_type,
            count_by_capability=count_by_capability,
        )

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers
