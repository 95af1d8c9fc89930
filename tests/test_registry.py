"""
Tests for the provider registry: registration rules, capability lookup and
availability filtering.
"""
import asyncio

import pytest
from pydantic import ValidationError

from booksource.internal.capabilities import (
    CAPABILITY_CONTRACTS,
    Capability,
    ProviderDescriptor,
    ProviderType,
)
from booksource.internal.registry import ProviderRegistry
from booksource.util.exceptions import DuplicateProviderError, UnsupportedCapabilityError
from fakes import FakeAdapterWithoutInterfaces, FakeProvider, descriptor


class TestCapabilityModel:
    """Closed capability set and descriptors."""

    def test_every_capability_has_a_contract(self):
        assert set(CAPABILITY_CONTRACTS) == set(Capability)
        assert len(Capability) == 13

    def test_descriptor_is_immutable(self):
        desc = descriptor("isbndb", ProviderType.PAID, Capability.ISBN_RESOLUTION)
        with pytest.raises(ValidationError):
            desc.name = "other"  # pyright: ignore[reportAttributeAccessIssue]

    def test_descriptor_rejects_unknown_capability(self):
        with pytest.raises(ValidationError):
            ProviderDescriptor(name="x", provider_type=ProviderType.FREE, capabilities=frozenset({"teleportation"}))

    def test_descriptor_rejects_blank_name(self):
        with pytest.raises(ValidationError):
            ProviderDescriptor(name="   ", provider_type=ProviderType.FREE, capabilities=frozenset())


class TestRegistration:
    """Registration fails fast on programming errors."""

    def test_register_and_get(self, registry):
        adapter = FakeProvider()
        registry.register(descriptor("open-library", "free", Capability.COVER_IMAGES), adapter)

        entry = registry.get("open-library")
        assert entry is not None
        assert entry.adapter is adapter
        assert entry.provider_type == ProviderType.FREE
        assert registry.get("missing") is None
        assert "open-library" in registry
        assert len(registry) == 1

    def test_duplicate_name_raises(self, registry):
        registry.register(descriptor("isbndb", "paid", Capability.ISBN_RESOLUTION), FakeProvider())
        with pytest.raises(DuplicateProviderError) as exc_info:
            registry.register(descriptor("isbndb", "paid", Capability.COVER_IMAGES), FakeProvider())
        assert exc_info.value.name == "isbndb"
        assert len(registry) == 1

    def test_adapter_missing_interface_raises(self, registry):
        with pytest.raises(UnsupportedCapabilityError):
            registry.register(
                descriptor("broken", "free", Capability.COVER_IMAGES),
                FakeAdapterWithoutInterfaces(),  # pyright: ignore[reportArgumentType]
            )
        assert registry.get("broken") is None

    def test_capability_outside_closed_set_raises(self, registry):
        bogus = ProviderDescriptor.model_construct(
            name="bogus", provider_type=ProviderType.FREE, capabilities=frozenset({"teleportation"})
        )
        with pytest.raises(UnsupportedCapabilityError):
            registry.register(bogus, FakeProvider())

    def test_register_all(self, registry):
        registry.register_all(
            [
                (descriptor("a", "free", Capability.COVER_IMAGES), FakeProvider()),
                (descriptor("b", "paid", Capability.COVER_IMAGES), FakeProvider()),
            ]
        )
        assert [p.name for p in registry.get_all()] == ["a", "b"]


class TestLookup:
    """Static capability and type lookups."""

    def test_get_by_capability_in_registration_order(self, register, registry):
        register("c", "free", [Capability.COVER_IMAGES])
        register("a", "paid", [Capability.COVER_IMAGES, Capability.ISBN_RESOLUTION])
        register("b", "ai", [Capability.BOOK_GENERATION])

        assert [p.name for p in registry.get_by_capability(Capability.COVER_IMAGES)] == ["c", "a"]
        assert [p.name for p in registry.get_by_capability(Capability.ISBN_RESOLUTION)] == ["a"]
        assert registry.get_by_capability(Capability.AWARDS) == []

    def test_get_by_capability_is_idempotent(self, register, registry):
        register("a", "free", [Capability.RATINGS])
        register("b", "paid", [Capability.RATINGS])

        first = registry.get_by_capability(Capability.RATINGS)
        second = registry.get_by_capability(Capability.RATINGS)
        assert first == second

    def test_get_by_type(self, register, registry):
        register("a", "free", [Capability.RATINGS])
        register("b", "paid", [Capability.RATINGS])
        register("c", "free", [Capability.COVER_IMAGES])

        assert [p.name for p in registry.get_by_type(ProviderType.FREE)] == ["a", "c"]
        assert registry.get_by_type(ProviderType.AI) == []

    def test_has_capability(self, register, registry):
        register("a", "free", [Capability.RATINGS])
        assert registry.has_capability(Capability.RATINGS) is True
        assert registry.has_capability(Capability.AWARDS) is False

    def test_get_stats(self, register, registry):
        register("a", "free", [Capability.RATINGS, Capability.COVER_IMAGES])
        register("b", "paid", [Capability.RATINGS])
        register("c", "ai", [Capability.BOOK_GENERATION])

        stats = registry.get_stats()
        assert stats.total_providers == 3
        assert stats.count_by_type == {ProviderType.FREE: 1, ProviderType.PAID: 1, ProviderType.AI: 1}
        assert stats.count_by_capability[Capability.RATINGS] == 2
        assert stats.count_by_capability[Capability.COVER_IMAGES] == 1
        assert Capability.AWARDS not in stats.count_by_capability


@pytest.mark.asyncio
class TestAvailability:
    """Concurrent availability filtering."""

    async def test_unavailable_provider_excluded(self, register, registry, context):
        register("a", "free", [Capability.COVER_IMAGES], available=False)
        register("b", "free", [Capability.COVER_IMAGES])

        available = await registry.get_available_providers(Capability.COVER_IMAGES, context)
        assert [p.name for p in available] == ["b"]

    async def test_raising_check_excluded_without_raising(self, register, registry, context):
        register("a", "free", [Capability.COVER_IMAGES], availability_error=RuntimeError("boom"))
        register("b", "free", [Capability.COVER_IMAGES])

        available = await registry.get_available_providers(Capability.COVER_IMAGES, context)
        assert [p.name for p in available] == ["b"]

    async def test_slow_check_times_out(self, register, registry, context):
        register("slow", "free", [Capability.COVER_IMAGES], availability_delay=5.0)
        register("fast", "free", [Capability.COVER_IMAGES])

        available = await registry.get_available_providers(Capability.COVER_IMAGES, context)
        assert [p.name for p in available] == ["fast"]

    async def test_checks_run_concurrently(self, context):
        registry = ProviderRegistry(availability_timeout=2.0)
        for name in ("a", "b", "c", "d"):
            registry.register(
                descriptor(name, "free", Capability.COVER_IMAGES), FakeProvider(availability_delay=0.2)
            )

        loop = asyncio.get_running_loop()
        started = loop.time()
        available = await registry.get_available_providers(Capability.COVER_IMAGES, context)
        assert len(available) == 4
        assert loop.time() - started < 0.6

    async def test_preserves_registration_order(self, register, registry, context):
        register("first", "free", [Capability.COVER_IMAGES], availability_delay=0.1)
        register("second", "paid", [Capability.COVER_IMAGES])
        register("third", "free", [Capability.COVER_IMAGES], availability_delay=0.05)

        available = await registry.get_available_providers(Capability.COVER_IMAGES, context)
        assert [p.name for p in available] == ["first", "second", "third"]

    async def test_no_candidates(self, registry, context):
        assert await registry.get_available_providers(Capability.AWARDS, context) == []

    async def test_never_includes_failing_providers(self, register, registry, context):
        register("ok", "free", [Capability.RATINGS])
        register("no", "free", [Capability.RATINGS], available=False)
        register("err", "paid", [Capability.RATINGS], availability_error=ValueError("bad key"))
        register("slow", "paid", [Capability.RATINGS], availability_delay=5.0)

        available = await registry.get_available_providers(Capability.RATINGS, context)
        names = {p.name for p in available}
        assert names == {"ok"}
