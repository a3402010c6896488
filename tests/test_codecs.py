"""Tests for the codec registry and custom type encoding."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import time, timedelta
from typing import Any

import pytest

from typegraph.codecs import Codec, CodecRegistry
from typegraph.errors import CustomCodecError
from typegraph.options import ReadOptions, WriteOptions
from typegraph.serialization import from_builtins, to_builtins


@dataclass
class Money:
    """Amount in minor units with a currency."""

    cents: int
    currency: str

    def render(self) -> str:
        return f"{self.cents} {self.currency}"

    @classmethod
    def parse(cls, text: str) -> Money:
        cents, currency = text.split()
        return cls(int(cents), currency)


@dataclass
class Refund(Money):
    """Money subclass that inherits the codec unless disabled."""


@dataclass
class Wallet:
    owner: str
    balance: Money


@dataclass
class Untyped:
    payload: Any


@dataclass
class Signal:
    gain: complex


def money_registry() -> CodecRegistry:
    registry = CodecRegistry()
    registry.register(Money, encode=Money.render, decode=Money.parse, name="money")
    return registry


# =============================================================================
# Registry API
# =============================================================================


class TestRegistry:
    """Test registration, lookup and sealing."""

    def test_lookup_walks_mro(self) -> None:
        """Test that subclasses use their base class codec."""
        registry = money_registry()
        assert registry.lookup(Refund) == registry.lookup(Money)
        assert registry.lookup(Wallet) is None

    def test_disable_stops_lookup(self) -> None:
        """Test that a disabled subclass falls back to default handling."""
        registry = money_registry()
        registry.disable(Refund)
        assert registry.lookup(Refund) is None
        assert registry.lookup(Money) is not None

    def test_default_name_is_qualified(self) -> None:
        """Test the tag name used when none is given."""
        registry = CodecRegistry(builtins=False)
        registry.register(Money, encode=Money.render)
        codec = registry.lookup(Money)
        assert codec is not None
        assert codec.name == f"{__name__}.Money"

    def test_get_by_name(self) -> None:
        """Test reverse lookup by tag name."""
        registry = money_registry()
        found = registry.get_by_name("money")
        assert found is not None
        assert found[0] is Money
        assert isinstance(found[1], Codec)
        assert registry.get_by_name("unknown") is None

    def test_name_collision_rejected(self) -> None:
        """Test that two types cannot share a tag name."""
        registry = money_registry()
        with pytest.raises(ValueError, match="already registered"):
            registry.register(Wallet, encode=str, name="money")

    def test_reregister_replaces(self) -> None:
        """Test that registering a type again replaces its codec and name."""
        registry = money_registry()
        registry.register(Money, encode=Money.render, decode=Money.parse, name="cash")
        assert registry.get_by_name("money") is None
        assert registry.get_by_name("cash") is not None

    def test_unregister(self) -> None:
        """Test removal of a codec."""
        registry = money_registry()
        assert registry.unregister(Money)
        assert not registry.unregister(Money)
        assert Money not in registry

    def test_sealed_registry_rejects_changes(self) -> None:
        """Test that sealing makes the registry read-only."""
        registry = money_registry()
        registry.seal()
        assert registry.sealed
        with pytest.raises(RuntimeError, match="sealed"):
            registry.register(Wallet, encode=str)
        with pytest.raises(RuntimeError, match="sealed"):
            registry.disable(Refund)

    def test_copy_is_unsealed(self) -> None:
        """Test that copies can be extended after the original is sealed."""
        registry = money_registry()
        registry.seal()
        clone = registry.copy()
        clone.register(Wallet, encode=str)
        assert Wallet in clone
        assert Wallet not in registry

    def test_options_seal_registry(self) -> None:
        """Test that building options seals the registry."""
        registry = money_registry()
        WriteOptions(codecs=registry)
        assert registry.sealed

    def test_builtins_can_be_skipped(self) -> None:
        """Test an empty registry."""
        assert list(CodecRegistry(builtins=False)) == []
        assert bytes in CodecRegistry()


# =============================================================================
# Encoding and decoding through the graph
# =============================================================================


class TestBuiltinCodecs:
    """Test the pre-registered codecs."""

    def test_bytes_tagged_in_untyped_context(self) -> None:
        """Test that bytes become tagged base64 text."""
        data = to_builtins(Untyped(b"\x00\x01"), root_type=Untyped)
        assert data == {
            "payload": {"@type": "bytes", "value": base64.b64encode(b"\x00\x01").decode()},
        }
        assert from_builtins(data, root_type=Untyped) == Untyped(b"\x00\x01")

    @pytest.mark.parametrize(
        "value",
        [b"abc", bytearray(b"xyz"), time(12, 30, 5), timedelta(hours=2, seconds=3), 1 + 2j],
    )
    def test_round_trip(self, value: Any) -> None:
        """Test round trips of each builtin codec type."""
        restored = from_builtins(to_builtins([value]))
        assert restored == [value]
        assert type(restored[0]) is type(value)

    def test_complex_parts(self) -> None:
        """Test that complex numbers keep both parts in either context."""
        assert to_builtins([1 + 2j]) == [{"@type": "complex", "value": [1.0, 2.0]}]
        data = to_builtins(Signal(3 - 0.5j), root_type=Signal)
        assert data == {"gain": [3.0, -0.5]}
        assert from_builtins(data, root_type=Signal) == Signal(3 - 0.5j)


class TestCustomCodecs:
    """Test user codecs through the writer and resolver."""

    def test_typed_field_has_no_tag(self) -> None:
        """Test that a field declared with the codec type is written bare."""
        registry = money_registry()
        wallet = Wallet("ann", Money(250, "EUR"))
        data = to_builtins(wallet, WriteOptions(codecs=registry), root_type=Wallet)
        assert data == {"owner": "ann", "balance": "250 EUR"}
        restored = from_builtins(data, ReadOptions(codecs=money_registry()), root_type=Wallet)
        assert restored == wallet

    def test_untyped_field_uses_codec_name(self) -> None:
        """Test that the codec name is the tag in untyped positions."""
        data = to_builtins(Untyped(Money(1, "USD")), WriteOptions(codecs=money_registry()))
        assert data["payload"] == {"@type": "money", "value": "1 USD"}
        restored = from_builtins(data, ReadOptions(codecs=money_registry()), root_type=Untyped)
        assert restored.payload == Money(1, "USD")

    def test_subclass_keeps_its_own_tag(self) -> None:
        """Test that an inherited codec does not hide the subclass name."""
        data = to_builtins([Refund(5, "EUR")], WriteOptions(codecs=money_registry()))
        assert data == [{"@type": f"{__name__}.Refund", "value": "5 EUR"}]

    def test_disabled_subclass_written_as_object(self) -> None:
        """Test field-by-field output when the codec is disabled."""
        registry = money_registry()
        registry.disable(Refund)
        data = to_builtins([Refund(5, "EUR")], WriteOptions(codecs=registry))
        assert data == [{"@type": f"{__name__}.Refund", "cents": 5, "currency": "EUR"}]

    def test_encode_failure_wrapped(self) -> None:
        """Test that encoder exceptions become CustomCodecError."""

        def boom(value: Money) -> str:
            msg = "no"
            raise RuntimeError(msg)

        registry = CodecRegistry()
        registry.register(Money, encode=boom)
        with pytest.raises(CustomCodecError, match="encode") as exc_info:
            to_builtins({"m": Money(1, "X")}, WriteOptions(codecs=registry))
        assert exc_info.value.path == "$.m"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_decode_failure_wrapped(self) -> None:
        """Test that decoder exceptions become CustomCodecError."""
        data = {"owner": "x", "balance": "not-money"}
        with pytest.raises(CustomCodecError, match="decode") as exc_info:
            from_builtins(data, ReadOptions(codecs=money_registry()), root_type=Wallet)
        assert exc_info.value.path == "$.balance"
