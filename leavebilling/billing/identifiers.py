# leavebilling/billing/identifiers.py
"""
Provider identifiers.

The provider hands out numeric ids but its JSON:API payloads carry them as
strings, and the local store keeps them as text. Each concept gets its own
type, normalized to ``int`` on construction, so ``"42"`` and ``42`` compare
equal while a ``ProductId`` never equals a ``VariantId``.
"""
from dataclasses import dataclass
from typing import Any, Optional, Type, TypeVar

T = TypeVar("T", bound="ProviderId")


@dataclass(frozen=True)
class ProviderId:
    value: int

    def __post_init__(self):
        value = self.value
        if isinstance(value, bool):
            raise ValueError(f"{type(self).__name__} must be an integer, got {value!r}")
        if isinstance(value, str):
            value = value.strip()
            if not value.isdigit():
                raise ValueError(f"{type(self).__name__} must be numeric, got {self.value!r}")
            value = int(value)
        if not isinstance(value, int):
            raise ValueError(f"{type(self).__name__} must be an integer, got {self.value!r}")
        if value <= 0:
            raise ValueError(f"{type(self).__name__} must be positive, got {value}")
        object.__setattr__(self, "value", value)

    @classmethod
    def parse(cls: Type[T], raw: Any) -> Optional[T]:
        """Build an id from an int/str/id, returning None for empty values"""
        if raw is None or raw == "":
            return None
        if isinstance(raw, ProviderId):
            if not isinstance(raw, cls):
                raise TypeError(f"Cannot use {type(raw).__name__} as {cls.__name__}")
            return raw
        return cls(raw)

    def __str__(self) -> str:
        return str(self.value)

    def __int__(self) -> int:
        return self.value


class ProductId(ProviderId):
    pass


class VariantId(ProviderId):
    pass


class SubscriptionId(ProviderId):
    pass


class SubscriptionItemId(ProviderId):
    pass
