"""Object key value objects.

A LogicalKey is the name callers pass to and receive from the storage
contract. A PhysicalKey is the name actually stored by a provider, which may
carry a tenant prefix so several deployments can share one bucket. The two
mapping functions are pure and inverse to each other.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class LogicalKey:
    """Caller-visible object key (never contains the tenant prefix)."""

    value: str

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("Object key must be a non-empty string")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PhysicalKey:
    """Provider-side object name (tenant prefix applied)."""

    value: str

    def __str__(self) -> str:
        return self.value


def _normalize_prefix(tenant_prefix: str | None) -> str:
    return (tenant_prefix or "").strip().strip("/")


def to_physical(key: LogicalKey | str, tenant_prefix: str | None = None) -> PhysicalKey:
    """Map a logical key to the stored name: ``prefix/key`` or ``key``."""
    logical = key if isinstance(key, LogicalKey) else LogicalKey(key)
    prefix = _normalize_prefix(tenant_prefix)
    if prefix:
        return PhysicalKey(f"{prefix}/{logical.value}")
    return PhysicalKey(logical.value)


def to_logical(key: PhysicalKey | str, tenant_prefix: str | None = None) -> LogicalKey:
    """Strip the tenant prefix from a stored name.

    Raises:
        ValueError: If a prefix is configured and the name does not carry it.
    """
    physical = key if isinstance(key, PhysicalKey) else PhysicalKey(key)
    prefix = _normalize_prefix(tenant_prefix)
    if not prefix:
        return LogicalKey(physical.value)
    head = f"{prefix}/"
    if not physical.value.startswith(head):
        raise ValueError(
            f"Stored name {physical.value!r} is outside tenant prefix {prefix!r}"
        )
    return LogicalKey(physical.value[len(head):])
