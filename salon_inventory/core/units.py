"""
Quantity types for the bottle ledger.

A product is counted in two different units that must never be mixed:
- ContainerCount: whole sealed bottles
- Milliliters: liquid volume (open bottle remainder, requirements, totals)

Conversions between the two only happen through `containers_to_ml`.
"""

from typing import NewType

Milliliters = NewType("Milliliters", int)
ContainerCount = NewType("ContainerCount", int)


def _whole(value, unit: str) -> int:
    # Quantities are whole numbers; 0.9 ml is rejected, not rounded to 0
    try:
        whole = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{unit} must be a whole number, got {value!r}") from None
    if whole != value:
        raise ValueError(f"{unit} must be a whole number, got {value!r}")
    return whole


def ml(value) -> Milliliters:
    return Milliliters(_whole(value, "ml"))


def containers(value) -> ContainerCount:
    return ContainerCount(_whole(value, "container count"))


def containers_to_ml(count: ContainerCount, capacity: Milliliters) -> Milliliters:
    return Milliliters(int(count) * int(capacity))
