"""Argument-shape matching used to select check variants."""

from callspec.matching.shapes import (
    ANY,
    AnySlot,
    ArgumentShape,
    LiteralSlot,
    ParametricSlot,
    Slot,
    TypeSlot,
    TypeVarSlot,
    UnionSlot,
    slot_for,
    slot_le,
)

__all__ = [
    "ANY",
    "AnySlot",
    "ArgumentShape",
    "LiteralSlot",
    "ParametricSlot",
    "Slot",
    "TypeSlot",
    "TypeVarSlot",
    "UnionSlot",
    "slot_for",
    "slot_le",
]
