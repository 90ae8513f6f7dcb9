"""
Transform engine - named numeric operations on opaque scores.
Opaque in, opaque out; the decoded value never leaves this module.
"""

from decimal import Decimal
from typing import Dict, Optional

from util.logging import logger

from . import config
from .codec import OpaqueCodec, default_codec
from .errors import InvalidReport, UnknownOperation

# Multiplicative factors, kept as Decimal so 700 -> 770 exactly
OPERATIONS: Dict[str, Decimal] = {
    "increase10pct": Decimal("1.10"),
    "decrease10pct": Decimal("0.90"),
    "double": Decimal("2"),
}

# Spellings used by records written by the original client
ALIASES: Dict[str, str] = {
    "increase10%": "increase10pct",
    "decrease10%": "decrease10pct",
}


def resolve_operation(operation: str) -> Optional[str]:
    """Canonical operation name, or None when the name is not recognised."""
    name = ALIASES.get(operation, operation)
    return name if name in OPERATIONS else None


class TransformEngine:
    """Applies named operations to opaque values through a codec."""

    def __init__(self, codec: OpaqueCodec = None, strict: bool = None):
        self.codec = codec or default_codec
        self._strict = strict

    @property
    def strict(self) -> bool:
        if self._strict is None:
            return config.TRANSFORM_STRICT
        return self._strict

    def apply(self, opaque: str, operation: str) -> str:
        """Decode, apply ``operation`` and re-encode.

        Unknown names fall back to the identity transform (the score is
        re-encoded unchanged) unless the engine is strict, in which case
        ``UnknownOperation`` is raised. ``DecodeError`` propagates, and a
        result too large to encode raises ``InvalidReport``.
        """
        value = self.codec.decode(opaque)

        name = resolve_operation(operation)
        if name is None:
            if self.strict:
                raise UnknownOperation(f"Unknown transform operation: {operation}")
            logger.warning(f"Unknown transform operation '{operation}', applying identity")
            return self.codec.encode(value)

        result = Decimal(repr(value)) * OPERATIONS[name]
        try:
            return self.codec.encode(result)
        except ValueError as e:
            raise InvalidReport(f"Score out of range after {name}") from e


# Default engine instance
default_engine = TransformEngine()


def apply(opaque: str, operation: str) -> str:
    """Apply ``operation`` with the default engine."""
    return default_engine.apply(opaque, operation)
