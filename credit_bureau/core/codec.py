"""
Opaque score codec.

Scores never travel in clear outside this module and the transform engine.
The default scheme is a reversible tagged encoding that stands in for a real
homomorphic scheme: ``"FHE-" + base64(str(value))``. Anything implementing
``OpaqueCodec`` can replace it without touching the lifecycle or the reveal
protocol.
"""

import base64
import binascii
import math
from abc import ABC, abstractmethod
from decimal import Decimal
from numbers import Real
from typing import Union

from .errors import DecodeError

Number = Union[int, float]

TAG = "FHE-"


class OpaqueCodec(ABC):
    """Abstract interface for opaque score representations."""

    @abstractmethod
    def encode(self, value: Number) -> str:
        """Encode a plain numeric value into its opaque form."""
        pass

    @abstractmethod
    def decode(self, opaque: Union[str, bytes]) -> Number:
        """Decode an opaque value back to a number."""
        pass

    @abstractmethod
    def is_opaque(self, data: Union[str, bytes]) -> bool:
        """Whether ``data`` carries this codec's tag."""
        pass

    def preview(self, value: Number, length: int = 30) -> str:
        """Truncated opaque form, as shown before submission."""
        encoded = self.encode(value)
        if len(encoded) <= length:
            return encoded
        return encoded[:length] + "..."


class TaggedBase64Codec(OpaqueCodec):
    """Tagged base64 encoding of the decimal text of a number."""

    def __init__(self, tag: str = TAG):
        self.tag = tag

    def encode(self, value: Number) -> str:
        text = format_number(value)
        return self.tag + base64.b64encode(text.encode("utf-8")).decode("ascii")

    def decode(self, opaque: Union[str, bytes]) -> Number:
        if isinstance(opaque, bytes):
            try:
                opaque = opaque.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError(f"Opaque value is not UTF-8: {e}") from e

        if not isinstance(opaque, str):
            raise DecodeError(f"Cannot decode value of type {type(opaque).__name__}")

        if self.is_opaque(opaque):
            payload = opaque[len(self.tag):]
            try:
                text = base64.b64decode(payload, validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise DecodeError(f"Tagged payload is not valid base64 text: {e}") from e
            return parse_number(text)

        # Compatibility shim for legacy rows written before the tag existed.
        # Accepting untagged input is not a security property.
        return parse_number(opaque)

    def is_opaque(self, data: Union[str, bytes]) -> bool:
        if isinstance(data, bytes):
            return data.startswith(self.tag.encode("utf-8"))
        return isinstance(data, str) and data.startswith(self.tag)


def format_number(value: Number) -> str:
    """Canonical decimal text for a finite number (integral values without a fraction)."""
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise ValueError(f"Score must be a number, got {type(value).__name__}")

    if isinstance(value, int):
        return str(value)

    as_float = float(value)
    if not math.isfinite(as_float):
        raise ValueError(f"Score must be finite, got {value}")

    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return str(int(value))
        return repr(as_float)

    if as_float.is_integer():
        return str(int(as_float))
    return repr(as_float)


def parse_number(text: str) -> Number:
    """Parse decimal text into an int when integral, a float otherwise."""
    stripped = text.strip()
    try:
        return int(stripped)
    except ValueError:
        pass

    try:
        value = float(stripped)
    except ValueError as e:
        raise DecodeError(f"Not a number: {stripped[:40]!r}") from e

    if not math.isfinite(value):
        raise DecodeError(f"Not a finite number: {stripped[:40]!r}")
    if value.is_integer():
        return int(value)
    return value


# Default codec instance
default_codec = TaggedBase64Codec()


def encode(value: Number) -> str:
    """Encode with the default codec."""
    return default_codec.encode(value)


def decode(opaque: Union[str, bytes]) -> Number:
    """Decode with the default codec."""
    return default_codec.decode(opaque)


def preview(value: Number, length: int = 30) -> str:
    """Encryption preview with the default codec."""
    return default_codec.preview(value, length)
