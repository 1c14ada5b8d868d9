# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Borsh serialization for the on-chain accounts the minter reads.

Solana programs written with Anchor or the Metaplex toolchain store their
accounts in Borsh: little-endian fixed-width integers, ``u32`` length prefixes
for strings and vectors, and a one-byte tag in front of optional values.

Learn more at https://borsh.io

Examples:
    Round trip a string and an optional integer::

        ser = Serializer()
        ser.str("hello")
        ser.option(7, Serializer.u8)

        der = Deserializer(ser.output())
        der.str()                      # "hello"
        der.option(Deserializer.u8)    # 7
"""

from __future__ import annotations

import io
import typing
import unittest
from typing import List, Optional

from solders.pubkey import Pubkey

MAX_U8 = 2**8 - 1
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1


class Deserializer:
    """Reads Borsh-encoded values from a byte string, front to back."""

    _input: io.BytesIO
    _length: int

    def __init__(self, data: bytes):
        self._length = len(data)
        self._input = io.BytesIO(data)

    def remaining(self) -> int:
        return self._length - self._input.tell()

    def bool(self) -> bool:
        value = self.u8()
        if value == 0:
            return False
        elif value == 1:
            return True
        else:
            raise ValueError(f"Unexpected boolean value: {value}")

    def fixed_bytes(self, length: int) -> bytes:
        return self._read(length)

    def pubkey(self) -> Pubkey:
        return Pubkey.from_bytes(self._read(32))

    def str(self) -> str:
        """Read a ``u32``-prefixed UTF-8 string.

        Token Metadata pads names, symbols and URIs with NUL bytes up to their
        maximum length; the padding is stripped.
        """
        return self._read(self.u32()).decode("utf-8").rstrip("\x00")

    def option(
        self, value_decoder: typing.Callable[[Deserializer], typing.Any]
    ) -> Optional[typing.Any]:
        if self.bool():
            return value_decoder(self)
        return None

    def sequence(
        self, value_decoder: typing.Callable[[Deserializer], typing.Any]
    ) -> List[typing.Any]:
        return [value_decoder(self) for _ in range(self.u32())]

    def u8(self) -> int:
        return self._read_int(1)

    def u16(self) -> int:
        return self._read_int(2)

    def u32(self) -> int:
        return self._read_int(4)

    def u64(self) -> int:
        return self._read_int(8)

    def _read(self, length: int) -> bytes:
        value = self._input.read(length)
        if value is None or len(value) < length:
            actual_length = 0 if value is None else len(value)
            raise ValueError(
                f"Unexpected end of input. Requested: {length}, found: {actual_length}"
            )
        return value

    def _read_int(self, length: int) -> int:
        return int.from_bytes(self._read(length), byteorder="little", signed=False)


class Serializer:
    """Writes Borsh-encoded values; the mirror image of :class:`Deserializer`."""

    _output: io.BytesIO

    def __init__(self):
        self._output = io.BytesIO()

    def output(self) -> bytes:
        return self._output.getvalue()

    def bool(self, value: bool):
        self.u8(int(value))

    def fixed_bytes(self, value: bytes):
        self._output.write(value)

    def pubkey(self, value: Pubkey):
        self.fixed_bytes(bytes(value))

    def str(self, value: str):
        encoded = value.encode("utf-8")
        self.u32(len(encoded))
        self.fixed_bytes(encoded)

    def option(
        self,
        value: Optional[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.bool(value is not None)
        if value is not None:
            value_encoder(self, value)

    def sequence(
        self,
        values: typing.Sequence[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.u32(len(values))
        for value in values:
            value_encoder(self, value)

    def u8(self, value: int):
        if value > MAX_U8:
            raise ValueError(f"Cannot encode {value} into u8")
        self._write_int(value, 1)

    def u16(self, value: int):
        if value > MAX_U16:
            raise ValueError(f"Cannot encode {value} into u16")
        self._write_int(value, 2)

    def u32(self, value: int):
        if value > MAX_U32:
            raise ValueError(f"Cannot encode {value} into u32")
        self._write_int(value, 4)

    def u64(self, value: int):
        if value > MAX_U64:
            raise ValueError(f"Cannot encode {value} into u64")
        self._write_int(value, 8)

    def _write_int(self, value: int, length: int):
        self._output.write(value.to_bytes(length, "little", signed=False))


class Test(unittest.TestCase):
    def test_padded_str(self):
        der = Deserializer(b"\x05\x00\x00\x00ab\x00\x00\x00")
        self.assertEqual(der.str(), "ab")
        self.assertEqual(der.remaining(), 0)

    def test_option_and_sequence(self):
        ser = Serializer()
        ser.option(None, Serializer.u64)
        ser.option(5, Serializer.u64)
        ser.sequence([1, 2, 3], Serializer.u16)
        der = Deserializer(ser.output())

        self.assertIsNone(der.option(Deserializer.u64))
        self.assertEqual(der.option(Deserializer.u64), 5)
        self.assertEqual(der.sequence(Deserializer.u16), [1, 2, 3])

    def test_integers_little_endian(self):
        ser = Serializer()
        ser.u16(500)
        self.assertEqual(ser.output(), b"\xf4\x01")

    def test_bool_error(self):
        with self.assertRaises(ValueError):
            Deserializer(b"\x02").bool()

    def test_unexpected_end_of_input(self):
        with self.assertRaises(ValueError):
            Deserializer(b"\x01\x00").u32()

    def test_u8_overflow(self):
        with self.assertRaises(ValueError):
            Serializer().u8(256)


if __name__ == "__main__":
    unittest.main()
