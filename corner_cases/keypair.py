# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Key material helpers.

Keypairs are stored the way the Solana CLI writes them: a JSON array of the 64
secret key bytes (32-byte seed followed by the 32-byte public key).

Examples:
    Load the operator keypair::

        from corner_cases.keypair import load_keypair

        operator = load_keypair("~/.config/solana/id.json")
        print(operator.pubkey())

    Hand a freshly generated signer to a subprocess::

        from solders.keypair import Keypair

        creator = Keypair()
        with temporary_keypair_file(creator) as path:
            ...  # pass ``path`` to the tool that needs to sign
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
import unittest
from typing import Iterator

from solders.keypair import Keypair
from solders.pubkey import Pubkey

SECRET_KEY_LENGTH = 64


def load_keypair(path: str) -> Keypair:
    """Read a keypair from a JSON-encoded secret key array.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        json.JSONDecodeError: If the file is not JSON.
        ValueError: If the content is not a 64-byte secret key.
    """
    with open(os.path.expanduser(path)) as file:
        secret = json.load(file)
    if not isinstance(secret, list) or len(secret) != SECRET_KEY_LENGTH:
        raise ValueError(
            f"Expected a JSON array of {SECRET_KEY_LENGTH} bytes in {path}"
        )
    return Keypair.from_bytes(bytes(secret))


def store_keypair(keypair: Keypair, path: str):
    with open(path, "w") as file:
        json.dump(list(bytes(keypair)), file)


@contextlib.contextmanager
def temporary_keypair_file(keypair: Keypair) -> Iterator[str]:
    """Write ``keypair`` to a private temporary file and remove it afterwards."""
    (handle, path) = tempfile.mkstemp(suffix=".json")
    os.close(handle)
    try:
        store_keypair(keypair, path)
        yield path
    finally:
        os.unlink(path)


def parse_pubkey(value: str) -> Pubkey:
    """Parse a base58 address, raising ``ValueError`` with the offending input."""
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise ValueError(f"Invalid address {value!r}: {e}") from e


class Test(unittest.TestCase):
    def test_load_and_store(self):
        (handle, path) = tempfile.mkstemp()
        os.close(handle)
        self.addCleanup(os.unlink, path)

        start = Keypair()
        store_keypair(start, path)
        load = load_keypair(path)

        self.assertEqual(start.pubkey(), load.pubkey())
        with open(path) as file:
            self.assertEqual(len(json.load(file)), SECRET_KEY_LENGTH)

    def test_load_rejects_wrong_length(self):
        (handle, path) = tempfile.mkstemp()
        os.close(handle)
        self.addCleanup(os.unlink, path)
        with open(path, "w") as file:
            json.dump([1, 2, 3], file)

        with self.assertRaises(ValueError):
            load_keypair(path)

    def test_load_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_keypair("/nonexistent/keypair.json")

    def test_temporary_keypair_file(self):
        keypair = Keypair()
        with temporary_keypair_file(keypair) as path:
            self.assertEqual(load_keypair(path).pubkey(), keypair.pubkey())
        self.assertFalse(os.path.exists(path))

    def test_parse_pubkey(self):
        pubkey = Keypair().pubkey()
        self.assertEqual(parse_pubkey(str(pubkey)), pubkey)
        with self.assertRaises(ValueError):
            parse_pubkey("not-an-address")


if __name__ == "__main__":
    unittest.main()
