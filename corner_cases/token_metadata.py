# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Metaplex Token Metadata accounts, read straight from the chain.

Every NFT minted through Token Metadata has a metadata account and, for
originals, a master edition account at program-derived addresses of its
mint. Reading them needs nothing but ``getAccountInfo``, so any RPC endpoint
can serve the cloning job.

Only the fields the minter uses are decoded; anything after the collection
(uses, collection details, programmable config) is ignored.
"""

from __future__ import annotations

import unittest
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .borsh import Deserializer, Serializer
from .nft import CollectionRef, Creator, NftRecord

TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string(
    "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
)

# Account discriminators (the Token Metadata ``Key`` enum)
EDITION_V1 = 1
MASTER_EDITION_V1 = 2
METADATA_V1 = 4
MASTER_EDITION_V2 = 6


class NftNotFound(Exception):
    """The mint has no Token Metadata account"""

    mint_address: Pubkey

    def __init__(self, mint_address: Pubkey):
        super().__init__(f"No metadata account for mint {mint_address}")
        self.mint_address = mint_address


def metadata_address(mint_address: Pubkey) -> Pubkey:
    (address, _) = Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint_address)],
        TOKEN_METADATA_PROGRAM_ID,
    )
    return address


def master_edition_address(mint_address: Pubkey) -> Pubkey:
    (address, _) = Pubkey.find_program_address(
        [
            b"metadata",
            bytes(TOKEN_METADATA_PROGRAM_ID),
            bytes(mint_address),
            b"edition",
        ],
        TOKEN_METADATA_PROGRAM_ID,
    )
    return address


def _deserialize_creator(deserializer: Deserializer) -> Creator:
    address = deserializer.pubkey()
    verified = deserializer.bool()
    return Creator(address, deserializer.u8(), verified)


def _serialize_creator(serializer: Serializer, creator: Creator):
    serializer.pubkey(creator.address)
    serializer.bool(creator.verified)
    serializer.u8(creator.share)


def _deserialize_collection(deserializer: Deserializer) -> CollectionRef:
    verified = deserializer.bool()
    return CollectionRef(deserializer.pubkey(), verified)


def _serialize_collection(serializer: Serializer, collection: CollectionRef):
    serializer.bool(collection.verify)
    serializer.pubkey(collection.address)


@dataclass(frozen=True)
class MetadataAccount:
    """The decoded prefix of a Token Metadata ``Metadata`` account.

    Older accounts stop after ``is_mutable`` or carry zero padding in place
    of the optional trailing fields; both decode as ``None``.
    """

    update_authority: Pubkey
    mint: Pubkey
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: Tuple[Creator, ...] = ()
    primary_sale_happened: bool = False
    is_mutable: bool = True
    edition_nonce: Optional[int] = None
    token_standard: Optional[int] = None
    collection: Optional[CollectionRef] = None

    @staticmethod
    def from_bytes(data: bytes) -> MetadataAccount:
        return MetadataAccount.deserialize(Deserializer(data))

    @staticmethod
    def deserialize(deserializer: Deserializer) -> MetadataAccount:
        key = deserializer.u8()
        if key != METADATA_V1:
            raise ValueError(f"Not a metadata account (key {key})")
        update_authority = deserializer.pubkey()
        mint = deserializer.pubkey()
        name = deserializer.str()
        symbol = deserializer.str()
        uri = deserializer.str()
        seller_fee_basis_points = deserializer.u16()
        creators = deserializer.option(
            lambda der: der.sequence(_deserialize_creator)
        )
        primary_sale_happened = deserializer.bool()
        is_mutable = deserializer.bool()

        def trailing(value_decoder):
            if deserializer.remaining() == 0:
                return None
            return deserializer.option(value_decoder)

        edition_nonce = trailing(Deserializer.u8)
        token_standard = trailing(Deserializer.u8)
        collection = trailing(_deserialize_collection)
        return MetadataAccount(
            update_authority=update_authority,
            mint=mint,
            name=name,
            symbol=symbol,
            uri=uri,
            seller_fee_basis_points=seller_fee_basis_points,
            creators=tuple(creators or ()),
            primary_sale_happened=primary_sale_happened,
            is_mutable=is_mutable,
            edition_nonce=edition_nonce,
            token_standard=token_standard,
            collection=collection,
        )

    def to_bytes(self) -> bytes:
        serializer = Serializer()
        self.serialize(serializer)
        return serializer.output()

    def serialize(self, serializer: Serializer):
        serializer.u8(METADATA_V1)
        serializer.pubkey(self.update_authority)
        serializer.pubkey(self.mint)
        serializer.str(self.name)
        serializer.str(self.symbol)
        serializer.str(self.uri)
        serializer.u16(self.seller_fee_basis_points)
        serializer.option(
            list(self.creators) or None,
            lambda ser, creators: ser.sequence(creators, _serialize_creator),
        )
        serializer.bool(self.primary_sale_happened)
        serializer.bool(self.is_mutable)
        serializer.option(self.edition_nonce, Serializer.u8)
        serializer.option(self.token_standard, Serializer.u8)
        serializer.option(self.collection, _serialize_collection)

    def to_record(
        self, json: Optional[Dict[str, Any]] = None, max_supply: Optional[int] = None
    ) -> NftRecord:
        return NftRecord(
            mint=self.mint,
            name=self.name,
            symbol=self.symbol,
            uri=self.uri,
            json=dict(json or {}),
            seller_fee_basis_points=self.seller_fee_basis_points,
            creators=self.creators,
            collection=self.collection,
            is_mutable=self.is_mutable,
            max_supply=max_supply,
        )


def master_edition_max_supply(data: bytes) -> Optional[int]:
    """Return the print limit stored in a master edition account.

    ``None`` means unlimited prints, or that ``data`` belongs to a printed
    edition rather than a master.
    """
    deserializer = Deserializer(data)
    key = deserializer.u8()
    if key not in (MASTER_EDITION_V1, MASTER_EDITION_V2):
        return None
    deserializer.u64()  # current supply
    return deserializer.option(Deserializer.u64)


class Test(unittest.TestCase):
    def setUp(self):
        self.mint = Keypair().pubkey()
        self.creator = Keypair().pubkey()
        self.collection = Keypair().pubkey()
        self.account = MetadataAccount(
            update_authority=Keypair().pubkey(),
            mint=self.mint,
            name="Orcanaut #42",
            symbol="ORCA",
            uri="https://arweave.net/orcanaut-42",
            seller_fee_basis_points=500,
            creators=(Creator(self.creator, 100, True),),
            is_mutable=False,
            edition_nonce=254,
            collection=CollectionRef(self.collection, True),
        )

    def test_decode_padded_account(self):
        # Accounts are allocated at maximum size; names and the tail are zero padded.
        ser = Serializer()
        ser.u8(METADATA_V1)
        ser.pubkey(self.account.update_authority)
        ser.pubkey(self.mint)
        ser.str("Orcanaut #42".ljust(32, "\x00"))
        ser.str("ORCA".ljust(10, "\x00"))
        ser.str("https://arweave.net/orcanaut-42".ljust(200, "\x00"))
        ser.u16(500)
        ser.option(None, Serializer.u8)
        ser.bool(True)
        ser.bool(True)
        data = ser.output() + bytes(64)

        account = MetadataAccount.from_bytes(data)

        self.assertEqual(account.name, "Orcanaut #42")
        self.assertEqual(account.symbol, "ORCA")
        self.assertEqual(account.uri, "https://arweave.net/orcanaut-42")
        self.assertEqual(account.creators, ())
        self.assertIsNone(account.collection)
        self.assertTrue(account.primary_sale_happened)

    def test_decode_legacy_account_without_tail(self):
        data = MetadataAccount(
            Keypair().pubkey(), self.mint, "Old", "", "https://x", 0
        ).to_bytes()
        # Strip the three empty option tags written for the trailing fields.
        account = MetadataAccount.from_bytes(data[:-3])

        self.assertEqual(account.name, "Old")
        self.assertIsNone(account.edition_nonce)
        self.assertIsNone(account.collection)

    def test_decode_full_account(self):
        account = MetadataAccount.from_bytes(self.account.to_bytes())

        self.assertEqual(account, self.account)
        record = account.to_record({"name": "Orcanaut #42"}, 0)
        self.assertEqual(record.mint, self.mint)
        self.assertEqual(record.creators, (Creator(self.creator, 100, True),))
        self.assertEqual(record.collection, CollectionRef(self.collection, True))
        self.assertEqual(record.max_supply, 0)
        self.assertFalse(record.is_mutable)

    def test_wrong_account_type(self):
        with self.assertRaises(ValueError):
            MetadataAccount.from_bytes(bytes([MASTER_EDITION_V2]) + bytes(100))

    def test_master_edition_max_supply(self):
        limited = Serializer()
        limited.u8(MASTER_EDITION_V2)
        limited.u64(2)
        limited.option(5, Serializer.u64)
        unlimited = Serializer()
        unlimited.u8(MASTER_EDITION_V2)
        unlimited.u64(0)
        unlimited.option(None, Serializer.u64)

        self.assertEqual(master_edition_max_supply(limited.output()), 5)
        self.assertIsNone(master_edition_max_supply(unlimited.output()))
        self.assertIsNone(master_edition_max_supply(bytes([EDITION_V1]) + bytes(40)))

    def test_addresses_are_program_derived(self):
        self.assertFalse(metadata_address(self.mint).is_on_curve())
        self.assertNotEqual(metadata_address(self.mint), master_edition_address(self.mint))


if __name__ == "__main__":
    unittest.main()
