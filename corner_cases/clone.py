# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Best-effort cloning of an existing NFT into another wallet or network.

Everything descriptive is copied: name, symbol, URI, creators and shares,
collection, royalty, mutability and print supply. Verification cannot be
copied because it needs the original signers, so the clone's creators and
collection always start out unverified.
"""

import logging
import unittest
import unittest.mock

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .jobs import create_nft
from .nft import CollectionRef, Creator, MintingClient, NftJobSpec, NftRecord


def clone_spec(record: NftRecord, destination: Pubkey) -> NftJobSpec:
    """Build a spec that reproduces ``record`` for ``destination``."""
    collection = None
    if record.collection is not None:
        collection = CollectionRef(record.collection.address, verify=False)
    return NftJobSpec(
        display_name=f"Clone of {record.mint}",
        metadata_json=dict(record.json),
        name=record.name,
        token_owner=destination,
        creators=tuple(
            Creator(creator.address, creator.share) for creator in record.creators
        ),
        collection=collection,
        is_mutable=record.is_mutable,
        max_supply=record.max_supply,
        uri=record.uri,
        symbol=record.symbol,
        seller_fee_basis_points=record.seller_fee_basis_points,
    )


async def clone_nft(
    source_client: MintingClient,
    destination_client: MintingClient,
    source_mint: Pubkey,
    destination: Pubkey,
) -> Pubkey:
    """Read ``source_mint`` through ``source_client`` and mint a copy through
    ``destination_client``. Returns the new mint address."""
    record = await source_client.find_by_mint(source_mint)
    spec = clone_spec(record, destination)
    mint = await create_nft(destination_client, spec)
    logging.info(f"Successfully cloned {source_mint} into {mint}")
    return mint


class Test(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.creator_a = Keypair().pubkey()
        self.creator_b = Keypair().pubkey()
        self.collection = Keypair().pubkey()
        self.record = NftRecord(
            mint=Keypair().pubkey(),
            name="Orcanaut #42",
            symbol="ORCA",
            uri="https://arweave.net/orcanaut-42",
            json={"name": "Orcanaut #42"},
            seller_fee_basis_points=500,
            creators=(Creator(self.creator_a, 60, True), Creator(self.creator_b, 40, True)),
            collection=CollectionRef(self.collection, True),
            is_mutable=False,
            max_supply=0,
        )

    def test_clone_spec_drops_verification(self):
        destination = Keypair().pubkey()

        spec = clone_spec(self.record, destination)

        self.assertEqual(
            spec.creators, (Creator(self.creator_a, 60), Creator(self.creator_b, 40))
        )
        self.assertFalse(any(creator.verified for creator in spec.creators))
        self.assertEqual(spec.collection, CollectionRef(self.collection, verify=False))
        self.assertEqual(spec.token_owner, destination)
        self.assertEqual(spec.uri, self.record.uri)
        self.assertEqual(spec.name, "Orcanaut #42")
        self.assertEqual(spec.symbol, "ORCA")
        self.assertEqual(spec.seller_fee_basis_points, 500)
        self.assertFalse(spec.is_mutable)
        self.assertEqual(spec.max_supply, 0)

    def test_clone_spec_legacy_record(self):
        destination = Keypair().pubkey()
        spec = clone_spec(NftRecord(mint=Keypair().pubkey()), destination)

        self.assertEqual(spec.name, "")
        self.assertEqual(spec.uri, "")
        self.assertEqual(spec.creators, ())
        self.assertIsNone(spec.collection)
        self.assertIsNone(spec.max_supply)

    async def test_clone_nft(self):
        source_client = unittest.mock.Mock(spec=MintingClient)
        source_client.find_by_mint.return_value = self.record
        destination_client = unittest.mock.Mock(spec=MintingClient)
        destination_client.create.return_value = Keypair().pubkey()
        destination = Keypair().pubkey()

        mint = await clone_nft(source_client, destination_client, self.record.mint, destination)

        source_client.find_by_mint.assert_awaited_once_with(self.record.mint)
        source_client.create.assert_not_awaited()
        destination_client.upload_metadata.assert_not_awaited()
        created = destination_client.create.call_args.args[0]
        self.assertEqual(created.token_owner, destination)
        self.assertIsInstance(mint, Pubkey)


if __name__ == "__main__":
    unittest.main()
