# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
NFT descriptions shared by the catalogue, the cloning job and the minting SDK.

The module holds plain data: what an NFT should look like before it is minted
(:class:`NftJobSpec`) and what an existing NFT looks like when read back
(:class:`NftRecord`). :class:`MintingClient` is the seam to the minting SDK;
everything that actually talks to the network implements it.

Examples:
    Describe an NFT with one unverified creator::

        from solders.keypair import Keypair

        spec = NftJobSpec(
            display_name="NFT with unverified creator (1)",
            metadata_json={"name": "NFT with unverified creator (1)"},
            name="NFT with unverified creator (1)",
            token_owner=destination,
            creators=(Creator(Keypair().pubkey(), 100),),
        )
"""

from __future__ import annotations

import unittest
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from typing_extensions import Protocol

DEFAULT_NAME = "My NFT"
DEFAULT_SELLER_FEE_BASIS_POINTS = 200


@dataclass(frozen=True)
class Creator:
    """A creator entry. ``share`` is a percentage in [0, 100]; shares across
    creators are deliberately not required to sum to 100."""

    address: Pubkey
    share: int
    verified: bool = False

    def __post_init__(self):
        if not isinstance(self.share, int) or not 0 <= self.share <= 100:
            raise ValueError(f"Creator share must be an integer in [0, 100], got {self.share!r}")


@dataclass(frozen=True)
class CollectionRef:
    """Collection membership. On a spec ``verify`` asks for a verification step
    after creation; on a record it reports whether the membership is verified."""

    address: Pubkey
    verify: bool = False


@dataclass(frozen=True)
class NftJobSpec:
    """Everything needed to mint one NFT.

    Attributes:
        display_name: Label used in logs and the final summary.
        metadata_json: Off-chain JSON uploaded before minting.
        name: On-chain name. May differ from ``metadata_json["name"]``.
        token_owner: Wallet that receives the token. ``None`` keeps it with
            the operator.
        creators: Ordered creator list.
        collection: Collection membership, if any.
        is_mutable: Whether the update authority may change metadata later.
        max_supply: Print limit for a master edition. ``None`` means the NFT
            is not minted as a printable master.
        uri: Already-resolved metadata URI. ``None`` uploads ``metadata_json``
            first; an empty string mints with an empty URI.
        symbol: On-chain symbol.
        seller_fee_basis_points: Royalty in basis points.
        is_collection: Mint as a sized collection parent that other NFTs
            can be verified against.
    """

    display_name: str
    metadata_json: Dict[str, Any] = field(default_factory=dict)
    name: str = DEFAULT_NAME
    token_owner: Optional[Pubkey] = None
    creators: Tuple[Creator, ...] = ()
    collection: Optional[CollectionRef] = None
    is_mutable: bool = True
    max_supply: Optional[int] = None
    uri: Optional[str] = None
    symbol: str = ""
    seller_fee_basis_points: int = DEFAULT_SELLER_FEE_BASIS_POINTS
    is_collection: bool = False


@dataclass(frozen=True)
class NftRecord:
    """An existing NFT as read back from the chain.

    Fields missing from the source representation (older NFTs have no
    collection, no print supply, etc.) are left empty rather than failing.
    """

    mint: Pubkey
    name: str = ""
    symbol: str = ""
    uri: str = ""
    json: Dict[str, Any] = field(default_factory=dict)
    seller_fee_basis_points: int = 0
    creators: Tuple[Creator, ...] = ()
    collection: Optional[CollectionRef] = None
    is_mutable: bool = True
    max_supply: Optional[int] = None


class MintingClient(Protocol):
    """Operations the minting SDK provides. Every method talks to the network."""

    async def upload_metadata(self, metadata: Dict[str, Any]) -> str:
        ...

    async def create(self, spec: NftJobSpec) -> Pubkey:
        ...

    async def verify_creator(self, mint_address: Pubkey, creator: Keypair) -> None:
        ...

    async def verify_collection(
        self, mint_address: Pubkey, collection_mint_address: Pubkey
    ) -> None:
        ...

    async def print_new_edition(self, original_mint: Pubkey, new_owner: Pubkey) -> Pubkey:
        ...

    async def find_by_mint(self, mint_address: Pubkey) -> NftRecord:
        ...


class Test(unittest.TestCase):
    def test_creator_share_bounds(self):
        address = Keypair().pubkey()
        Creator(address, 0)
        Creator(address, 100)
        with self.assertRaises(ValueError):
            Creator(address, 101)
        with self.assertRaises(ValueError):
            Creator(address, -1)

    def test_spec_defaults(self):
        spec = NftJobSpec("plain")
        self.assertEqual(spec.name, DEFAULT_NAME)
        self.assertTrue(spec.is_mutable)
        self.assertFalse(spec.is_collection)
        self.assertIsNone(spec.max_supply)
        self.assertIsNone(spec.uri)
        self.assertEqual(spec.seller_fee_basis_points, 200)

    def test_record_defaults(self):
        record = NftRecord(Keypair().pubkey())
        self.assertEqual(record.name, "")
        self.assertEqual(record.creators, ())
        self.assertIsNone(record.collection)
        self.assertIsNone(record.max_supply)


if __name__ == "__main__":
    unittest.main()
