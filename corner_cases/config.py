# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Shared configuration for the corner-case minter.

Every setting can be overridden through the environment so the same commands
work against devnet, a local validator, or a paid RPC provider.

Environment Variables:
    CORNER_CASES_RPC_URL: RPC endpoint the NFTs are minted on.
    CORNER_CASES_SOURCE_RPC_URL: RPC endpoint ``clone`` reads from.
    CORNER_CASES_UPLOAD_URL: NFT.Storage-compatible upload endpoint.
    NFT_STORAGE_TOKEN: Bearer token for the upload endpoint.
    CORNER_CASES_GATEWAY_URL: Gateway prefix used to turn upload CIDs into URIs.
    METABOSS_PATH: Path to the ``metaboss`` executable.
    CORNER_CASES_STAGGER_SECONDS: Delay between job launches.
    CORNER_CASES_JOB_TIMEOUT: Optional per-job deadline in seconds.

The two timing settings are kept as the raw strings from the environment and
parsed by the command line, so a malformed value is reported like a bad flag.

Examples:
    Point every command at a local validator::

        export CORNER_CASES_RPC_URL=http://127.0.0.1:8899
        python -m corner_cases.cli create <destination> --keypair ./id.json
"""

import os
from dataclasses import dataclass

from solders.keypair import Keypair

# RPC endpoint NFTs are minted on
RPC_URL = os.getenv("CORNER_CASES_RPC_URL", "https://api.devnet.solana.com")

# RPC endpoint the clone command reads the source NFT from
SOURCE_RPC_URL = os.getenv(
    "CORNER_CASES_SOURCE_RPC_URL",
    "https://api.mainnet-beta.solana.com",
)

# Off-chain metadata storage
UPLOAD_URL = os.getenv("CORNER_CASES_UPLOAD_URL", "https://api.nft.storage/upload")
UPLOAD_AUTH_TOKEN = os.getenv("NFT_STORAGE_TOKEN")
GATEWAY_URL = os.getenv("CORNER_CASES_GATEWAY_URL", "https://nftstorage.link/ipfs")

METABOSS_PATH = os.getenv("METABOSS_PATH", "metaboss")

STAGGER_SECONDS = os.getenv("CORNER_CASES_STAGGER_SECONDS", "1.0")
JOB_TIMEOUT_SECONDS = os.getenv("CORNER_CASES_JOB_TIMEOUT")


@dataclass(frozen=True)
class NetworkContext:
    """Signer and network shared, read-only, by every job in one invocation.

    ``keypair_path`` is kept next to the loaded keypair because ``metaboss``
    takes the signer as a file path rather than as key material.
    """

    keypair: Keypair
    url: str
    keypair_path: str
