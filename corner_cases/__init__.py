# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Corner-case NFT minter for Solana test networks.

Mints a fixed catalogue of awkward NFTs (no image, mismatched names,
unverified creators, extra-long descriptions, animations, immutable metadata,
limited editions, ...) into a wallet so NFT galleries and marketplaces can be
checked against them.

Modules:
- **cases**: The catalogue of corner cases
- **jobs**: Create/verify/print steps behind each case
- **job_runner**: Staggered, failure-isolated batch execution
- **clone**: Best-effort copy of an existing NFT
- **dust**: Funding helper for fresh wallets
- **metaboss_client**: Minting SDK backed by the metaboss CLI
- **rpc_client**: Async Solana JSON-RPC client
- **token_metadata**: Decoding of Token Metadata accounts (with **borsh**)
- **cli**: Command-line entry point

Quick Start::

    python -m corner_cases.cli create <destination> --keypair ~/.config/solana/id.json
"""
