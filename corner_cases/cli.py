# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Command-line interface for minting corner-case NFTs.

Supported Commands:
- create: Mint the whole corner-case catalogue into a destination wallet
- case: Mint a single catalogue entry
- clone: Copy an existing NFT (best effort, unverified) into a destination
- dust: Send a destination just enough SOL for a number of transactions
- cases: List the catalogue

Examples:
    Mint every corner case on devnet::

        python -m corner_cases.cli create <destination> --keypair ./id.json

    Mint one case through a private RPC endpoint::

        python -m corner_cases.cli case own-creator <destination> \
            --keypair ./id.json \
            --url https://devnet.helius-rpc.com/?api-key=...

    Clone a mainnet NFT into a devnet wallet::

        python -m corner_cases.cli clone <source mint> <destination> \
            --keypair ./id.json \
            --source-url https://mainnet.helius-rpc.com/?api-key=...

    Fund a wallet for ten transactions::

        python -m corner_cases.cli dust <destination> 10 --keypair ./id.json

Exit Status:
    0 when every job succeeded (or the destination was already funded), 1 when
    any job or single command failed, 2 for invalid arguments or configuration.

Requirements:
    - metaboss installed and available in PATH or specified via METABOSS_PATH
      (not needed for ``dust`` and ``cases``)
    - Keypair file as written by ``solana-keygen`` (JSON array of 64 bytes)
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
import tempfile
import unittest
import unittest.mock
from typing import Any, Dict, List, Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .cases import CASES, catalogue
from .clone import clone_nft
from .config import (
    JOB_TIMEOUT_SECONDS,
    RPC_URL,
    SOURCE_RPC_URL,
    STAGGER_SECONDS,
    NetworkContext,
)
from .dust import AlreadyFunded, dust_address
from .job_runner import (
    DEFAULT_STAGGER_SECONDS,
    JobFailure,
    JobOutcome,
    JobSuccess,
    run_jobs,
)
from .keypair import load_keypair, parse_pubkey, store_keypair
from .metaboss_client import MetabossClient, MetabossWrapper, MetadataUploader
from .nft import Creator
from .report import format_outcomes, has_failures
from .rpc_client import RpcClient
from .token_metadata import MetadataAccount, metadata_address


def address(value: str) -> Pubkey:
    try:
        return parse_pubkey(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def seconds(value: str) -> float:
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {value!r}") from None
    if result < 0:
        raise argparse.ArgumentTypeError(f"seconds must not be negative: {value!r}")
    return result


def optional_seconds(value: str) -> Optional[float]:
    if value == "":
        return None
    return seconds(value)


async def create_nfts(
    destination: Pubkey,
    context: NetworkContext,
    case_ids: Optional[Sequence[str]] = None,
    stagger: float = DEFAULT_STAGGER_SECONDS,
    timeout: Optional[float] = None,
) -> List[JobOutcome]:
    """Mint the requested catalogue entries (all when ``case_ids`` is None)."""
    jobs = catalogue(destination, context, case_ids)
    rpc_client = RpcClient(context.url)
    uploader = MetadataUploader()
    try:
        client = MetabossClient(context, rpc_client, uploader)
        return await run_jobs(
            [(job.display_name, job.thunk(client)) for job in jobs],
            stagger=stagger,
            timeout=timeout,
        )
    finally:
        await uploader.close()
        await rpc_client.close()


async def clone(
    source_mint: Pubkey,
    destination: Pubkey,
    context: NetworkContext,
    source_url: str,
) -> Pubkey:
    source_rpc_client = RpcClient(source_url)
    rpc_client = RpcClient(context.url)
    uploader = MetadataUploader()
    try:
        source_client = MetabossClient(
            dataclasses.replace(context, url=source_url), source_rpc_client, uploader
        )
        destination_client = MetabossClient(context, rpc_client, uploader)
        return await clone_nft(source_client, destination_client, source_mint, destination)
    finally:
        await uploader.close()
        await rpc_client.close()
        await source_rpc_client.close()


async def dust(destination: Pubkey, transaction_count: int, context: NetworkContext) -> int:
    rpc_client = RpcClient(context.url)
    try:
        return await dust_address(rpc_client, context.keypair, destination, transaction_count)
    finally:
        await rpc_client.close()


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-k",
        "--keypair",
        help="Path to the operator keypair (JSON secret key array). Pays all fees.",
        type=str,
    )
    common.add_argument("-u", "--url", help="RPC URL", type=str, default=RPC_URL)
    common.add_argument(
        "--stagger",
        help="Seconds between job launches",
        type=seconds,
        default=STAGGER_SECONDS,
    )
    common.add_argument(
        "--timeout",
        help="Per-job deadline in seconds (default: none)",
        type=optional_seconds,
        default=JOB_TIMEOUT_SECONDS,
    )
    common.add_argument("-v", "--verbose", help="Log progress", action="store_true")

    parser = argparse.ArgumentParser(description="Mint corner-case NFTs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser(
        "create",
        parents=[common],
        help="Mints a bunch of corner-case NFTs into the destination address",
    )
    create.add_argument("destination", type=address)

    case = subparsers.add_parser(
        "case", parents=[common], help="Mints a single corner case"
    )
    case.add_argument("case_id", choices=list(CASES))
    case.add_argument("destination", type=address)

    clone_parser = subparsers.add_parser(
        "clone",
        parents=[common],
        help="Copies an existing NFT into the destination address (unverified)",
    )
    clone_parser.add_argument("source_mint", type=address)
    clone_parser.add_argument("destination", type=address)
    clone_parser.add_argument(
        "--source-url",
        help="RPC URL to read the source NFT from",
        type=str,
        default=SOURCE_RPC_URL,
    )

    dust_parser = subparsers.add_parser(
        "dust",
        parents=[common],
        help="Sends the destination enough SOL for a number of transactions",
    )
    dust_parser.add_argument("destination", type=address)
    dust_parser.add_argument("number_of_transactions", type=int)

    subparsers.add_parser("cases", help="Lists the corner-case catalogue")
    return parser


async def main(args: List[str]) -> int:
    """Parse ``args``, run the command and return the process exit status."""
    parser = build_parser()
    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.INFO if getattr(parsed_args, "verbose", False) else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    if parsed_args.command == "cases":
        placeholder = NetworkContext(Keypair(), RPC_URL, "")
        for case_id, entry in CASES.items():
            print(f"{case_id}: {len(entry(Keypair().pubkey(), placeholder))} job(s)")
        return 0

    if parsed_args.keypair is None:
        parser.error("Missing required argument '--keypair'")
    try:
        keypair = load_keypair(parsed_args.keypair)
    except FileNotFoundError:
        parser.error(f"Keypair file not found: {parsed_args.keypair}")
    except Exception as e:
        parser.error(f"Failed to load keypair: {e}")
    context = NetworkContext(keypair, parsed_args.url, parsed_args.keypair)

    if parsed_args.command == "dust":
        if parsed_args.number_of_transactions < 0:
            parser.error("number_of_transactions must not be negative")
        try:
            amount = await dust(
                parsed_args.destination, parsed_args.number_of_transactions, context
            )
        except AlreadyFunded as e:
            print(f"Destination already has SOL! {e}")
            return 0
        except Exception as e:
            logging.debug("dust failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Successfully dusted {amount} into {parsed_args.destination}")
        return 0

    if not MetabossWrapper.does_cli_exist():
        parser.error(
            "Missing metaboss. Please install it or export its path to METABOSS_PATH environment variable."
        )

    if parsed_args.command == "clone":
        try:
            mint = await clone(
                parsed_args.source_mint,
                parsed_args.destination,
                context,
                parsed_args.source_url,
            )
        except Exception as e:
            logging.debug("clone failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Successfully cloned {parsed_args.source_mint} into {mint}")
        return 0

    case_ids = [parsed_args.case_id] if parsed_args.command == "case" else None
    print(
        f"Minting corner case NFTs into {parsed_args.destination} via {parsed_args.url}"
    )
    outcomes = await create_nfts(
        parsed_args.destination,
        context,
        case_ids,
        stagger=parsed_args.stagger,
        timeout=parsed_args.timeout,
    )
    print(format_outcomes(outcomes))
    return 1 if has_failures(outcomes) else 0


def run():
    sys.exit(asyncio.run(main(sys.argv[1:])))


class Test(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.keypair = Keypair()
        (handle, self.keypair_path) = tempfile.mkstemp(suffix=".json")
        os.close(handle)
        store_keypair(self.keypair, self.keypair_path)
        self.addCleanup(os.unlink, self.keypair_path)
        self.destination = str(Keypair().pubkey())

    def _patch(self, target: str, *args, **kwargs):
        patcher = unittest.mock.patch(target, *args, **kwargs)
        mock = patcher.start()
        self.addCleanup(patcher.stop)
        return mock

    async def test_invalid_destination(self):
        with self.assertRaises(SystemExit) as context:
            await main(["create", "not-an-address", "--keypair", self.keypair_path])
        self.assertEqual(context.exception.code, 2)

    async def test_missing_keypair(self):
        with self.assertRaises(SystemExit) as context:
            await main(["create", self.destination])
        self.assertEqual(context.exception.code, 2)

    async def test_unreadable_keypair(self):
        with self.assertRaises(SystemExit) as context:
            await main(["create", self.destination, "--keypair", "/nonexistent.json"])
        self.assertEqual(context.exception.code, 2)

    async def test_unknown_case(self):
        with self.assertRaises(SystemExit) as context:
            await main(["case", "nope", self.destination, "--keypair", self.keypair_path])
        self.assertEqual(context.exception.code, 2)

    async def test_case_runs_selected_entry(self):
        self._patch("corner_cases.cli.MetabossWrapper.does_cli_exist", return_value=True)
        create_nfts_mock = self._patch(
            "corner_cases.cli.create_nfts",
            return_value=[JobSuccess("NFT with own unverified creator", "Mint111")],
        )

        with unittest.mock.patch("builtins.print"):
            status = await main(
                [
                    "case",
                    "own-creator",
                    self.destination,
                    "--keypair",
                    self.keypair_path,
                    "--stagger",
                    "0.5",
                ]
            )

        self.assertEqual(status, 0)
        (destination, context, case_ids) = create_nfts_mock.call_args.args
        self.assertEqual(str(destination), self.destination)
        self.assertEqual(context.keypair.pubkey(), self.keypair.pubkey())
        self.assertEqual(case_ids, ["own-creator"])
        self.assertEqual(create_nfts_mock.call_args.kwargs["stagger"], 0.5)

    async def test_create_fails_when_any_job_fails(self):
        self._patch("corner_cases.cli.MetabossWrapper.does_cli_exist", return_value=True)
        self._patch(
            "corner_cases.cli.create_nfts",
            return_value=[JobSuccess("a", "Mint111"), JobFailure("b", "rpc unavailable")],
        )

        with unittest.mock.patch("builtins.print"):
            status = await main(["create", self.destination, "--keypair", self.keypair_path])

        self.assertEqual(status, 1)

    async def test_missing_metaboss(self):
        self._patch("corner_cases.cli.MetabossWrapper.does_cli_exist", return_value=False)
        with self.assertRaises(SystemExit) as context:
            await main(["create", self.destination, "--keypair", self.keypair_path])
        self.assertEqual(context.exception.code, 2)

    async def test_dust_already_funded_exits_zero(self):
        self._patch(
            "corner_cases.cli.dust_address",
            side_effect=AlreadyFunded(Keypair().pubkey(), 10_000, 5000),
        )
        with unittest.mock.patch("builtins.print") as printed:
            status = await main(
                ["dust", self.destination, "1", "--keypair", self.keypair_path]
            )
        self.assertEqual(status, 0)
        self.assertIn("already has SOL", printed.call_args.args[0])

    async def test_dust(self):
        dust_mock = self._patch("corner_cases.cli.dust_address", return_value=15_000)
        with unittest.mock.patch("builtins.print"):
            status = await main(
                ["dust", self.destination, "3", "--keypair", self.keypair_path]
            )
        self.assertEqual(status, 0)
        (_, payer, destination, count) = dust_mock.call_args.args
        self.assertEqual(payer.pubkey(), self.keypair.pubkey())
        self.assertEqual(str(destination), self.destination)
        self.assertEqual(count, 3)

    async def test_malformed_timing_settings(self):
        self._patch("corner_cases.cli.MetabossWrapper.does_cli_exist", return_value=True)
        for (setting, value) in [
            ("STAGGER_SECONDS", "soon"),
            ("JOB_TIMEOUT_SECONDS", "later"),
            ("JOB_TIMEOUT_SECONDS", "-1"),
        ]:
            with unittest.mock.patch(f"corner_cases.cli.{setting}", value):
                with self.assertRaises(SystemExit) as context:
                    await main(["create", self.destination, "--keypair", self.keypair_path])
                self.assertEqual(context.exception.code, 2)

    async def test_timing_settings_from_environment(self):
        self._patch("corner_cases.cli.MetabossWrapper.does_cli_exist", return_value=True)
        self._patch("corner_cases.cli.STAGGER_SECONDS", "0.25")
        self._patch("corner_cases.cli.JOB_TIMEOUT_SECONDS", "90")
        create_nfts_mock = self._patch("corner_cases.cli.create_nfts", return_value=[])

        with unittest.mock.patch("builtins.print"):
            await main(["create", self.destination, "--keypair", self.keypair_path])

        self.assertEqual(create_nfts_mock.call_args.kwargs["stagger"], 0.25)
        self.assertEqual(create_nfts_mock.call_args.kwargs["timeout"], 90.0)

    async def test_create_nfts_runs_whole_catalogue(self):
        client = unittest.mock.Mock(spec=MetabossClient)
        mints: Dict[str, Pubkey] = {}

        def create(spec):
            mints[spec.display_name] = Keypair().pubkey()
            return mints[spec.display_name]

        client.upload_metadata.return_value = "https://gw/ipfs/cid"
        client.create.side_effect = create
        client.print_new_edition.side_effect = lambda mint, owner: Keypair().pubkey()
        client.verify_creator.return_value = None
        client.verify_collection.return_value = None
        self._patch("corner_cases.cli.MetabossClient", return_value=client)
        context = NetworkContext(self.keypair, "http://localhost:8899", self.keypair_path)

        outcomes = await create_nfts(Pubkey.from_string(self.destination), context, stagger=0)

        self.assertEqual(len(outcomes), 18)
        self.assertTrue(all(isinstance(outcome, JobSuccess) for outcome in outcomes))
        collection_case = {
            "My first Collection NFT",
            "NFT with unverified collection",
            "NFT with verified collection",
        }
        created = [call.args[0].display_name for call in client.create.call_args_list]
        self.assertEqual(len([name for name in created if name in collection_case]), 3)
        (master, owner) = client.print_new_edition.call_args.args
        self.assertEqual(master, mints["Master Edition NFT w/ 5 supply"])
        self.assertEqual(str(owner), self.destination)

    async def test_clone_reads_source_accounts(self):
        self._patch("corner_cases.cli.MetabossWrapper.does_cli_exist", return_value=True)
        source_mint = Keypair().pubkey()
        new_mint = Keypair().pubkey()
        account = MetadataAccount(
            update_authority=Keypair().pubkey(),
            mint=source_mint,
            name="Orcanaut #42",
            symbol="ORCA",
            uri="https://arweave.net/orcanaut-42",
            seller_fee_basis_points=500,
            creators=(Creator(Keypair().pubkey(), 100, True),),
        )
        read_from: List[str] = []
        written: Dict[str, Any] = {}

        async def fake_account_info(rpc_client, address):
            read_from.append(rpc_client.url)
            if address == metadata_address(source_mint):
                return account.to_bytes()
            return None

        async def fake_run(args):
            with open(args[args.index("--nft-data-file") + 1]) as file:
                written.update(json.load(file))
            return f"Mint account: {new_mint}"

        self._patch(
            "corner_cases.metaboss_client.RpcClient.get_account_info",
            autospec=True,
            side_effect=fake_account_info,
        )
        self._patch("corner_cases.metaboss_client.MetadataUploader.download", return_value={})
        run = self._patch("corner_cases.cli.MetabossWrapper.run", side_effect=fake_run)

        with unittest.mock.patch("builtins.print"):
            status = await main(
                ["clone", str(source_mint), self.destination, "--keypair", self.keypair_path]
            )

        self.assertEqual(status, 0)
        self.assertEqual(set(read_from), {SOURCE_RPC_URL})
        args = run.call_args.args[0]
        self.assertEqual(args[args.index("--rpc") + 1], RPC_URL)
        self.assertEqual(args[args.index("--receiver") + 1], self.destination)
        self.assertEqual(written["uri"], "https://arweave.net/orcanaut-42")
        self.assertFalse(written["creators"][0]["verified"])

    async def test_clone_error_exits_one(self):
        self._patch("corner_cases.cli.MetabossWrapper.does_cli_exist", return_value=True)
        self._patch("corner_cases.cli.clone", side_effect=RuntimeError("rpc unavailable"))
        with unittest.mock.patch("builtins.print"):
            status = await main(
                [
                    "clone",
                    str(Keypair().pubkey()),
                    self.destination,
                    "--keypair",
                    self.keypair_path,
                ]
            )
        self.assertEqual(status, 1)


if __name__ == "__main__":
    run()
