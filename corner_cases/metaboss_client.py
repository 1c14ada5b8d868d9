# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Minting SDK implementation backed by the ``metaboss`` command-line tool.

``metaboss`` builds and signs the Token Metadata instructions; this module only
assembles its arguments, runs it as a subprocess, and reads the mint address
back from its output. Off-chain metadata is uploaded separately through an
NFT.Storage-compatible HTTP endpoint, and existing NFTs are read from their
Token Metadata accounts, which any RPC endpoint serves.

Requirements:
    - ``metaboss`` installed and available in PATH, or its location exported
      as METABOSS_PATH
    - An upload token in NFT_STORAGE_TOKEN for jobs that upload metadata

Examples:
    Mint one NFT::

        context = NetworkContext(load_keypair(path), RPC_URL, path)
        rpc_client = RpcClient(context.url)
        client = MetabossClient(context, rpc_client, MetadataUploader())
        mint = await client.create(spec)
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import re
import shutil
import tempfile
import unittest
import unittest.mock
from typing import Any, Dict, Iterator, List, Optional

import httpx
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from . import config
from .config import NetworkContext
from .dust import AlreadyFunded, dust_address
from .keypair import temporary_keypair_file
from .metadata import Metadata
from .nft import CollectionRef, Creator, NftJobSpec, NftRecord
from .rpc_client import ApiError, ClientConfig, RpcClient
from .token_metadata import (
    MetadataAccount,
    NftNotFound,
    master_edition_address,
    master_edition_max_supply,
    metadata_address,
)

# metaboss prints e.g. "Mint account: <address>" or "Edition mint: <address>".
MINT_OUTPUT_PATTERN = re.compile(
    r"(?:mint(?: account)?|edition)[^:\n]*:\s*([1-9A-HJ-NP-Za-km-z]{32,44})",
    re.IGNORECASE,
)


class MetabossError(Exception):
    """A metaboss invocation exited with a non-zero status"""

    command: List[str]
    returncode: int
    stderr: str

    def __init__(self, command: List[str], returncode: int, stderr: str):
        super().__init__(
            f"metaboss {' '.join(command[:2])} exited with {returncode}: {stderr.strip()}"
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class UploadError(ApiError):
    """The metadata upload endpoint rejected the request"""


class MetabossWrapper:
    """Thin asynchronous wrapper around the metaboss executable."""

    @staticmethod
    def path() -> str:
        return config.METABOSS_PATH

    @staticmethod
    def does_cli_exist() -> bool:
        return shutil.which(MetabossWrapper.path()) is not None

    @staticmethod
    async def run(args: List[str]) -> str:
        """Run ``metaboss <args>`` and return its standard output.

        :raises MetabossError: If the process exits with a non-zero status.
        """
        logging.debug(f"Running metaboss {' '.join(args)}")
        process = await asyncio.create_subprocess_exec(
            MetabossWrapper.path(),
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        (stdout, stderr) = await process.communicate()
        if process.returncode != 0:
            raise MetabossError(args, process.returncode, stderr.decode())
        return stdout.decode()

    @staticmethod
    def parse_mint(output: str) -> Pubkey:
        """Return the last mint address printed in ``output``."""
        matches = MINT_OUTPUT_PATTERN.findall(output)
        if not matches:
            raise MetabossError([], 0, f"no mint address in output: {output!r}")
        return Pubkey.from_string(matches[-1])


class MetadataUploader:
    """Uploads off-chain JSON to an NFT.Storage-compatible endpoint."""

    client: httpx.AsyncClient
    upload_url: str
    gateway_url: str

    def __init__(
        self,
        upload_url: str = config.UPLOAD_URL,
        gateway_url: str = config.GATEWAY_URL,
        auth_token: Optional[str] = config.UPLOAD_AUTH_TOKEN,
    ):
        self.upload_url = upload_url
        self.gateway_url = gateway_url.rstrip("/")
        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(60.0), headers=headers)

    async def close(self):
        await self.client.aclose()

    async def upload(self, metadata: Dict[str, Any]) -> str:
        """Upload ``metadata`` and return its gateway URI."""
        response = await self.client.post(
            self.upload_url,
            content=json.dumps(metadata).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        if response.status_code >= 400:
            raise UploadError(response.text, response.status_code)
        cid = response.json()["value"]["cid"]
        return f"{self.gateway_url}/{cid}"

    async def download(self, uri: str) -> Dict[str, Any]:
        """Fetch the off-chain JSON an NFT points at."""
        response = await self.client.get(uri, follow_redirects=True)
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        return response.json()


@contextlib.contextmanager
def nft_data_file(spec: NftJobSpec) -> Iterator[str]:
    """Write the metaboss ``--nft-data-file`` for ``spec``."""
    data: Dict[str, Any] = {
        "name": spec.name,
        "symbol": spec.symbol,
        "uri": spec.uri or "",
        "seller_fee_basis_points": spec.seller_fee_basis_points,
        "creators": [
            {"address": str(creator.address), "verified": False, "share": creator.share}
            for creator in spec.creators
        ]
        or None,
    }
    if spec.collection is not None:
        data["collection"] = {"key": str(spec.collection.address), "verified": False}
    (handle, path) = tempfile.mkstemp(suffix=".json")
    try:
        with os.fdopen(handle, "w") as file:
            json.dump(data, file)
        yield path
    finally:
        os.unlink(path)


class MetabossClient:
    """:class:`corner_cases.nft.MintingClient` driven by metaboss.

    The operator keypair in ``context`` pays for and signs every instruction
    except creator verification, which the creator signs itself.
    """

    context: NetworkContext
    rpc_client: RpcClient
    uploader: MetadataUploader

    def __init__(
        self,
        context: NetworkContext,
        rpc_client: RpcClient,
        uploader: MetadataUploader,
    ):
        self.context = context
        self.rpc_client = rpc_client
        self.uploader = uploader

    def _signer_args(self, keypair_path: Optional[str] = None) -> List[str]:
        return [
            "--keypair",
            keypair_path or self.context.keypair_path,
            "--rpc",
            self.context.url,
        ]

    async def upload_metadata(self, metadata: Dict[str, Any]) -> str:
        uri = await self.uploader.upload(metadata)
        logging.info(f"Uploaded metadata for {metadata.get('name')!r} to {uri}")
        return uri

    async def create(self, spec: NftJobSpec) -> Pubkey:
        with nft_data_file(spec) as path:
            args = ["mint", "one", *self._signer_args(), "--nft-data-file", path]
            if spec.token_owner is not None:
                args += ["--receiver", str(spec.token_owner)]
            if not spec.is_mutable:
                args.append("--immutable")
            if spec.max_supply is not None:
                args += ["--max-editions", str(spec.max_supply)]
            if spec.is_collection:
                args.append("--sized")
            output = await MetabossWrapper.run(args)
        return MetabossWrapper.parse_mint(output)

    async def verify_creator(self, mint_address: Pubkey, creator: Keypair) -> None:
        # The creator pays for its own signing transaction.
        try:
            await dust_address(self.rpc_client, self.context.keypair, creator.pubkey(), 1)
        except AlreadyFunded:
            pass
        with temporary_keypair_file(creator) as path:
            await MetabossWrapper.run(
                ["sign", "one", *self._signer_args(path), "--account", str(mint_address)]
            )

    async def verify_collection(
        self, mint_address: Pubkey, collection_mint_address: Pubkey
    ) -> None:
        await MetabossWrapper.run(
            [
                "collections",
                "verify",
                *self._signer_args(),
                "--collection-mint",
                str(collection_mint_address),
                "--nft-mint",
                str(mint_address),
            ]
        )

    async def print_new_edition(self, original_mint: Pubkey, new_owner: Pubkey) -> Pubkey:
        output = await MetabossWrapper.run(
            [
                "mint",
                "editions",
                *self._signer_args(),
                "--account",
                str(original_mint),
                "--next-editions",
                "1",
                "--receiver",
                str(new_owner),
            ]
        )
        return MetabossWrapper.parse_mint(output)

    async def find_by_mint(self, mint_address: Pubkey) -> NftRecord:
        """Read an NFT from its metadata and master edition accounts.

        The off-chain JSON is loaded on a best-effort basis: a dead or
        malformed URI leaves ``json`` empty, the on-chain fields are enough to
        clone from.

        :raises NftNotFound: If the mint has no metadata account.
        """
        data = await self.rpc_client.get_account_info(metadata_address(mint_address))
        if data is None:
            raise NftNotFound(mint_address)
        account = MetadataAccount.from_bytes(data)

        max_supply = None
        edition = await self.rpc_client.get_account_info(
            master_edition_address(mint_address)
        )
        if edition is not None:
            max_supply = master_edition_max_supply(edition)

        metadata: Dict[str, Any] = {}
        if account.uri:
            try:
                metadata = await self.uploader.download(account.uri)
            except (httpx.HTTPError, ApiError, ValueError) as e:
                logging.warning(f"Could not load metadata JSON from {account.uri}: {e}")
        return account.to_record(metadata, max_supply)


class Test(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.keypair = Keypair()
        self.context = NetworkContext(self.keypair, "http://localhost:8899", "/tmp/id.json")
        self.rpc_client = RpcClient(self.context.url, ClientConfig(http2=False))
        self.uploader = MetadataUploader("http://localhost/upload", "https://gw/ipfs/", None)
        self.client = MetabossClient(self.context, self.rpc_client, self.uploader)

    async def asyncTearDown(self):
        await self.rpc_client.close()
        await self.uploader.close()

    def test_parse_mint(self):
        mint = Keypair().pubkey()
        output = f"Tx id: 4sGjMW1sUnHzSxGspuhpqLDx6wiyjNtZ\nMint account: {mint}\n"
        self.assertEqual(MetabossWrapper.parse_mint(output), mint)
        with self.assertRaises(MetabossError):
            MetabossWrapper.parse_mint("nothing useful")

    async def test_create_arguments(self):
        mint = Keypair().pubkey()
        owner = Keypair().pubkey()
        creator = Keypair().pubkey()
        collection = Keypair().pubkey()
        spec = NftJobSpec(
            "Immutable NFT",
            name="Immutable NFT",
            token_owner=owner,
            creators=(Creator(creator, 100),),
            collection=CollectionRef(collection, verify=True),
            is_mutable=False,
            max_supply=5,
            uri="https://gw/ipfs/cid",
        )
        written: Dict[str, Any] = {}

        async def fake_run(args):
            with open(args[args.index("--nft-data-file") + 1]) as file:
                written.update(json.load(file))
            return f"Mint account: {mint}"

        with unittest.mock.patch.object(MetabossWrapper, "run", side_effect=fake_run) as run:
            self.assertEqual(await self.client.create(spec), mint)

        args = run.call_args.args[0]
        self.assertEqual(args[:2], ["mint", "one"])
        self.assertEqual(args[args.index("--receiver") + 1], str(owner))
        self.assertEqual(args[args.index("--max-editions") + 1], "5")
        self.assertEqual(args[args.index("--keypair") + 1], "/tmp/id.json")
        self.assertIn("--immutable", args)
        self.assertEqual(written["uri"], "https://gw/ipfs/cid")
        self.assertEqual(
            written["creators"], [{"address": str(creator), "verified": False, "share": 100}]
        )
        self.assertEqual(written["collection"], {"key": str(collection), "verified": False})

    async def test_create_mutable_without_owner(self):
        mint = Keypair().pubkey()
        with unittest.mock.patch.object(
            MetabossWrapper, "run", return_value=f"Mint account: {mint}"
        ) as run:
            await self.client.create(NftJobSpec("plain", uri=""))

        args = run.call_args.args[0]
        self.assertNotIn("--receiver", args)
        self.assertNotIn("--immutable", args)
        self.assertNotIn("--max-editions", args)
        self.assertNotIn("--sized", args)

    async def test_verify_creator_funds_then_signs(self):
        creator = Keypair()
        mint = Keypair().pubkey()
        seen_keypair: List[str] = []

        async def fake_run(args):
            with open(args[args.index("--keypair") + 1]) as file:
                seen_keypair.append(json.load(file))
            return ""

        with unittest.mock.patch(
            "corner_cases.metaboss_client.dust_address",
            side_effect=AlreadyFunded(creator.pubkey(), 10, 5),
        ) as dust, unittest.mock.patch.object(
            MetabossWrapper, "run", side_effect=fake_run
        ) as run:
            await self.client.verify_creator(mint, creator)

        dust.assert_awaited_once_with(self.rpc_client, self.keypair, creator.pubkey(), 1)
        args = run.call_args.args[0]
        self.assertEqual(args[:2], ["sign", "one"])
        self.assertEqual(args[args.index("--account") + 1], str(mint))
        self.assertEqual(seen_keypair, [list(bytes(creator))])

    async def test_print_new_edition(self):
        master = Keypair().pubkey()
        owner = Keypair().pubkey()
        edition = Keypair().pubkey()
        with unittest.mock.patch.object(
            MetabossWrapper, "run", return_value=f"Edition mint: {edition}"
        ) as run:
            self.assertEqual(await self.client.print_new_edition(master, owner), edition)

        args = run.call_args.args[0]
        self.assertEqual(args[args.index("--account") + 1], str(master))
        self.assertEqual(args[args.index("--receiver") + 1], str(owner))

    async def test_upload_metadata(self):
        requests: List[httpx.Request] = []

        def handle(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "value": {"cid": "bafyabc"}})

        await self.uploader.close()
        self.uploader.client = httpx.AsyncClient(transport=httpx.MockTransport(handle))

        uri = await self.client.upload_metadata({"name": "No image"})

        self.assertEqual(uri, "https://gw/ipfs/bafyabc")
        self.assertEqual(json.loads(requests[0].content), {"name": "No image"})

    async def test_upload_error(self):
        await self.uploader.close()
        self.uploader.client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(401, text="no"))
        )
        with self.assertRaises(UploadError):
            await self.uploader.upload({"name": "x"})

    async def test_create_collection_parent_is_sized(self):
        mint = Keypair().pubkey()
        with unittest.mock.patch.object(
            MetabossWrapper, "run", return_value=f"Mint account: {mint}"
        ) as run:
            await self.client.create(NftJobSpec("Collection", uri="", is_collection=True))

        self.assertIn("--sized", run.call_args.args[0])

    async def test_find_by_mint(self):
        mint = Keypair().pubkey()
        creator = Keypair().pubkey()
        account = MetadataAccount(
            update_authority=Keypair().pubkey(),
            mint=mint,
            name="Orcanaut #42",
            symbol="ORCA",
            uri="https://arweave.net/orcanaut-42",
            seller_fee_basis_points=500,
            creators=(Creator(creator, 100, True),),
        )
        edition = bytes([6]) + (1).to_bytes(8, "little") + b"\x01" + (10).to_bytes(8, "little")
        accounts = {metadata_address(mint): account.to_bytes(), master_edition_address(mint): edition}

        async def fake_account_info(address):
            return accounts.get(address)

        with unittest.mock.patch.object(
            self.rpc_client, "get_account_info", side_effect=fake_account_info
        ), unittest.mock.patch.object(
            self.uploader, "download", return_value={"name": "Orcanaut #42"}
        ) as download:
            record = await self.client.find_by_mint(mint)

        download.assert_awaited_once_with("https://arweave.net/orcanaut-42")
        self.assertEqual(record.mint, mint)
        self.assertEqual(record.name, "Orcanaut #42")
        self.assertEqual(record.json, {"name": "Orcanaut #42"})
        self.assertEqual(record.creators, (Creator(creator, 100, True),))
        self.assertEqual(record.max_supply, 10)

    async def test_find_by_mint_tolerates_dead_uri(self):
        mint = Keypair().pubkey()
        account = MetadataAccount(Keypair().pubkey(), mint, "Old", "", "https://gone", 0)

        async def fake_account_info(address):
            return account.to_bytes() if address == metadata_address(mint) else None

        with unittest.mock.patch.object(
            self.rpc_client, "get_account_info", side_effect=fake_account_info
        ), unittest.mock.patch.object(
            self.uploader, "download", side_effect=ApiError("not found", 404)
        ):
            record = await self.client.find_by_mint(mint)

        self.assertEqual(record.name, "Old")
        self.assertEqual(record.json, {})
        self.assertIsNone(record.max_supply)

    async def test_find_by_mint_missing_account(self):
        with unittest.mock.patch.object(
            self.rpc_client, "get_account_info", return_value=None
        ):
            with self.assertRaises(NftNotFound):
                await self.client.find_by_mint(Keypair().pubkey())


if __name__ == "__main__":
    unittest.main()
