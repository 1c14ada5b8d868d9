# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
NFT jobs: a spec plus the follow-up steps that turn it into a corner case.

Most corner cases are a single create call. A few need more: a creator or
collection verification after the NFT exists, a limited edition printed from a
freshly minted master, or a collection that has to be minted before its
members. :class:`NftJob` sequences those steps; :func:`create_nft` is the one
creation path every job (and the cloning job) goes through.

A failure after the NFT was created raises :class:`JobStepError`, which keeps
the mint address so the summary can say "created X, but verification failed".
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import logging
import typing
import unittest
import unittest.mock
from dataclasses import dataclass, field
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .nft import CollectionRef, MintingClient, NftJobSpec

JobThunk = typing.Callable[[], typing.Awaitable[Pubkey]]


class JobStepError(Exception):
    """A step after creation failed; the NFT itself exists"""

    mint_address: Pubkey
    step: str

    def __init__(self, mint_address: Pubkey, step: str, cause: BaseException):
        super().__init__(f"created {mint_address} but {step} failed: {cause}")
        self.mint_address = mint_address
        self.step = step


async def create_nft(client: MintingClient, spec: NftJobSpec) -> Pubkey:
    """Upload the job's metadata unless it already has a URI, then mint it."""
    uri = spec.uri
    if uri is None:
        uri = await client.upload_metadata(spec.metadata_json)
    return await client.create(dataclasses.replace(spec, uri=uri))


async def _follow_up(mint_address: Pubkey, step: str, awaitable: typing.Awaitable):
    try:
        return await awaitable
    except Exception as e:
        raise JobStepError(mint_address, step, e) from e


@dataclass(eq=False)
class NftJob:
    """One catalogue job.

    Attributes:
        spec: What to mint.
        creator_signer: Creator that signs a verification after creation.
        collection_job: Job minting the collection this NFT belongs to. Its
            mint address replaces ``spec.collection`` at run time.
        verify_collection: Verify membership in ``collection_job``'s
            collection after creation.
        print_edition: Keep the minted master with the operator and print one
            edition to ``spec.token_owner``.

    The work is memoised: however many jobs await the same collection job, it
    mints once. :meth:`run` owns that work, so cancelling it (a timeout, say)
    cancels the minting too; :meth:`result` waits on behalf of another job and
    leaves the work running when the waiter is cancelled.
    """

    spec: NftJobSpec
    creator_signer: Optional[Keypair] = None
    collection_job: Optional[NftJob] = None
    verify_collection: bool = False
    print_edition: bool = False
    _task: Optional[asyncio.Future] = field(default=None, init=False, repr=False)

    @property
    def display_name(self) -> str:
        return self.spec.display_name

    def thunk(self, client: MintingClient) -> JobThunk:
        return functools.partial(self.run, client)

    def _start(self, client: MintingClient) -> asyncio.Future:
        if self._task is None:
            self._task = asyncio.ensure_future(self._execute(client))
        return self._task

    async def run(self, client: MintingClient) -> Pubkey:
        return await self._start(client)

    async def result(self, client: MintingClient) -> Pubkey:
        task = self._start(client)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise RuntimeError(f"{self.display_name!r} was cancelled") from None
            raise

    async def resolve_spec(self, client: MintingClient) -> NftJobSpec:
        if self.collection_job is None:
            return self.spec
        collection_mint = await self.collection_job.result(client)
        return dataclasses.replace(
            self.spec, collection=CollectionRef(collection_mint, self.verify_collection)
        )

    async def _execute(self, client: MintingClient) -> Pubkey:
        spec = await self.resolve_spec(client)

        if self.print_edition:
            master = await create_nft(client, dataclasses.replace(spec, token_owner=None))
            logging.info(f"Created master edition {master} for {self.display_name!r}")
            edition = await _follow_up(
                master,
                "edition printing",
                client.print_new_edition(master, spec.token_owner),
            )
            logging.info(f"Printed edition {edition} from {master}")
            return edition

        mint = await create_nft(client, spec)
        logging.info(f"Created {self.display_name!r}: {mint}")

        if self.creator_signer is not None:
            await _follow_up(
                mint,
                "creator verification",
                client.verify_creator(mint, self.creator_signer),
            )
        if spec.collection is not None and spec.collection.verify:
            await _follow_up(
                mint,
                "collection verification",
                client.verify_collection(mint, spec.collection.address),
            )
        return mint


class Test(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = unittest.mock.Mock(spec=MintingClient)
        self.client.upload_metadata.return_value = "https://gw/ipfs/cid"
        self.client.create.side_effect = lambda spec: Keypair().pubkey()
        self.client.print_new_edition.side_effect = lambda mint, owner: Keypair().pubkey()
        self.client.verify_creator.return_value = None
        self.client.verify_collection.return_value = None
        self.destination = Keypair().pubkey()

    async def test_create_uploads_metadata(self):
        spec = NftJobSpec("No image", {"name": "No image"}, "No image", self.destination)

        await create_nft(self.client, spec)

        self.client.upload_metadata.assert_awaited_once_with({"name": "No image"})
        created = self.client.create.call_args.args[0]
        self.assertEqual(created.uri, "https://gw/ipfs/cid")
        self.assertEqual(created.token_owner, self.destination)

    async def test_create_with_empty_uri_skips_upload(self):
        await create_nft(self.client, NftJobSpec("Missing", name="", uri=""))

        self.client.upload_metadata.assert_not_awaited()
        self.assertEqual(self.client.create.call_args.args[0].uri, "")

    async def test_creator_verified_after_create(self):
        mint = Keypair().pubkey()
        creator = Keypair()
        self.client.create.side_effect = None
        self.client.create.return_value = mint
        job = NftJob(NftJobSpec("verified", token_owner=self.destination), creator_signer=creator)

        self.assertEqual(await job.run(self.client), mint)

        names = [call[0] for call in self.client.mock_calls]
        self.assertLess(names.index("create"), names.index("verify_creator"))
        self.client.verify_creator.assert_awaited_once_with(mint, creator)

    async def test_verification_failure_keeps_mint(self):
        mint = Keypair().pubkey()
        self.client.create.side_effect = None
        self.client.create.return_value = mint
        self.client.verify_creator.side_effect = RuntimeError("missing signature")
        job = NftJob(NftJobSpec("verified"), creator_signer=Keypair())

        with self.assertRaises(JobStepError) as context:
            await job.run(self.client)

        self.assertEqual(context.exception.mint_address, mint)
        self.assertEqual(context.exception.step, "creator verification")

    async def test_shared_collection_minted_once(self):
        collection = NftJob(NftJobSpec("collection"))
        unverified = NftJob(NftJobSpec("unverified"), collection_job=collection)
        verified = NftJob(
            NftJobSpec("verified"), collection_job=collection, verify_collection=True
        )

        results = await asyncio.gather(
            collection.run(self.client),
            unverified.run(self.client),
            verified.run(self.client),
        )

        self.assertEqual(self.client.create.await_count, 3)
        collection_mint = results[0]
        member_specs = [call.args[0] for call in self.client.create.call_args_list[1:]]
        for spec in member_specs:
            self.assertEqual(spec.collection.address, collection_mint)
        self.client.verify_collection.assert_awaited_once_with(results[2], collection_mint)

    async def test_cancelling_run_cancels_work(self):
        finished = []

        async def slow_create(spec):
            await asyncio.sleep(0.3)
            finished.append(spec.display_name)
            return Keypair().pubkey()

        self.client.create.side_effect = slow_create
        job = NftJob(NftJobSpec("slow", uri=""))

        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(job.run(self.client), 0.05)
        await asyncio.sleep(0.35)

        self.assertEqual(self.client.create.await_count, 1)
        self.assertEqual(finished, [])

    async def test_cancelled_member_leaves_collection_running(self):
        release = asyncio.Event()

        async def gated_create(spec):
            await release.wait()
            return Keypair().pubkey()

        self.client.create.side_effect = gated_create
        collection = NftJob(NftJobSpec("collection", uri=""))
        member = NftJob(NftJobSpec("member", uri=""), collection_job=collection)

        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(member.run(self.client), 0.05)
        release.set()

        self.assertIsInstance(await collection.run(self.client), Pubkey)
        self.assertEqual(self.client.create.await_count, 1)

    async def test_member_fails_when_collection_cancelled(self):
        async def slow_create(spec):
            await asyncio.sleep(0.3)
            return Keypair().pubkey()

        self.client.create.side_effect = slow_create
        collection = NftJob(NftJobSpec("collection", uri=""))
        member = NftJob(NftJobSpec("member", uri=""), collection_job=collection)

        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(collection.run(self.client), 0.05)

        with self.assertRaises(RuntimeError) as context:
            await member.run(self.client)
        self.assertIn("'collection' was cancelled", str(context.exception))

    async def test_print_edition(self):
        master = Keypair().pubkey()
        edition = Keypair().pubkey()
        self.client.create.side_effect = None
        self.client.create.return_value = master
        self.client.print_new_edition.side_effect = None
        self.client.print_new_edition.return_value = edition
        job = NftJob(
            NftJobSpec("master", max_supply=5, token_owner=self.destination),
            print_edition=True,
        )

        self.assertEqual(await job.run(self.client), edition)

        self.assertIsNone(self.client.create.call_args.args[0].token_owner)
        self.client.print_new_edition.assert_awaited_once_with(master, self.destination)


if __name__ == "__main__":
    unittest.main()
