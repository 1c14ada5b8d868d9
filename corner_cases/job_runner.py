# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Staggered batch execution of independent jobs.

Jobs are launched one at a time with a fixed delay between launches so the RPC
endpoint never sees a burst of simultaneous requests, then all launched jobs
run concurrently until every one of them has settled. A failing job never
cancels or short-circuits its siblings; it simply becomes a
:class:`JobFailure` in the result list.

Limitations:
- **No Retry Logic**: Failed jobs are not retried
- **No Cancellation**: Without a ``timeout`` a hung job holds up the batch

Examples:
    Run catalogue jobs and print the outcomes::

        jobs = [(job.display_name, job.thunk(client)) for job in catalogue(dest, context)]
        outcomes = await run_jobs(jobs, stagger=1.0)
        for outcome in outcomes:
            print(outcome)
"""

import asyncio
import logging
import time
import typing
import unittest
import unittest.mock
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from solders.keypair import Keypair

from .jobs import JobStepError, JobThunk, NftJob
from .nft import MintingClient, NftJobSpec

DEFAULT_STAGGER_SECONDS = 1.0


@dataclass(frozen=True)
class JobSuccess:
    name: str
    mint_address: str


@dataclass(frozen=True)
class JobFailure:
    """``mint_address`` is set when the NFT was created before a later step failed."""

    name: str
    reason: str
    mint_address: Optional[str] = None


JobOutcome = Union[JobSuccess, JobFailure]


def _failure(name: str, error: BaseException) -> JobFailure:
    reason = str(error) or type(error).__name__
    mint_address = None
    if isinstance(error, JobStepError):
        mint_address = str(error.mint_address)
    return JobFailure(name, reason, mint_address)


async def _run_one(thunk: JobThunk, timeout: Optional[float]) -> typing.Any:
    if timeout is None:
        return await thunk()
    return await asyncio.wait_for(thunk(), timeout)


async def run_jobs(
    jobs: Sequence[Tuple[str, JobThunk]],
    stagger: float = DEFAULT_STAGGER_SECONDS,
    timeout: Optional[float] = None,
) -> List[JobOutcome]:
    """Launch ``jobs`` ``stagger`` seconds apart and collect one outcome per job.

    Args:
        jobs: Ordered ``(name, thunk)`` pairs. Each thunk is called exactly once.
        stagger: Seconds between consecutive launches.
        timeout: Optional per-job deadline in seconds; an expired job becomes a
            failure.

    Returns:
        One :data:`JobOutcome` per job, in launch order.
    """
    tasks: List[asyncio.Task] = []
    for index, (name, thunk) in enumerate(jobs):
        if index > 0:
            await asyncio.sleep(stagger)
        logging.info(f"Launching {name!r}")
        tasks.append(asyncio.create_task(_run_one(thunk, timeout)))

    results = await asyncio.gather(*tasks, return_exceptions=True)

    outcomes: List[JobOutcome] = []
    for (name, _), result in zip(jobs, results):
        if isinstance(result, BaseException):
            logging.warning(f"{name!r} failed: {result!r}")
            outcomes.append(_failure(name, result))
        else:
            outcomes.append(JobSuccess(name, str(result)))
    return outcomes


class Test(unittest.IsolatedAsyncioTestCase):
    async def test_one_outcome_per_job_in_launch_order(self):
        calls: List[str] = []

        def make(name: str, delay: float, error: Optional[Exception] = None):
            async def thunk():
                calls.append(name)
                await asyncio.sleep(delay)
                if error is not None:
                    raise error
                return Keypair().pubkey()

            return (name, thunk)

        jobs = [
            make("slow", 0.05),
            make("broken", 0.0, RuntimeError("rpc unavailable")),
            make("fast", 0.0),
        ]

        outcomes = await run_jobs(jobs, stagger=0.01)

        self.assertEqual([outcome.name for outcome in outcomes], ["slow", "broken", "fast"])
        self.assertIsInstance(outcomes[0], JobSuccess)
        self.assertEqual(outcomes[1], JobFailure("broken", "rpc unavailable"))
        self.assertIsInstance(outcomes[2], JobSuccess)
        self.assertEqual(calls, ["slow", "broken", "fast"])

    async def test_empty_batch(self):
        self.assertEqual(await run_jobs([], stagger=0.01), [])

    async def test_stagger_honoured_and_jobs_concurrent(self):
        stagger = 0.1
        latency = 0.3
        count = 4

        async def thunk():
            await asyncio.sleep(latency)
            return Keypair().pubkey()

        start = time.monotonic()
        outcomes = await run_jobs([(str(i), thunk) for i in range(count)], stagger=stagger)
        elapsed = time.monotonic() - start

        self.assertEqual(len(outcomes), count)
        self.assertGreaterEqual(elapsed, (count - 1) * stagger)
        self.assertLess(elapsed, count * (stagger + latency))

    async def test_timeout_becomes_failure(self):
        async def hang():
            await asyncio.sleep(10)

        async def ok():
            return Keypair().pubkey()

        outcomes = await run_jobs([("hang", hang), ("ok", ok)], stagger=0.0, timeout=0.05)

        self.assertIsInstance(outcomes[0], JobFailure)
        self.assertEqual(outcomes[0].reason, "TimeoutError")
        self.assertIsInstance(outcomes[1], JobSuccess)

    async def test_timed_out_job_stops_minting(self):
        finished = []

        async def slow_create(spec):
            await asyncio.sleep(0.3)
            finished.append(spec.display_name)
            return Keypair().pubkey()

        client = unittest.mock.Mock(spec=MintingClient)
        client.create.side_effect = slow_create
        job = NftJob(NftJobSpec("slow", uri=""))

        (outcome,) = await run_jobs(
            [(job.display_name, job.thunk(client))], stagger=0.0, timeout=0.05
        )
        await asyncio.sleep(0.4)

        self.assertEqual(outcome, JobFailure("slow", "TimeoutError"))
        self.assertEqual(client.create.await_count, 1)
        self.assertEqual(finished, [])

    async def test_step_failure_reports_mint(self):
        mint = Keypair().pubkey()

        async def thunk():
            raise JobStepError(mint, "collection verification", RuntimeError("denied"))

        (outcome,) = await run_jobs([("verified collection", thunk)], stagger=0.0)

        self.assertEqual(outcome.mint_address, str(mint))
        self.assertIn("collection verification failed: denied", outcome.reason)


if __name__ == "__main__":
    unittest.main()
