# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""Console summary of a settled batch."""

import unittest
from typing import Sequence

from .job_runner import JobFailure, JobOutcome, JobSuccess


def format_outcome(outcome: JobOutcome) -> str:
    if isinstance(outcome, JobSuccess):
        return f"[ok]     {outcome.name}: {outcome.mint_address}"
    return f"[failed] {outcome.name}: {outcome.reason}"


def format_outcomes(outcomes: Sequence[JobOutcome]) -> str:
    failures = sum(1 for outcome in outcomes if isinstance(outcome, JobFailure))
    lines = [format_outcome(outcome) for outcome in outcomes]
    lines.append(
        f"{len(outcomes) - failures} of {len(outcomes)} jobs succeeded, {failures} failed"
    )
    return "\n".join(lines)


def has_failures(outcomes: Sequence[JobOutcome]) -> bool:
    return any(isinstance(outcome, JobFailure) for outcome in outcomes)


class Test(unittest.TestCase):
    def test_format_outcomes(self):
        outcomes = [
            JobSuccess("Immutable NFT", "Mint111"),
            JobFailure("NFT with verified collection", "created Mint222 but collection verification failed: denied", "Mint222"),
        ]

        summary = format_outcomes(outcomes).splitlines()

        self.assertEqual(summary[0], "[ok]     Immutable NFT: Mint111")
        self.assertTrue(summary[1].startswith("[failed] NFT with verified collection: created Mint222"))
        self.assertEqual(summary[2], "1 of 2 jobs succeeded, 1 failed")
        self.assertTrue(has_failures(outcomes))
        self.assertFalse(has_failures(outcomes[:1]))

    def test_empty_batch(self):
        self.assertEqual(format_outcomes([]), "0 of 0 jobs succeeded, 0 failed")


if __name__ == "__main__":
    unittest.main()
