# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Funding helper: give an address just enough lamports for a few transactions.

The amount is the flat fee for each requested transaction, plus the rent
exemption minimum when the address does not already hold it. An address that
already holds the computed amount is never topped up again.
"""

from __future__ import annotations

import logging
import unittest
import unittest.mock

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .rpc_client import ClientConfig, RpcClient

LAMPORTS_PER_TRANSACTION = 5000

# Size of a system account with no data.
EMPTY_ACCOUNT_SIZE = 0


class AlreadyFunded(Exception):
    """The destination already holds at least the amount that would be sent"""

    destination: Pubkey
    balance: int
    required: int

    def __init__(self, destination: Pubkey, balance: int, required: int):
        super().__init__(
            f"{destination} already holds {balance} lamports (needs {required})"
        )
        self.destination = destination
        self.balance = balance
        self.required = required


def required_lamports(balance: int, rent_minimum: int, transaction_count: int) -> int:
    """Lamports to send so the account can pay for ``transaction_count`` transactions."""
    if transaction_count < 0:
        raise ValueError(f"transaction_count must be >= 0, got {transaction_count}")
    rent = rent_minimum if balance <= rent_minimum else 0
    return rent + transaction_count * LAMPORTS_PER_TRANSACTION


async def dust_address(
    rpc_client: RpcClient,
    payer: Keypair,
    destination: Pubkey,
    transaction_count: int,
) -> int:
    """Fund ``destination`` from ``payer`` and return the lamports sent.

    The full computed amount is sent, not the difference to the current
    balance, in a single transfer that is confirmed before returning.

    :raises AlreadyFunded: If the current balance already covers the amount.
        No transaction is sent in that case.
    """
    balance = await rpc_client.get_balance(destination)
    rent_minimum = await rpc_client.get_minimum_balance_for_rent_exemption(
        EMPTY_ACCOUNT_SIZE
    )
    amount = required_lamports(balance, rent_minimum, transaction_count)
    if balance >= amount:
        raise AlreadyFunded(destination, balance, amount)

    await rpc_client.transfer(payer, destination, amount)
    logging.info(f"Successfully dusted {amount} into {destination}")
    return amount


class Test(unittest.IsolatedAsyncioTestCase):
    RENT = 890_880

    async def asyncSetUp(self):
        self.rpc_client = RpcClient("http://localhost:8899", ClientConfig(http2=False))
        self.payer = Keypair()
        self.destination = Keypair().pubkey()

    async def asyncTearDown(self):
        await self.rpc_client.close()

    def _patch(self, balance: int):
        patchers = [
            unittest.mock.patch.object(RpcClient, "get_balance", return_value=balance),
            unittest.mock.patch.object(
                RpcClient,
                "get_minimum_balance_for_rent_exemption",
                return_value=self.RENT,
            ),
            unittest.mock.patch.object(RpcClient, "transfer", return_value="sig"),
        ]
        mocks = [patcher.start() for patcher in patchers]
        for patcher in patchers:
            self.addCleanup(patcher.stop)
        return mocks[-1]

    def test_required_lamports(self):
        self.assertEqual(required_lamports(0, self.RENT, 3), self.RENT + 15_000)
        self.assertEqual(required_lamports(self.RENT, self.RENT, 1), self.RENT + 5000)
        self.assertEqual(required_lamports(self.RENT + 1, self.RENT, 2), 10_000)
        self.assertEqual(required_lamports(0, self.RENT, 0), self.RENT)
        with self.assertRaises(ValueError):
            required_lamports(0, self.RENT, -1)

    async def test_empty_account_gets_rent_and_fees(self):
        transfer = self._patch(balance=0)

        amount = await dust_address(self.rpc_client, self.payer, self.destination, 4)

        self.assertEqual(amount, self.RENT + 20_000)
        transfer.assert_awaited_once_with(self.payer, self.destination, self.RENT + 20_000)

    async def test_sends_full_amount_not_delta(self):
        balance = self.RENT + 1000
        transfer = self._patch(balance=balance)

        amount = await dust_address(self.rpc_client, self.payer, self.destination, 200)

        self.assertEqual(amount, 1_000_000)
        transfer.assert_awaited_once_with(self.payer, self.destination, 1_000_000)

    async def test_already_funded(self):
        transfer = self._patch(balance=self.RENT + 50_000)

        with self.assertRaises(AlreadyFunded) as context:
            await dust_address(self.rpc_client, self.payer, self.destination, 3)

        self.assertEqual(context.exception.required, 15_000)
        transfer.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()
