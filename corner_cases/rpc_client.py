# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Asynchronous Solana JSON-RPC client.

This module provides the small slice of the Solana JSON-RPC surface the
corner-case minter needs: balances, rent exemption, blockhashes, transaction
submission and confirmation, plus the raw account reads used to clone an
existing NFT.

Key Features:
- **Async**: Every call is a coroutine built on ``httpx.AsyncClient``
- **Confirmation Polling**: ``send_and_confirm_transaction`` waits for the
  configured commitment level
- **Typed Errors**: HTTP failures raise :class:`ApiError`, JSON-RPC error
  objects raise :class:`RpcError`

Examples:
    Read a balance::

        import asyncio
        from solders.pubkey import Pubkey
        from corner_cases.rpc_client import RpcClient

        async def main():
            client = RpcClient("https://api.devnet.solana.com")
            try:
                lamports = await client.get_balance(Pubkey.from_string("..."))
                print(lamports)
            finally:
                await client.close()

        asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import base64
import itertools
import json
import logging
import unittest
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from .metadata import Metadata

# Ordered from weakest to strongest.
COMMITMENT_LEVELS = ["processed", "confirmed", "finalized"]


@dataclass
class ClientConfig:
    """Configuration parameters for :class:`RpcClient`.

    Attributes:
        transaction_wait_in_seconds: How long ``confirm_transaction`` polls
            before raising :class:`TransactionTimeout` (default: 30).
        commitment: Commitment level used for reads and confirmation
            (default: "confirmed").
        http2: Enable HTTP/2 (default: True).
        api_key: Optional bearer token for authenticated RPC providers.

    Examples:
        Wait for finality on a slow cluster::

            config = ClientConfig(commitment="finalized", transaction_wait_in_seconds=90)
            client = RpcClient(url, config)
    """

    transaction_wait_in_seconds: int = 30
    commitment: str = "confirmed"
    http2: bool = True
    api_key: Optional[str] = None


class RpcClient:
    """JSON-RPC client for a single Solana endpoint.

    The client owns an ``httpx.AsyncClient``; call :meth:`close` when done.
    Concurrent calls from many jobs are safe, they share the connection pool.
    """

    client: httpx.AsyncClient
    client_config: ClientConfig
    url: str

    def __init__(self, url: str, client_config: ClientConfig = ClientConfig()):
        self.url = url
        # Default limits
        limits = httpx.Limits()
        # Default timeouts but do not set a pool timeout, since the idea is that jobs will wait as
        # long as progress is being made.
        timeout = httpx.Timeout(60.0, pool=None)
        # Default headers
        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
        self.client = httpx.AsyncClient(
            http2=client_config.http2,
            limits=limits,
            timeout=timeout,
            headers=headers,
        )
        self.client_config = client_config
        self._request_ids = itertools.count(1)
        if client_config.api_key:
            self.client.headers["Authorization"] = f"Bearer {client_config.api_key}"

    async def close(self):
        """Close the underlying HTTP client connection."""
        await self.client.aclose()

    #
    # Account accessors
    #

    async def get_balance(self, address: Pubkey) -> int:
        """Return the lamport balance of ``address`` (0 for unknown accounts)."""
        result = await self._call(
            "getBalance",
            [str(address), {"commitment": self.client_config.commitment}],
        )
        return int(result["value"])

    async def get_minimum_balance_for_rent_exemption(self, data_size: int) -> int:
        """Return the lamports an account of ``data_size`` bytes needs to be rent exempt."""
        result = await self._call(
            "getMinimumBalanceForRentExemption",
            [data_size, {"commitment": self.client_config.commitment}],
        )
        return int(result)

    async def get_account_info(self, address: Pubkey) -> Optional[bytes]:
        """Return the data stored in ``address``, or None if the account does not exist."""
        result = await self._call(
            "getAccountInfo",
            [
                str(address),
                {"encoding": "base64", "commitment": self.client_config.commitment},
            ],
        )
        if result["value"] is None:
            return None
        (data, _) = result["value"]["data"]
        return base64.b64decode(data)

    #
    # Transactions
    #

    async def get_latest_blockhash(self) -> Hash:
        result = await self._call(
            "getLatestBlockhash", [{"commitment": self.client_config.commitment}]
        )
        return Hash.from_string(result["value"]["blockhash"])

    async def send_transaction(self, transaction: Transaction) -> str:
        """Submit a signed transaction and return its signature."""
        encoded = base64.b64encode(bytes(transaction)).decode("ascii")
        return await self._call(
            "sendTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "preflightCommitment": self.client_config.commitment,
                },
            ],
        )

    async def transaction_pending(self, signature: str) -> bool:
        """Return True until ``signature`` reaches the configured commitment.

        :raises RpcError: If the transaction landed but failed.
        """
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        status = result["value"][0]
        if status is None:
            return True
        if status.get("err") is not None:
            raise RpcError(f"Transaction {signature} failed: {status['err']}", None)
        reached = status.get("confirmationStatus") or "processed"
        return COMMITMENT_LEVELS.index(reached) < COMMITMENT_LEVELS.index(
            self.client_config.commitment
        )

    async def confirm_transaction(self, signature: str) -> None:
        """Waits up to the duration specified in client_config for a transaction
        to reach the configured commitment."""

        count = 0
        while await self.transaction_pending(signature):
            if count >= self.client_config.transaction_wait_in_seconds:
                raise TransactionTimeout(signature)
            await asyncio.sleep(1)
            count += 1

    async def send_and_confirm_transaction(self, transaction: Transaction) -> str:
        signature = await self.send_transaction(transaction)
        logging.info(f"Submitted transaction {signature}")
        await self.confirm_transaction(signature)
        return signature

    async def transfer(self, sender: Keypair, recipient: Pubkey, lamports: int) -> str:
        """Send ``lamports`` from ``sender`` to ``recipient`` and wait for confirmation."""
        instruction = transfer(
            TransferParams(
                from_pubkey=sender.pubkey(), to_pubkey=recipient, lamports=lamports
            )
        )
        blockhash = await self.get_latest_blockhash()
        message = Message.new_with_blockhash([instruction], sender.pubkey(), blockhash)
        transaction = Transaction([sender], message, blockhash)
        return await self.send_and_confirm_transaction(transaction)

    async def _call(self, method: str, params: Any) -> Any:
        request = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        response = await self.client.post(self.url, json=request)
        if response.status_code >= 400:
            raise ApiError(f"{response.text} - {method}", response.status_code)
        body = response.json()
        if "error" in body:
            error = body["error"]
            raise RpcError(f"{method}: {error.get('message')}", error.get("code"))
        return body["result"]


class ApiError(Exception):
    """The endpoint returned a non-success status code, e.g., >= 400"""

    status_code: int

    def __init__(self, message: str, status_code: int):
        # Call the base class constructor with the parameters it needs
        super().__init__(message)
        self.status_code = status_code


class RpcError(Exception):
    """The endpoint answered with a JSON-RPC error object"""

    code: Optional[int]

    def __init__(self, message: str, code: Optional[int]):
        super().__init__(message)
        self.code = code


class TransactionTimeout(Exception):
    """The transaction did not reach the requested commitment in time"""

    signature: str

    def __init__(self, signature: str):
        super().__init__(f"transaction {signature} timed out")
        self.signature = signature


class Test(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.requests: List[Dict[str, Any]] = []
        self.responses: Dict[str, Any] = {}
        self.rpc_client = RpcClient(
            "http://localhost:8899", ClientConfig(http2=False)
        )
        await self.rpc_client.close()
        self.rpc_client.client = httpx.AsyncClient(
            transport=httpx.MockTransport(self._handle)
        )

    async def asyncTearDown(self):
        await self.rpc_client.close()

    def _handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        response = self.responses[body["method"]]
        if isinstance(response, httpx.Response):
            return response
        if isinstance(response, list):
            response = response.pop(0)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **response})

    async def test_get_balance(self):
        self.responses["getBalance"] = {"result": {"context": {}, "value": 1234}}
        address = Keypair().pubkey()

        self.assertEqual(await self.rpc_client.get_balance(address), 1234)
        self.assertEqual(self.requests[0]["params"][0], str(address))

    async def test_rent_exemption(self):
        self.responses["getMinimumBalanceForRentExemption"] = {"result": 890880}
        self.assertEqual(
            await self.rpc_client.get_minimum_balance_for_rent_exemption(0), 890880
        )
        self.assertEqual(self.requests[0]["params"][0], 0)

    async def test_rpc_error(self):
        self.responses["getBalance"] = {
            "error": {"code": -32602, "message": "Invalid param"}
        }
        with self.assertRaises(RpcError) as context:
            await self.rpc_client.get_balance(Keypair().pubkey())
        self.assertEqual(context.exception.code, -32602)

    async def test_get_account_info(self):
        self.responses["getAccountInfo"] = [
            {
                "result": {
                    "context": {},
                    "value": {
                        "data": [base64.b64encode(b"\x04abc").decode(), "base64"],
                        "executable": False,
                        "lamports": 5616720,
                        "owner": "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s",
                    },
                }
            },
            {"result": {"context": {}, "value": None}},
        ]
        address = Keypair().pubkey()

        self.assertEqual(await self.rpc_client.get_account_info(address), b"\x04abc")
        self.assertIsNone(await self.rpc_client.get_account_info(address))
        self.assertEqual(self.requests[0]["params"][0], str(address))
        self.assertEqual(self.requests[0]["params"][1]["encoding"], "base64")

    async def test_http_error(self):
        self.responses["getBalance"] = httpx.Response(429, text="Too many requests")
        with self.assertRaises(ApiError) as context:
            await self.rpc_client.get_balance(Keypair().pubkey())
        self.assertEqual(context.exception.status_code, 429)

    async def test_transaction_pending(self):
        self.responses["getSignatureStatuses"] = [
            {"result": {"value": [None]}},
            {"result": {"value": [{"confirmationStatus": "processed", "err": None}]}},
            {"result": {"value": [{"confirmationStatus": "finalized", "err": None}]}},
        ]
        self.assertTrue(await self.rpc_client.transaction_pending("sig"))
        self.assertTrue(await self.rpc_client.transaction_pending("sig"))
        self.assertFalse(await self.rpc_client.transaction_pending("sig"))

    async def test_failed_transaction(self):
        self.responses["getSignatureStatuses"] = {
            "result": {
                "value": [{"confirmationStatus": "confirmed", "err": {"InstructionError": [0, "Custom"]}}]
            }
        }
        with self.assertRaises(RpcError):
            await self.rpc_client.transaction_pending("sig")

    async def test_transfer(self):
        sender = Keypair()
        recipient = Keypair().pubkey()
        self.responses["getLatestBlockhash"] = {
            "result": {
                "context": {},
                "value": {"blockhash": str(Hash.default()), "lastValidBlockHeight": 1},
            }
        }
        self.responses["sendTransaction"] = {"result": "5ignature"}
        self.responses["getSignatureStatuses"] = {
            "result": {"value": [{"confirmationStatus": "confirmed", "err": None}]}
        }

        signature = await self.rpc_client.transfer(sender, recipient, 5000)

        self.assertEqual(signature, "5ignature")
        methods = [request["method"] for request in self.requests]
        self.assertEqual(
            methods, ["getLatestBlockhash", "sendTransaction", "getSignatureStatuses"]
        )
        sent = Transaction.from_bytes(
            base64.b64decode(self.requests[1]["params"][0])
        )
        self.assertEqual(sent.message.account_keys[0], sender.pubkey())
        self.assertIn(recipient, sent.message.account_keys)


if __name__ == "__main__":
    unittest.main()
