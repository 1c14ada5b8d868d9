# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Client identification for outgoing HTTP requests.

Every request made by :class:`corner_cases.rpc_client.RpcClient` and the
metadata uploader carries a header naming this tool and its version, so RPC
providers can tell corner-case traffic apart from real wallets.

Examples:
    Build headers for a custom request::

        from corner_cases.metadata import Metadata

        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
        # {"x-corner-cases-client": "corner-case-nfts/0.1.0"}
"""

import importlib.metadata as metadata

# Package name constant for metadata lookup
PACKAGE_NAME = "corner-case-nfts"


class Metadata:
    """Static helpers for the client identification header."""

    # HTTP header name for client identification
    CLIENT_HEADER = "x-corner-cases-client"

    @staticmethod
    def get_client_header_val() -> str:
        """Return ``corner-case-nfts/{version}``.

        Falls back to ``0.0.0`` when running from a source checkout that was
        never installed.
        """
        try:
            version = metadata.version(PACKAGE_NAME)
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        return f"corner-case-nfts/{version}"
