"""Client for the token VM JSON-RPC service."""

from __future__ import annotations

import base64
import itertools
import json
import logging
import time
import urllib.request
from dataclasses import dataclass
from typing import Any, Optional

from .encoding import encode_id
from .rpc_server import (
    ASSET_NOT_FOUND,
    INVALID_REQUEST,
    JSONRPC_ENDPOINT,
    NAMESPACE,
    SERVER_ERROR,
    TX_NOT_FOUND,
    RPCError,
)

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TxStatus:
    """Outcome of an accepted transaction."""

    success: bool
    timestamp: int
    units: int = 0


@dataclass(frozen=True)
class AssetInfo:
    """Description of an asset held in state."""

    metadata: bytes
    supply: int
    owner: str
    warp: bool


class JSONRPCClient:
    """Queries a node's token API."""

    poll_interval: float = 0.1
    wait_timeout: Optional[float] = None

    def __init__(
        self,
        uri: str,
        chain_id: bytes,
        namespace: str = NAMESPACE,
        timeout: float = 10.0,
    ) -> None:
        self.uri = uri.removesuffix("/") + JSONRPC_ENDPOINT
        self.chain_id = bytes(chain_id)
        self._namespace = namespace
        self._timeout = timeout
        self._genesis: Any = None
        self._ids = itertools.count(1)

    def _request(self, method: str, params: Optional[dict[str, Any]]) -> Any:
        payload = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": f"{self._namespace}.{method}",
                "params": params,
                "id": next(self._ids),
            }
        ).encode("utf-8")
        request = urllib.request.Request(
            self.uri,
            data=payload,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=self._timeout) as response:
            reply = json.loads(response.read())
        if not isinstance(reply, dict):
            raise RPCError(INVALID_REQUEST, "malformed response")
        error = reply.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise RPCError(
                    error.get("code", SERVER_ERROR), str(error.get("message", "")), error.get("data")
                )
            raise RPCError(SERVER_ERROR, str(error))
        return reply.get("result")

    def genesis(self) -> Any:
        """Return the chain's genesis, fetched once and then cached."""
        if self._genesis is None:
            self._genesis = self._request("genesis", None)["genesis"]
        return self._genesis

    def tx(self, tx_id: bytes) -> Optional[TxStatus]:
        """Return a transaction's outcome, or None if the node does not know it."""
        try:
            result = self._request("tx", {"txId": encode_id(tx_id)})
        except RPCError as exc:
            # Matched on text since the error crosses the wire as a message.
            if TX_NOT_FOUND in str(exc):
                return None
            raise
        return TxStatus(
            success=bool(result["success"]),
            timestamp=int(result["timestamp"]),
            units=int(result.get("units", 0)),
        )

    def asset(self, asset: bytes) -> Optional[AssetInfo]:
        """Return an asset's description, or None if it does not exist."""
        try:
            result = self._request("asset", {"asset": encode_id(asset)})
        except RPCError as exc:
            if ASSET_NOT_FOUND in str(exc):
                return None
            raise
        return AssetInfo(
            metadata=base64.b64decode(result.get("metadata") or ""),
            supply=int(result["supply"]),
            owner=str(result["owner"]),
            warp=bool(result["warp"]),
        )

    def balance(self, address: str, asset: bytes) -> int:
        result = self._request("balance", {"address": address, "asset": encode_id(asset)})
        return int(result["amount"])

    def orders(self, pair: str) -> list[Any]:
        result = self._request("orders", {"pair": pair})
        return list(result.get("orders") or [])

    def loan(self, asset: bytes, destination: bytes) -> int:
        result = self._request(
            "loan", {"asset": encode_id(asset), "destination": encode_id(destination)}
        )
        return int(result["amount"])

    def _deadline(self) -> Optional[float]:
        return None if self.wait_timeout is None else time.monotonic() + self.wait_timeout

    def _pause(self, deadline: Optional[float], what: str) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            raise TimeoutError(f"timed out waiting for {what}")
        time.sleep(self.poll_interval)

    def wait_for_balance(self, address: str, asset: bytes, minimum: int) -> int:
        """Poll until the balance reaches minimum and return it."""
        deadline = self._deadline()
        while True:
            balance = self.balance(address, asset)
            if balance >= minimum:
                return balance
            _log.info("waiting for %d balance: %s", minimum, address)
            self._pause(deadline, "balance")

    def wait_for_transaction(self, tx_id: bytes) -> bool:
        """Poll until the transaction is known and return whether it succeeded."""
        deadline = self._deadline()
        while True:
            status = self.tx(tx_id)
            if status is not None:
                return status.success
            self._pause(deadline, "transaction")