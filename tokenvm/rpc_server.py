"""JSON-RPC service answering token VM queries about transactions and state."""

from __future__ import annotations

import base64
import dataclasses
import json
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Optional, Protocol

from .encoding import HRP, ID_LEN, decode_id, parse_address
from .encoding import address as encode_address
from .storage import AssetRecord, TransactionRecord

JSONRPC_ENDPOINT = "/tokenapi"
NAMESPACE = "tokenvm"
ORDERS_TO_SEND = 128
EMPTY_ID = bytes(ID_LEN)

TX_NOT_FOUND = "tx not found"
ASSET_NOT_FOUND = "asset not found"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000

_log = logging.getLogger(__name__)


class TxNotFoundError(LookupError):
    """Raised when a transaction is not known to the node."""

    def __init__(self, message: str = TX_NOT_FOUND) -> None:
        super().__init__(message)


class AssetNotFoundError(LookupError):
    """Raised when an asset does not exist in state."""

    def __init__(self, message: str = ASSET_NOT_FOUND) -> None:
        super().__init__(message)


class RPCError(Exception):
    """An error carried in a JSON-RPC response."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class Controller(Protocol):
    """What the service needs from the running VM."""

    def genesis(self) -> Any: ...

    def get_transaction(self, tx_id: bytes) -> Optional[TransactionRecord]: ...

    def get_asset_from_state(self, asset: bytes) -> Optional[AssetRecord]: ...

    def get_balance_from_state(self, public_key: bytes, asset: bytes) -> int: ...

    def orders(self, pair: str, limit: int) -> Sequence[Any]: ...

    def get_loan_from_state(self, asset: bytes, destination: bytes) -> int: ...


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


_Field = tuple[str, str]


class JSONRPCServer:
    """Serves the token API over JSON-RPC 2.0."""

    def __init__(self, controller: Controller, hrp: str = HRP, namespace: str = NAMESPACE) -> None:
        self._controller = controller
        self._hrp = hrp
        self._namespace = namespace
        self._methods: dict[str, tuple[Callable[..., Any], tuple[_Field, ...]]] = {
            "genesis": (self.genesis, ()),
            "tx": (self.tx, (("txId", "id"),)),
            "asset": (self.asset, (("asset", "id"),)),
            "balance": (self.balance, (("address", "str"), ("asset", "id"))),
            "orders": (self.orders, (("pair", "str"),)),
            "loan": (self.loan, (("destination", "id"), ("asset", "id"))),
        }

    def genesis(self) -> dict[str, Any]:
        return {"genesis": _jsonable(self._controller.genesis())}

    def tx(self, tx_id: bytes) -> dict[str, Any]:
        record = self._controller.get_transaction(tx_id)
        if record is None:
            raise TxNotFoundError()
        return {"timestamp": record.timestamp, "success": record.success, "units": record.units}

    def asset(self, asset: bytes) -> dict[str, Any]:
        record = self._controller.get_asset_from_state(asset)
        if record is None:
            raise AssetNotFoundError()
        return {
            "metadata": base64.b64encode(record.metadata).decode("ascii"),
            "supply": record.supply,
            "owner": encode_address(record.owner, self._hrp),
            "warp": record.warp,
        }

    def balance(self, address: str, asset: bytes) -> dict[str, Any]:
        public_key = parse_address(address, self._hrp)
        return {"amount": self._controller.get_balance_from_state(public_key, asset)}

    def orders(self, pair: str) -> dict[str, Any]:
        found = self._controller.orders(pair, ORDERS_TO_SEND)
        return {"orders": [_jsonable(order) for order in found]}

    def loan(self, destination: bytes, asset: bytes) -> dict[str, Any]:
        return {"amount": self._controller.get_loan_from_state(asset, destination)}

    def handle(self, body: bytes | str) -> bytes:
        """Answer one JSON-RPC request and return the encoded response."""
        try:
            request = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return self._error(None, PARSE_ERROR, "parse error")
        if not isinstance(request, dict):
            return self._error(None, INVALID_REQUEST, "invalid request")
        request_id = request.get("id")
        name = request.get("method")
        if not isinstance(name, str):
            return self._error(request_id, INVALID_REQUEST, "invalid request")
        prefix, _, short = name.rpartition(".")
        entry = self._methods.get(short) if prefix == self._namespace else None
        if entry is None:
            return self._error(request_id, METHOD_NOT_FOUND, f"method not found: {name}")
        method, fields = entry
        try:
            args = self._arguments(request.get("params"), fields)
        except (TypeError, ValueError) as exc:
            return self._error(request_id, INVALID_PARAMS, str(exc))
        try:
            result = method(*args)
        except Exception as exc:  # every failure is reported to the caller
            _log.debug("request %s failed: %s", name, exc)
            return self._error(request_id, SERVER_ERROR, str(exc))
        return self._encode({"jsonrpc": "2.0", "result": result, "id": request_id})

    def wsgi_app(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> list[bytes]:
        """Serve requests as a WSGI application."""
        if environ.get("REQUEST_METHOD", "GET").upper() != "POST":
            start_response(
                "405 Method Not Allowed",
                [("Allow", "POST"), ("Content-Type", "text/plain"), ("Content-Length", "0")],
            )
            return [b""]
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        body = environ["wsgi.input"].read(length) if length > 0 else b""
        response = self.handle(body)
        start_response(
            "200 OK",
            [("Content-Type", "application/json"), ("Content-Length", str(len(response)))],
        )
        return [response]

    @staticmethod
    def _arguments(params: Any, fields: tuple[_Field, ...]) -> list[Any]:
        if params is None:
            params = {}
        elif isinstance(params, list):
            if not params:
                params = {}
            elif len(params) == 1 and isinstance(params[0], dict):
                params = params[0]
            else:
                raise TypeError("params must hold a single object")
        if not isinstance(params, dict):
            raise TypeError("params must be an object")
        args: list[Any] = []
        for key, kind in fields:
            value = params.get(key)
            if kind == "id":
                if value is None:
                    args.append(EMPTY_ID)
                elif isinstance(value, str):
                    args.append(decode_id(value))
                else:
                    raise TypeError(f"{key} must be a string")
            else:
                if value is None:
                    args.append("")
                elif isinstance(value, str):
                    args.append(value)
                else:
                    raise TypeError(f"{key} must be a string")
        return args

    @staticmethod
    def _encode(message: dict[str, Any]) -> bytes:
        return json.dumps(message).encode("utf-8")

    def _error(self, request_id: Any, code: int, message: str) -> bytes:
        return self._encode(
            {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}
        )