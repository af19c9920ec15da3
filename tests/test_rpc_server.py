import base64
import io
import json
from dataclasses import dataclass

import pytest

from tokenvm.encoding import AddressError, address, encode_id
from tokenvm.rpc_server import (
    EMPTY_ID,
    INVALID_PARAMS,
    JSONRPC_ENDPOINT,
    METHOD_NOT_FOUND,
    ORDERS_TO_SEND,
    PARSE_ERROR,
    SERVER_ERROR,
    AssetNotFoundError,
    JSONRPCServer,
    TxNotFoundError,
)
from tokenvm.storage import AssetRecord, TransactionRecord

TX_ID = bytes(range(32))
ASSET_ID = bytes(range(1, 33))
DEST_ID = bytes(range(2, 34))
OWNER = bytes([7]) * 32


@dataclass
class Order:
    id: str
    in_tick: int
    out_tick: int
    remaining: int
    owner: str


class FakeController:
    def __init__(self):
        self.transactions = {}
        self.assets = {}
        self.balances = {}
        self.loans = {}
        self.book = {}
        self.seen_tx = []
        self.orders_calls = []
        self.loan_calls = []

    def genesis(self):
        return {"hrp": "token", "minUnitPrice": 1}

    def get_transaction(self, tx_id):
        self.seen_tx.append(tx_id)
        return self.transactions.get(tx_id)

    def get_asset_from_state(self, asset):
        return self.assets.get(asset)

    def get_balance_from_state(self, public_key, asset):
        return self.balances.get((public_key, asset), 0)

    def orders(self, pair, limit):
        self.orders_calls.append((pair, limit))
        return self.book.get(pair, [])

    def get_loan_from_state(self, asset, destination):
        self.loan_calls.append((asset, destination))
        return self.loans.get((asset, destination), 0)


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def server(controller):
    return JSONRPCServer(controller)


def call(server, method, params=None, request_id=1):
    body = json.dumps(
        {"jsonrpc": "2.0", "method": method, "params": params, "id": request_id}
    )
    return json.loads(server.handle(body))


def test_orders_requests_128_and_endpoint_path(server, controller):
    assert server.orders("empty") == {"orders": []}
    assert controller.orders_calls == [("empty", 128)]
    assert ORDERS_TO_SEND == 128
    assert JSONRPC_ENDPOINT == "/tokenapi"


def test_genesis_wraps_controller_value(server):
    assert server.genesis() == {"genesis": {"hrp": "token", "minUnitPrice": 1}}


def test_tx_found(server, controller):
    controller.transactions[TX_ID] = TransactionRecord(1234, True, 472)
    assert server.tx(TX_ID) == {"timestamp": 1234, "success": True, "units": 472}


def test_tx_missing(server):
    with pytest.raises(TxNotFoundError) as info:
        server.tx(TX_ID)
    assert str(info.value) == "tx not found"


def test_asset_round_trip(server, controller):
    controller.assets[ASSET_ID] = AssetRecord(b"TKN", 10, OWNER, True)
    reply = server.asset(ASSET_ID)
    assert base64.b64decode(reply["metadata"]) == b"TKN"
    assert reply["supply"] == 10
    assert reply["owner"] == address(OWNER)
    assert reply["warp"] is True


def test_asset_missing(server):
    with pytest.raises(AssetNotFoundError) as info:
        server.asset(ASSET_ID)
    assert str(info.value) == "asset not found"


def test_balance_decodes_address(server, controller):
    controller.balances[(OWNER, ASSET_ID)] = 5000
    assert server.balance(address(OWNER), ASSET_ID) == {"amount": 5000}


def test_balance_unknown_account_is_zero(server):
    assert server.balance(address(OWNER), ASSET_ID) == {"amount": 0}


def test_balance_bad_address(server):
    with pytest.raises(AddressError):
        server.balance("not-an-address", ASSET_ID)


def test_orders_limit_and_conversion(server, controller):
    controller.book["a-b"] = [Order("x", 1, 2, 4, "owner")]
    reply = server.orders("a-b")
    assert controller.orders_calls == [("a-b", ORDERS_TO_SEND)]
    assert reply == {
        "orders": [{"id": "x", "in_tick": 1, "out_tick": 2, "remaining": 4, "owner": "owner"}]
    }


def test_loan_argument_order(server, controller):
    controller.loans[(ASSET_ID, DEST_ID)] = 110
    assert server.loan(DEST_ID, ASSET_ID) == {"amount": 110}
    assert controller.loan_calls == [(ASSET_ID, DEST_ID)]


def test_handle_dispatches_balance(server, controller):
    controller.balances[(OWNER, ASSET_ID)] = 77
    reply = call(
        server, "tokenvm.balance", {"address": address(OWNER), "asset": encode_id(ASSET_ID)}, 9
    )
    assert reply == {"jsonrpc": "2.0", "result": {"amount": 77}, "id": 9}


def test_handle_accepts_param_list(server, controller):
    controller.transactions[TX_ID] = TransactionRecord(5, False, 1)
    reply = call(server, "tokenvm.tx", [{"txId": encode_id(TX_ID)}])
    assert reply["result"] == {"timestamp": 5, "success": False, "units": 1}


def test_handle_null_params_for_genesis(server):
    reply = call(server, "tokenvm.genesis", None)
    assert reply["result"]["genesis"]["hrp"] == "token"


def test_handle_missing_id_is_empty(server, controller):
    reply = call(server, "tokenvm.tx", {})
    assert controller.seen_tx == [EMPTY_ID]
    assert reply["error"]["code"] == SERVER_ERROR
    assert reply["error"]["message"] == "tx not found"


def test_handle_wrong_namespace(server):
    reply = call(server, "other.genesis")
    assert reply["error"]["code"] == METHOD_NOT_FOUND


def test_handle_unknown_method(server):
    reply = call(server, "tokenvm.nothing")
    assert reply["error"]["code"] == METHOD_NOT_FOUND


def test_handle_parse_error(server):
    reply = json.loads(server.handle(b"{not json"))
    assert reply["error"]["code"] == PARSE_ERROR
    assert reply["id"] is None


def test_handle_invalid_id_param(server):
    reply = call(server, "tokenvm.asset", {"asset": "0OIl"})
    assert reply["error"]["code"] == INVALID_PARAMS


def test_handle_non_string_param(server):
    reply = call(server, "tokenvm.orders", {"pair": 5})
    assert reply["error"]["code"] == INVALID_PARAMS


def test_custom_namespace(controller):
    custom = JSONRPCServer(controller, namespace="custom")
    reply = call(custom, "custom.loan", {"destination": encode_id(DEST_ID), "asset": encode_id(ASSET_ID)})
    assert reply["result"] == {"amount": 0}


def test_wsgi_post(server, controller):
    controller.transactions[TX_ID] = TransactionRecord(1, True, 2)
    body = json.dumps(
        {"jsonrpc": "2.0", "method": "tokenvm.tx", "params": {"txId": encode_id(TX_ID)}, "id": 3}
    ).encode()
    statuses = []
    environ = {
        "REQUEST_METHOD": "POST",
        "CONTENT_LENGTH": str(len(body)),
        "wsgi.input": io.BytesIO(body),
    }
    chunks = server.wsgi_app(environ, lambda status, headers: statuses.append((status, dict(headers))))
    assert statuses[0][0] == "200 OK"
    assert statuses[0][1]["Content-Type"] == "application/json"
    assert json.loads(b"".join(chunks))["result"]["units"] == 2


def test_wsgi_rejects_get(server):
    statuses = []
    environ = {"REQUEST_METHOD": "GET", "wsgi.input": io.BytesIO(b"")}
    server.wsgi_app(environ, lambda status, headers: statuses.append(status))
    assert statuses == ["405 Method Not Allowed"]