# tokenvm

Building blocks for a token virtual machine: how its state is laid out in a
key-value store, how addresses and identifiers are written as text, and a
JSON-RPC service with a matching client for querying a node.

## Modules

- `tokenvm.encoding`: `address(public_key, hrp="token")` turns a 32-byte
  public key into a bech32 address and `parse_address(text, hrp="token")`
  turns it back. `encode_id` and `decode_id` convert 32-byte identifiers to
  and from CB58 text (base58 with a four-byte SHA-256 checksum). Bad input
  raises `AddressError`, a `ValueError`.
- `tokenvm.storage`: the key prefixes and binary value layouts of chain
  state: transaction records, balances, assets, orders, loans, the height
  key and warp message keys. Functions work against any object with
  `get_value`, `insert` and `remove`; `MemoryDatabase` is a dictionary-backed
  one. Lookups return `TransactionRecord`, `AssetRecord` or `OrderRecord`
  dataclasses, or `None` when the key is absent; missing balances and loans
  read as zero.
- `tokenvm.rpc_server`: `JSONRPCServer`, a JSON-RPC 2.0 service with the
  methods `tokenvm.genesis`, `tokenvm.tx`, `tokenvm.asset`,
  `tokenvm.balance`, `tokenvm.orders` and `tokenvm.loan`, answered from a
  `Controller`. `handle(body)` answers one request; `wsgi_app` serves POST
  requests as a WSGI application.
- `tokenvm.rpc_client`: `JSONRPCClient`, which calls that service at
  `<uri>/tokenapi`.
- `tokenvm.version`: the `Semantic` version type and `VERSION` (`v0.0.1`).

## Install

```
pip install .
```

## Storing state

```python
from tokenvm.storage import (
    MemoryDatabase, add_balance, sub_balance, get_balance, get_balance_from_state,
)

db = MemoryDatabase()
owner = bytes(32)
asset = bytes(32)
add_balance(db, owner, asset, 100)
sub_balance(db, owner, asset, 40)
assert get_balance(db, owner, asset) == 60
assert get_balance_from_state(db.read_state, owner, asset) == 60
```

`sub_balance` and `sub_loan` delete the record once it reaches zero. When an
amount would overflow 64 bits or drop below zero, they and `add_balance` /
`add_loan` raise `InvalidBalanceError`.

## Serving and querying

Write a `Controller` (an object with `genesis`, `get_transaction`,
`get_asset_from_state`, `get_balance_from_state`, `orders` and
`get_loan_from_state`), hand it to `JSONRPCServer`, and serve `wsgi_app` with
any WSGI server, for example `wsgiref`, mounted at `/tokenapi`. Then:

```python
from tokenvm.rpc_client import JSONRPCClient

chain_id = bytes(32)
tx_id = bytes(32)
client = JSONRPCClient("http://localhost:9650/ext/bc/mychain", chain_id)
status = client.tx(tx_id)
if status is not None:
    print(status.success, status.timestamp, status.units)
```

`tx` and `asset` return `None` when the node reports the transaction or asset
as not found; other failures raise `RPCError`. `genesis` is fetched once and
cached. `wait_for_balance` and `wait_for_transaction` poll every
`poll_interval` seconds and, when `wait_timeout` is set, raise
`TimeoutError` after that many seconds.

## What this package does not do

It holds no virtual machine: it does not build, verify or accept blocks,
sign or issue transactions, match orders or verify warp messages. The
server only answers queries from whatever `Controller` it is given, and the
package has no command to run a node.

## Tests

```
pip install .[test]
pytest
```