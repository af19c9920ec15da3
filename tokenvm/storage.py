"""Key layout and value encoding of the token VM state.

Metadata keys:
    0x0 + txID                 -> timestamp | success | units
State keys:
    0x0 + owner + asset        -> balance
    0x1 + asset                -> metadataLen | metadata | supply | owner | warp
    0x2 + txID                 -> in | inTick | out | outTick | remaining | owner
    0x3 + asset + destination  -> amount
    0x4                        -> height
    0x5 + sourceChain + msgID  -> incoming warp
    0x6 + txID                 -> outgoing warp
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from .encoding import ID_LEN, PUBLIC_KEY_LEN, address, encode_id

TX_PREFIX = 0x0

BALANCE_PREFIX = 0x0
ASSET_PREFIX = 0x1
ORDER_PREFIX = 0x2
LOAN_PREFIX = 0x3
HEIGHT_PREFIX = 0x4
INCOMING_WARP_PREFIX = 0x5
OUTGOING_WARP_PREFIX = 0x6

MAX_UINT64 = (1 << 64) - 1
MAX_METADATA_LEN = (1 << 16) - 1

_FAILURE_BYTE = 0x0
_SUCCESS_BYTE = 0x1
_HEIGHT_KEY = bytes([HEIGHT_PREFIX])

_U64 = struct.Struct(">Q")
_TX_VALUE = struct.Struct(">qBQ")
_U16 = struct.Struct(">H")


class KeyNotFoundError(KeyError):
    """Raised by a database when a key holds no value."""


class InvalidBalanceError(ValueError):
    """Raised when a balance or loan would overflow or go below zero."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"invalid balance: {detail}")


class Database(Protocol):
    def get_value(self, key: bytes) -> bytes: ...

    def insert(self, key: bytes, value: bytes) -> None: ...

    def remove(self, key: bytes) -> None: ...


StateValue = Union[bytes, None, BaseException]
ReadState = Callable[[Sequence[bytes]], Sequence[StateValue]]


class MemoryDatabase:
    """A dictionary-backed key-value store."""

    def __init__(self) -> None:
        self._items: dict[bytes, bytes] = {}

    def get_value(self, key: bytes) -> bytes:
        try:
            return self._items[bytes(key)]
        except KeyError:
            raise KeyNotFoundError(bytes(key)) from None

    def insert(self, key: bytes, value: bytes) -> None:
        self._items[bytes(key)] = bytes(value)

    def remove(self, key: bytes) -> None:
        self._items.pop(bytes(key), None)

    def read_state(self, keys: Sequence[bytes]) -> list[Optional[bytes]]:
        """Return the value of each key, or None where a key is missing."""
        return [self._items.get(bytes(key)) for key in keys]

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, (bytes, bytearray)) and bytes(key) in self._items


@dataclass(frozen=True)
class TransactionRecord:
    timestamp: int
    success: bool
    units: int


@dataclass(frozen=True)
class AssetRecord:
    metadata: bytes
    supply: int
    owner: bytes
    warp: bool


@dataclass(frozen=True)
class OrderRecord:
    in_asset: bytes
    in_tick: int
    out_asset: bytes
    out_tick: int
    remaining: int
    owner: bytes


def _check_len(value: bytes, length: int, name: str) -> bytes:
    if len(value) != length:
        raise ValueError(f"{name} must be {length} bytes, got {len(value)}")
    return bytes(value)


def _check_u64(value: int, name: str) -> int:
    if not 0 <= value <= MAX_UINT64:
        raise ValueError(f"{name} out of uint64 range: {value}")
    return value


def _lookup(db: Database, key: bytes) -> Optional[bytes]:
    try:
        return db.get_value(key)
    except KeyNotFoundError:
        return None


def _resolve(item: StateValue) -> Optional[bytes]:
    if item is None or isinstance(item, KeyNotFoundError):
        return None
    if isinstance(item, BaseException):
        raise item
    return item


def _read_one(read_state: ReadState, key: bytes) -> Optional[bytes]:
    return _resolve(read_state([key])[0])


def _decode_u64(value: Optional[bytes]) -> int:
    return 0 if value is None else _U64.unpack_from(value)[0]


# Transactions


def prefix_tx_key(tx_id: bytes) -> bytes:
    return bytes([TX_PREFIX]) + _check_len(tx_id, ID_LEN, "transaction id")


def store_transaction(
    db: Database, tx_id: bytes, timestamp: int, success: bool, units: int
) -> None:
    flag = _SUCCESS_BYTE if success else _FAILURE_BYTE
    db.insert(prefix_tx_key(tx_id), _TX_VALUE.pack(timestamp, flag, _check_u64(units, "units")))


def get_transaction(db: Database, tx_id: bytes) -> Optional[TransactionRecord]:
    """Return the stored result of a transaction, or None if unknown."""
    value = _lookup(db, prefix_tx_key(tx_id))
    if value is None:
        return None
    timestamp, flag, units = _TX_VALUE.unpack_from(value)
    return TransactionRecord(timestamp, flag != _FAILURE_BYTE, units)


# Balances


def prefix_balance_key(public_key: bytes, asset: bytes) -> bytes:
    return (
        bytes([BALANCE_PREFIX])
        + _check_len(public_key, PUBLIC_KEY_LEN, "public key")
        + _check_len(asset, ID_LEN, "asset id")
    )


def get_balance(db: Database, public_key: bytes, asset: bytes) -> int:
    """Return a balance; a missing account holds zero."""
    return _decode_u64(_lookup(db, prefix_balance_key(public_key, asset)))


def get_balance_from_state(read_state: ReadState, public_key: bytes, asset: bytes) -> int:
    return _decode_u64(_read_one(read_state, prefix_balance_key(public_key, asset)))


def set_balance(db: Database, public_key: bytes, asset: bytes, balance: int) -> None:
    db.insert(prefix_balance_key(public_key, asset), _U64.pack(_check_u64(balance, "balance")))


def delete_balance(db: Database, public_key: bytes, asset: bytes) -> None:
    db.remove(prefix_balance_key(public_key, asset))


def add_balance(db: Database, public_key: bytes, asset: bytes, amount: int) -> None:
    key = prefix_balance_key(public_key, asset)
    balance = _decode_u64(_lookup(db, key))
    new_balance = balance + amount
    if new_balance > MAX_UINT64:
        raise InvalidBalanceError(
            f"could not add balance (asset={encode_id(asset)}, bal={balance}, "
            f"addr={address(public_key)}, amount={amount})"
        )
    db.insert(key, _U64.pack(new_balance))


def sub_balance(db: Database, public_key: bytes, asset: bytes, amount: int) -> None:
    key = prefix_balance_key(public_key, asset)
    balance = _decode_u64(_lookup(db, key))
    if amount > balance:
        raise InvalidBalanceError(
            f"could not subtract balance (asset={encode_id(asset)}, bal={balance}, "
            f"addr={address(public_key)}, amount={amount})"
        )
    new_balance = balance - amount
    if new_balance == 0:
        # An empty account is deleted rather than stored as zero.
        db.remove(key)
    else:
        db.insert(key, _U64.pack(new_balance))


# Assets


def prefix_asset_key(asset: bytes) -> bytes:
    return bytes([ASSET_PREFIX]) + _check_len(asset, ID_LEN, "asset id")


def _decode_asset(value: Optional[bytes]) -> Optional[AssetRecord]:
    if value is None:
        return None
    (metadata_len,) = _U16.unpack_from(value)
    offset = _U16.size
    metadata = value[offset : offset + metadata_len]
    offset += metadata_len
    (supply,) = _U64.unpack_from(value, offset)
    offset += _U64.size
    owner = value[offset : offset + PUBLIC_KEY_LEN]
    offset += PUBLIC_KEY_LEN
    return AssetRecord(bytes(metadata), supply, bytes(owner), value[offset] == 0x1)


def get_asset_from_state(read_state: ReadState, asset: bytes) -> Optional[AssetRecord]:
    return _decode_asset(_read_one(read_state, prefix_asset_key(asset)))


def get_asset(db: Database, asset: bytes) -> Optional[AssetRecord]:
    """Return an asset's record, or None if it does not exist."""
    return _decode_asset(_lookup(db, prefix_asset_key(asset)))


def set_asset(
    db: Database,
    asset: bytes,
    metadata: bytes,
    supply: int,
    owner: bytes,
    warp: bool,
) -> None:
    if len(metadata) > MAX_METADATA_LEN:
        raise ValueError(f"metadata too long: {len(metadata)} bytes")
    value = b"".join(
        (
            _U16.pack(len(metadata)),
            bytes(metadata),
            _U64.pack(_check_u64(supply, "supply")),
            _check_len(owner, PUBLIC_KEY_LEN, "owner"),
            bytes([0x1 if warp else 0x0]),
        )
    )
    db.insert(prefix_asset_key(asset), value)


def delete_asset(db: Database, asset: bytes) -> None:
    db.remove(prefix_asset_key(asset))


# Orders


def prefix_order_key(tx_id: bytes) -> bytes:
    return bytes([ORDER_PREFIX]) + _check_len(tx_id, ID_LEN, "order id")


def set_order(
    db: Database,
    tx_id: bytes,
    in_asset: bytes,
    in_tick: int,
    out_asset: bytes,
    out_tick: int,
    supply: int,
    owner: bytes,
) -> None:
    value = b"".join(
        (
            _check_len(in_asset, ID_LEN, "in asset"),
            _U64.pack(_check_u64(in_tick, "in tick")),
            _check_len(out_asset, ID_LEN, "out asset"),
            _U64.pack(_check_u64(out_tick, "out tick")),
            _U64.pack(_check_u64(supply, "supply")),
            _check_len(owner, PUBLIC_KEY_LEN, "owner"),
        )
    )
    db.insert(prefix_order_key(tx_id), value)


def get_order(db: Database, order: bytes) -> Optional[OrderRecord]:
    """Return an open order, or None if it does not exist."""
    value = _lookup(db, prefix_order_key(order))
    if value is None:
        return None
    offset = 0
    in_asset = value[offset : offset + ID_LEN]
    offset += ID_LEN
    (in_tick,) = _U64.unpack_from(value, offset)
    offset += _U64.size
    out_asset = value[offset : offset + ID_LEN]
    offset += ID_LEN
    out_tick, remaining = struct.unpack_from(">QQ", value, offset)
    offset += 2 * _U64.size
    owner = value[offset : offset + PUBLIC_KEY_LEN]
    return OrderRecord(
        bytes(in_asset), in_tick, bytes(out_asset), out_tick, remaining, bytes(owner)
    )


def delete_order(db: Database, order: bytes) -> None:
    db.remove(prefix_order_key(order))


# Loans


def prefix_loan_key(asset: bytes, destination: bytes) -> bytes:
    return (
        bytes([LOAN_PREFIX])
        + _check_len(asset, ID_LEN, "asset id")
        + _check_len(destination, ID_LEN, "destination")
    )


def get_loan_from_state(read_state: ReadState, asset: bytes, destination: bytes) -> int:
    return _decode_u64(_read_one(read_state, prefix_loan_key(asset, destination)))


def get_loan(db: Database, asset: bytes, destination: bytes) -> int:
    """Return the amount of an asset loaned to a destination chain."""
    return _decode_u64(_lookup(db, prefix_loan_key(asset, destination)))


def set_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    db.insert(prefix_loan_key(asset, destination), _U64.pack(_check_u64(amount, "amount")))


def add_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    loan = get_loan(db, asset, destination)
    new_loan = loan + amount
    if new_loan > MAX_UINT64:
        raise InvalidBalanceError(
            f"could not add loan (asset={encode_id(asset)}, "
            f"destination={encode_id(destination)}, amount={amount})"
        )
    set_loan(db, asset, destination, new_loan)


def sub_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    loan = get_loan(db, asset, destination)
    if amount > loan:
        raise InvalidBalanceError(
            f"could not subtract loan (asset={encode_id(asset)}, "
            f"destination={encode_id(destination)}, amount={amount})"
        )
    new_loan = loan - amount
    if new_loan == 0:
        db.remove(prefix_loan_key(asset, destination))
    else:
        set_loan(db, asset, destination, new_loan)


# Chain bookkeeping


def height_key() -> bytes:
    return _HEIGHT_KEY


def incoming_warp_key_prefix(source_chain_id: bytes, msg_id: bytes) -> bytes:
    return (
        bytes([INCOMING_WARP_PREFIX])
        + _check_len(source_chain_id, ID_LEN, "source chain id")
        + _check_len(msg_id, ID_LEN, "message id")
    )


def outgoing_warp_key_prefix(tx_id: bytes) -> bytes:
    return bytes([OUTGOING_WARP_PREFIX]) + _check_len(tx_id, ID_LEN, "transaction id")