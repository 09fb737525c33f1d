"""Runtime services for a program: keys, accounts, errors and host calls."""

from __future__ import annotations

import enum
import itertools
import threading
from dataclasses import dataclass, field
from typing import Iterator, Protocol

PUBKEY_LENGTH = 32
SCRIPT_PUBKEY_LENGTH = 32
_U32_MAX = 2**32 - 1

_unique_counter = itertools.count()
_unique_lock = threading.Lock()


@dataclass(frozen=True, order=True)
class Pubkey:
    """A 32-byte account or program identifier."""

    key: bytes = bytes(PUBKEY_LENGTH)

    def __post_init__(self) -> None:
        raw = bytes(self.key)
        if len(raw) != PUBKEY_LENGTH:
            raise ValueError(f"a public key is {PUBKEY_LENGTH} bytes, got {len(raw)}")
        object.__setattr__(self, "key", raw)

    @classmethod
    def new_unique(cls) -> "Pubkey":
        """Return a key whose first byte comes from a wrapping process-wide counter."""
        with _unique_lock:
            counter = next(_unique_counter)
        return cls(bytes([counter % 256]) + bytes(PUBKEY_LENGTH - 1))

    def __bytes__(self) -> bytes:
        return self.key

    def __repr__(self) -> str:
        return f"Pubkey({list(self.key)!r})"


@dataclass(eq=False)
class AccountInfo:
    """An account handed to a program; ``data`` is shared and mutable."""

    key: Pubkey
    owner: Pubkey
    data: bytearray = field(default_factory=bytearray)
    lamports: int = 0
    is_signer: bool = False
    is_writable: bool = True
    executable: bool = False
    rent_epoch: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytearray):
            self.data = bytearray(self.data)


class ProgramErrorKind(enum.Enum):
    CUSTOM = "Custom error"
    INVALID_INSTRUCTION_DATA = "Invalid instruction data"
    INCORRECT_PROGRAM_ID = "Incorrect program ID"
    NOT_ENOUGH_ACCOUNT_KEYS = "Not enough account keys"


class ProgramError(Exception):
    """An error reported by a program to the runtime."""

    def __init__(self, kind: ProgramErrorKind, code: int | None = None) -> None:
        if kind is ProgramErrorKind.CUSTOM:
            if code is None:
                raise ValueError("a custom program error needs a code")
            if not 0 <= code <= _U32_MAX:
                raise ValueError(f"custom error code out of range: {code}")
            message = f"{kind.value}: {code}"
        else:
            if code is not None:
                raise ValueError(f"{kind.name} takes no code")
            message = kind.value
        super().__init__(message)
        self.kind = kind
        self.code = code

    @classmethod
    def custom(cls, code: int) -> "ProgramError":
        return cls(ProgramErrorKind.CUSTOM, code)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProgramError):
            return NotImplemented
        return (self.kind, self.code) == (other.kind, other.code)

    def __hash__(self) -> int:
        return hash((self.kind, self.code))

    def __repr__(self) -> str:
        if self.code is None:
            return f"ProgramError({self.kind.name})"
        return f"ProgramError({self.kind.name}, {self.code})"


@dataclass(frozen=True)
class LockTime:
    """An absolute lock time expressed as a block height."""

    height: int

    @classmethod
    def from_height(cls, height: int) -> "LockTime":
        if not 0 <= height <= _U32_MAX:
            raise ValueError(f"invalid lock time: {height}")
        return cls(height)


class TxVersion(enum.Enum):
    ONE = 1
    TWO = 2


@dataclass(frozen=True)
class Transaction:
    version: TxVersion
    lock_time: LockTime


@dataclass(frozen=True)
class InputToSign:
    """An input of a transaction that the program asks to have signed."""


@dataclass(frozen=True)
class TransactionToSign:
    transaction: Transaction
    inputs_to_sign: list[InputToSign] = field(default_factory=list)


class _Serializable(Protocol):
    def to_bytes(self) -> bytes: ...


def next_account_info(accounts: Iterator[AccountInfo]) -> AccountInfo:
    """Take the next account from an iterator of accounts."""
    try:
        return next(accounts)
    except StopIteration:
        raise ProgramError(ProgramErrorKind.NOT_ENOUGH_ACCOUNT_KEYS) from None


def get_account_script_pubkey(address: str) -> bytes:
    """Return the locking script for an address.

    The host reports a fixed, zero-filled script of 32 bytes for every address.
    """
    if not isinstance(address, str):
        raise TypeError(f"an address is a string, got {type(address).__name__}")
    return bytes(SCRIPT_PUBKEY_LENGTH)


def get_bitcoin_block_height() -> int:
    """Return the current block height as reported by the host."""
    return 100000


def set_transaction_to_sign(transaction: TransactionToSign) -> None:
    """Hand a transaction to the host for signing."""
    if not isinstance(transaction, TransactionToSign):
        raise TypeError("expected a TransactionToSign")


def add_state_transition(payer: AccountInfo, program_id: Pubkey, state: _Serializable) -> bytes:
    """Record a new program state and return its serialized form."""
    return state.to_bytes()


def msg(message: str) -> None:
    """Write a log line from the program."""
    print(message)