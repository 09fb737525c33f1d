"""Instruction decoding and dispatch for the pool program."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, ClassVar, Sequence, Union

from fundpool.codec import BorshReader, BorshWriter, DecodeError
from fundpool.contract import Contract, PoolParams
from fundpool.errors import ContractError
from fundpool.runtime import (
    AccountInfo,
    ProgramError,
    ProgramErrorKind,
    Pubkey,
    add_state_transition,
    msg,
    next_account_info,
)


@dataclass(frozen=True)
class InitializePool:
    """Open a pool with the given parameters."""

    TAG: ClassVar[int] = 0
    params: PoolParams


@dataclass(frozen=True)
class Contribute:
    """Add funds to the pool."""

    TAG: ClassVar[int] = 1
    amount: int


@dataclass(frozen=True)
class SubmitProposal:
    """Propose a payout address."""

    TAG: ClassVar[int] = 2
    bitcoin_address: str
    description: str


@dataclass(frozen=True)
class CastVote:
    """Vote for a proposal."""

    TAG: ClassVar[int] = 3
    proposal_id: int


@dataclass(frozen=True)
class ExecuteTransfer:
    """Pay the pool out to the winning proposal."""

    TAG: ClassVar[int] = 4


@dataclass(frozen=True)
class EmergencyWithdraw:
    """Take a contribution back while contributions are open."""

    TAG: ClassVar[int] = 5


Instruction = Union[
    InitializePool, Contribute, SubmitProposal, CastVote, ExecuteTransfer, EmergencyWithdraw
]

_KINDS = (InitializePool, Contribute, SubmitProposal, CastVote, ExecuteTransfer, EmergencyWithdraw)
_BY_TAG = {kind.TAG: kind for kind in _KINDS}

# Field annotations are strings here; integers travel as u64.
_WRITERS: dict[str, Callable[[BorshWriter, Any], None]] = {
    "PoolParams": lambda writer, value: value.encode(writer),
    "int": BorshWriter.write_u64,
    "str": BorshWriter.write_string,
}
_READERS: dict[str, Callable[[BorshReader], Any]] = {
    "PoolParams": PoolParams.decode,
    "int": BorshReader.read_u64,
    "str": BorshReader.read_string,
}


def encode_instruction(instruction: Instruction) -> bytes:
    """Serialize an instruction: a one-byte tag followed by its fields."""
    writer = BorshWriter()
    writer.write_u8(instruction.TAG)
    for field in fields(instruction):
        _WRITERS[field.type](writer, getattr(instruction, field.name))
    return writer.getvalue()


def decode_instruction(data: bytes | bytearray | memoryview) -> Instruction:
    """Parse instruction bytes; every byte must be used."""
    reader = BorshReader(data)
    tag = reader.read_u8()
    kind = _BY_TAG.get(tag)
    if kind is None:
        raise DecodeError(f"unknown instruction tag: {tag}")
    instruction = kind(*(_READERS[field.type](reader) for field in fields(kind)))
    if reader.remaining():
        raise DecodeError("Not all bytes read")
    return instruction


def _take(program_id: Pubkey, accounts: Sequence[AccountInfo], count: int) -> list[AccountInfo]:
    """Take the leading accounts; the first must be the program-owned contract account."""
    it = iter(accounts)
    taken = [next_account_info(it) for _ in range(count)]
    if taken[0].owner != program_id:
        msg("Contract account not owned by program")
        raise ProgramError(ProgramErrorKind.INCORRECT_PROGRAM_ID)
    return taken


def _load(contract_account: AccountInfo) -> Contract:
    try:
        return Contract.from_bytes(contract_account.data)
    except DecodeError:
        msg("Failed to deserialize contract state")
        raise ProgramError(ProgramErrorKind.INVALID_INSTRUCTION_DATA) from None


def _save(
    contract_account: AccountInfo, payer: AccountInfo, program_id: Pubkey, contract: Contract
) -> None:
    contract_account.data[:] = add_state_transition(payer, program_id, contract)


def _run(action: Callable[[], Any]) -> Any:
    try:
        return action()
    except ContractError as exc:
        raise exc.to_program_error() from exc


def _transact(
    program_id: Pubkey,
    accounts: Sequence[AccountInfo],
    action: Callable[[Contract, Pubkey], Any],
    report: Callable[[Any], str] | None = None,
) -> None:
    """Load the contract, apply an action on behalf of the second account, and save."""
    contract_account, actor, payer = _take(program_id, accounts, 3)
    contract = _load(contract_account)
    result = _run(lambda: action(contract, actor.key))
    if report is not None:
        msg(report(result))
    _save(contract_account, payer, program_id, contract)


def _initialize_pool(program_id: Pubkey, accounts: Sequence[AccountInfo], ins: InitializePool) -> None:
    contract_account, payer = _take(program_id, accounts, 2)
    contract = Contract()
    if contract_account.data:
        try:
            contract = Contract.from_bytes(contract_account.data)
        except DecodeError:
            msg("Failed to deserialize contract state")
    _run(lambda: contract.initialize_pool(ins.params))
    _save(contract_account, payer, program_id, contract)


def _contribute(program_id: Pubkey, accounts: Sequence[AccountInfo], ins: Contribute) -> None:
    _transact(program_id, accounts, lambda contract, key: contract.contribute(key, ins.amount))


def _submit_proposal(program_id: Pubkey, accounts: Sequence[AccountInfo], ins: SubmitProposal) -> None:
    _transact(
        program_id,
        accounts,
        lambda contract, key: contract.submit_proposal(key, ins.bitcoin_address, ins.description),
        lambda proposal_id: f"Proposal submitted with ID: {proposal_id}",
    )


def _cast_vote(program_id: Pubkey, accounts: Sequence[AccountInfo], ins: CastVote) -> None:
    _transact(program_id, accounts, lambda contract, key: contract.cast_vote(key, ins.proposal_id))


def _execute_transfer(program_id: Pubkey, accounts: Sequence[AccountInfo], ins: ExecuteTransfer) -> None:
    (contract_account,) = _take(program_id, accounts, 1)
    contract = _load(contract_account)
    _run(lambda: contract.execute_transfer(program_id, accounts))
    msg("Transfer executed successfully")
    contract_account.data[:] = contract.to_bytes()


def _emergency_withdraw(
    program_id: Pubkey, accounts: Sequence[AccountInfo], ins: EmergencyWithdraw
) -> None:
    _transact(
        program_id,
        accounts,
        lambda contract, key: contract.emergency_withdraw(key),
        lambda amount: f"Emergency withdrawal of {amount} satoshis successful",
    )


_HANDLERS: dict[type, Callable[[Pubkey, Sequence[AccountInfo], Any], None]] = {
    InitializePool: _initialize_pool,
    Contribute: _contribute,
    SubmitProposal: _submit_proposal,
    CastVote: _cast_vote,
    ExecuteTransfer: _execute_transfer,
    EmergencyWithdraw: _emergency_withdraw,
}


def process_instruction(
    program_id: Pubkey,
    accounts: Sequence[AccountInfo],
    instruction_data: bytes | bytearray | memoryview,
) -> None:
    """Decode an instruction and apply it to the contract account's state."""
    try:
        instruction = decode_instruction(instruction_data)
    except DecodeError:
        msg("Failed to deserialize instruction data")
        raise ProgramError(ProgramErrorKind.INVALID_INSTRUCTION_DATA) from None

    msg(f"Instruction: {type(instruction).__name__}")
    _HANDLERS[type(instruction)](program_id, accounts, instruction)


def entrypoint(
    program_id: Pubkey,
    accounts: Sequence[AccountInfo],
    instruction_data: bytes | bytearray | memoryview,
) -> None:
    """Program entry point called by the runtime."""
    process_instruction(program_id, accounts, instruction_data)