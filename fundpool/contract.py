"""The pooled-fund contract: contributions, proposals, votes and payout."""

from __future__ import annotations

import contextlib
import dataclasses
import enum
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Sequence, TypeVar

from fundpool.codec import BorshReader, BorshWriter, DecodeError
from fundpool.errors import ContractError, ContractErrorKind
from fundpool.runtime import (
    PUBKEY_LENGTH,
    AccountInfo,
    InputToSign,
    LockTime,
    ProgramError,
    Pubkey,
    Transaction,
    TransactionToSign,
    TxVersion,
    add_state_transition,
    get_account_script_pubkey,
    get_bitcoin_block_height,
    next_account_info,
    set_transaction_to_sign,
)

_T = TypeVar("_T")


def _now() -> int:
    """Current Unix timestamp in whole seconds."""
    return int(time.time())


def _fail(kind: ContractErrorKind) -> ContractError:
    return ContractError(kind)


@contextlib.contextmanager
def _runtime_call() -> Iterator[None]:
    """Wrap runtime errors raised inside the block as contract errors."""
    try:
        yield
    except ProgramError as exc:
        raise ContractError(ContractErrorKind.PROGRAM_ERROR, exc) from exc


def _read_pubkey(reader: BorshReader) -> Pubkey:
    return Pubkey(reader.read_bytes(PUBKEY_LENGTH))


def _read_option(reader: BorshReader, read: Callable[[BorshReader], _T]) -> _T | None:
    tag = reader.read_u8()
    if tag == 0:
        return None
    if tag == 1:
        return read(reader)
    raise DecodeError("Invalid option tag")


def _write_pubkey_map(writer: BorshWriter, mapping: dict[Pubkey, int]) -> None:
    writer.write_u32(len(mapping))
    for key, value in mapping.items():
        writer.write_bytes(bytes(key))
        writer.write_u64(value)


def _read_pubkey_map(reader: BorshReader) -> dict[Pubkey, int]:
    count = reader.read_u32()
    result: dict[Pubkey, int] = {}
    for _ in range(count):
        key = _read_pubkey(reader)
        result[key] = reader.read_u64()
    return result


class PoolState(enum.Enum):
    """Lifecycle phase of a pool; the value is its wire tag."""

    UNINITIALIZED = 0
    CONTRIBUTION_PHASE = 1
    VOTING_PHASE = 2
    EXECUTION_PHASE = 3
    COMPLETED = 4

    def encode(self, writer: BorshWriter) -> None:
        writer.write_u8(self.value)

    @classmethod
    def decode(cls, reader: BorshReader) -> "PoolState":
        tag = reader.read_u8()
        try:
            return cls(tag)
        except ValueError:
            raise DecodeError(f"invalid pool state tag: {tag}") from None


@dataclass
class PoolParams:
    """Limits and deadlines (Unix timestamps) of a pool."""

    min_contribution: int
    max_contribution: int
    contribution_deadline: int
    voting_deadline: int
    proposal_threshold: int
    voting_threshold: int
    quorum_percentage: int

    def encode(self, writer: BorshWriter) -> None:
        writer.write_u64(self.min_contribution)
        writer.write_u64(self.max_contribution)
        writer.write_i64(self.contribution_deadline)
        writer.write_i64(self.voting_deadline)
        writer.write_u64(self.proposal_threshold)
        writer.write_u64(self.voting_threshold)
        writer.write_u8(self.quorum_percentage)

    @classmethod
    def decode(cls, reader: BorshReader) -> "PoolParams":
        return cls(
            min_contribution=reader.read_u64(),
            max_contribution=reader.read_u64(),
            contribution_deadline=reader.read_i64(),
            voting_deadline=reader.read_i64(),
            proposal_threshold=reader.read_u64(),
            voting_threshold=reader.read_u64(),
            quorum_percentage=reader.read_u8(),
        )


@dataclass
class Proposal:
    """A request to pay the pool out to a Bitcoin address."""

    id: int
    proposer: Pubkey
    bitcoin_address: str
    description: str
    votes: int = 0

    def encode(self, writer: BorshWriter) -> None:
        writer.write_u64(self.id)
        writer.write_bytes(bytes(self.proposer))
        writer.write_string(self.bitcoin_address)
        writer.write_string(self.description)
        writer.write_u64(self.votes)

    @classmethod
    def decode(cls, reader: BorshReader) -> "Proposal":
        return cls(
            id=reader.read_u64(),
            proposer=_read_pubkey(reader),
            bitcoin_address=reader.read_string(),
            description=reader.read_string(),
            votes=reader.read_u64(),
        )


@dataclass(frozen=True)
class PoolInfo:
    """A summary of a pool's state."""

    state: PoolState
    total_balance: int
    total_contributors: int
    total_proposals: int
    total_votes: int
    contribution_deadline: int
    voting_deadline: int


def is_valid_bitcoin_address(address: str) -> bool:
    """Loose check of an address by its prefix only."""
    return address.startswith(("1", "3", "bc1"))


@dataclass
class Contract:
    """State of a pool and the operations that change it."""

    state: PoolState = PoolState.UNINITIALIZED
    params: PoolParams | None = None
    total_balance: int = 0
    contributions: dict[Pubkey, int] = field(default_factory=dict)
    proposals: dict[int, Proposal] = field(default_factory=dict)
    votes: dict[Pubkey, int] = field(default_factory=dict)
    next_proposal_id: int = 1
    winning_proposal: int | None = None
    transfer_executed: bool = False

    def _require_params(self) -> PoolParams:
        if self.params is None:
            raise _fail(ContractErrorKind.POOL_NOT_INITIALIZED)
        return self.params

    def initialize_pool(self, params: PoolParams) -> None:
        """Set the pool's parameters and open the contribution phase."""
        if self.state is not PoolState.UNINITIALIZED:
            raise _fail(ContractErrorKind.POOL_ALREADY_INITIALIZED)
        if params.min_contribution >= params.max_contribution:
            raise _fail(ContractErrorKind.CONTRIBUTION_TOO_LOW)
        if params.contribution_deadline >= params.voting_deadline:
            raise _fail(ContractErrorKind.POOL_DEADLINE_PASSED)
        if params.quorum_percentage > 100:
            raise _fail(ContractErrorKind.QUORUM_NOT_REACHED)
        self.params = params
        self.state = PoolState.CONTRIBUTION_PHASE

    def contribute(self, contributor: Pubkey, amount: int) -> None:
        """Add ``amount`` to a contributor's stake."""
        params = self._require_params()
        if self.state is not PoolState.CONTRIBUTION_PHASE:
            raise _fail(ContractErrorKind.POOL_DEADLINE_PASSED)
        if _now() > params.contribution_deadline:
            self.state = PoolState.VOTING_PHASE
            raise _fail(ContractErrorKind.POOL_DEADLINE_PASSED)
        if amount < params.min_contribution:
            raise _fail(ContractErrorKind.CONTRIBUTION_TOO_LOW)
        if amount > params.max_contribution:
            raise _fail(ContractErrorKind.CONTRIBUTION_TOO_HIGH)
        new_total = self.contributions.get(contributor, 0) + amount
        if new_total > params.max_contribution:
            raise _fail(ContractErrorKind.CONTRIBUTION_TOO_HIGH)
        self.contributions[contributor] = new_total
        self.total_balance += amount

    def submit_proposal(self, proposer: Pubkey, bitcoin_address: str, description: str) -> int:
        """Record a proposal and return its id."""
        params = self._require_params()
        if self.state is not PoolState.VOTING_PHASE:
            if _now() > params.contribution_deadline:
                self.state = PoolState.VOTING_PHASE
            else:
                raise _fail(ContractErrorKind.POOL_DEADLINE_PASSED)
        if _now() > params.voting_deadline:
            self.state = PoolState.EXECUTION_PHASE
            raise _fail(ContractErrorKind.VOTING_PERIOD_ENDED)
        if self.contributions.get(proposer, 0) < params.proposal_threshold:
            raise _fail(ContractErrorKind.INSUFFICIENT_CONTRIBUTION_FOR_PROPOSAL)
        if not is_valid_bitcoin_address(bitcoin_address):
            raise _fail(ContractErrorKind.INVALID_BITCOIN_ADDRESS)
        proposal_id = self.next_proposal_id
        self.next_proposal_id += 1
        self.proposals[proposal_id] = Proposal(
            id=proposal_id,
            proposer=proposer,
            bitcoin_address=bitcoin_address,
            description=description,
        )
        return proposal_id

    def cast_vote(self, voter: Pubkey, proposal_id: int) -> None:
        """Record one vote from ``voter`` for a proposal."""
        params = self._require_params()
        if self.state is not PoolState.VOTING_PHASE:
            now = _now()
            if params.contribution_deadline < now <= params.voting_deadline:
                self.state = PoolState.VOTING_PHASE
            elif now > params.voting_deadline:
                self.state = PoolState.EXECUTION_PHASE
                raise _fail(ContractErrorKind.VOTING_PERIOD_ENDED)
            else:
                raise _fail(ContractErrorKind.POOL_DEADLINE_PASSED)
        if self.contributions.get(voter, 0) < params.voting_threshold:
            raise _fail(ContractErrorKind.INSUFFICIENT_CONTRIBUTION_FOR_VOTING)
        proposal = self.proposals.get(proposal_id)
        if proposal is None:
            raise _fail(ContractErrorKind.PROPOSAL_NOT_FOUND)
        if voter in self.votes:
            raise _fail(ContractErrorKind.ALREADY_VOTED)
        self.votes[voter] = proposal_id
        proposal.votes += 1

    def _pick_winner(self) -> int:
        winner_id = 0
        max_votes = 0
        for proposal_id, proposal in self.proposals.items():
            if proposal.votes > max_votes:
                max_votes = proposal.votes
                winner_id = proposal_id
        return winner_id

    def execute_transfer(self, program_id: Pubkey, accounts: Sequence[AccountInfo]) -> None:
        """Pay the pool to the proposal with the most votes."""
        params = self._require_params()
        if self.state is not PoolState.EXECUTION_PHASE:
            if _now() <= params.voting_deadline:
                raise _fail(ContractErrorKind.VOTING_PERIOD_NOT_ENDED)
            self.state = PoolState.EXECUTION_PHASE
        if self.transfer_executed:
            raise _fail(ContractErrorKind.TRANSFER_ALREADY_EXECUTED)
        if not self.proposals:
            raise _fail(ContractErrorKind.NO_PROPOSALS_SUBMITTED)
        if not self.votes:
            raise _fail(ContractErrorKind.NO_VOTES_CAST)

        contributors = len(self.contributions)
        turnout = len(self.votes) / contributors if contributors else float("inf")
        if turnout < params.quorum_percentage / 100.0:
            raise _fail(ContractErrorKind.QUORUM_NOT_REACHED)

        winner_id = self._pick_winner()
        if winner_id == 0:
            raise _fail(ContractErrorKind.NO_VOTES_CAST)
        winner = self.proposals.get(winner_id)
        if winner is None:
            raise _fail(ContractErrorKind.PROPOSAL_NOT_FOUND)

        with _runtime_call():
            payer = next_account_info(iter(accounts))
            get_account_script_pubkey(winner.bitcoin_address)
            height = get_bitcoin_block_height()
        try:
            lock_time = LockTime.from_height(height)
        except ValueError as exc:
            raise _fail(ContractErrorKind.LOCK_TIME_ERROR) from exc

        to_sign = TransactionToSign(
            transaction=Transaction(version=TxVersion.TWO, lock_time=lock_time),
            inputs_to_sign=[InputToSign()],
        )
        with _runtime_call():
            set_transaction_to_sign(to_sign)

        self.winning_proposal = winner_id
        self.transfer_executed = True
        self.state = PoolState.COMPLETED

        with _runtime_call():
            add_state_transition(payer, program_id, self)

    def emergency_withdraw(self, contributor: Pubkey) -> int:
        """Return a contributor's whole stake while contributions are open."""
        self._require_params()
        if self.state is not PoolState.CONTRIBUTION_PHASE:
            raise _fail(ContractErrorKind.POOL_DEADLINE_PASSED)
        amount = self.contributions.pop(contributor, None)
        if amount is None:
            raise _fail(ContractErrorKind.CONTRIBUTOR_NOT_FOUND)
        self.total_balance -= amount
        return amount

    def get_pool_info(self) -> PoolInfo:
        params = self._require_params()
        return PoolInfo(
            state=self.state,
            total_balance=self.total_balance,
            total_contributors=len(self.contributions),
            total_proposals=len(self.proposals),
            total_votes=len(self.votes),
            contribution_deadline=params.contribution_deadline,
            voting_deadline=params.voting_deadline,
        )

    def get_proposals(self) -> list[Proposal]:
        """Copies of all proposals, ordered by id."""
        return [dataclasses.replace(self.proposals[key]) for key in sorted(self.proposals)]

    def get_winning_proposal(self) -> Proposal | None:
        if self.winning_proposal is None:
            return None
        proposal = self.proposals.get(self.winning_proposal)
        return None if proposal is None else dataclasses.replace(proposal)

    def to_bytes(self) -> bytes:
        writer = BorshWriter()
        self.state.encode(writer)
        if self.params is None:
            writer.write_u8(0)
        else:
            writer.write_u8(1)
            self.params.encode(writer)
        writer.write_u64(self.total_balance)
        _write_pubkey_map(writer, self.contributions)
        writer.write_u32(len(self.proposals))
        for proposal_id, proposal in self.proposals.items():
            writer.write_u64(proposal_id)
            proposal.encode(writer)
        _write_pubkey_map(writer, self.votes)
        writer.write_u64(self.next_proposal_id)
        if self.winning_proposal is None:
            writer.write_u8(0)
        else:
            writer.write_u8(1)
            writer.write_u64(self.winning_proposal)
        writer.write_bool(self.transfer_executed)
        return writer.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> "Contract":
        """Decode a contract; every byte of ``data`` must be used."""
        reader = BorshReader(data)
        state = PoolState.decode(reader)
        params = _read_option(reader, PoolParams.decode)
        total_balance = reader.read_u64()
        contributions = _read_pubkey_map(reader)
        proposals: dict[int, Proposal] = {}
        for _ in range(reader.read_u32()):
            proposal_id = reader.read_u64()
            proposals[proposal_id] = Proposal.decode(reader)
        votes = _read_pubkey_map(reader)
        next_proposal_id = reader.read_u64()
        winning_proposal = _read_option(reader, BorshReader.read_u64)
        transfer_executed = reader.read_bool()
        if reader.remaining():
            raise DecodeError("Not all bytes read")
        return cls(
            state=state,
            params=params,
            total_balance=total_balance,
            contributions=contributions,
            proposals=proposals,
            votes=votes,
            next_proposal_id=next_proposal_id,
            winning_proposal=winning_proposal,
            transfer_executed=transfer_executed,
        )