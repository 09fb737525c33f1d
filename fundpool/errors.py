"""Errors raised by the pool contract and their program error codes."""

from __future__ import annotations

import enum

from fundpool.runtime import ProgramError


class ContractErrorKind(enum.Enum):
    """Contract error kinds; the value is the custom program error code."""

    POOL_NOT_INITIALIZED = 1
    POOL_ALREADY_INITIALIZED = 2
    CONTRIBUTION_TOO_LOW = 3
    CONTRIBUTION_TOO_HIGH = 4
    POOL_DEADLINE_PASSED = 5
    VOTING_PERIOD_NOT_ENDED = 6
    VOTING_PERIOD_ENDED = 7
    CONTRIBUTOR_NOT_FOUND = 8
    INSUFFICIENT_CONTRIBUTION_FOR_PROPOSAL = 9
    INSUFFICIENT_CONTRIBUTION_FOR_VOTING = 10
    PROPOSAL_NOT_FOUND = 11
    ALREADY_VOTED = 12
    INVALID_BITCOIN_ADDRESS = 13
    NO_PROPOSALS_SUBMITTED = 14
    NO_VOTES_CAST = 15
    QUORUM_NOT_REACHED = 16
    TRANSFER_ALREADY_EXECUTED = 17
    LOCK_TIME_ERROR = 18
    IO_ERROR = 19
    # Wraps a runtime error, which keeps its own code.
    PROGRAM_ERROR = 0


class ContractError(Exception):
    """A contract rule was broken.

    ``detail`` holds the wrapped ProgramError for PROGRAM_ERROR and an
    optional message for IO_ERROR.
    """

    def __init__(self, kind: ContractErrorKind, detail: ProgramError | str | None = None) -> None:
        if kind is ContractErrorKind.PROGRAM_ERROR and not isinstance(detail, ProgramError):
            raise TypeError("PROGRAM_ERROR needs the ProgramError it wraps")
        if detail is None:
            message = kind.name
        else:
            message = f"{kind.name}: {detail}"
        super().__init__(message)
        self.kind = kind
        self.detail = detail

    def to_program_error(self) -> ProgramError:
        if self.kind is ContractErrorKind.PROGRAM_ERROR:
            assert isinstance(self.detail, ProgramError)
            return self.detail
        return ProgramError.custom(self.kind.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContractError):
            return NotImplemented
        return (self.kind, self.detail) == (other.kind, other.detail)

    def __hash__(self) -> int:
        return hash((self.kind, self.detail))

    def __repr__(self) -> str:
        if self.detail is None:
            return f"ContractError({self.kind.name})"
        return f"ContractError({self.kind.name}, {self.detail!r})"