# fundpool

A small pooled-funding contract. Contributors pay into a shared pool during a
contribution window. When that window closes, contributors who paid enough
submit proposals, and each proposal names a Bitcoin address. Contributors then
vote. When voting ends and quorum is reached, the proposal with the most votes
is chosen for the payout.

The contract state and its instructions use a compact little-endian binary
encoding in the Borsh layout. A whole round can therefore run through bytes
held in an account's data.

The package needs only the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `fundpool.contract`: the contract itself. It holds `Contract`, `PoolParams`,
  `Proposal`, `PoolState`, `PoolInfo` and `is_valid_bitcoin_address`.
- `fundpool.processor`: instruction types, `encode_instruction`,
  `decode_instruction`, `process_instruction` and `entrypoint`.
- `fundpool.errors`: `ContractError` and `ContractErrorKind`.
- `fundpool.runtime`: `Pubkey`, `AccountInfo`, `ProgramError`,
  `ProgramErrorKind`, the transaction types and the host calls.
- `fundpool.codec`: `BorshReader`, `BorshWriter` and `DecodeError`.

## Lifecycle

A pool is always in one of the phases of `fundpool.contract.PoolState`:

1. `UNINITIALIZED`: nothing is configured yet. `Contract.initialize_pool`
   moves the pool to the next phase.
2. `CONTRIBUTION_PHASE`: `Contract.contribute` and
   `Contract.emergency_withdraw` are allowed. Contributions close at
   `contribution_deadline`.
3. `VOTING_PHASE`: `Contract.submit_proposal` and `Contract.cast_vote` are
   allowed. Voting closes at `voting_deadline`.
4. `EXECUTION_PHASE`: `Contract.execute_transfer` checks quorum and picks the
   proposal with the most votes.
5. `COMPLETED`: the transfer has been executed.

Deadlines are Unix timestamps in seconds. There is no timer. The phase advances
only when an operation finds that a deadline has passed. For example,
`contribute` after `contribution_deadline` moves the pool to `VOTING_PHASE` and
still raises `POOL_DEADLINE_PASSED`.

The rules enforced:

- `initialize_pool` needs `min_contribution < max_contribution`,
  `contribution_deadline < voting_deadline` and `quorum_percentage <= 100`.
- Each single contribution must lie between the minimum and the maximum. A
  contributor's running total may not exceed the maximum.
- A proposer needs at least `proposal_threshold` contributed. A voter needs at
  least `voting_threshold`. Each contributor votes once.
- A Bitcoin address is checked by its prefix only. It must start with `1`, `3`
  or `bc1`.
- `execute_transfer` needs at least one proposal and one vote. The number of
  voters divided by the number of contributors must reach
  `quorum_percentage / 100`. When proposals tie, the first one reached keeps the
  lead.
- `emergency_withdraw` returns a contributor's whole stake. It works only during
  `CONTRIBUTION_PHASE`.

## Using the contract directly

```python
import time

from fundpool.contract import Contract, PoolParams, PoolState
from fundpool.runtime import Pubkey

now = int(time.time())
contract = Contract()
contract.initialize_pool(PoolParams(
    min_contribution=1000,
    max_contribution=10000,
    contribution_deadline=now + 86400,
    voting_deadline=now + 172800,
    proposal_threshold=2000,
    voting_threshold=1000,
    quorum_percentage=60,
))

alice = Pubkey.new_unique()
contract.contribute(alice, 5000)
assert contract.state is PoolState.CONTRIBUTION_PHASE

info = contract.get_pool_info()
print(info.total_balance, info.total_contributors)   # 5000 1

restored = Contract.from_bytes(contract.to_bytes())
assert restored == contract
```

`get_proposals()` returns copies of all proposals, ordered by id.
`get_winning_proposal()` returns a copy of the chosen proposal, or `None`.
`Contract.from_bytes` raises `fundpool.codec.DecodeError` on malformed data and
on trailing bytes.

## Errors

A broken rule raises `fundpool.errors.ContractError`. Its `kind` attribute is a
`ContractErrorKind`. `to_program_error()` returns `ProgramError.custom(code)`,
where the code is the kind's value:

| code | kind |
|-----:|------|
| 1 | `POOL_NOT_INITIALIZED` |
| 2 | `POOL_ALREADY_INITIALIZED` |
| 3 | `CONTRIBUTION_TOO_LOW` |
| 4 | `CONTRIBUTION_TOO_HIGH` |
| 5 | `POOL_DEADLINE_PASSED` |
| 6 | `VOTING_PERIOD_NOT_ENDED` |
| 7 | `VOTING_PERIOD_ENDED` |
| 8 | `CONTRIBUTOR_NOT_FOUND` |
| 9 | `INSUFFICIENT_CONTRIBUTION_FOR_PROPOSAL` |
| 10 | `INSUFFICIENT_CONTRIBUTION_FOR_VOTING` |
| 11 | `PROPOSAL_NOT_FOUND` |
| 12 | `ALREADY_VOTED` |
| 13 | `INVALID_BITCOIN_ADDRESS` |
| 14 | `NO_PROPOSALS_SUBMITTED` |
| 15 | `NO_VOTES_CAST` |
| 16 | `QUORUM_NOT_REACHED` |
| 17 | `TRANSFER_ALREADY_EXECUTED` |
| 18 | `LOCK_TIME_ERROR` |
| 19 | `IO_ERROR` |

The kind `PROGRAM_ERROR` wraps a `fundpool.runtime.ProgramError` raised by a
host call. That error is returned unchanged.

## Processing instructions

`fundpool.processor.process_instruction(program_id, accounts, data)` decodes the
instruction bytes. It loads the contract from the first account's data, applies
the instruction and writes the new state back into that account's `data`. The
first account must be owned by `program_id`. Any failure raises
`fundpool.runtime.ProgramError`. `entrypoint` does the same thing.

```python
import time

from fundpool.contract import Contract, PoolParams
from fundpool.processor import Contribute, InitializePool, encode_instruction, process_instruction
from fundpool.runtime import AccountInfo, Pubkey

program_id = Pubkey.new_unique()
contract_account = AccountInfo(key=Pubkey.new_unique(), owner=program_id)
contributor = AccountInfo(key=Pubkey.new_unique(), owner=Pubkey.new_unique())
payer = AccountInfo(key=Pubkey.new_unique(), owner=Pubkey.new_unique())

now = int(time.time())
params = PoolParams(1000, 10000, now + 86400, now + 172800, 2000, 1000, 60)

process_instruction(program_id, [contract_account, payer],
                    encode_instruction(InitializePool(params=params)))
process_instruction(program_id, [contract_account, contributor, payer],
                    encode_instruction(Contribute(amount=5000)))

state = Contract.from_bytes(contract_account.data)
assert state.contributions[contributor.key] == 5000
```

Accounts expected by each instruction:

| instruction | accounts |
|-------------|----------|
| `InitializePool(params)` | contract, payer |
| `Contribute(amount)` | contract, contributor, payer |
| `SubmitProposal(bitcoin_address, description)` | contract, proposer, payer |
| `CastVote(proposal_id)` | contract, voter, payer |
| `ExecuteTransfer()` | contract |
| `EmergencyWithdraw()` | contract, contributor, payer |

An instruction is encoded as a one-byte tag (0 to 5, in the order above)
followed by its fields. Integers are encoded as u64 and strings as a u32 length
followed by UTF-8 bytes. `decode_instruction` rejects unknown tags and trailing
bytes with `DecodeError`. `process_instruction` turns that error, or a contract
account whose data cannot be decoded, into
`ProgramError(ProgramErrorKind.INVALID_INSTRUCTION_DATA)`. Too few accounts give
`NOT_ENOUGH_ACCOUNT_KEYS`. A contract account with the wrong owner gives
`INCORRECT_PROGRAM_ID`. `InitializePool` starts from a fresh `Contract` when the
account's data is empty or cannot be decoded.

Progress lines such as `Instruction: Contribute` are printed to standard output
by `fundpool.runtime.msg`.

## What this package does not do

The host calls in `fundpool.runtime` are fixed stand-ins, not a connection to a
chain or a Bitcoin node:

- `get_account_script_pubkey` returns 32 zero bytes for any address.
- `get_bitcoin_block_height` always returns 100000.
- `set_transaction_to_sign` only checks that it was given a `TransactionToSign`.
- `add_state_transition` returns the state's bytes.

`execute_transfer` records the winning proposal and marks the pool completed.
It does not build a spendable Bitcoin transaction, and nothing is signed,
broadcast or paid out. State lives only in the bytes of an `AccountInfo`. There
is no command-line tool and no storage of its own.