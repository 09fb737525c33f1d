import time

import pytest

from fundpool.codec import DecodeError
from fundpool.contract import Contract, PoolParams, PoolState
from fundpool.processor import (
    CastVote,
    Contribute,
    EmergencyWithdraw,
    ExecuteTransfer,
    InitializePool,
    SubmitProposal,
    decode_instruction,
    encode_instruction,
    entrypoint,
    process_instruction,
)
from fundpool.runtime import AccountInfo, ProgramError, ProgramErrorKind, Pubkey

ADDRESS = "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"


def now():
    return int(time.time())


def make_params(contribution_offset=86400, voting_offset=172800):
    t = now()
    return PoolParams(
        min_contribution=1000,
        max_contribution=10000,
        contribution_deadline=t + contribution_offset,
        voting_deadline=t + voting_offset,
        proposal_threshold=2000,
        voting_threshold=1000,
        quorum_percentage=60,
    )


def account(key=None, owner=None, data=b""):
    return AccountInfo(
        key=key or Pubkey.new_unique(), owner=owner or Pubkey.new_unique(), data=data
    )


def funded_contract(*contributors):
    contract = Contract()
    contract.initialize_pool(make_params())
    for key, amount in contributors:
        contract.contribute(key, amount)
    return contract


def test_initialize_pool():
    program_id = Pubkey.new_unique()
    contract_account = account(owner=program_id)
    payer = account()
    data = encode_instruction(InitializePool(make_params()))

    process_instruction(program_id, [contract_account, payer], data)

    contract = Contract.from_bytes(contract_account.data)
    assert contract.state is PoolState.CONTRIBUTION_PHASE
    assert contract.params is not None
    assert contract.total_balance == 0
    assert len(contract.contributions) == 0
    assert len(contract.proposals) == 0
    assert len(contract.votes) == 0
    assert contract.next_proposal_id == 1
    assert contract.winning_proposal is None
    assert contract.transfer_executed is False


def test_initialize_twice_is_rejected():
    program_id = Pubkey.new_unique()
    contract_account = account(owner=program_id, data=funded_contract().to_bytes())
    data = encode_instruction(InitializePool(make_params()))
    with pytest.raises(ProgramError) as info:
        process_instruction(program_id, [contract_account, account()], data)
    assert info.value == ProgramError.custom(2)


def test_contribute():
    program_id = Pubkey.new_unique()
    contract_account = account(owner=program_id, data=funded_contract().to_bytes())
    contributor_key = Pubkey.new_unique()
    accounts = [contract_account, account(key=contributor_key), account()]

    process_instruction(program_id, accounts, encode_instruction(Contribute(5000)))

    contract = Contract.from_bytes(contract_account.data)
    assert contract.state is PoolState.CONTRIBUTION_PHASE
    assert contract.total_balance == 5000
    assert len(contract.contributions) == 1
    assert contract.contributions[contributor_key] == 5000


def test_contribute_too_low_maps_to_custom_code():
    program_id = Pubkey.new_unique()
    contract_account = account(owner=program_id, data=funded_contract().to_bytes())
    accounts = [contract_account, account(), account()]
    with pytest.raises(ProgramError) as info:
        process_instruction(program_id, accounts, encode_instruction(Contribute(10)))
    assert info.value == ProgramError.custom(3)


def test_submit_proposal():
    program_id = Pubkey.new_unique()
    proposer_key = Pubkey.new_unique()
    contract = funded_contract((proposer_key, 5000))
    contract.params.contribution_deadline = now() - 1000
    contract.params.voting_deadline = now() + 86400
    contract.state = PoolState.VOTING_PHASE

    contract_account = account(owner=program_id, data=contract.to_bytes())
    accounts = [contract_account, account(key=proposer_key), account()]
    data = encode_instruction(SubmitProposal(ADDRESS, "Test proposal"))

    process_instruction(program_id, accounts, data)

    stored = Contract.from_bytes(contract_account.data)
    assert stored.state is PoolState.VOTING_PHASE
    assert len(stored.proposals) == 1
    assert stored.next_proposal_id == 2
    proposal = stored.proposals[1]
    assert proposal.id == 1
    assert proposal.proposer == proposer_key
    assert proposal.votes == 0


def test_submit_proposal_without_contribution_fails():
    program_id = Pubkey.new_unique()
    proposer_key = Pubkey.new_unique()
    contract = Contract()
    contract.initialize_pool(make_params(-1000, 86400))
    with pytest.raises(Exception):
        contract.contribute(proposer_key, 5000)
    contract.state = PoolState.VOTING_PHASE

    contract_account = account(owner=program_id, data=contract.to_bytes())
    accounts = [contract_account, account(key=proposer_key), account()]
    data = encode_instruction(SubmitProposal(ADDRESS, "Test proposal"))
    with pytest.raises(ProgramError) as info:
        process_instruction(program_id, accounts, data)
    assert info.value == ProgramError.custom(9)


def test_cast_vote():
    program_id = Pubkey.new_unique()
    proposer_key = Pubkey.new_unique()
    voter_key = Pubkey.new_unique()
    contract = funded_contract((proposer_key, 5000), (voter_key, 3000))
    contract.params.contribution_deadline = now() - 1000
    contract.params.voting_deadline = now() + 86400
    contract.state = PoolState.VOTING_PHASE
    contract.submit_proposal(proposer_key, ADDRESS, "Test proposal")

    contract_account = account(owner=program_id, data=contract.to_bytes())
    accounts = [contract_account, account(key=voter_key), account()]

    process_instruction(program_id, accounts, encode_instruction(CastVote(1)))

    stored = Contract.from_bytes(contract_account.data)
    assert stored.state is PoolState.VOTING_PHASE
    assert len(stored.votes) == 1
    assert stored.votes[voter_key] == 1
    assert stored.proposals[1].votes == 1


def test_execute_transfer_without_proposals_fails():
    program_id = Pubkey.new_unique()
    proposer_key = Pubkey.new_unique()
    voter_key = Pubkey.new_unique()
    contract = Contract()
    contract.initialize_pool(make_params(-2000, -1000))
    for key, amount in ((proposer_key, 5000), (voter_key, 3000)):
        with pytest.raises(Exception):
            contract.contribute(key, amount)
    contract.state = PoolState.EXECUTION_PHASE

    contract_account = account(owner=program_id, data=contract.to_bytes())
    accounts = [contract_account, account()]
    with pytest.raises(ProgramError) as info:
        process_instruction(program_id, accounts, encode_instruction(ExecuteTransfer()))
    assert info.value == ProgramError.custom(14)


def test_execute_transfer_succeeds_and_completes():
    program_id = Pubkey.new_unique()
    proposer_key = Pubkey.new_unique()
    voter_key = Pubkey.new_unique()
    contract = funded_contract((proposer_key, 5000), (voter_key, 3000))
    contract.params.contribution_deadline = now() - 2000
    contract.params.voting_deadline = now() + 1000
    contract.state = PoolState.VOTING_PHASE
    proposal_id = contract.submit_proposal(proposer_key, ADDRESS, "Test proposal")
    contract.cast_vote(voter_key, proposal_id)
    contract.cast_vote(proposer_key, proposal_id)
    contract.params.voting_deadline = now() - 1000
    contract.state = PoolState.EXECUTION_PHASE

    contract_account = account(owner=program_id, data=contract.to_bytes())
    process_instruction(
        program_id, [contract_account, account()], encode_instruction(ExecuteTransfer())
    )

    stored = Contract.from_bytes(contract_account.data)
    assert stored.state is PoolState.COMPLETED
    assert stored.transfer_executed is True
    assert stored.winning_proposal == proposal_id


def test_emergency_withdraw():
    program_id = Pubkey.new_unique()
    contributor_key = Pubkey.new_unique()
    contract = funded_contract((contributor_key, 5000))
    contract_account = account(owner=program_id, data=contract.to_bytes())
    accounts = [contract_account, account(key=contributor_key), account()]

    process_instruction(program_id, accounts, encode_instruction(EmergencyWithdraw()))

    stored = Contract.from_bytes(contract_account.data)
    assert stored.state is PoolState.CONTRIBUTION_PHASE
    assert stored.total_balance == 0
    assert len(stored.contributions) == 0


def test_emergency_withdraw_logs_amount(capsys):
    program_id = Pubkey.new_unique()
    contributor_key = Pubkey.new_unique()
    contract = funded_contract((contributor_key, 4000))
    contract_account = account(owner=program_id, data=contract.to_bytes())
    accounts = [contract_account, account(key=contributor_key), account()]
    entrypoint(program_id, accounts, encode_instruction(EmergencyWithdraw()))
    out = capsys.readouterr().out
    assert "Instruction: EmergencyWithdraw" in out
    assert "Emergency withdrawal of 4000 satoshis successful" in out


def test_wrong_owner_is_rejected():
    program_id = Pubkey.new_unique()
    contract_account = account(owner=Pubkey.new_unique())
    with pytest.raises(ProgramError) as info:
        process_instruction(
            program_id, [contract_account, account()], encode_instruction(InitializePool(make_params()))
        )
    assert info.value.kind is ProgramErrorKind.INCORRECT_PROGRAM_ID


def test_missing_accounts_are_rejected():
    program_id = Pubkey.new_unique()
    contract_account = account(owner=program_id, data=funded_contract().to_bytes())
    with pytest.raises(ProgramError) as info:
        process_instruction(program_id, [contract_account], encode_instruction(Contribute(5000)))
    assert info.value.kind is ProgramErrorKind.NOT_ENOUGH_ACCOUNT_KEYS


def test_corrupt_contract_state_is_rejected():
    program_id = Pubkey.new_unique()
    contract_account = account(owner=program_id, data=b"\x09garbage")
    with pytest.raises(ProgramError) as info:
        process_instruction(
            program_id, [contract_account, account(), account()], encode_instruction(Contribute(5000))
        )
    assert info.value.kind is ProgramErrorKind.INVALID_INSTRUCTION_DATA


def test_initialize_over_corrupt_state_starts_fresh():
    program_id = Pubkey.new_unique()
    contract_account = account(owner=program_id, data=b"\x09garbage")
    process_instruction(
        program_id, [contract_account, account()], encode_instruction(InitializePool(make_params()))
    )
    assert Contract.from_bytes(contract_account.data).state is PoolState.CONTRIBUTION_PHASE


@pytest.mark.parametrize("data", [b"", b"\x06", b"\x01\x00", b"\x04\x00"])
def test_bad_instruction_data(data):
    with pytest.raises(ProgramError) as info:
        process_instruction(Pubkey.new_unique(), [], data)
    assert info.value.kind is ProgramErrorKind.INVALID_INSTRUCTION_DATA


@pytest.mark.parametrize(
    "instruction",
    [
        InitializePool(make_params()),
        Contribute(5000),
        SubmitProposal(ADDRESS, "Test proposal"),
        CastVote(7),
        ExecuteTransfer(),
        EmergencyWithdraw(),
    ],
)
def test_instruction_round_trip(instruction):
    assert decode_instruction(encode_instruction(instruction)) == instruction


def test_instruction_encoding_layout():
    assert encode_instruction(Contribute(5000)) == b"\x01" + (5000).to_bytes(8, "little")
    assert encode_instruction(ExecuteTransfer()) == b"\x04"
    assert encode_instruction(EmergencyWithdraw()) == b"\x05"
    assert encode_instruction(SubmitProposal("1", "")) == b"\x02\x01\x00\x00\x001\x00\x00\x00\x00"


def test_decode_rejects_trailing_bytes():
    with pytest.raises(DecodeError):
        decode_instruction(b"\x05\x00")