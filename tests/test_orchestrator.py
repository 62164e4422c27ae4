# tests/test_orchestrator.py
from datetime import timedelta

import pytest

from questhub.core.errors import (
    AllocationsPendingError,
    AlreadyRewardedError,
    AuthorizationError,
    ClaimAddressMismatchError,
    ConfirmationPendingError,
    NotEligibleError,
    NotFinalizedError,
    PoolAlreadyInitializedError,
    PreconditionError,
    TaskExpiredError,
)
from questhub.models.progress import ProgressStatus
from questhub.schemas.quest_schema import QuestCreate
from questhub.services.reward_pool import pool_key_for

from conftest import ALICE_WALLET, BOB_WALLET, POLICY_ID, SIGNER_ADDRESS

SITE_A = "https://cardanohub.id/a"
SITE_B = "https://cardanohub.id/b"


def quest_payload(clock, **overrides):
    data = dict(
        name="Cardano Hub launch",
        reward=1000,
        token_policy_id=POLICY_ID,
        token_name="HUB",
        deadline=clock() + timedelta(days=7),
        admin_wallet_address=SIGNER_ADDRESS,
        tasks=[
            {"task_type": "VisitWebsite", "link": SITE_A, "points": 30},
            {"task_type": "VisitWebsite", "link": SITE_B, "points": 10},
            {"task_type": "FollowTwitter", "link": "cardanohubid", "points": 5},
        ],
    )
    data.update(overrides)
    return QuestCreate(**data)


@pytest.fixture
def alice(make_user):
    return make_user("alice", twitter_username="", wallet_address=ALICE_WALLET)


@pytest.fixture
def bob(make_user):
    return make_user("bob", twitter_username="bob_ada", wallet_address=BOB_WALLET)


@pytest.fixture
def live_quest(orchestrator, clock):
    quest = orchestrator.create_quest(quest_payload(clock), "creator")
    orchestrator.initialize_pool(quest.id, "creator")
    return quest


def complete_visit(orchestrator, quest, user, index):
    orchestrator.visit_link(quest.id, user, index)
    return orchestrator.submit_task(quest.id, user, index)


@pytest.fixture
def ended_quest(orchestrator, clock, live_quest, alice, bob):
    complete_visit(orchestrator, live_quest, alice, 0)
    complete_visit(orchestrator, live_quest, bob, 1)
    clock.advance(days=8)
    orchestrator.finalize_quest(live_quest.id, "creator")
    orchestrator.submit_allocations(live_quest.id, "creator")
    return live_quest


# ---- Quests ------------------------------------------------------------------

def test_create_quest_validates_tasks_and_deadline(orchestrator, clock):
    with pytest.raises(PreconditionError):
        orchestrator.create_quest(
            quest_payload(clock, tasks=[{"task_type": "JoinDiscord", "link": "nope", "points": 1}]), "creator"
        )
    with pytest.raises(PreconditionError):
        orchestrator.create_quest(quest_payload(clock, deadline=clock() - timedelta(minutes=1)), "creator")

    quest = orchestrator.create_quest(quest_payload(clock), "creator")
    assert [t.position for t in quest.tasks] == [0, 1, 2]


def test_initialize_pool_rules(orchestrator, clock, live_quest):
    assert live_quest.script_address
    assert live_quest.pool_tx_hash
    with pytest.raises(PoolAlreadyInitializedError):
        orchestrator.initialize_pool(live_quest.id, "creator")

    other = orchestrator.create_quest(quest_payload(clock, deadline=clock() + timedelta(days=3)), "creator")
    with pytest.raises(AuthorizationError):
        orchestrator.initialize_pool(other.id, "alice")


# ---- Tasks -------------------------------------------------------------------

def test_submit_task_flow(orchestrator, live_quest, alice):
    first = orchestrator.submit_task(live_quest.id, alice, 0)
    assert first.verified is False
    assert first.progress.points_collected == 0

    done = complete_visit(orchestrator, live_quest, alice, 0)
    assert done.verified is True
    assert done.progress.points_collected == 30
    assert done.progress.wallet_address == ALICE_WALLET

    again = orchestrator.submit_task(live_quest.id, alice, 0)
    assert again.already_completed is True
    assert again.progress.points_collected == 30


def test_empty_twitter_handle_never_raises(orchestrator, live_quest, alice, twitter):
    out = orchestrator.submit_task(live_quest.id, alice, 2)
    assert out.verified is False
    assert "Twitter username not provided" in out.message
    assert twitter.calls == []


def test_completed_task_skips_platform_lookup(orchestrator, live_quest, bob, twitter):
    twitter.followers = {"cardanohubid": {"bob_ada"}}
    assert orchestrator.submit_task(live_quest.id, bob, 2).verified is True
    calls = len(twitter.calls)

    assert orchestrator.submit_task(live_quest.id, bob, 2).already_completed is True
    assert len(twitter.calls) == calls


def test_submit_after_deadline(orchestrator, clock, live_quest, alice):
    clock.advance(days=7)
    with pytest.raises(TaskExpiredError):
        orchestrator.submit_task(live_quest.id, alice, 0)


def test_visit_link_only_for_website_tasks(orchestrator, live_quest, alice):
    assert orchestrator.visit_link(live_quest.id, alice, 2).verified is False
    assert orchestrator.visit_link(live_quest.id, alice, 0).verified is True


# ---- Rewards -----------------------------------------------------------------

def test_eligible_reward_before_and_after_end(orchestrator, clock, live_quest, alice, bob):
    complete_visit(orchestrator, live_quest, alice, 0)
    assert orchestrator.get_eligible_reward(live_quest.id, "alice").eligible is False

    complete_visit(orchestrator, live_quest, bob, 1)
    clock.advance(days=8)
    orchestrator.finalize_quest(live_quest.id, "creator")

    out = orchestrator.get_eligible_reward(live_quest.id, "alice")
    assert (out.eligible, out.amount) == (True, 750)
    assert orchestrator.get_eligible_reward(live_quest.id, "nobody").eligible is False


def test_claim_is_terminal(orchestrator, ledger, ended_quest, alice):
    out = orchestrator.claim_reward(ended_quest.id, alice, ALICE_WALLET)

    assert out.amount == 750
    assert ledger.submitted[-1].tx_id == out.tx_hash
    assert orchestrator.progress.get_entry(ended_quest.id, "alice").status == ProgressStatus.REWARDED
    assert orchestrator.get_eligible_reward(ended_quest.id, "alice").eligible is False

    with pytest.raises(AlreadyRewardedError):
        orchestrator.claim_reward(ended_quest.id, alice, ALICE_WALLET)


def test_claim_rejects_other_wallet(orchestrator, ended_quest, alice):
    with pytest.raises(ClaimAddressMismatchError):
        orchestrator.claim_reward(ended_quest.id, alice, BOB_WALLET)


def test_claim_absent_address_rejected_before_build(orchestrator, ledger, live_quest, alice, bob, clock):
    complete_visit(orchestrator, live_quest, alice, 0)
    complete_visit(orchestrator, live_quest, bob, 1)
    clock.advance(days=8)
    orchestrator.finalize_quest(live_quest.id, "creator")
    built = len(ledger.built)

    # allocations not yet submitted on-chain
    with pytest.raises(NotEligibleError):
        orchestrator.claim_reward(live_quest.id, alice, ALICE_WALLET)
    assert len(ledger.built) == built


def test_claim_before_finalize(orchestrator, live_quest, alice):
    complete_visit(orchestrator, live_quest, alice, 0)
    with pytest.raises(NotFinalizedError):
        orchestrator.claim_reward(live_quest.id, alice, ALICE_WALLET)


def test_withdraw_remainder(orchestrator, pool_client, clock, twitter, live_quest, alice, bob):
    twitter.followers = {"cardanohubid": {"bob_ada"}}
    complete_visit(orchestrator, live_quest, alice, 0)
    orchestrator.submit_task(live_quest.id, bob, 2)
    clock.advance(days=8)
    orchestrator.finalize_quest(live_quest.id, "creator")
    orchestrator.submit_allocations(live_quest.id, "creator")

    with pytest.raises(AuthorizationError):
        orchestrator.withdraw_remainder(live_quest.id, "alice")

    assert orchestrator.claim_reward(live_quest.id, alice, ALICE_WALLET).amount == 857
    out = orchestrator.withdraw_remainder(live_quest.id, "creator")

    datum = pool_client.current(pool_key_for(live_quest)).datum
    assert (out.amount, out.pool_closed) == (1, False)
    assert datum.total_rewards == sum(datum.eligible.values()) == 142


def test_withdraw_waits_for_every_allocation(orchestrator, pool_client, clock, live_quest, alice, bob):
    complete_visit(orchestrator, live_quest, alice, 0)
    complete_visit(orchestrator, live_quest, bob, 1)
    clock.advance(days=8)

    with pytest.raises(NotFinalizedError):
        orchestrator.withdraw_remainder(live_quest.id, "creator")

    orchestrator.finalize_quest(live_quest.id, "creator")
    with pytest.raises(AllocationsPendingError):
        orchestrator.withdraw_remainder(live_quest.id, "creator")

    orchestrator.submit_allocations(live_quest.id, "creator")
    datum = pool_client.current(pool_key_for(live_quest)).datum
    assert datum.eligible == {ALICE_WALLET: 750, BOB_WALLET: 250}


def test_withdraw_quest_nobody_completed(orchestrator, clock, live_quest):
    clock.advance(days=8)
    out = orchestrator.withdraw_remainder(live_quest.id, "creator")
    assert (out.amount, out.pool_closed) == (1000, True)


def test_pending_claim_is_repolled(orchestrator, ledger, ended_quest, alice):
    ledger.hold_confirmations = True
    with pytest.raises(ConfirmationPendingError) as exc:
        orchestrator.claim_reward(ended_quest.id, alice, ALICE_WALLET)

    pending = orchestrator.get_eligible_reward(ended_quest.id, "alice")
    assert pending.eligible is False
    assert orchestrator.progress.get_entry(ended_quest.id, "alice").claim_tx_hash == exc.value.tx_hash

    # the claim lands later; the retry only re-polls it
    ledger.confirmed.add(exc.value.tx_hash)
    submitted = len(ledger.submitted)
    out = orchestrator.claim_reward(ended_quest.id, alice, ALICE_WALLET)

    assert (out.tx_hash, out.amount) == (exc.value.tx_hash, 750)
    assert len(ledger.submitted) == submitted
    assert orchestrator.progress.get_entry(ended_quest.id, "alice").status == ProgressStatus.REWARDED
    with pytest.raises(AlreadyRewardedError):
        orchestrator.claim_reward(ended_quest.id, alice, ALICE_WALLET)


def test_eligible_reward_without_wallet(orchestrator, clock, make_user, live_quest, alice):
    dave = make_user("dave")
    complete_visit(orchestrator, live_quest, alice, 0)
    complete_visit(orchestrator, live_quest, dave, 1)
    clock.advance(days=8)
    orchestrator.finalize_quest(live_quest.id, "creator")

    out = orchestrator.get_eligible_reward(live_quest.id, "dave")
    assert (out.eligible, out.amount) == (False, 0)
    assert "wallet" in out.message


def test_eligible_reward_for_shared_wallet(orchestrator, clock, make_user, live_quest, alice):
    carol = make_user("carol", wallet_address=ALICE_WALLET)
    complete_visit(orchestrator, live_quest, alice, 0)
    complete_visit(orchestrator, live_quest, carol, 1)
    clock.advance(days=8)
    orchestrator.finalize_quest(live_quest.id, "creator")

    out = orchestrator.get_eligible_reward(live_quest.id, "carol")
    assert (out.eligible, out.amount) == (True, 1000)
