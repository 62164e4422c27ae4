# tests/test_task_verifier.py
import pytest

from questhub.core.errors import RateLimitedError
from questhub.services.task_verifier import LinkVisitRegister, ParticipantCredentials, TaskVerifier

from conftest import ALICE_WALLET

GUILD = "123456789012345678"
ROLE = "987654321098765432"
UNIT = "a0" * 28 + "484f42"


@pytest.fixture
def verifier(db, twitter, discord, ledger):
    return TaskVerifier(twitter, discord, ledger, LinkVisitRegister(db))


def test_follow_with_empty_handle_is_not_verified(verifier, twitter):
    result = verifier.verify("FollowTwitter", "cardanohubid", ParticipantCredentials(user_id="u1", twitter_username=""))

    assert result.verified is False
    assert "Twitter username not provided" in result.message
    assert twitter.calls == []


def test_follow_is_case_insensitive_and_lists_missing_targets(verifier, twitter):
    twitter.followers = {"cardanohubid": {"alice"}, "emurgo_io": set()}
    creds = ParticipantCredentials(user_id="u1", twitter_username="@Alice")

    assert verifier.verify("FollowTwitter", "cardanohubid", creds).verified is True

    result = verifier.verify("FollowTwitter", "cardanohubid,emurgo_io", creds)
    assert result.verified is False
    assert result.message == "User does not follow: @emurgo_io."


def test_follow_without_api_key(verifier, twitter):
    twitter.configured = False
    result = verifier.verify("FollowTwitter", "cardanohubid", ParticipantCredentials("u1", twitter_username="alice"))
    assert result.verified is False
    assert result.message == "Twitter API credentials missing."


def test_retweet_and_like(verifier, twitter):
    twitter.retweeters = {"1790000000000000000": {"alice"}}
    link = "https://x.com/cardanohubid/status/1790000000000000000"
    creds = ParticipantCredentials("u1", twitter_username="alice")

    assert verifier.verify("RetweetTweet", link, creds).message == "User has retweeted the tweet."
    liked = verifier.verify("LikeTweet", link, creds)
    assert liked.verified is False
    assert liked.message == "User has not liked the tweet."


def test_malformed_tweet_link_fails_closed(verifier, twitter):
    result = verifier.verify("RetweetTweet", "https://x.com/cardanohubid", ParticipantCredentials("u1", "alice"))
    assert result.verified is False
    assert result.malformed is True
    assert twitter.calls == []


def test_discord_outcomes_are_distinct(verifier, discord):
    discord.members = {(GUILD, "42"): {"roles": [ROLE]}, (GUILD, "43"): {"roles": []}}
    link = f"{GUILD}:{ROLE}"

    member = verifier.verify("JoinDiscord", link, ParticipantCredentials("u1", discord_user_id="42"))
    no_role = verifier.verify("JoinDiscord", link, ParticipantCredentials("u2", discord_user_id="43"))
    stranger = verifier.verify("JoinDiscord", link, ParticipantCredentials("u3", discord_user_id="44"))

    assert member.verified is True
    assert no_role.verified is False and "does NOT have the specified role" in no_role.message
    assert stranger.verified is False and "not a member" in stranger.message


def test_discord_prefers_oauth_token(verifier, discord):
    discord.own = {(GUILD, "oauth-token"): {"roles": [ROLE]}}
    creds = ParticipantCredentials("u1", discord_user_id="42", discord_access_token="oauth-token")

    assert verifier.verify("JoinDiscord", f"{GUILD}:{ROLE}", creds).verified is True
    assert discord.calls == [("oauth", GUILD, "oauth-token")]


def test_visit_flow(verifier):
    link = "https://cardanohub.id"
    assert verifier.verify("VisitWebsite", link, ParticipantCredentials("u1")).verified is False

    assert verifier.visit_link("u1", link).verified is True
    assert verifier.visit_link("u1", link).verified is True  # idempotent
    assert verifier.verify("VisitWebsite", link, ParticipantCredentials("u1")).verified is True
    assert verifier.verify("VisitWebsite", link, ParticipantCredentials("u2")).verified is False


def test_asset_ownership(verifier, ledger):
    creds = ParticipantCredentials("u1", wallet_address=ALICE_WALLET)
    assert verifier.verify("OwnNFT", UNIT, creds).verified is False

    ledger.give(ALICE_WALLET, UNIT)
    assert verifier.verify("OwnNFT", UNIT, creds).verified is True
    assert verifier.verify("AttendEvent", UNIT, ParticipantCredentials("u1")).verified is False


def test_platform_errors_propagate(verifier, twitter):
    def limited(target, username):
        raise RateLimitedError()

    twitter.is_follower = limited
    with pytest.raises(RateLimitedError):
        verifier.verify("FollowTwitter", "cardanohubid", ParticipantCredentials("u1", twitter_username="alice"))
