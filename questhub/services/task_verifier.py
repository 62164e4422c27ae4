"""
Task verification.

``TaskVerifier.verify`` never raises for "not yet satisfied" or malformed
tasks: those come back as ``VerificationResult(verified=False, ...)`` with a
message the UI can show. Only platform failures (rate limits, timeouts, 5xx)
propagate, as ``TransientError`` / ``FatalError`` subclasses.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from questhub.chain.ledger import LedgerService
from questhub.core.logging import get_logger
from questhub.models.link_visit import LinkVisit
from questhub.services.discord_api import DiscordApiClient
from questhub.services.task_kinds import (
    AttendEvent,
    FollowTwitter,
    JoinDiscord,
    LikeTweet,
    MalformedTaskError,
    OwnNFT,
    RetweetTweet,
    TaskKind,
    VisitWebsite,
    normalize_username,
    parse_task,
)
from questhub.services.twitter_api import TwitterApiClient

logger = get_logger("questhub.services.task_verifier")


@dataclass
class ParticipantCredentials:
    user_id: str
    twitter_username: Optional[str] = None
    discord_user_id: Optional[str] = None
    discord_access_token: Optional[str] = None
    wallet_address: Optional[str] = None


@dataclass
class VerificationResult:
    verified: bool
    message: str
    proof: Optional[str] = None
    malformed: bool = False


def _malformed(message: str) -> VerificationResult:
    return VerificationResult(verified=False, message=message, malformed=True)


class LinkVisitRegister:
    """Durable visit markers keyed by (user_id, link)."""

    def __init__(self, db: Session):
        self.db = db

    def record(self, user_id: str, link: str) -> None:
        if self.has_visited(user_id, link):
            return
        self.db.add(LinkVisit(user_id=user_id, link=link))
        try:
            self.db.commit()
        except IntegrityError:
            # recorded concurrently; the marker exists either way
            self.db.rollback()

    def has_visited(self, user_id: str, link: str) -> bool:
        return self.db.query(LinkVisit).filter_by(user_id=user_id, link=link).first() is not None


class TaskVerifier:
    def __init__(self, twitter: TwitterApiClient, discord: DiscordApiClient, ledger: LedgerService,
                 visits: LinkVisitRegister):
        self.twitter = twitter
        self.discord = discord
        self.ledger = ledger
        self.visits = visits

    def verify(self, task_type: str, link: str, credentials: ParticipantCredentials) -> VerificationResult:
        try:
            kind = parse_task(task_type, link)
        except MalformedTaskError as e:
            logger.info(f"[verify] malformed {task_type} task: {e}")
            return _malformed(str(e))
        return self.verify_kind(kind, credentials)

    def verify_kind(self, kind: TaskKind, credentials: ParticipantCredentials) -> VerificationResult:
        if isinstance(kind, FollowTwitter):
            return self._verify_follow(kind, credentials)
        if isinstance(kind, RetweetTweet):
            return self._verify_tweet_engagement(kind.tweet_id, "retweeted", credentials)
        if isinstance(kind, LikeTweet):
            return self._verify_tweet_engagement(kind.tweet_id, "liked", credentials)
        if isinstance(kind, JoinDiscord):
            return self._verify_discord(kind, credentials)
        if isinstance(kind, VisitWebsite):
            return self.check_visit_link(credentials.user_id, kind.url)
        if isinstance(kind, (OwnNFT, AttendEvent)):
            return self._verify_asset(kind.unit, credentials)
        raise TypeError(f"Unhandled task kind: {type(kind).__name__}")

    # ---- X / Twitter --------------------------------------------------------

    def _participant_handle(self, credentials: ParticipantCredentials) -> Optional[str]:
        handle = normalize_username(credentials.twitter_username or "")
        return handle or None

    def _verify_follow(self, kind: FollowTwitter, credentials: ParticipantCredentials) -> VerificationResult:
        handle = self._participant_handle(credentials)
        if not handle:
            return VerificationResult(False, "Twitter username not provided. Please connect your Twitter account.")
        if not self.twitter.configured:
            return VerificationResult(False, "Twitter API credentials missing.")

        missing = [target for target in kind.target_usernames if not self.twitter.is_follower(target, handle)]
        if missing:
            return VerificationResult(
                False, f"User does not follow: {', '.join('@' + u for u in missing)}."
            )
        return VerificationResult(
            True, "User follows all required accounts.", proof=f"@{handle} follows {','.join(kind.target_usernames)}"
        )

    def _verify_tweet_engagement(self, tweet_id: str, action: str,
                                 credentials: ParticipantCredentials) -> VerificationResult:
        handle = self._participant_handle(credentials)
        if not handle:
            return VerificationResult(False, "Twitter username not provided. Please connect your Twitter account.")
        if not self.twitter.configured:
            return VerificationResult(False, "Twitter API credentials missing.")

        if action == "retweeted":
            done = self.twitter.has_retweeted(tweet_id, handle)
        else:
            done = self.twitter.has_liked(tweet_id, handle)

        if done:
            return VerificationResult(True, f"User has {action} the tweet.", proof=f"@{handle} {action} {tweet_id}")
        return VerificationResult(False, f"User has not {action} the tweet.")

    # ---- Discord ------------------------------------------------------------

    def _verify_discord(self, kind: JoinDiscord, credentials: ParticipantCredentials) -> VerificationResult:
        if credentials.discord_access_token:
            member = self.discord.get_own_membership(kind.guild_id, credentials.discord_access_token)
        elif credentials.discord_user_id:
            member = self.discord.get_guild_member(kind.guild_id, credentials.discord_user_id)
        else:
            return VerificationResult(False, "Discord ID not provided. Please connect your Discord account.")

        if member is None:
            return VerificationResult(False, "User is not a member of the specified Discord guild.")
        if kind.role_id not in (member.get("roles") or []):
            return VerificationResult(
                False, "User is a member of the Discord guild but does NOT have the specified role."
            )
        return VerificationResult(
            True,
            "User is a member of the Discord guild and has the specified role.",
            proof=f"{kind.guild_id}:{kind.role_id}",
        )

    # ---- Website visits -----------------------------------------------------

    def visit_link(self, user_id: str, link: str) -> VerificationResult:
        if not user_id or not link:
            return VerificationResult(False, "Missing userId or link for visit_link task")
        self.visits.record(user_id, link)
        return VerificationResult(True, f"Recorded that user {user_id} visited link {link}")

    def check_visit_link(self, user_id: str, link: str) -> VerificationResult:
        if not user_id or not link:
            return VerificationResult(False, "Missing userId or link for check_visit_link task")
        if self.visits.has_visited(user_id, link):
            return VerificationResult(True, f"User {user_id} has visited link {link}.", proof=f"visit:{link}")
        return VerificationResult(False, f"User {user_id} has NOT visited link {link}.")

    # ---- On-chain assets ----------------------------------------------------

    def _verify_asset(self, unit: str, credentials: ParticipantCredentials) -> VerificationResult:
        if not credentials.wallet_address:
            return VerificationResult(False, "Wallet address not provided. Please connect your wallet.")

        for utxo in self.ledger.get_utxos_at(credentials.wallet_address):
            if utxo.quantity_of(unit) > 0:
                return VerificationResult(True, f"Wallet holds asset {unit}.", proof=str(utxo.ref))
        return VerificationResult(False, f"Wallet does not hold asset {unit}.")
