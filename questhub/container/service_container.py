from dataclasses import dataclass, field
from typing import Optional

from questhub.chain.cardano import CardanoLedgerService
from questhub.chain.ledger import LedgerService
from questhub.core.clock import Clock, utcnow
from questhub.core.config import Settings, settings as app_settings
from questhub.core.logging import get_logger
from questhub.services.discord_api import DiscordApiClient
from questhub.services.reward_pool import RewardPoolClient
from questhub.services.twitter_api import TwitterApiClient

logger = get_logger("questhub.container")


@dataclass
class ServiceContainer:
    """External clients shared by every request, built once at startup"""
    settings: Settings
    ledger: LedgerService
    twitter: TwitterApiClient
    discord: DiscordApiClient
    pool: RewardPoolClient
    clock: Clock = field(default=utcnow)

    @classmethod
    def initialize(cls, settings: Settings) -> "ServiceContainer":
        try:
            ledger = CardanoLedgerService(settings)
        except Exception as e:
            logger.error(f"[container] ledger service unavailable: {e}")
            raise
        return cls(
            settings=settings,
            ledger=ledger,
            twitter=TwitterApiClient.from_settings(settings),
            discord=DiscordApiClient.from_settings(settings),
            pool=RewardPoolClient.from_settings(ledger, settings),
        )


_services: Optional[ServiceContainer] = None


def get_services() -> ServiceContainer:
    global _services
    if _services is None:
        _services = ServiceContainer.initialize(app_settings)
    return _services
