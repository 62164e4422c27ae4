import requests

from questhub.core.config import Settings
from questhub.core.errors import ExternalServiceError, RateLimitedError, UpstreamTimeoutError
from questhub.core.logging import get_logger

logger = get_logger("questhub.services.discord_api")


class DiscordApiClient:
    def __init__(self, bot_token: str, base_url: str, session: requests.Session | None = None,
                 timeout: float = 15.0):
        self.bot_token = bot_token
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "DiscordApiClient":
        return cls(
            bot_token=settings.DISCORD_BOT_TOKEN,
            base_url=settings.DISCORD_API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def _get_member(self, path: str, authorization: str) -> dict | None:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, headers={"Authorization": authorization}, timeout=self.timeout)
        except requests.Timeout:
            raise UpstreamTimeoutError("Discord API timed out")
        except requests.RequestException as e:
            logger.error(f"[discord_api] request failed: {path} - {e}")
            raise ExternalServiceError(f"Discord verification error: {e}")

        if response.status_code == 200:
            return response.json()
        if response.status_code == 404:
            return None
        if response.status_code == 429:
            raise RateLimitedError("Discord API rate limit reached. Try again later.")

        logger.error(f"[discord_api] {path} failed: {response.status_code} - {response.text}")
        raise ExternalServiceError(f"Discord verification error: {response.status_code}")

    def get_guild_member(self, guild_id: str, user_id: str) -> dict | None:
        """Bot-token lookup; None when the user is not in the guild."""
        if not self.bot_token:
            raise ExternalServiceError("Discord API credentials missing.")
        return self._get_member(f"/guilds/{guild_id}/members/{user_id}", f"Bot {self.bot_token}")

    def get_own_membership(self, guild_id: str, access_token: str) -> dict | None:
        """OAuth lookup of the token owner's membership (needs guilds.members.read)."""
        return self._get_member(f"/users/@me/guilds/{guild_id}/member", f"Bearer {access_token}")
