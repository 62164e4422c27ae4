import requests

from questhub.core.config import Settings
from questhub.core.errors import ExternalServiceError, RateLimitedError, UpstreamTimeoutError
from questhub.core.logging import get_logger

logger = get_logger("questhub.services.twitter_api")


def _handle_of(user: dict) -> str:
    return (user.get("userName") or user.get("username") or user.get("screen_name") or "").lower()


class TwitterApiClient:
    """twitterapi.io lookups; every list endpoint is cursor paginated."""

    def __init__(self, api_key: str, base_url: str, session: requests.Session | None = None,
                 timeout: float = 15.0, max_pages: int = 50):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_pages = max_pages

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwitterApiClient":
        return cls(
            api_key=settings.TWITTER_API_IO_KEY,
            base_url=settings.TWITTER_API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            max_pages=settings.TWITTER_MAX_PAGES,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get(self, path: str, params: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, headers={"X-API-Key": self.api_key}, params=params, timeout=self.timeout)
        except requests.Timeout:
            raise UpstreamTimeoutError(f"Twitter API timed out on {path}")
        except requests.RequestException as e:
            logger.error(f"[twitter_api] request failed: {path} - {e}")
            raise ExternalServiceError(f"Twitter API unreachable: {e}")

        if response.status_code == 429:
            raise RateLimitedError("Twitter API rate limit reached. Try again later.")
        if response.status_code != 200:
            logger.error(f"[twitter_api] {path} failed: {response.status_code} - {response.text}")
            raise ExternalServiceError(f"Twitter API error {response.status_code}")
        return response.json()

    def _find_in_pages(self, path: str, params: dict, list_keys: tuple, handle: str) -> bool:
        handle = handle.lower()
        cursor = ""
        for _ in range(self.max_pages):
            data = self._get(path, {**params, "cursor": cursor})
            users = []
            for key in list_keys:
                users = data.get(key) or users
            if any(_handle_of(u) == handle for u in users):
                return True
            if not data.get("has_next_page") or not data.get("next_cursor"):
                return False
            cursor = data["next_cursor"]

        logger.warning(f"[twitter_api] page limit reached on {path} looking for @{handle}")
        return False

    def is_follower(self, target_username: str, username: str) -> bool:
        return self._find_in_pages(
            "/user/followers", {"userName": target_username}, ("followers", "users"), username
        )

    def has_retweeted(self, tweet_id: str, username: str) -> bool:
        return self._find_in_pages("/tweet/retweeters", {"tweetId": tweet_id}, ("users",), username)

    def has_liked(self, tweet_id: str, username: str) -> bool:
        return self._find_in_pages("/tweet/likers", {"tweetId": tweet_id}, ("users",), username)
