"""QQ profile client: nickname lookup and avatar download."""

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from event_faces.config import (
    QQ_AVATAR_SIZE,
    QQ_AVATAR_TIMEOUT,
    QQ_AVATAR_URL,
    QQ_NICKNAME_TIMEOUT,
    QQ_NICKNAME_URL,
    QQ_USER_AGENT,
)
from event_faces.errors import ProviderUnavailable


def fallback_nickname(qq_number: str) -> str:
    """Display name used when the nickname service has nothing for this number."""
    return f"QQ用户{qq_number}"


def build_avatar_url(qq_number: str, size: int = QQ_AVATAR_SIZE) -> str:
    """Build the qlogo avatar URL for a QQ number."""
    return f"{QQ_AVATAR_URL}?b=qq&nk={qq_number}&s={size}"


class QQClient:
    """Client for the third-party QQ nickname and avatar endpoints."""

    def __init__(
        self,
        nickname_timeout: float = QQ_NICKNAME_TIMEOUT,
        avatar_timeout: float = QQ_AVATAR_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.nickname_timeout = nickname_timeout
        self.avatar_timeout = avatar_timeout
        self.transport = transport

    def get_nickname(self, qq_number: str) -> str:
        """Return the profile nickname, or the fallback name if the service has none."""
        try:
            with httpx.Client(timeout=self.nickname_timeout, transport=self.transport) as client:
                resp = client.get(
                    QQ_NICKNAME_URL,
                    params={"qq": qq_number},
                    headers={"User-Agent": QQ_USER_AGENT},
                )
            data = resp.json()
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"QQ nickname lookup failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderUnavailable("QQ nickname service returned a non-JSON body") from exc

        name = data.get("name") if isinstance(data, dict) else None
        if isinstance(data, dict) and data.get("code") == 200 and name:
            return name
        return fallback_nickname(qq_number)

    def download_avatar(self, qq_number: str) -> bytes:
        """Download the avatar image bytes for a QQ number."""
        try:
            return self._download(build_avatar_url(qq_number))
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"QQ avatar download failed: {exc}") from exc

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, max=10),
        retry=retry_if_exception_type(httpx.TimeoutException),
        reraise=True,
    )
    def _download(self, url: str) -> bytes:
        with httpx.Client(timeout=self.avatar_timeout, transport=self.transport) as client:
            resp = client.get(url)
            if resp.status_code != httpx.codes.OK:
                raise ProviderUnavailable(f"Failed to download avatar: {resp.status_code}")
            return resp.content


def lookup_nickname(client: QQClient, qq_number: str) -> dict:
    """Caller-facing nickname lookup that never fails."""
    try:
        nickname = client.get_nickname(qq_number)
    except ProviderUnavailable as exc:
        return {
            "nickname": fallback_nickname(qq_number),
            "qq_number": qq_number,
            "success": False,
            "error": str(exc),
        }
    return {"nickname": nickname, "qq_number": qq_number, "success": True}
