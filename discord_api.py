import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from config_manager import Settings
from errors import TokenExchangeFailed, UpstreamUnavailable, error_for_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenExchangeResult:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


@dataclass(frozen=True)
class GuildMember:
    roles: FrozenSet[str]

    def has_role(self, role_id: str) -> bool:
        return str(role_id) in self.roles


def _seconds(value) -> Optional[int]:
    # expires_in 格式不對就當沒給，不影響登入
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        logger.warning("Ignoring malformed expires_in: %r", value)
        return None


def add_query_params(url: str, **params) -> str:
    """把 params 接到 url 後面，保留原本的 query"""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class DiscordOAuth:
    """Discord OAuth2 + REST 的小工具"""

    def __init__(self, settings: Settings):
        self.credentials = settings.credentials
        self.api_base = settings.api_base
        self.timeout = settings.http_timeout

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.api_base}/oauth2/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.api_base}/oauth2/token"

    # ──────────────────────────────────────────────────────────
    # 授權導向
    # ──────────────────────────────────────────────────────────
    def redirect_uri_for(self, redirect: Optional[str] = None) -> str:
        # redirect 參數塞進自己的 callback URL 裡帶回來
        if not redirect:
            return self.credentials.redirect_uri
        return add_query_params(self.credentials.redirect_uri, redirect=redirect)

    def authorize_url(self, redirect: Optional[str] = None) -> str:
        params = {
            "client_id": self.credentials.client_id,
            "redirect_uri": self.redirect_uri_for(redirect),
            "response_type": "code",
            "scope": " ".join(self.credentials.scopes),
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    # ──────────────────────────────────────────────────────────
    # code 換 token
    # ──────────────────────────────────────────────────────────
    def exchange_code(self, code: str, redirect: Optional[str] = None) -> TokenExchangeResult:
        data = {
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri_for(redirect),
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        try:
            r = requests.post(self.token_endpoint, data=data, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Token exchange failed: %s", e)
            raise TokenExchangeFailed(details=str(e)) from e

        if not r.ok:
            logger.warning("Token exchange failed with HTTP %s: %s", r.status_code, r.text)
            raise TokenExchangeFailed(upstream_status=r.status_code, details=r.text)

        try:
            creds = r.json()
        except ValueError as e:
            raise TokenExchangeFailed(upstream_status=r.status_code, details=r.text) from e
        if not isinstance(creds, dict) or not creds.get("access_token"):
            logger.warning("Token response had no access_token")
            raise TokenExchangeFailed(upstream_status=r.status_code, details=r.text)

        return TokenExchangeResult(
            access_token=creds["access_token"],
            refresh_token=creds.get("refresh_token"),
            expires_in=_seconds(creds.get("expires_in")),
        )

    # ──────────────────────────────────────────────────────────
    # REST 查詢
    # ──────────────────────────────────────────────────────────
    def _get_json(self, path: str, access_token: str):
        url = f"{self.api_base}{path}"
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            r = requests.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("GET %s failed: %s", path, e)
            raise UpstreamUnavailable(details=str(e)) from e

        if not r.ok:
            logger.warning("GET %s returned HTTP %s: %s", path, r.status_code, r.text)
            raise error_for_status(r.status_code, r.text)

        try:
            return r.json()
        except ValueError as e:
            raise UpstreamUnavailable(upstream_status=r.status_code, details=r.text) from e

    def fetch_member(self, access_token: str, guild_id: str) -> GuildMember:
        data = self._get_json(f"/users/@me/guilds/{guild_id}/member", access_token)
        roles = data.get("roles") if isinstance(data, dict) else None
        if not isinstance(roles, list):
            roles = []
        return GuildMember(roles=frozenset(str(r) for r in roles))

    def fetch_user(self, access_token: str) -> dict:
        return self._get_json("/users/@me", access_token)
