import json
import logging
import os
import secrets
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

DEFAULT_API_BASE = "https://discord.com/api"
DEFAULT_SCOPES = ("identify", "guilds.members.read")
DEFAULT_GUILDS_PATH = "guilds.json"
DEFAULT_RULE_KEY = "DEFAULT"

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """啟動時環境變數或 guild 設定檔有問題"""


@dataclass(frozen=True)
class GuildRoleRule:
    key: str
    guild_id: str
    role_id: str
    guild_name: str
    role_name: str

    def to_dict(self) -> dict:
        return {
            "id": self.guild_id,
            "name": self.guild_name,
            "roleId": self.role_id,
            "roleName": self.role_name,
        }


@dataclass(frozen=True)
class OAuth2Credentials:
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    scopes: Tuple[str, ...] = DEFAULT_SCOPES

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


@dataclass(frozen=True)
class Settings:
    credentials: OAuth2Credentials
    guilds: Dict[str, GuildRoleRule]
    primary_key: Optional[str] = None
    nft_key: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    http_timeout: float = 10.0
    port: int = 8080
    secret_key: str = field(default="", repr=False)
    log_level: str = "INFO"

    @property
    def primary_rule(self) -> Optional[GuildRoleRule]:
        return self.guilds.get(self.primary_key) if self.primary_key else None

    @property
    def nft_rule(self) -> Optional[GuildRoleRule]:
        return self.guilds.get(self.nft_key) if self.nft_key else None

    def rule(self, key: str) -> Optional[GuildRoleRule]:
        return self.guilds.get(key.upper())

    def rules(self) -> List[GuildRoleRule]:
        return list(self.guilds.values())


# ──────────────────────────────────────────────────────────
# Guild / 身分組規則
# ──────────────────────────────────────────────────────────
def parse_guilds(data: Mapping) -> Dict[str, GuildRoleRule]:
    """{"NADS": {"id", "name", "roleId", "roleName"}} 轉成規則，key 一律大寫，保留檔案順序"""
    if not isinstance(data, Mapping):
        raise ConfigError("guild configuration must be a JSON object")

    rules: Dict[str, GuildRoleRule] = {}
    for raw_key, entry in data.items():
        key = str(raw_key).upper()
        if not isinstance(entry, Mapping):
            raise ConfigError(f"guild {key!r} must be a JSON object")
        guild_id = entry.get("id")
        role_id = entry.get("roleId")
        if not guild_id or not role_id:
            raise ConfigError(f"guild {key!r} needs both 'id' and 'roleId'")
        rules[key] = GuildRoleRule(
            key=key,
            guild_id=str(guild_id),
            role_id=str(role_id),
            guild_name=str(entry.get("name") or key),
            role_name=str(entry.get("roleName") or f"{key} role"),
        )
    return rules


def load_guilds(env: Mapping[str, str]) -> Dict[str, GuildRoleRule]:
    inline = env.get("DISCORD_GUILDS")
    if inline:
        try:
            return parse_guilds(json.loads(inline))
        except json.JSONDecodeError as e:
            raise ConfigError(f"DISCORD_GUILDS is not valid JSON: {e}") from e

    path = env.get("GUILDS_CONFIG", DEFAULT_GUILDS_PATH)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_guilds(json.load(f))
    except FileNotFoundError:
        pass
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path} is not valid JSON: {e}") from e

    # 只設定單一 guild 的簡寫
    guild_id = env.get("DISCORD_GUILD_ID")
    role_id = env.get("DISCORD_ROLE_ID")
    if guild_id or role_id:
        return parse_guilds({
            DEFAULT_RULE_KEY: {
                "id": guild_id,
                "roleId": role_id,
                "name": env.get("DISCORD_GUILD_NAME"),
                "roleName": env.get("DISCORD_ROLE_NAME"),
            }
        })
    return {}


# ──────────────────────────────────────────────────────────
# 設定
# ──────────────────────────────────────────────────────────
def parse_scopes(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return DEFAULT_SCOPES
    return tuple(s for s in value.replace(",", " ").split() if s)


def _pick_key(env: Mapping[str, str], name: str, guilds: Dict[str, GuildRoleRule],
              fallback: Optional[str]) -> Optional[str]:
    value = env.get(name)
    if not value:
        return fallback
    key = value.upper()
    if key not in guilds:
        raise ConfigError(f"{name}={value} is not one of the configured guilds: {', '.join(guilds) or 'none'}")
    return key


def _number(env: Mapping[str, str], name: str, default, cast):
    value = env.get(name)
    if value in (None, ""):
        return default
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def _secret_key(env: Mapping[str, str]) -> str:
    secret_key = env.get("SECRET_KEY")
    if secret_key:
        return secret_key
    # 每個 process 各自產生，多個 instance 或重啟後 session 會失效
    logger.warning("SECRET_KEY not set, using a random key; sessions will not survive restarts or be shared between instances")
    return secrets.token_hex(24)


def load_config(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """啟動時讀一次，之後只讀不改"""
    env = os.environ if environ is None else environ

    credentials = OAuth2Credentials(
        client_id=env.get("DISCORD_CLIENT_ID", ""),
        client_secret=env.get("DISCORD_CLIENT_SECRET", ""),
        redirect_uri=env.get("DISCORD_REDIRECT_URI", ""),
        scopes=parse_scopes(env.get("DISCORD_OAUTH_SCOPES")),
    )

    guilds = load_guilds(env)
    primary_key = _pick_key(env, "PRIMARY_GUILD", guilds, next(iter(guilds), None))
    nft_key = _pick_key(env, "NFT_GUILD", guilds, primary_key)

    return Settings(
        credentials=credentials,
        guilds=guilds,
        primary_key=primary_key,
        nft_key=nft_key,
        api_base=env.get("DISCORD_API_BASE", DEFAULT_API_BASE).rstrip("/"),
        http_timeout=_number(env, "HTTP_TIMEOUT", 10.0, float),
        port=_number(env, "PORT", 8080, int),
        secret_key=_secret_key(env),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
