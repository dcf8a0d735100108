import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional

from config_manager import GuildRoleRule
from discord_api import DiscordOAuth, add_query_params
from errors import (
    AccessDenied,
    MissingAccessToken,
    NotAMember,
    RateLimited,
    RoleCheckError,
)

logger = logging.getLogger(__name__)

GRANTED = "Access granted: You can mint this NFT"
UNVERIFIED = "Access denied: Unable to verify Discord role"
RATE_LIMITED = "Access denied: Discord rate limit reached, try again later"
AUTH_FAILED = "Authentication failed: Could not verify Discord account"
NO_CODE = "Authentication failed: No authorization code"
NO_TOKEN = "Access denied: No access token provided"


@dataclass(frozen=True)
class RoleCheckResult:
    has_role: bool
    guild_id: str
    role_id: str
    success: bool = True
    error: Optional[str] = None
    user_roles: FrozenSet[str] = frozenset()

    def to_dict(self) -> dict:
        body = {
            "hasRole": self.has_role,
            "guildId": self.guild_id,
            "roleId": self.role_id,
            "success": self.success,
        }
        if self.error:
            body["error"] = self.error
        return body


@dataclass(frozen=True)
class RuleOutcome:
    rule: GuildRoleRule
    has_role: bool
    error: Optional[RoleCheckError] = None

    def to_dict(self) -> dict:
        body = {
            "hasRole": self.has_role,
            "guildName": self.rule.guild_name,
            "roleName": self.rule.role_name,
        }
        if self.error is not None:
            body["error"] = self.error.message
        return body


@dataclass(frozen=True)
class MintDecision:
    can_mint: bool
    message: str

    def to_dict(self) -> dict:
        return {"canMint": self.can_mint, "message": self.message}

    def query_params(self) -> dict:
        return {"canMint": "true" if self.can_mint else "false", "message": self.message}


def check_role(discord: DiscordOAuth, access_token: Optional[str], rule: GuildRoleRule) -> RoleCheckResult:
    """查使用者在該 guild 有沒有這個身分組，Discord 拒絕時丟出對應的 RoleCheckError"""
    if not access_token:
        raise MissingAccessToken()
    member = discord.fetch_member(access_token, rule.guild_id)
    return RoleCheckResult(
        has_role=member.has_role(rule.role_id),
        guild_id=rule.guild_id,
        role_id=rule.role_id,
        user_roles=member.roles,
    )


def check_rules(discord: DiscordOAuth, access_token: Optional[str],
                rules: Iterable[GuildRoleRule]) -> Dict[str, RuleOutcome]:
    # 單一 guild 失敗不影響其他 guild
    if not access_token:
        raise MissingAccessToken()
    outcomes: Dict[str, RuleOutcome] = {}
    for rule in rules:
        try:
            result = check_role(discord, access_token, rule)
        except RoleCheckError as e:
            logger.info("Role check for %s failed: %s", rule.key, e.message)
            outcomes[rule.key] = RuleOutcome(rule, False, e)
        else:
            outcomes[rule.key] = RuleOutcome(rule, result.has_role)
    return outcomes


def mint_decision(outcome: RuleOutcome) -> MintDecision:
    """查詢失敗一律不能 mint，但 message 分得出是沒身分組還是 Discord 查不到"""
    if outcome.has_role:
        return MintDecision(True, GRANTED)
    if outcome.error is None or isinstance(outcome.error, (NotAMember, AccessDenied)):
        return MintDecision(False, f"Access denied: {outcome.rule.role_name} required")
    if isinstance(outcome.error, RateLimited):
        return MintDecision(False, RATE_LIMITED)
    return MintDecision(False, UNVERIFIED)


def check_mint_access(discord: DiscordOAuth, access_token: str, rule: GuildRoleRule) -> MintDecision:
    return mint_decision(check_rules(discord, access_token, [rule])[rule.key])


def redirect_target(target: str, decision: MintDecision) -> str:
    return add_query_params(target, **decision.query_params())
