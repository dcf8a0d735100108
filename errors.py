from typing import Optional


class RoleCheckError(Exception):
    """所有會以 JSON 回給呼叫端的錯誤"""

    status_code = 500
    message = "Failed to check role"

    def __init__(self, message: Optional[str] = None, upstream_status: Optional[int] = None,
                 details: str = "", **fields):
        self.message = message or self.message
        self.upstream_status = upstream_status
        self.details = details
        self.fields = fields
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"hasRole": False, **self.fields, "error": self.message, "success": False}


class MissingCode(RoleCheckError):
    status_code = 400
    message = "No authorization code provided"


class MissingAccessToken(RoleCheckError):
    status_code = 400
    message = "Access token required"


class NotAuthenticated(RoleCheckError):
    status_code = 401
    message = "Not authenticated"


class TokenExpired(RoleCheckError):
    status_code = 401
    message = "Token expired"


class AccessDenied(RoleCheckError):
    status_code = 403
    message = "Access denied - user may not be in the guild or lacks permissions"


class NotAMember(RoleCheckError):
    status_code = 404
    message = "User is not a member of this guild"


class UnknownGuildRule(RoleCheckError):
    status_code = 404
    message = "Guild not found"

    def __init__(self, key: str, available):
        available = list(available)
        super().__init__(
            f"Guild '{key}' not found. Available guilds: {', '.join(available) or 'none'}",
            availableGuilds=available,
        )


class RateLimited(RoleCheckError):
    status_code = 429
    message = "Rate limited - try again later"


class TokenExchangeFailed(RoleCheckError):
    status_code = 500
    message = "Failed to exchange authorization code"


class UpstreamUnavailable(RoleCheckError):
    status_code = 500
    message = "Failed to check role"


class OAuthNotConfigured(RoleCheckError):
    status_code = 500
    message = "OAuth2 is not configured"


class InternalError(RoleCheckError):
    status_code = 500
    message = "Internal server error"


_BY_STATUS = {
    403: AccessDenied,
    404: NotAMember,
    429: RateLimited,
}


def error_for_status(status: Optional[int], details: str = "") -> RoleCheckError:
    """Discord 回的 HTTP 狀態碼 → 本地錯誤，所有查 member 的路由共用"""
    cls = _BY_STATUS.get(status, UpstreamUnavailable)
    return cls(upstream_status=status, details=details)
