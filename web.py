import importlib
import logging
from typing import Optional

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

from config_manager import GuildRoleRule, Settings, load_config
from discord_api import DiscordOAuth
from errors import InternalError, OAuthNotConfigured, RoleCheckError, UnknownGuildRule

logger = logging.getLogger(__name__)

BLUEPRINTS = ["routes.meta", "routes.oauth", "routes.roles", "routes.dashboard"]

AVAILABLE_ENDPOINTS = [
    "/health", "/api", "/guilds", "/login", "/callback", "/callback-clean",
    "/nft-access", "POST /check-role", "POST /check-role/:guild",
    "/dashboard", "/api/check-role", "/logout",
]


# ──────────────────────────────────────────────────────────
# 路由共用的小工具
# ──────────────────────────────────────────────────────────
def get_settings() -> Settings:
    return current_app.config["SETTINGS"]


def get_discord() -> DiscordOAuth:
    return current_app.extensions["discord"]


def require_oauth():
    if not get_settings().credentials.configured:
        raise OAuthNotConfigured()


def primary_rule() -> GuildRoleRule:
    settings = get_settings()
    if settings.primary_rule is None:
        raise UnknownGuildRule(settings.primary_key or "PRIMARY_GUILD", settings.guilds)
    return settings.primary_rule


def nft_rule() -> GuildRoleRule:
    settings = get_settings()
    if settings.nft_rule is None:
        raise UnknownGuildRule(settings.nft_key or "NFT_GUILD", settings.guilds)
    return settings.nft_rule


# ──────────────────────────────────────────────────────────
# Flask APP
# ──────────────────────────────────────────────────────────
def create_app(settings: Optional[Settings] = None, discord: Optional[DiscordOAuth] = None) -> Flask:
    settings = settings or load_config()

    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.config["SETTINGS"] = settings
    app.json.sort_keys = False
    app.extensions["discord"] = discord or DiscordOAuth(settings)

    for name in BLUEPRINTS:
        importlib.import_module(name).setup(app)
        logger.debug("Loaded %s", name)

    @app.errorhandler(RoleCheckError)
    def role_check_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            "error": "Endpoint not found",
            "hasRole": False,
            "success": False,
            "availableEndpoints": AVAILABLE_ENDPOINTS,
        }), 404

    @app.errorhandler(Exception)
    def unhandled(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description, "hasRole": False, "success": False}), e.code
        logger.exception("Unhandled error")
        return jsonify(InternalError().to_dict()), 500

    return app


def log_startup(settings: Settings):
    base = f"http://localhost:{settings.port}"
    logger.info("Discord Role Checker running on port %s", settings.port)
    logger.info("Login URL: %s/login", base)
    logger.info("Health check: %s/health", base)
    logger.info("API docs: %s/api", base)
    if not settings.credentials.configured:
        logger.warning("DISCORD_CLIENT_ID / DISCORD_CLIENT_SECRET / DISCORD_REDIRECT_URI not set, OAuth2 login is disabled")
    if not settings.guilds:
        logger.warning("No guilds configured")
    for rule in settings.rules():
        logger.info("  %s: %s (%s) guild=%s role=%s", rule.key, rule.guild_name, rule.role_name,
                    rule.guild_id, rule.role_id)


def run_web(settings: Optional[Settings] = None):
    settings = settings or load_config()
    app = create_app(settings)
    log_startup(settings)
    app.run(host="0.0.0.0", port=settings.port, threaded=True)
