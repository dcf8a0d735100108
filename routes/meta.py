from datetime import datetime, timezone

from flask import Blueprint, jsonify

from errors import UnknownGuildRule
from web import get_settings

bp = Blueprint("meta", __name__)

HOME_PAGE = """
<h1>Discord Role Checker</h1>
<p>Log in with Discord to check your roles.</p>
<a href="/login">Log in with Discord</a> |
<a href="/dashboard">Dashboard</a> |
<a href="/api">API</a>
"""


def _guild_summary(rule):
    return {
        "name": rule.key,
        "guildId": rule.guild_id,
        "roleId": rule.role_id,
        "roleName": rule.role_name,
    }


@bp.route("/")
def index():
    return HOME_PAGE


@bp.route("/health")
def health():
    settings = get_settings()
    return jsonify({
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "clientId": settings.credentials.client_id,
        "scopes": list(settings.credentials.scopes),
        "guilds": [_guild_summary(rule) for rule in settings.rules()],
    })


@bp.route("/api")
def api_docs():
    settings = get_settings()
    endpoints = {
        "/health": "GET - Health check and configuration info",
        "/api": "GET - This API documentation",
        "/guilds": "GET - Configured guilds and roles",
        "/guilds/:guild": "GET - One configured guild",
        "/login": "GET - Redirect to Discord OAuth2 (optional ?redirect= to return to a website)",
        "/callback": "GET - OAuth2 callback and role check for all guilds",
        "/callback-clean": "GET - OAuth2 callback returning only canMint and message",
        "/check-role": "POST - Check the primary guild role with an access token",
        "/check-role/:guild": "POST - Check the role of a specific guild with an access token",
        "/nft-access": "GET - Check if the user can mint the NFT",
        "/dashboard": "GET - Session dashboard",
        "/api/check-role": "GET - Session based role check",
        "/logout": "GET - Clear the session",
    }
    return jsonify({
        "name": "Discord Role Checker API",
        "version": "2.0.0",
        "description": "API to check Discord role membership across one or more guilds",
        "endpoints": endpoints,
        "configuration": {
            "clientId": settings.credentials.client_id,
            "scopes": list(settings.credentials.scopes),
            "primaryGuild": settings.primary_key,
            "nftGuild": settings.nft_key,
        },
        "guilds": {rule.key: rule.to_dict() for rule in settings.rules()},
    })


@bp.route("/guilds")
def guilds():
    return jsonify([_guild_summary(rule) for rule in get_settings().rules()])


@bp.route("/guilds/<key>")
def guild(key):
    settings = get_settings()
    rule = settings.rule(key)
    if rule is None:
        raise UnknownGuildRule(key, settings.guilds)
    return jsonify({
        "endpoint": f"/guilds/{key.lower()}",
        "guild": rule.to_dict(),
        "message": f"Use POST /check-role/{key.lower()} with an access token or GET /login for the OAuth2 flow",
    })


def setup(app):
    app.register_blueprint(bp)
