from flask import Blueprint, jsonify, request

from errors import MissingAccessToken, RoleCheckError, UnknownGuildRule
from role_checker import NO_TOKEN, MintDecision, check_mint_access, check_role
from web import get_discord, get_settings, nft_rule, primary_rule

bp = Blueprint("roles", __name__)


def body_access_token():
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data.get("accessToken"):
        return data["accessToken"]
    return request.form.get("accessToken")


def bearer_token():
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip()
    return None


@bp.route("/check-role", methods=["POST"])
def check_primary_role():
    access_token = body_access_token()
    if not access_token:
        raise MissingAccessToken()
    result = check_role(get_discord(), access_token, primary_rule())
    return jsonify(result.to_dict())


@bp.route("/check-role/<guild>", methods=["POST"])
def check_guild_role(guild):
    access_token = body_access_token()
    if not access_token:
        raise MissingAccessToken()

    settings = get_settings()
    rule = settings.rule(guild)
    if rule is None:
        raise UnknownGuildRule(guild, settings.guilds)

    details = {
        "guild": rule.key,
        "guildId": rule.guild_id,
        "guildName": rule.guild_name,
        "roleId": rule.role_id,
        "roleName": rule.role_name,
    }
    try:
        result = check_role(get_discord(), access_token, rule)
    except RoleCheckError as e:
        e.fields.update(details)
        raise
    return jsonify({**details, "hasRole": result.has_role, "success": True})


@bp.route("/nft-access")
def nft_access():
    access_token = request.args.get("accessToken") or bearer_token()
    if not access_token:
        err = MissingAccessToken()
        body = {**MintDecision(False, NO_TOKEN).to_dict(), "error": err.message, "success": False}
        return jsonify(body), err.status_code
    decision = check_mint_access(get_discord(), access_token, nft_rule())
    return jsonify(decision.to_dict())


def setup(app):
    app.register_blueprint(bp)
