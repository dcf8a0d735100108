import logging
import time

from flask import Blueprint, jsonify, redirect, request, session

from errors import MissingCode, TokenExchangeFailed
from role_checker import (
    AUTH_FAILED,
    NO_CODE,
    UNVERIFIED,
    MintDecision,
    check_mint_access,
    check_rules,
    mint_decision,
    redirect_target,
)
from web import get_discord, get_settings, nft_rule, require_oauth

logger = logging.getLogger(__name__)

bp = Blueprint("oauth", __name__)


def remember_token(token):
    session["access_token"] = token.access_token
    if token.expires_in is not None:
        session["token_expiry"] = time.time() + token.expires_in
    else:
        session.pop("token_expiry", None)


@bp.route("/login")
def login():
    require_oauth()
    return redirect(get_discord().authorize_url(request.args.get("redirect")))


@bp.route("/callback")
def callback():
    code = request.args.get("code")
    target = request.args.get("redirect")
    if not code:
        raise MissingCode()
    require_oauth()

    settings = get_settings()
    discord = get_discord()
    try:
        token = discord.exchange_code(code, target)
    except TokenExchangeFailed:
        if target:
            return redirect(redirect_target(target, MintDecision(False, AUTH_FAILED)))
        raise
    remember_token(token)

    outcomes = check_rules(discord, token.access_token, settings.rules())
    if settings.nft_key in outcomes:
        decision = mint_decision(outcomes[settings.nft_key])
    else:
        decision = MintDecision(False, UNVERIFIED)

    if target:
        logger.info("Redirecting back with canMint=%s", decision.can_mint)
        return redirect(redirect_target(target, decision))

    body = decision.to_dict()
    primary = outcomes.get(settings.primary_key)
    if primary is not None:
        body.update({
            "hasRole": primary.has_role,
            "guildId": primary.rule.guild_id,
            "roleId": primary.rule.role_id,
        })
    else:
        body["hasRole"] = False
    body["success"] = True
    body["guilds"] = {key: outcome.to_dict() for key, outcome in outcomes.items()}
    body["accessToken"] = token.access_token
    return jsonify(body)


@bp.route("/callback-clean")
def callback_clean():
    code = request.args.get("code")
    if not code:
        return jsonify(MintDecision(False, NO_CODE).to_dict())
    require_oauth()
    rule = nft_rule()

    discord = get_discord()
    try:
        token = discord.exchange_code(code)
    except TokenExchangeFailed:
        return jsonify(MintDecision(False, AUTH_FAILED).to_dict())
    remember_token(token)

    decision = check_mint_access(discord, token.access_token, rule)
    return jsonify({**decision.to_dict(), "accessToken": token.access_token})


def setup(app):
    app.register_blueprint(bp)
