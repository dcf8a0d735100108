import logging
import time

from flask import Blueprint, jsonify, redirect, render_template_string, session, url_for

from errors import NotAuthenticated, RoleCheckError, TokenExpired
from role_checker import check_role, check_rules
from web import get_discord, get_settings, primary_rule

logger = logging.getLogger(__name__)

bp = Blueprint("dashboard", __name__)

DASHBOARD_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Role Dashboard</title>
<style>
body { font-family: ui-sans-serif, system-ui; padding: 24px; }
.card { max-width: 680px; margin: 0 auto; padding: 20px; border: 1px solid #e5e7eb; border-radius: 12px; }
.ok { color: #15803d; }
.no { color: #b91c1c; }
a { color:#2563eb; text-decoration:none; }
</style>
</head>
<body>
<div class="card">
<h1>Welcome, {{ username }}</h1>
<ul>
{% for key, outcome in outcomes.items() %}
<li>
<strong>{{ outcome.rule.guild_name }}</strong> / {{ outcome.rule.role_name }}:
{% if outcome.has_role %}<span class="ok">has role</span>{% else %}<span class="no">no role</span>{% endif %}
{% if outcome.error %}({{ outcome.error.message }}){% endif %}
</li>
{% endfor %}
</ul>
<p><a href="/">Home</a> | <a href="/logout">Log out</a></p>
</div>
</body>
</html>"""


def clear_session():
    session.pop("access_token", None)
    session.pop("token_expiry", None)


def session_token():
    """取出 callback 存的 access token，沒有或過期就 401"""
    token = session.get("access_token")
    if not token:
        raise NotAuthenticated()
    expiry = session.get("token_expiry")
    if expiry is not None and time.time() > expiry:
        raise TokenExpired()
    return token


@bp.route("/dashboard")
def dashboard():
    try:
        token = session_token()
    except (NotAuthenticated, TokenExpired):
        return redirect(url_for("oauth.login"))

    discord = get_discord()
    try:
        user = discord.fetch_user(token)
    except RoleCheckError as e:
        # token 已失效（被撤銷或沒有 expiry），清掉重新登入
        logger.info("Session token rejected by Discord: %s", e.message)
        clear_session()
        return redirect(url_for("oauth.login"))
    outcomes = check_rules(discord, token, get_settings().rules())
    return render_template_string(
        DASHBOARD_HTML,
        username=user.get("global_name") or user.get("username", "Unknown"),
        outcomes=outcomes,
    )


@bp.route("/api/check-role")
def session_check_role():
    result = check_role(get_discord(), session_token(), primary_rule())
    return jsonify({**result.to_dict(), "userRoles": sorted(result.user_roles)})


@bp.route("/logout")
def logout():
    clear_session()
    return redirect(url_for("meta.index"))


def setup(app):
    app.register_blueprint(bp)
