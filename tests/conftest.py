import pytest

from config_manager import OAuth2Credentials, Settings, parse_guilds
from discord_api import DiscordOAuth, GuildMember, TokenExchangeResult
from errors import RoleCheckError, TokenExchangeFailed
from web import create_app

GUILDS = {
    "NADS": {"id": "111", "name": "NADS", "roleId": "1001", "roleName": "NADS role"},
    "SLMND": {"id": "222", "name": "SLMND", "roleId": "2002", "roleName": "Riverborn role"},
}


class FakeDiscord(DiscordOAuth):
    """Records every outbound call instead of talking to Discord."""

    def __init__(self, settings):
        super().__init__(settings)
        self.members = {}
        self.token_error = None
        self.exchanges = []
        self.lookups = []
        self.user = {"id": "42", "username": "tester"}

    def exchange_code(self, code, redirect=None):
        self.exchanges.append((code, self.redirect_uri_for(redirect)))
        if self.token_error is not None:
            raise self.token_error
        return TokenExchangeResult(access_token="token-" + code, refresh_token="r", expires_in=3600)

    def fetch_member(self, access_token, guild_id):
        self.lookups.append((access_token, guild_id))
        value = self.members.get(guild_id, [])
        if isinstance(value, RoleCheckError):
            raise value
        return GuildMember(roles=frozenset(value))

    def fetch_user(self, access_token):
        return self.user


def make_settings(**overrides):
    values = dict(
        credentials=OAuth2Credentials(
            client_id="client",
            client_secret="secret",
            redirect_uri="https://roles.example.com/callback",
            scopes=("identify", "guilds.members.read"),
        ),
        guilds=parse_guilds(GUILDS),
        primary_key="NADS",
        nft_key="NADS",
        secret_key="test-secret",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def discord(settings):
    return FakeDiscord(settings)


@pytest.fixture
def app(settings, discord):
    app = create_app(settings, discord)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def exchange_fails(discord):
    discord.token_error = TokenExchangeFailed(upstream_status=400)
    return discord
