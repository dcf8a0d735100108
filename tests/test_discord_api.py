from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from discord_api import DiscordOAuth, add_query_params
from errors import (
    AccessDenied,
    NotAMember,
    RateLimited,
    TokenExchangeFailed,
    UpstreamUnavailable,
    error_for_status,
)


def fake_response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = "body"
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def api(settings_factory):
    return DiscordOAuth(settings_factory(http_timeout=5.0))


class TestAuthorizeUrl:
    def test_plain(self, api):
        url = api.authorize_url()
        parts = urlsplit(url)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://discord.com/api/oauth2/authorize"
        query = parse_qs(parts.query)
        assert query == {
            "client_id": ["client"],
            "redirect_uri": ["https://roles.example.com/callback"],
            "response_type": ["code"],
            "scope": ["identify guilds.members.read"],
        }

    def test_pass_through_redirect(self, api):
        url = api.authorize_url("https://mint.example.com/page?x=1")
        redirect_uri = parse_qs(urlsplit(url).query)["redirect_uri"][0]
        inner = parse_qs(urlsplit(redirect_uri).query)
        assert redirect_uri.startswith("https://roles.example.com/callback?")
        assert inner["redirect"] == ["https://mint.example.com/page?x=1"]


def test_add_query_params_keeps_existing():
    url = add_query_params("https://a.example/p?x=1", canMint="true", message="hi there")
    assert parse_qs(urlsplit(url).query) == {"x": ["1"], "canMint": ["true"], "message": ["hi there"]}


class TestExchangeCode:
    @patch("discord_api.requests.post")
    def test_success(self, mock_post, api):
        mock_post.return_value = fake_response(200, {
            "access_token": "abc", "refresh_token": "def", "expires_in": 604800,
        })
        token = api.exchange_code("the-code")
        assert token.access_token == "abc"
        assert token.refresh_token == "def"
        assert token.expires_in == 604800

        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == "https://discord.com/api/oauth2/token"
        assert kwargs["data"] == {
            "client_id": "client",
            "client_secret": "secret",
            "grant_type": "authorization_code",
            "code": "the-code",
            "redirect_uri": "https://roles.example.com/callback",
        }
        assert kwargs["timeout"] == 5.0

    @patch("discord_api.requests.post")
    def test_redirect_uri_matches_authorize(self, mock_post, api):
        mock_post.return_value = fake_response(200, {"access_token": "abc"})
        api.exchange_code("c", "https://mint.example.com")
        sent = mock_post.call_args.kwargs["data"]["redirect_uri"]
        assert sent == api.redirect_uri_for("https://mint.example.com")

    @patch("discord_api.requests.post")
    def test_upstream_error(self, mock_post, api):
        mock_post.return_value = fake_response(400, {"error": "invalid_grant"})
        with pytest.raises(TokenExchangeFailed) as exc:
            api.exchange_code("bad")
        assert exc.value.upstream_status == 400
        assert exc.value.status_code == 500

    @patch("discord_api.requests.post", side_effect=requests.ConnectionError("down"))
    def test_transport_error(self, mock_post, api):
        with pytest.raises(TokenExchangeFailed) as exc:
            api.exchange_code("c")
        assert exc.value.upstream_status is None

    @pytest.mark.parametrize("raw,expected", [
        ("3600.0", 3600),
        ("soon", None),
        (None, None),
    ])
    @patch("discord_api.requests.post")
    def test_loose_expires_in(self, mock_post, api, raw, expected):
        mock_post.return_value = fake_response(200, {"access_token": "a", "expires_in": raw})
        token = api.exchange_code("c")
        assert token.access_token == "a"
        assert token.expires_in == expected

    @patch("discord_api.requests.post")
    def test_missing_access_token(self, mock_post, api):
        mock_post.return_value = fake_response(200, {"token_type": "Bearer"})
        with pytest.raises(TokenExchangeFailed):
            api.exchange_code("c")


class TestFetchMember:
    @patch("discord_api.requests.get")
    def test_roles(self, mock_get, api):
        mock_get.return_value = fake_response(200, {"roles": ["1", 2]})
        member = api.fetch_member("tok", "111")
        assert member.roles == frozenset({"1", "2"})
        assert member.has_role("2")
        args, kwargs = mock_get.call_args
        assert args[0] == "https://discord.com/api/users/@me/guilds/111/member"
        assert kwargs["headers"] == {"Authorization": "Bearer tok"}
        assert kwargs["timeout"] == 5.0

    @patch("discord_api.requests.get")
    def test_no_roles_field(self, mock_get, api):
        mock_get.return_value = fake_response(200, {})
        assert api.fetch_member("tok", "111").roles == frozenset()

    @patch("discord_api.requests.get")
    def test_roles_not_a_list(self, mock_get, api):
        mock_get.return_value = fake_response(200, {"roles": "1001"})
        member = api.fetch_member("tok", "111")
        assert member.roles == frozenset()
        assert not member.has_role("1")

    @pytest.mark.parametrize("status,error", [
        (403, AccessDenied),
        (404, NotAMember),
        (429, RateLimited),
        (500, UpstreamUnavailable),
        (401, UpstreamUnavailable),
    ])
    @patch("discord_api.requests.get")
    def test_status_mapping(self, mock_get, api, status, error):
        mock_get.return_value = fake_response(status, {"message": "nope"})
        with pytest.raises(error) as exc:
            api.fetch_member("tok", "111")
        assert exc.value.upstream_status == status

    @patch("discord_api.requests.get", side_effect=requests.Timeout("slow"))
    def test_timeout(self, mock_get, api):
        with pytest.raises(UpstreamUnavailable):
            api.fetch_member("tok", "111")

    @patch("discord_api.requests.get")
    def test_invalid_json(self, mock_get, api):
        mock_get.return_value = fake_response(200, ValueError("bad json"))
        with pytest.raises(UpstreamUnavailable):
            api.fetch_member("tok", "111")


def test_error_for_status_messages():
    assert error_for_status(403).status_code == 403
    assert error_for_status(404).message == "User is not a member of this guild"
    assert error_for_status(429).message == "Rate limited - try again later"
    assert error_for_status(None).status_code == 500
