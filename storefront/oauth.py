# storefront/oauth.py
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import Request
from pydantic import ValidationError

from .config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, OAUTH_REDIRECT_URI
from .errors import UpstreamAuthFailure
from .schemas import GoogleProfile

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://www.googleapis.com/oauth2/v4/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleOAuthClient:
    """Authorization-code flow against Google: build the consent URL, trade the code, read the profile."""

    def __init__(
        self,
        client_id: str = GOOGLE_CLIENT_ID,
        client_secret: str = GOOGLE_CLIENT_SECRET,
        redirect_uri: str = OAUTH_REDIRECT_URI,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport
        self._timeout = timeout

    def authorization_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid profile email",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> GoogleProfile:
        if not code:
            raise UpstreamAuthFailure("missing authorization code")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                token_resp = await client.post(TOKEN_URL, data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                })
                if token_resp.status_code != 200:
                    raise UpstreamAuthFailure(f"token endpoint returned {token_resp.status_code}")
                access_token = token_resp.json().get("access_token")
                if not access_token:
                    raise UpstreamAuthFailure("token endpoint returned no access_token")

                info_resp = await client.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
                if info_resp.status_code != 200:
                    raise UpstreamAuthFailure(f"userinfo endpoint returned {info_resp.status_code}")
                return GoogleProfile.model_validate(info_resp.json())
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            raise UpstreamAuthFailure(str(exc)) from exc


def get_oauth(request: Request) -> GoogleOAuthClient:
    return request.app.state.oauth
