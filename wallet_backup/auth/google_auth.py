import json
import logging
from typing import Any, Dict
from urllib.parse import parse_qs, urlencode, urlparse

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from ..errors import FatalError
from .auth_manager import AuthManager
from .session import Session, SignInFlow

logger = logging.getLogger(__name__)

REVOKE_URI = "https://oauth2.googleapis.com/revoke"


class GoogleDriveAuthManager(AuthManager):
    """Google account sign-in through an installed-app OAuth flow."""

    provider_type = "google"

    def begin_sign_in(self) -> SignInFlow:
        if not self.config.google_client_secrets:
            raise FatalError(self.provider_type,
                             "Google sign-in is not configured (MWB_GOOGLE_CLIENT_SECRETS)")
        flow = Flow.from_client_secrets_file(
            self.config.google_client_secrets,
            scopes=sorted(self.required_scopes),
            redirect_uri=self.config.google_redirect_uri,
        )
        url, state = flow.authorization_url(access_type="offline", prompt="consent")
        return SignInFlow(self.provider_type, url, state=state, flow=flow)

    def _exchange_code(self, flow: SignInFlow, code: str) -> Dict[str, Any]:
        oauth_flow = flow.flow
        # Loopback redirects land on a dead page; users paste the whole URL.
        if code.startswith("http://") or code.startswith("https://"):
            query = parse_qs(urlparse(code).query)
            if "error" in query:
                raise ValueError(query["error"][0])
            code = query.get("code", [""])[0]
        oauth_flow.fetch_token(code=code)
        credentials = oauth_flow.credentials

        about = build("drive", "v3", credentials=credentials, cache_discovery=False) \
            .about().get(fields="user(emailAddress, displayName)").execute()

        token_data = json.loads(credentials.to_json())
        token_data["scopes"] = sorted(credentials.granted_scopes or credentials.scopes or [])
        token_data["account"] = about.get("user", {}).get("emailAddress")
        return token_data

    def _session_from_tokens(self, token_data: Dict[str, Any]) -> Session:
        scopes = token_data.get("scopes") or []
        credentials = Credentials(
            token=token_data.get("token"),
            refresh_token=token_data.get("refresh_token"),
            token_uri=token_data.get("token_uri"),
            client_id=token_data.get("client_id"),
            client_secret=token_data.get("client_secret"),
            scopes=scopes,
        )
        return Session(
            provider=self.provider_type,
            account=token_data.get("account"),
            granted_scopes=frozenset(scopes),
            credentials=credentials,
        )

    def _revoke(self, token_data: Dict[str, Any]) -> bool:
        token = token_data.get("refresh_token") or token_data.get("token")
        if not token:
            return True
        response = Request()(
            url=REVOKE_URI,
            method="POST",
            body=urlencode({"token": token}),
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
        logger.info(f"Google token revocation answered HTTP {response.status}")
        return response.status == 200
