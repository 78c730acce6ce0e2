import logging
from datetime import datetime
from typing import Any, Dict

import dropbox
from dropbox import DropboxOAuth2FlowNoRedirect

from ..errors import FatalError
from .auth_manager import AuthManager
from .session import Session, SignInFlow

logger = logging.getLogger(__name__)


class DropboxAuthManager(AuthManager):
    """Dropbox sign-in with offline (refresh) tokens.

    Without an app secret the flow falls back to PKCE, which is what a
    desktop install should use.
    """

    provider_type = "dropbox"

    def begin_sign_in(self) -> SignInFlow:
        if not self.config.dropbox_app_key:
            raise FatalError(self.provider_type, "Dropbox sign-in is not configured (MWB_DROPBOX_APP_KEY)")
        flow = DropboxOAuth2FlowNoRedirect(
            self.config.dropbox_app_key,
            consumer_secret=self.config.dropbox_app_secret,
            token_access_type="offline",
            scope=sorted(self.required_scopes),
            use_pkce=not self.config.dropbox_app_secret,
        )
        return SignInFlow(self.provider_type, flow.start(), flow=flow)

    def _exchange_code(self, flow: SignInFlow, code: str) -> Dict[str, Any]:
        result = flow.flow.finish(code)
        account = dropbox.Dropbox(oauth2_access_token=result.access_token).users_get_current_account()
        return {
            "access_token": result.access_token,
            "refresh_token": result.refresh_token,
            "expires_at": result.expires_at.timestamp() if result.expires_at else None,
            "account_id": result.account_id,
            "account": account.email,
            "scopes": sorted((result.scope or "").split()),
        }

    def _session_from_tokens(self, token_data: Dict[str, Any]) -> Session:
        expires_at = token_data.get("expires_at")
        dbx = dropbox.Dropbox(
            oauth2_access_token=token_data.get("access_token"),
            oauth2_refresh_token=token_data.get("refresh_token"),
            oauth2_access_token_expiration=datetime.fromtimestamp(expires_at) if expires_at else None,
            app_key=self.config.dropbox_app_key,
            app_secret=self.config.dropbox_app_secret,
        )
        return Session(
            provider=self.provider_type,
            account=token_data.get("account"),
            granted_scopes=frozenset(token_data.get("scopes") or []),
            credentials=dbx,
        )

    def _revoke(self, token_data: Dict[str, Any]) -> bool:
        self._session_from_tokens(token_data).credentials.auth_token_revoke()
        logger.info("Dropbox token revoked")
        return True
