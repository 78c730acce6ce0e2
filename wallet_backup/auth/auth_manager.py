import os
import json
import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, FrozenSet, Iterable, Optional

from ..config import AppConfig
from ..storage import get_provider_class
from .session import Session, SignInFlow, SignInResult

logger = logging.getLogger(__name__)


class TokenStore:
    """Keeps one provider's token data in a JSON file."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[Dict[str, Any]]:
        """Loads token data from the JSON file, or None if there is none."""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (IOError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def save(self, data: Dict[str, Any]):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(data, f, indent=4)
        logger.info(f"Saved token data to {self.path}")

    def delete(self) -> bool:
        if not os.path.exists(self.path):
            return False
        os.unlink(self.path)
        logger.info(f"Deleted token file {self.path}")
        return True


class AuthManager(ABC):
    """Connect/disconnect lifecycle for one provider account.

    Sessions are read from the token file on demand; nothing is kept in
    process-wide state.
    """

    provider_type = "unknown"

    def __init__(self, config: AppConfig, token_store: Optional[TokenStore] = None):
        self.config = config
        self.token_store = token_store or TokenStore(config.token_path(self.provider_type))
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def required_scopes(self) -> FrozenSet[str]:
        return get_provider_class(self.provider_type).required_scopes

    def current_session(self) -> Optional[Session]:
        """Builds the session from stored tokens. Makes no network calls."""
        token_data = self.token_store.load()
        if not token_data:
            return None
        return self._session_from_tokens(token_data)

    def is_authorized(self, required_scopes: Optional[Iterable[str]] = None) -> bool:
        session = self.current_session()
        if required_scopes is None:
            required_scopes = self.required_scopes
        return session is not None and session.is_authorized(required_scopes)

    @abstractmethod
    def begin_sign_in(self) -> SignInFlow:
        """Starts an interactive authorization and returns the URL to visit."""
        pass

    def complete_sign_in(self, flow: SignInFlow, result: Optional[str]) -> SignInResult:
        """
        Finishes a sign-in started by begin_sign_in.

        Args:
            flow: The handle returned by begin_sign_in.
            result: The authorization code (or redirect URL) the user obtained.
                Empty when the user aborted.

        Returns:
            A SignInResult; failures are reported through `success` and `reason`.
        """
        if not result or not result.strip():
            return SignInResult(False, "Sign-in was cancelled")
        if flow.provider != self.provider_type:
            return SignInResult(False, f"Sign-in flow belongs to provider '{flow.provider}'")
        try:
            token_data = self._exchange_code(flow, result.strip())
        except Exception as e:
            logger.warning(f"{self.provider_type} sign-in failed: {e}")
            return SignInResult(False, f"Authorization failed: {e}")

        missing = self.required_scopes - set(token_data.get("scopes") or [])
        if missing:
            return SignInResult(False, f"Missing required scopes: {', '.join(sorted(missing))}")

        self.token_store.save(token_data)
        session = self._session_from_tokens(token_data)
        logger.info(f"Signed in to {self.provider_type} as {session.account}")
        return SignInResult(True, "", session)

    def sign_out(self) -> "Future[bool]":
        """
        Removes the local session at once and revokes the token remotely.

        Returns:
            A future resolving to True once the provider acknowledged the
            revocation (or when there was nothing to revoke), and to False
            when revocation failed. It never raises.
        """
        token_data = self.token_store.load()
        self.token_store.delete()
        if not token_data:
            future: Future = Future()
            future.set_result(True)
            return future
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1,
                                                thread_name_prefix=f"{self.provider_type}-signout")
        return self._executor.submit(self._revoke_quietly, token_data)

    def _revoke_quietly(self, token_data: Dict[str, Any]) -> bool:
        # The local token is already gone; a failed revocation only leaves it valid remotely.
        try:
            return bool(self._revoke(token_data))
        except Exception as e:
            logger.warning(f"Could not revoke {self.provider_type} token: {e}")
            return False

    @abstractmethod
    def _exchange_code(self, flow: SignInFlow, code: str) -> Dict[str, Any]:
        """Trades the authorization code for token data (including "scopes" and "account")."""
        pass

    @abstractmethod
    def _session_from_tokens(self, token_data: Dict[str, Any]) -> Session:
        pass

    @abstractmethod
    def _revoke(self, token_data: Dict[str, Any]) -> bool:
        pass
