from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Optional


@dataclass(frozen=True)
class Session:
    """An authenticated identity bound to one provider.

    The credentials object is whatever the provider SDK needs to sign
    requests; the core reads it and never mutates it.
    """
    provider: str
    account: Optional[str]
    granted_scopes: FrozenSet[str] = frozenset()
    credentials: Any = field(default=None, repr=False, compare=False)

    def is_authorized(self, required_scopes: Iterable[str] = ()) -> bool:
        """True iff there is a signed-in account holding every required scope."""
        return bool(self.account) and set(required_scopes) <= self.granted_scopes


@dataclass
class SignInFlow:
    """Handle for an interactive sign-in the external caller has to drive.

    The caller opens `authorization_url`, lets the user grant access and
    passes the resulting authorization code to `complete_sign_in`.
    """
    provider: str
    authorization_url: str
    state: Optional[str] = None
    flow: Any = field(default=None, repr=False)


@dataclass
class SignInResult:
    success: bool
    reason: str = ""
    session: Optional[Session] = None
