"""
Who is editing, and under which name the commit is recorded.

Sign-in itself happens elsewhere (an OAuth proxy in front of the REST
app, or the operator holding the access token on the CLI). This module
only consumes the result: an Identity, and an allow-list deciding
whether that identity may commit.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

GENERIC_NAME = "Admin Editor"
NOREPLY_DOMAIN = "users.noreply.github.com"


@dataclass(frozen=True)
class Identity:
    display_name: Optional[str] = None
    contact_address: Optional[str] = None
    is_authorized_committer: bool = False
    username: Optional[str] = None  # GitHub login, when signed in through GitHub


@dataclass(frozen=True)
class CommitAttribution:
    """Author and committer recorded with a change. Recomputed for every write."""
    name: str
    email: str

    def to_github(self) -> dict:
        return {"name": self.name, "email": self.email}


class IdentityProvider(Protocol):
    def current_identity(self) -> Optional[Identity]: ...


class StaticIdentityProvider:
    """Always returns the same identity. The MCP server asks it once per write."""

    def __init__(self, identity: Optional[Identity] = None):
        self.identity = identity

    def current_identity(self) -> Optional[Identity]:
        return self.identity


class AdminAllowList:
    """Case-insensitive allow-list of emails and GitHub logins."""

    def __init__(self, emails=(), usernames=()):
        self.emails = frozenset(e.strip().lower() for e in emails if e.strip())
        self.usernames = frozenset(u.strip().lower() for u in usernames if u.strip())

    @classmethod
    def from_settings(cls, settings) -> "AdminAllowList":
        return cls(settings.admin_emails, settings.admin_usernames)

    def __bool__(self) -> bool:
        return bool(self.emails or self.usernames)

    def allows(self, email: Optional[str] = None, username: Optional[str] = None) -> bool:
        if email and email.strip().lower() in self.emails:
            return True
        if username and username.strip().lower() in self.usernames:
            return True
        return False

    def identity_for(
        self,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        username: Optional[str] = None,
    ) -> Identity:
        allowed = self.allows(email=email, username=username)
        if not allowed:
            logger.warning("Identity %s is not on the admin allow-list", email or username or "<anonymous>")
        return Identity(
            display_name=display_name or username,
            contact_address=email,
            is_authorized_committer=allowed,
            username=username,
        )


def commit_attribution(identity: Optional[Identity]) -> CommitAttribution:
    """
    Derive the commit author from the caller.

    Name falls back display name -> email -> GitHub login -> generic
    editor. Email falls back to a synthesized noreply address built from
    the name. Without any of them the generic editor is used and the degraded
    attribution is logged.
    """
    if identity is None or not (identity.display_name or identity.contact_address or identity.username):
        logger.warning("No caller identity available; committing as %r", GENERIC_NAME)
        return CommitAttribution(GENERIC_NAME, _noreply(GENERIC_NAME))

    name = identity.display_name or identity.contact_address or identity.username
    email = identity.contact_address or _noreply(name)
    return CommitAttribution(name, email)


def _noreply(name: str) -> str:
    local = re.sub(r"\s", "_", name)
    return f"{local}@{NOREPLY_DOMAIN}"


class HeaderIdentityProvider:
    """
    Identity established by an OAuth proxy in front of the REST app.

    The proxy signs the user in and forwards who they are in headers
    (oauth2-proxy conventions). These headers are only trustworthy when
    the proxy is the sole client, which the REST bearer token enforces.
    """

    EMAIL_HEADER = "x-forwarded-email"
    USER_HEADER = "x-forwarded-user"
    USERNAME_HEADER = "x-forwarded-preferred-username"
    NAME_HEADER = "x-forwarded-name"

    def __init__(self, headers, allow_list: AdminAllowList):
        self.headers = headers
        self.allow_list = allow_list

    def current_identity(self) -> Optional[Identity]:
        email = self.headers.get(self.EMAIL_HEADER) or None
        username = self.headers.get(self.USERNAME_HEADER) or self.headers.get(self.USER_HEADER) or None
        if not (email or username):
            return None
        return self.allow_list.identity_for(
            display_name=self.headers.get(self.NAME_HEADER) or None,
            email=email,
            username=username,
        )


def operator_identity(settings) -> Optional[Identity]:
    """
    Identity for the CLI and MCP server, whose operator holds the write token.

    None when no author is configured, which makes writes fall back to
    the generic editor.
    """
    if not (settings.COMMIT_AUTHOR_NAME or settings.COMMIT_AUTHOR_EMAIL):
        return None
    return Identity(
        display_name=settings.COMMIT_AUTHOR_NAME,
        contact_address=settings.COMMIT_AUTHOR_EMAIL,
        is_authorized_committer=True,
    )
