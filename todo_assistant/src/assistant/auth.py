from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from .models import User
from .repositories import Store
from .settings import get_settings


# PUBLIC_INTERFACE
def get_store(request: Request) -> Store:
    """Return the process-wide store opened by the application lifespan."""
    return request.app.state.store


def _check_proxy_secret(presented: Optional[str]) -> None:
    expected = get_settings().auth_proxy_secret
    if expected is None:
        return
    if presented is None or not hmac.compare_digest(presented.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )


# PUBLIC_INTERFACE
def get_current_user(
    store: Store = Depends(get_store),
    subject: Optional[str] = Header(default=None, alias="X-Auth-Subject"),
    email: Optional[str] = Header(default=None, alias="X-Auth-Email"),
    name: Optional[str] = Header(default=None, alias="X-Auth-Name"),
    avatar_url: Optional[str] = Header(default=None, alias="X-Auth-Avatar"),
    proxy_secret: Optional[str] = Header(default=None, alias="X-Auth-Proxy-Secret"),
) -> User:
    """
    Resolve the authenticated user from identity headers.

    The identity provider runs in front of this service and forwards the
    verified profile in X-Auth-* headers. The headers are unsigned: when
    AUTH_PROXY_SECRET is set they are only accepted together with a matching
    X-Auth-Proxy-Secret; when it is unset the service must only be reachable
    through the proxy.

    The user row is written only when it is new or the forwarded profile
    differs from the stored one.

    Raises:
        HTTPException(401) if the proxy secret is wrong or the subject or email header is missing.
        HTTPException(403) if ALLOWED_EMAILS is set and does not contain the email.
    """
    _check_proxy_secret(proxy_secret)
    if not subject or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    allowed = get_settings().allowed_emails
    if allowed and email.strip().lower() not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is not authorized.",
        )

    external_id = subject.strip()
    display_name = (name or email).strip()
    email = email.strip()
    existing = store.get_user_by_external_id(external_id)
    if (
        existing is not None
        and existing["name"] == display_name
        and existing["email"] == email
        and existing["avatar_url"] == avatar_url
    ):
        return existing
    return store.create_or_update_user(
        external_id=external_id,
        name=display_name,
        email=email,
        avatar_url=avatar_url,
    )
