"""Google ID token verification via the tokeninfo endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from guardian import config
from guardian.errors import Unauthorized, Unavailable

logger = logging.getLogger(__name__)

_GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


@dataclass(frozen=True)
class GoogleIdentity:
    subject: str
    email: str
    first_name: str
    last_name: str
    picture: str | None


class GoogleTokenVerifier:
    """Checks Google ID tokens against Google's tokeninfo endpoint."""

    def __init__(self) -> None:
        self._client_id = config.settings.GOOGLE_CLIENT_ID
        self._tokeninfo_url = config.settings.GOOGLE_TOKENINFO_URL

    def configured(self) -> bool:
        return bool(self._client_id)

    async def verify(self, id_token: str) -> GoogleIdentity:
        """
        Verify an ID token and extract the identity it asserts.

        Args:
            id_token: Token from Google Sign-In on the client

        Returns:
            GoogleIdentity for the token's subject

        Raises:
            Unavailable: If Google sign-in is not configured or unreachable
            Unauthorized: If the token is invalid, for another app, or unverified
        """
        if not self.configured():
            raise Unavailable("Google sign-in is not configured.")

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(self._tokeninfo_url, params={"id_token": id_token})
        except httpx.HTTPError as e:
            logger.error("oauth: tokeninfo request failed: %s", e)
            raise Unavailable("Google sign-in is temporarily unavailable.") from e

        if response.status_code != 200:
            raise Unauthorized("Invalid Google token.")

        claims = response.json()
        if claims.get("aud") != self._client_id:
            logger.warning("oauth: token audience mismatch")
            raise Unauthorized("Invalid Google token.")
        if claims.get("iss") not in _GOOGLE_ISSUERS:
            raise Unauthorized("Invalid Google token.")
        if not claims.get("email") or str(claims.get("email_verified")).lower() != "true":
            raise Unauthorized("Google account email is not verified.")

        email = claims["email"]
        return GoogleIdentity(
            subject=claims["sub"],
            email=email.lower(),
            first_name=claims.get("given_name") or email.split("@")[0],
            last_name=claims.get("family_name") or "",
            picture=claims.get("picture"),
        )


google_verifier = GoogleTokenVerifier()
