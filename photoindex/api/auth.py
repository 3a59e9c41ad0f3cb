"""Helper methods for authentication: resolve every request to a user of the photo index."""

import logging
from datetime import datetime

import httpx
from async_lru import alru_cache
from authlib.common.errors import AuthlibBaseError
from authlib.jose import jwt
from fastapi import Security
from fastapi.security.oauth2 import OAuth2AuthorizationCodeBearer

from photoindex.config import AuthOptions, get_settings
from photoindex.connections import db
from photoindex.errors import Unauthenticated
from photoindex.index.tables import User
from photoindex.index.users import get_or_create_user

middlecat_url = get_settings().middlecat_url.rstrip("/")
middlecat_scheme = OAuth2AuthorizationCodeBearer(
    tokenUrl=f"{middlecat_url}/api/token",
    authorizationUrl=f"{middlecat_url}/authorize",
    auto_error=False,
    scheme_name="OAuth2 Scheme",
)


class InvalidToken(ValueError):
    pass


@alru_cache(maxsize=1)
async def get_middlecat_config(middlecat_url) -> dict:
    async with httpx.AsyncClient() as client:
        r = await client.get(f"{middlecat_url}/api/configuration")
        r.raise_for_status()
        return r.json()


async def verify_token(token: str) -> dict:
    """
    Verifies the given token and returns the payload

    raises a InvalidToken exception if the token could not be validated
    """
    payload = await decode_middlecat_token(token)
    if missing := {"email", "resource", "exp"} - set(payload.keys()):
        raise InvalidToken(f"Invalid token, missing keys {missing}")
    now = int(datetime.now().timestamp())
    if payload["exp"] < now:
        raise InvalidToken("Token expired")
    if payload["resource"] != get_settings().host:
        raise InvalidToken(f"Wrong host! {payload['resource']} != {get_settings().host}")
    return payload


async def decode_middlecat_token(token: str) -> dict:
    url = get_settings().middlecat_url
    if not url:
        raise InvalidToken("No middlecat defined, cannot decrypt middlecat token")
    try:
        public_key = (await get_middlecat_config(url))["public_key"]
    except (httpx.HTTPError, KeyError) as e:
        raise InvalidToken(f"Cannot get public key from middlecat at {url}: {e}")
    try:
        return jwt.decode(token, public_key)
    except AuthlibBaseError as e:
        raise InvalidToken(e)


async def resolve_username(token: str | None) -> str:
    """The username a request acts as: the configured default user, or the email in the bearer token."""
    settings = get_settings()
    if settings.auth == AuthOptions.no_auth:
        return settings.default_user
    if token is None:
        raise Unauthenticated("This instance requires authentication. Please provide a valid bearer token")
    try:
        payload = await verify_token(token)
    except InvalidToken as e:
        logging.warning(f"Middlecat login failed: {e}")
        raise Unauthenticated(f"Invalid MiddleCat token: {e}") from e
    return payload["email"]


async def authenticated_user(middlecat: str | None = Security(middlecat_scheme)) -> User:
    """
    FastAPI dependency: authenticate the request and return the (created on first use) user.
    """
    username = await resolve_username(middlecat)
    async with db().begin() as session:
        return await get_or_create_user(session, username)
