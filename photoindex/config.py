"""
photoindex Configuration

We read configuration from 2 sources, in order of precedence (higher is more priority)
- Environment variables
- A .env file, either in the current working directory or in a location specified
  by the PHOTOINDEX_ENV_FILE environment variable
"""

import functools
from enum import Enum
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "photoindex_"


class AuthOptions(str, Enum):
    #: everyone (that can reach the server) acts as the configured default user
    no_auth = "no_auth"

    #: every request needs a valid middlecat bearer token for this host
    authorized_users_only = "authorized_users_only"

    @classmethod
    def validate(cls, value: str):
        if value not in cls.__members__:
            options = ", ".join(AuthOptions.__members__.keys())
            return f"{value} is not a valid authorization option. Choose one of {{{options}}}"


class Settings(BaseSettings):
    env_file: Annotated[
        Path,
        Field(
            description="Location of a .env file (if used) relative to working directory",
        ),
    ] = Path(".env")
    host: Annotated[
        str,
        Field(
            description="Host this instance is served at (needed for checking tokens)",
        ),
    ] = "http://localhost:5000"

    database_url: Annotated[
        str,
        Field(
            description="SQLAlchemy URL of the index database (async driver, e.g. sqlite+aiosqlite or postgresql+asyncpg)",
        ),
    ] = "sqlite+aiosqlite:///photoindex.db"
    database_echo: Annotated[bool, Field(description="Log all SQL statements")] = False

    auth: Annotated[AuthOptions, Field(description="Do we require authorization?")] = AuthOptions.no_auth

    default_user: Annotated[
        str,
        Field(
            description="Username every request is attributed to when authorization is disabled",
        ),
    ] = "local"

    middlecat_url: Annotated[
        str,
        Field(
            description="Middlecat server to trust as ID provider",
        ),
    ] = "https://middlecat.net"

    s3_host: Annotated[str | None, Field(description="Endpoint of the S3-compatible object store")] = None
    s3_access_key: Annotated[str | None, Field()] = None
    s3_secret_key: Annotated[str | None, Field()] = None
    s3_region: Annotated[str | None, Field()] = None
    s3_bucket: Annotated[str, Field(description="Bucket holding the photos")] = "photos"
    s3_prefix: Annotated[
        str,
        Field(
            description="Optional folder inside the bucket. Keys are stored below it and exposed without it",
        ),
    ] = ""

    download_chunk_size: Annotated[int, Field(gt=0, description="Chunk size (bytes) for streamed downloads")] = 64 * 1024
    upload_spool_size: Annotated[
        int,
        Field(gt=0, description="Uploads larger than this many bytes are spooled to disk instead of memory"),
    ] = 8 * 1024 * 1024

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX)


@functools.lru_cache()
def get_settings() -> Settings:
    # Read once to find out where the .env file lives, then read again with it loaded
    temp = Settings()
    load_dotenv(temp.env_file, override=False)
    return Settings()


def validate_settings():
    if get_settings().auth != AuthOptions.no_auth:
        if get_settings().host.startswith("http://") and not get_settings().host.startswith("http://localhost"):
            return (
                "You have set the host at an http address and enabled authentication. "
                "Bearer tokens will be sent in the clear, which is probably not what you want."
            )
