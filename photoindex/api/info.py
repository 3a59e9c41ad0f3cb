"""API Endpoints for server information."""

from importlib.metadata import PackageNotFoundError, version

from fastapi import APIRouter
from pydantic import BaseModel, Field

from photoindex.config import AuthOptions, get_settings, validate_settings
from photoindex.connections import CONNECTIONS

app_info = APIRouter(tags=["informational"])


class ServerInfo(BaseModel):
    version: str = Field(description="Version of the photoindex package")
    auth: str = Field(description="Authorization mode of this instance")
    middlecat_url: str | None = Field(None, description="Identity provider, if authorization is enabled")
    blobstore: bool = Field(description="Whether a blob store is connected")
    warnings: list[str] = Field(default_factory=list)


@app_info.get("/")
async def index() -> ServerInfo:
    settings = get_settings()
    try:
        package_version = version("photoindex")
    except PackageNotFoundError:
        package_version = "unknown"
    warning = validate_settings()
    return ServerInfo(
        version=package_version,
        auth=settings.auth.value,
        middlecat_url=settings.middlecat_url if settings.auth != AuthOptions.no_auth else None,
        blobstore=CONNECTIONS.blobstore is not None,
        warnings=[warning] if warning else [],
    )
