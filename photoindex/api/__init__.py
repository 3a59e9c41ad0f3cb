"""photoindex API: a browsable, paginated photo library on top of an S3 bucket."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from photoindex.api.bytes import app_bytes
from photoindex.api.info import app_info
from photoindex.api.library import app_library
from photoindex.api.photos import app_photos
from photoindex.connections import photoindex_connections
from photoindex.errors import PhotoIndexError


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.info("Starting photoindex connections...")
    async with photoindex_connections():
        yield


app = FastAPI(
    title="photoindex",
    description=__doc__ if __doc__ else "",
    openapi_tags=[
        dict(name="photos", description="Endpoints to list, get, copy, rename and delete photos"),
        dict(name="bytes", description="Endpoints to upload and download photo bytes"),
        dict(name="library", description="Endpoints for directories, directory index files and synchronisation"),
        dict(name="informational", description="Server information"),
    ],
    lifespan=lifespan,
)
app.include_router(app_info)
app.include_router(app_photos)
app.include_router(app_bytes)
app.include_router(app_library)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.exception_handler(PhotoIndexError)
async def photoindex_exception_handler(request: Request, exc: PhotoIndexError):
    if exc.status_code >= 500:
        logging.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "category": exc.category},
    )


@app.exception_handler(ValueError)
async def value_error_exception_handler(request: Request, exc: ValueError):
    return JSONResponse(
        status_code=400,
        content={"message": str(exc), "category": "invalid_argument"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc) -> JSONResponse:
    return JSONResponse(
        status_code=422, content={"message": "There was an issue with the data you sent.", "fields_invalid": exc.errors()}
    )
