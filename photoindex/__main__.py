"""
photoindex: a browsable photo library over an S3 bucket
"""

import argparse
import asyncio
import inspect
import logging
import os
import sys
from pathlib import Path

import uvicorn
from uvicorn.config import LOGGING_CONFIG

from photoindex.config import ENV_PREFIX, AuthOptions, get_settings, validate_settings
from photoindex.connections import blobstore, create_tables, db, photoindex_connections
from photoindex.index.users import get_or_create_user
from photoindex.library.sync import reconcile


def run(args):
    auth = get_settings().auth
    logging.info(f"Starting server at port {args.port}, debug={not args.nodebug}, auth={auth}")
    if auth == AuthOptions.no_auth:
        logging.warning(
            "Warning: No authentication is set up - everyone who can access this service can view and change all "
            f"photos as user {get_settings().default_user}"
        )
    if validate_settings():
        logging.warning(validate_settings())
    logging.info(
        "To change server config, create an .env file and/or set environment parameters,\n"
        f"{' ' * 26}see photoindex/config.py or run `python -m photoindex create-env` for more information.\n"
    )

    log_config = "logging.yml" if Path("logging.yml").exists() else LOGGING_CONFIG
    uvicorn.run("photoindex.api:app", host="0.0.0.0", reload=not args.nodebug, port=int(args.port), log_config=log_config)


async def sync(args) -> None:
    async with photoindex_connections():
        async with db().begin() as session:
            user = await get_or_create_user(session, args.user)
        result = await reconcile(db(), blobstore(), user.id, refresh_metadata=args.update_metadata, prefix=args.prefix)
    print(f"added={result.added} removed={result.removed} metadata_updated={result.metadata_updated}")


async def init_db(_args) -> None:
    async with photoindex_connections():
        await create_tables()
    logging.info(f"Created index tables in {get_settings().database_url}")


def print_config(_args):
    for k, v in get_settings().model_dump().items():
        print(f"{ENV_PREFIX.upper()}{k.upper()}={'' if v is None else v}")


def create_env(args):
    if os.path.exists(".env"):
        print("*** File .env already exists, quitting ***")
        sys.exit(1)

    settings = get_settings()
    with open(".env", "w") as f:
        for fieldname, fieldinfo in type(settings).model_fields.items():
            if fieldname == "env_file":
                continue
            if doc := fieldinfo.description:
                f.write(f"# {doc}\n")
            value = getattr(settings, fieldname)
            if fieldname == "auth" and args.auth:
                value = args.auth
            if value is None:
                f.write(f"#{ENV_PREFIX}{fieldname}=\n\n")
            else:
                f.write(f"{ENV_PREFIX}{fieldname}={getattr(value, 'value', value)}\n\n")
    os.chmod(".env", 0o600)
    print("*** Created .env file ***")


def main():
    parser = argparse.ArgumentParser(description=__doc__, prog="python -m photoindex")

    subparsers = parser.add_subparsers(dest="action", title="action", help="Action to perform:", required=True)
    p = subparsers.add_parser("run", help="Run the backend API in development mode")
    p.add_argument(
        "--no-debug",
        action="store_true",
        dest="nodebug",
        help="Disable debug mode (useful for testing downstream clients)",
    )
    p.add_argument("-p", "--port", help="Port", default=5000)
    p.set_defaults(func=run)

    p = subparsers.add_parser("sync", help="Synchronise the index with the object store for a user")
    p.add_argument("-u", "--user", required=True, help="Username (email) to index the photos for")
    p.add_argument("--prefix", default="", help="Only synchronise objects below this prefix")
    p.add_argument(
        "--update-metadata",
        action="store_true",
        dest="update_metadata",
        help="Also extract the metadata of every photo again (downloads every photo)",
    )
    p.set_defaults(func=sync)

    p = subparsers.add_parser("init-db", help="Create the index database tables")
    p.set_defaults(func=init_db)

    p = subparsers.add_parser("config", help="Print the current settings")
    p.set_defaults(func=print_config)

    p = subparsers.add_parser("create-env", help="Create an .env file with the default settings")
    p.add_argument("-a", "--auth", choices=[o.value for o in AuthOptions], help="Authorization option to use")
    p.set_defaults(func=create_env)

    args = parser.parse_args()

    logging.basicConfig(format="[%(levelname)-7s:%(name)-15s] %(message)s", level=logging.INFO)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)

    if inspect.iscoroutinefunction(args.func):
        asyncio.run(args.func(args))
    else:
        args.func(args)


if __name__ == "__main__":
    main()
