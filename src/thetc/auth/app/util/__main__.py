import argparse
import asyncio
import logging
import secrets
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError
import sentry_sdk

from thetc.auth.app.cli import configure_logging
from thetc.auth.app.config import Settings
from thetc.auth.app.metrics import create_metrics_client
from thetc.auth.app.tasks import reap_expired, session_reaper_task
from thetc.auth.errors import StoreException
from thetc.auth.store import IdentityStore

logger = logging.getLogger(__name__)


def generate_token(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


async def genToken() -> None:
    print(generate_token())


async def initDb(store: IdentityStore) -> None:
    await store.create_schema()
    print("schema created")


async def makeUser(store: IdentityStore, username: str, password_hash: str) -> None:
    user = await store.users.create_user(username, password_hash)
    found = await store.users.get_user_by_username(username)
    assert found.id == user.id
    print(f"{user.username} created: {user.id}")


async def issueToken(
    store: IdentityStore,
    name: str,
    description: Optional[str],
    token: Optional[str],
    expires_in: Optional[int],
) -> None:
    expires_at = None
    if expires_in is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

    appauth = await store.tokens.issue_token(
        name,
        token or generate_token(),
        description=description,
        expires_at=expires_at,
    )
    # The only place a token is ever displayed.
    print(f"{appauth.name} issued {appauth.id}: {appauth.token}")


async def revokeToken(store: IdentityStore, name: str) -> None:
    appauth = await store.tokens.get_by_name(name)
    await store.tokens.revoke(appauth.id)
    print(f"{name} revoked")


async def reap(store: IdentityStore, settings: Settings, loop: bool) -> None:
    metrics_client = create_metrics_client(
        settings.metrics_backend,
        host=settings.statsd_host,
        port=settings.statsd_port,
        debug=settings.debug,
    )
    if settings.metrics_backend == "telegraf":
        await metrics_client.client.connect()

    try:
        if loop:
            await session_reaper_task(
                store,
                metrics_client,
                interval=settings.reaper_interval,
                metrics_prefix=settings.statsd_prefix,
            )
        sessions_reaped, tokens_reaped = await reap_expired(
            store, metrics_client, metrics_prefix=settings.statsd_prefix
        )
        print(f"reaped {sessions_reaped} sessions, {tokens_reaped} tokens")
    finally:
        await metrics_client.close()


async def realMain(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="thetc-auth-util", description="Identity store utilities"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    _ = subparsers.add_parser("gen-token", help="Generate a random service token")
    _ = subparsers.add_parser("init-db", help="Create the store tables")

    make_user = subparsers.add_parser("make-user", help="Register a user")
    make_user.add_argument("username", help="The username to register.")
    make_user.add_argument(
        "password_hash", help="The already hashed password to store for the user."
    )

    issue_token = subparsers.add_parser("issue-token", help="Issue a service token")
    issue_token.add_argument("name", help="The unique name of the calling service.")
    issue_token.add_argument("--description", default=None)
    issue_token.add_argument(
        "--token", default=None, help="Token value to use instead of a random one."
    )
    issue_token.add_argument(
        "--expires-in", type=int, default=None, help="Lifetime in seconds."
    )

    revoke_token = subparsers.add_parser("revoke-token", help="Revoke a service token")
    revoke_token.add_argument("name", help="The name of the service token.")

    reap_parser = subparsers.add_parser(
        "reap", help="Delete expired sessions and service tokens"
    )
    reap_parser.add_argument(
        "--loop", action="store_true", help="Keep reaping every REAPER_INTERVAL seconds."
    )

    args: Dict[str, Any] = vars(parser.parse_args(argv))
    command = args.get("command", None)

    if command == "gen-token":
        await genToken()
        return 0

    settings = Settings()
    configure_logging(settings.debug)
    if settings.sentry_dsn:
        sentry_sdk.init(dsn=settings.sentry_dsn)

    store = IdentityStore.from_settings(settings)
    try:
        if command == "init-db":
            await initDb(store)
        elif command == "make-user":
            await makeUser(store, args["username"], args["password_hash"])
        elif command == "issue-token":
            await issueToken(
                store,
                args["name"],
                args.get("description"),
                args.get("token"),
                args.get("expires_in"),
            )
        elif command == "revoke-token":
            await revokeToken(store, args["name"])
        elif command == "reap":
            await reap(store, settings, args.get("loop", False))
    except (StoreException, ValidationError) as e:
        logger.error("%s failed: %s", command, e)
        return 1
    finally:
        await store.dispose()

    return 0


def main() -> None:
    sys.exit(asyncio.run(realMain()))


if __name__ == "__main__":
    main()
