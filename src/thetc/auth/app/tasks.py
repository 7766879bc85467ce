import asyncio
from datetime import datetime, timezone
import logging
from time import time
from typing import NoReturn, Optional, Tuple

import sentry_sdk

from thetc.auth.app.metrics import MetricsClient, NoOpMetricsClient
from thetc.auth.store import IdentityStore

logger = logging.getLogger(__name__)


async def reap_expired(
    store: IdentityStore,
    metrics_client: Optional[MetricsClient] = None,
    now: Optional[datetime] = None,
    metrics_prefix: str = "thetc_auth",
) -> Tuple[int, int]:
    """
    Run one reaping pass and return (sessions_reaped, tokens_reaped).

    Sessions and service tokens are reaped in two separate transactions; each is atomic on
    its own.
    """
    metrics_client = metrics_client or NoOpMetricsClient()
    now = now or datetime.now(timezone.utc)
    start_time = time()

    try:
        sessions_reaped = await store.sessions.delete_expired(now)
        tokens_reaped = await store.tokens.delete_expired(now)
    finally:
        metrics_client.timer(f"{metrics_prefix}.task.reaper.time", time() - start_time)

    metrics_client.increment(f"{metrics_prefix}.task.reaper.sessions", sessions_reaped)
    metrics_client.increment(f"{metrics_prefix}.task.reaper.tokens", tokens_reaped)

    logger.debug(
        "reap_expired: %d sessions, %d tokens expired at %s",
        sessions_reaped,
        tokens_reaped,
        now.isoformat(),
    )
    return sessions_reaped, tokens_reaped


async def session_reaper_task(
    store: IdentityStore,
    metrics_client: Optional[MetricsClient] = None,
    interval: float = 60,
    metrics_prefix: str = "thetc_auth",
) -> NoReturn:
    """
    Background loop removing expired sessions and service tokens every ``interval`` seconds.

    The store never reaps on its own; this loop is the external scheduler driving it. Failures
    are reported and the loop carries on with the next pass.
    """
    logger.info("Starting session reaper task")

    metrics_client = metrics_client or NoOpMetricsClient()

    while True:
        try:
            await reap_expired(store, metrics_client, metrics_prefix=metrics_prefix)
        except Exception as e:
            sentry_sdk.capture_exception(e)
            logger.exception("session_reaper_task: reaping pass failed")
            metrics_client.increment(
                f"{metrics_prefix}.task.reaper.exception",
                1,
                tag_dict={"exception": type(e).__name__},
            )

        await asyncio.sleep(interval)
