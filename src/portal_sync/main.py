"""Main entry point: keeps one owner's presence session alive until interrupted."""

import argparse
import asyncio
import logging
import sys

import aiohttp

from portal_sync.adapters.auth import LocalAuthState
from portal_sync.adapters.config import AppConfig
from portal_sync.adapters.lifecycle import AppLifecycleEmitter
from portal_sync.adapters.store import FirestoreRestStore, InMemoryStatusStore
from portal_sync.adapters.timers import AsyncioScheduler
from portal_sync.application import SessionContext, SessionSettings
from portal_sync.domain.models import ConversationSummary, Role
from portal_sync.domain.ports import RemoteStatusStore, Scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stderr,
)

logger = logging.getLogger(__name__)


def build_settings(config: AppConfig) -> SessionSettings:
    """Session tunables from the application config."""
    return SessionSettings(
        heartbeat_interval_seconds=config.heartbeat_interval_seconds,
        background_timeout_seconds=config.background_timeout_seconds,
        presence_stale_after_seconds=config.presence_stale_after_seconds,
        send_timeout_seconds=config.send_timeout_seconds,
        operator_status_collection=config.operator_status_collection,
        member_status_collection=config.member_status_collection,
        messages_collection=config.messages_collection,
        remove_member_record_on_offline=config.remove_member_record_on_offline,
        display_timezone=config.display_timezone,
    )


def build_store(
    config: AppConfig, session: aiohttp.ClientSession, scheduler: Scheduler
) -> RemoteStatusStore:
    """Create the configured store backend."""
    if config.store_backend == "firestore":
        if not config.firestore_project_id:
            raise ValueError("FIRESTORE_PROJECT_ID is required for the firestore backend")
        return FirestoreRestStore(
            session,
            project_id=config.firestore_project_id,
            scheduler=scheduler,
            database=config.firestore_database,
            id_token=config.firestore_id_token,
            poll_interval_seconds=config.firestore_poll_interval_seconds,
        )
    return InMemoryStatusStore(scheduler)


def _log_summaries(summaries: list[ConversationSummary]) -> None:
    for summary in summaries:
        logger.info(
            f"  {summary.counterpart_name}: {summary.last_message!r} "
            f"({summary.unread_count} unread)"
        )


async def main(owner_id: str, role: Role, display_name: str | None = None) -> None:
    """Run a presence session for one owner."""
    config = AppConfig()
    try:
        config.load_toml()
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    logging.getLogger().setLevel(config.log_level)

    scheduler = AsyncioScheduler()
    auth = LocalAuthState(owner_id)
    lifecycle = AppLifecycleEmitter()

    async with aiohttp.ClientSession() as session:
        try:
            store = build_store(config, session, scheduler)
        except ValueError as e:
            logger.error(str(e))
            sys.exit(1)
        logger.info(f"Using {config.store_backend} store")

        context = SessionContext(store, auth, scheduler, build_settings(config), lifecycle)
        try:
            tracker = await context.initialize(owner_id, role, display_name)
            if not tracker.is_online:
                logger.warning(f"{role} {owner_id} could not go online")
            if role is Role.OPERATOR:
                context.conversation_list(_log_summaries)
            # Run until cancelled (Ctrl+C)
            await asyncio.Event().wait()
        finally:
            logger.info("Shutting down...")
            await context.cleanup()
            await scheduler.close()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Keep a portal user's presence online and follow their conversations."
    )
    parser.add_argument("--owner", required=True, help="Id of the signed-in user")
    parser.add_argument(
        "--role",
        choices=[str(r) for r in Role],
        default=str(Role.MEMBER),
        help="Role the user is signed in as (default: member)",
    )
    parser.add_argument("--name", default=None, help="Display name written with the presence")
    return parser.parse_args(argv)


def run() -> None:
    """Console script entry point."""
    args = parse_args()
    try:
        asyncio.run(main(args.owner, Role(args.role), args.name))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    run()
