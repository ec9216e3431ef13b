"""Entry point: run the local reminder notifier until interrupted."""

import asyncio
import logging

from dotenv import load_dotenv

from core.logging_config import setup_json_logging
from core.settings import get_settings
from scheduler.poller import build_poller
from scheduler.runtime import PushInitState
from store.kv_store import KeyValueStore
from store.schedule_store import NotifiedKeyStore, ScheduleStore

load_dotenv()
logger = logging.getLogger(__name__)


async def main():
    settings = get_settings()
    setup_json_logging(settings.log_level)

    kv = KeyValueStore(settings.db_url)
    await kv.init()
    push_state = PushInitState()
    if settings.push_subscription_id:
        push_state.mark_subscribed(settings.push_subscription_id)
    poller = build_poller(settings, ScheduleStore(kv), NotifiedKeyStore(kv), push_state)

    stop = await poller.start()
    if not poller.running:
        logger.warning("Reminders are disabled in this environment")
        await kv.close()
        return

    print("Schedule notifier running. Press Ctrl+C to quit.\n")
    try:
        await asyncio.Event().wait()
    finally:
        stop()
        await kv.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
