import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from stockpick.bot.handlers import router
from stockpick.bot.workspace import Workspace
from stockpick.config import settings
from stockpick.core.progress import PickingProgressStore
from stockpick.db.store import DocumentStore
from stockpick.storage.local import LocalStorage

log = logging.getLogger(__name__)


def build_workspace() -> Workspace:
    store = DocumentStore(settings.db_path)
    store.init_db()
    storage = LocalStorage(settings.local_storage_path)
    progress = PickingProgressStore(storage, ttl_days=settings.progress_ttl_days)
    progress.evict_expired()
    return Workspace(
        store,
        storage,
        progress,
        export_dir=settings.export_dir,
        cart_ttl_hours=settings.cart_ttl_hours,
        draft_save_delay=settings.draft_save_delay,
        staff_ids=settings.staff_ids,
    )


async def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    settings.require_bot()
    workspace = build_workspace()

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher(workspace=workspace)
    dp.include_router(router)

    log.info("starting bot for %d staff users", len(settings.staff_ids))
    await dp.start_polling(bot)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
