"""
Club registrations bot.
Entry point: creates the bot, wires the registration core, registers routers
+ middleware, runs the Stripe webhook and the reconciliation sweep, handles
graceful shutdown.
"""
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.types import ErrorEvent
from aiohttp import web

from clubbot.config import settings
from clubbot.middlewares import AdminMiddleware, DatabaseMiddleware, ProjectionMiddleware
from clubbot.models.base import (
    AsyncSessionFactory,
    Base,
    PrivilegedSessionFactory,
    engine,
    privileged_engine,
)
from clubbot.services import (
    KeyedLocks,
    MemberService,
    Notifier,
    PaymentConfirmationClient,
    ProjectionRegistry,
    RegistrationGateway,
    RegistrationOrchestrator,
    build_create_chain,
    build_update_chain,
    reconciliation_loop,
)
from clubbot.webhook import build_webhook_app, start_webhook_server

# ── Handlers ──────────────────────────────────────────────────────────────────
from clubbot.handlers.common import router as common_router
from clubbot.handlers.registration import router as registration_router
from clubbot.handlers.admin.registrations import router as admin_registrations_router
from clubbot.handlers.fallback import router as fallback_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """Create all database tables on startup."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready.")
    except Exception as e:
        logger.critical(
            "❌ Cannot connect to database!\n"
            "   URL: %s\n"
            "   Error: %s\n\n"
            "   → Locally: start PostgreSQL or use SQLite "
            "(DATABASE_URL=sqlite+aiosqlite:///./club.db)",
            settings.DATABASE_URL.split("@")[-1],   # hide credentials in log
            e,
        )
        sys.exit(1)


def build_orchestrator(bot: Optional[Bot]) -> RegistrationOrchestrator:
    gateway = RegistrationGateway(AsyncSessionFactory, PrivilegedSessionFactory)
    payments = PaymentConfirmationClient(
        api_key=settings.STRIPE_SECRET_KEY,
        timeout=settings.PAYMENT_TIMEOUT,
        currency=settings.PAYMENT_CURRENCY,
        full_amount_cents=settings.PAYMENT_FULL_AMOUNT_CENTS,
        partial_amount_cents=settings.PAYMENT_PARTIAL_AMOUNT_CENTS,
        success_url=settings.PAYMENT_SUCCESS_URL,
        cancel_url=settings.PAYMENT_CANCEL_URL,
    )
    return RegistrationOrchestrator(
        gateway=gateway,
        update_chain=build_update_chain(gateway, settings.STORE_TIMEOUT),
        create_chain=build_create_chain(gateway, settings.STORE_TIMEOUT),
        payments=payments,
        members=MemberService(PrivilegedSessionFactory),
        notifier=Notifier(bot) if bot is not None else None,
        locks=KeyedLocks(),
        store_timeout=settings.STORE_TIMEOUT,
    )


def build_dispatcher(
    orchestrator: RegistrationOrchestrator,
    registry: ProjectionRegistry,
) -> Dispatcher:
    dp = Dispatcher(storage=MemoryStorage())

    # Injected into every handler by name
    dp["orchestrator"] = orchestrator
    dp["payments"] = orchestrator.payments
    dp["registry"] = registry

    # ── Global error handler — ensures callbacks are always answered ──────────
    @dp.errors()
    async def handle_error(event: ErrorEvent) -> None:
        logger.exception("Unhandled error: %s", event.exception)
        update = event.update
        if update.callback_query:
            try:
                await update.callback_query.answer(
                    "⚠️ S'ha produït un error. Torna-ho a provar.", show_alert=True
                )
            except Exception:
                logger.debug("Could not answer callback after error", exc_info=True)

    # ── Global middlewares ────────────────────────────────────────────────────
    dp.update.middleware(DatabaseMiddleware(AsyncSessionFactory))
    dp.update.middleware(AdminMiddleware(settings.admin_ids_list))
    dp.update.middleware(ProjectionMiddleware(registry))

    # ── Routers — order matters for handler priority ──────────────────────────
    dp.include_router(common_router)
    dp.include_router(registration_router)
    dp.include_router(admin_registrations_router)

    # !! Must be last — catches any callback not handled above !!
    dp.include_router(fallback_router)

    return dp


async def main() -> None:
    logger.info("Starting club registrations bot…")
    await create_tables()

    bot = Bot(
        token=settings.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.MARKDOWN),
    )
    orchestrator = build_orchestrator(bot)
    registry = ProjectionRegistry()
    dp = build_dispatcher(orchestrator, registry)

    # ── Graceful shutdown on SIGTERM (Docker) ─────────────────────────────────
    loop = asyncio.get_running_loop()

    def _handle_signal():
        logger.info("Received shutdown signal, stopping…")
        asyncio.ensure_future(dp.stop_polling())

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except NotImplementedError:
            # Windows does not support add_signal_handler
            pass

    sweep = asyncio.create_task(
        reconciliation_loop(orchestrator, registry, settings.RECONCILE_INTERVAL)
    )

    runner: Optional[web.AppRunner] = None
    if settings.webhook_enabled:
        app = build_webhook_app(orchestrator, settings.STRIPE_WEBHOOK_SECRET, settings.WEBHOOK_PATH)
        runner = await start_webhook_server(app, settings.WEBHOOK_HOST, settings.WEBHOOK_PORT)
    else:
        logger.info("Stripe webhook disabled (no STRIPE_WEBHOOK_SECRET).")

    try:
        logger.info("Bot is running. Press Ctrl+C to stop.")
        await dp.start_polling(
            bot,
            allowed_updates=dp.resolve_used_update_types(),
            handle_signals=False,
        )
    finally:
        logger.info("Shutting down…")
        sweep.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep
        if runner is not None:
            await runner.cleanup()
        await bot.session.close()
        await engine.dispose()
        await privileged_engine.dispose()
        logger.info("Shutdown complete.")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
