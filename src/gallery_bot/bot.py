"""
Core Bot Framework - Gallery Downloader Bot

Builds the Telegram application, wires the pipeline into it and runs it in
polling or webhook mode.
"""

import logging
from typing import Optional

from telegram import Update
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters
)

from . import config
from .handlers import (
    BUTTON_HELP,
    BUTTON_MULTI,
    BUTTON_RESTART,
    BUTTON_SINGLE,
    handle_help_command,
    handle_multi_mode,
    handle_restart,
    handle_single_mode,
    handle_start,
    handle_url_message,
)
from .pipeline import PipelineOrchestrator
from .scrapers import StrategyRegistry
from .shared.state import APP_CONTEXT_KEY, AppContext
from .utils import CleanupManager, TempSpaceManager
from .web_server import start_web_server, stop_web_server

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
)
logger = logging.getLogger(__name__)


# === Error Handler ===

async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    """Global error handler."""
    logger.error(f"Error: {context.error}", exc_info=context.error)

    if isinstance(update, Update) and update.effective_user:
        app_ctx = context.application.bot_data.get(APP_CONTEXT_KEY)
        if app_ctx is not None:
            app_ctx.sessions.reset(update.effective_user.id)

    if isinstance(update, Update) and update.effective_message:
        try:
            await update.effective_message.reply_text(
                "❌ An error occurred. Please try again or use /start to restart."
            )
        except Exception as e:
            logger.debug(f"Could not send error message: {e}")


# === Lifecycle ===

async def post_init(app: Application):
    """Load strategies and start background services."""
    app_ctx: AppContext = app.bot_data[APP_CONTEXT_KEY]

    strategies = app_ctx.registry.load()
    logger.info(f"Loaded {len(strategies)} strategies: {', '.join(sorted(strategies)) or 'none'}")

    app_ctx.cleanup_manager.start_background(config.CLEANUP_INTERVAL_MINUTES)

    downloads_dir = app_ctx.orchestrator.temp_manager.public_root if config.SERVE_DOWNLOADS else None
    app_ctx.web_runner = await start_web_server(
        port=config.HEALTH_PORT,
        downloads_dir=downloads_dir,
        started_at=app_ctx.started_at
    )
    logger.info("Bot initialized successfully")


async def post_shutdown(app: Application):
    """Stop background services."""
    app_ctx: Optional[AppContext] = app.bot_data.get(APP_CONTEXT_KEY)
    if app_ctx is None:
        return

    if app_ctx.cleanup_manager:
        await app_ctx.cleanup_manager.shutdown()
    await stop_web_server(app_ctx.web_runner)
    app_ctx.web_runner = None


# === Main Application ===

def build_app_context() -> AppContext:
    """Create the pipeline collaborators from configuration."""
    registry = StrategyRegistry(config.STRATEGIES_PATH, match_subdomains=config.STRATEGY_MATCH_SUBDOMAINS)
    temp_manager = TempSpaceManager()
    orchestrator = PipelineOrchestrator(registry, temp_manager=temp_manager)

    return AppContext(
        registry=registry,
        orchestrator=orchestrator,
        cleanup_manager=CleanupManager(temp_manager)
    )


def create_application(token: str = None, app_context: AppContext = None) -> Application:
    """
    Create and configure the bot application.

    Raises:
        ValueError: If no bot token is configured
    """
    token = token or config.BOT_TOKEN
    if not token:
        raise ValueError("TELEGRAM_BOT_TOKEN not set in environment")

    app = (
        Application.builder()
        .token(token)
        .concurrent_updates(True)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    app.bot_data[APP_CONTEXT_KEY] = app_context or build_app_context()

    # Commands
    app.add_handler(CommandHandler("start", handle_start))
    app.add_handler(CommandHandler("help", handle_help_command))

    # Main menu buttons
    app.add_handler(MessageHandler(filters.Text([BUTTON_SINGLE]), handle_single_mode))
    app.add_handler(MessageHandler(filters.Text([BUTTON_MULTI]), handle_multi_mode))
    app.add_handler(MessageHandler(filters.Text([BUTTON_HELP]), handle_help_command))
    app.add_handler(MessageHandler(filters.Text([BUTTON_RESTART]), handle_restart))

    # Anything else is treated as a possible URL
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_url_message))

    app.add_error_handler(error_handler)

    return app


def main():
    """Run the bot."""
    app = create_application()

    if config.BOT_MODE == 'webhook':
        if not config.WEBHOOK_URL:
            raise ValueError("WEBHOOK_URL is required in webhook mode")

        webhook_path = f"webhook/{config.BOT_TOKEN}"
        logger.info(f"Starting bot with webhook on port {config.PORT}")
        app.run_webhook(
            listen='0.0.0.0',
            port=config.PORT,
            url_path=webhook_path,
            webhook_url=f"{config.WEBHOOK_URL.rstrip('/')}/{webhook_path}",
            allowed_updates=Update.ALL_TYPES
        )
    else:
        logger.info("Starting bot with polling...")
        app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == '__main__':
    main()
