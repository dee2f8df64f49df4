"""
Gallery Handlers - Gallery Downloader Bot

Main menu, mode selection and URL submission. One status message per job
is edited in place as the pipeline reports progress.
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

from telegram import KeyboardButton, ReplyKeyboardMarkup, Update
from telegram.error import BadRequest, RetryAfter
from telegram.ext import ContextTypes

from .. import config
from ..archive.archive_builder import format_bytes
from ..pipeline.job import JobMode, JobState, PipelineResult, ProgressEvent
from ..scrapers.strategy_registry import extract_domain
from ..shared.errors import GalleryBotError
from ..shared.state import SessionState, get_app_context
from .help import format_domain_list

logger = logging.getLogger(__name__)

BUTTON_SINGLE = '📸 Single Gallery'
BUTTON_MULTI = '📚 Multi Gallery'
BUTTON_HELP = 'ℹ️ Help'
BUTTON_RESTART = '🔄 Restart'

# Edit the status message every N finished images
PROGRESS_EVERY = 5

SEND_MAX_RETRIES = 5
SEND_BASE_DELAY = 1.0


def get_main_menu() -> ReplyKeyboardMarkup:
    """Main menu reply keyboard."""
    return ReplyKeyboardMarkup(
        [
            [KeyboardButton(BUTTON_SINGLE), KeyboardButton(BUTTON_MULTI)],
            [KeyboardButton(BUTTON_HELP), KeyboardButton(BUTTON_RESTART)],
        ],
        resize_keyboard=True
    )


async def send_with_retry(send: Callable[[], Awaitable], max_retries: int = SEND_MAX_RETRIES,
                          base_delay: float = SEND_BASE_DELAY):
    """
    Call a Telegram API coroutine factory, retrying on flood control.

    Waits the longer of the exponential backoff and the server's
    retry_after hint. Other errors propagate immediately.

    Args:
        send: Zero-argument callable returning a fresh coroutine
        max_retries: Retries after the first attempt
        base_delay: Backoff base in seconds
    """
    for attempt in range(max_retries + 1):
        try:
            return await send()
        except RetryAfter as e:
            if attempt == max_retries:
                raise
            retry_after = e.retry_after
            if hasattr(retry_after, 'total_seconds'):
                retry_after = retry_after.total_seconds()
            delay = max(base_delay * (2 ** attempt), float(retry_after))
            logger.warning(f"Rate limit hit, retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries})")
            await asyncio.sleep(delay)


class StatusMessage:
    """
    Status message edited in place with throttled job progress.

    Used as the orchestrator's on_progress callback.
    """

    def __init__(self, message):
        self.message = message
        self.last_text: Optional[str] = None

    async def __call__(self, event: ProgressEvent):
        text = self.render(event)
        if text:
            await self.show(text)

    @staticmethod
    def render(event: ProgressEvent) -> Optional[str]:
        """Status text for an event, or None when it should not be shown."""
        if event.state is JobState.EXTRACTING_LINKS:
            return '🌐 Opening page and extracting galleries...\nThis may take 1-2 minutes.'

        if event.state is JobState.EXTRACTING_IMAGES:
            if event.total_galleries and event.current:
                if event.current % PROGRESS_EVERY and event.current != event.total:
                    return None
                return f'🔍 Extracting images: {event.current}/{event.total} galleries processed'
            if event.total_galleries:
                return f'✅ Found {event.total_galleries} galleries!\n\n🔍 Extracting images from each gallery...'
            return '🔍 Extracting image URLs...'

        if event.state is JobState.DOWNLOADING:
            if not event.current:
                if event.message and event.total:
                    return f'✅ {event.message}\n📥 Downloading...'
                return None
            if event.current % PROGRESS_EVERY and event.current != event.total:
                return None

            lines = []
            if event.total_galleries:
                lines.append(
                    f'📥 Downloading gallery: {min((event.completed_galleries or 0) + 1, event.total_galleries)}'
                    f'/{event.total_galleries}'
                )
                lines.append(f'📋 Current: {event.gallery_name}')
                lines.append(f'📷 Progress: {event.current}/{event.total}')
            else:
                lines.append(f'📥 Downloading: {event.current}/{event.total}')
                lines.append(f'✅ Success: {event.success} | ❌ Failed: {event.failed}')
            return '\n'.join(lines)

        if event.state is JobState.ARCHIVING:
            return '📦 Creating archive...'

        if event.state is JobState.PUBLISHING:
            return '🔗 Generating download link...'

        return None

    async def show(self, text: str):
        """Edit the status message; identical text and edit failures are ignored."""
        if text == self.last_text:
            return
        self.last_text = text
        try:
            await self.message.edit_text(text)
        except BadRequest as e:
            logger.debug(f"Status edit skipped: {e}")
        except RetryAfter as e:
            logger.debug(f"Status edit rate limited: {e}")

    async def delete(self):
        try:
            await self.message.delete()
        except Exception as e:
            logger.debug(f"Failed to delete status message: {e}")


def format_result_message(result: PipelineResult) -> str:
    """Completion message with file names, size and link(s)."""
    if result.mode is JobMode.MULTI:
        header = (
            f"✅ *Multi-Gallery Download Complete!*\n\n"
            f"📋 Galleries: {result.gallery_count}\n"
            f"📷 Total Images: {result.result.success}/{result.result.total}"
        )
    else:
        header = (
            f"✅ *Download Complete!*\n\n"
            f"📋 Gallery: `{result.name}`\n"
            f"📷 Images: {result.result.success}/{result.result.total}"
        )

    if len(result.files) == 1:
        body = (
            f"📦 *File Ready!*\n\n"
            f"📄 Filename: `{os.path.basename(result.files[0])}`\n"
            f"💾 Size: {format_bytes(result.total_size)}\n\n"
            f"🔗 [Click here to download]({result.urls[0]})"
        )
    else:
        links = '\n'.join(
            f"🔗 [Part {index}: {os.path.basename(path)}]({url})"
            for index, (path, url) in enumerate(zip(result.files, result.urls), start=1)
        )
        body = (
            f"📦 *{len(result.files)} Files Ready!*\n\n"
            f"💾 Total size: {format_bytes(result.total_size)}\n"
            f"Download every part, then open the `.001` file.\n\n"
            f"{links}"
        )

    return f"{header}\n\n{body}\n\n⏱️ Links expire in {config.LINK_EXPIRY_HOURS} hours"


# === Commands & Menu ===

async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start command."""
    app_ctx = get_app_context(context)
    user_id = update.effective_user.id
    logger.info(f"User started bot: {user_id}")

    session = app_ctx.sessions.get(user_id)
    if not session.is_processing:
        app_ctx.sessions.reset(user_id)

    await update.message.reply_text(
        "👋 Welcome to Gallery Downloader Bot!\n\n"
        "Choose a download mode:\n\n"
        "📸 *Single Gallery*: Download one gallery\n"
        "📚 *Multi Gallery*: Download all galleries from a model page\n\n"
        "Select an option below:",
        parse_mode='Markdown',
        reply_markup=get_main_menu()
    )


async def handle_single_mode(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle 📸 Single Gallery button."""
    if await _reject_if_busy(update, context):
        return
    session = get_app_context(context).sessions.get(update.effective_user.id)
    session.state = SessionState.WAITING_SINGLE_URL

    await update.message.reply_text(
        "📸 *Single Gallery Mode*\n\n"
        "Please send the gallery URL you want to download.\n\n"
        "Example: https://example.com/gallery/gallery-name",
        parse_mode='Markdown',
        disable_web_page_preview=True
    )


async def handle_multi_mode(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle 📚 Multi Gallery button."""
    if await _reject_if_busy(update, context):
        return
    session = get_app_context(context).sessions.get(update.effective_user.id)
    session.state = SessionState.WAITING_MULTI_URL

    await update.message.reply_text(
        "📚 *Multi Gallery Mode*\n\n"
        "Please send the model page URL to download all galleries.\n\n"
        "Example: https://example.com/model/model-name",
        parse_mode='Markdown',
        disable_web_page_preview=True
    )


async def handle_restart(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle 🔄 Restart button."""
    if await _reject_if_busy(update, context):
        return
    get_app_context(context).sessions.reset(update.effective_user.id)
    await update.message.reply_text("✅ Bot restarted! Choose a mode:", reply_markup=get_main_menu())


async def _reject_if_busy(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    session = get_app_context(context).sessions.get(update.effective_user.id)
    if session.is_processing:
        await update.message.reply_text("⏳ Your previous download is still running. Please wait for it to finish.")
        return True
    return False


# === URL Submission ===

async def handle_url_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle plain text: a gallery URL when the user picked a mode."""
    app_ctx = get_app_context(context)
    user_id = update.effective_user.id
    session = app_ctx.sessions.get(user_id)
    url = (update.message.text or '').strip()

    if session.is_processing:
        await _reject_if_busy(update, context)
        return

    if not session.is_waiting:
        logger.debug(f"Text ignored: user={user_id} not waiting for a URL")
        return

    if not url.lower().startswith(('http://', 'https://')):
        await update.message.reply_text(
            "❌ Invalid URL. Please send a valid URL starting with http:// or https://"
        )
        return

    if not app_ctx.registry.is_supported(url):
        await update.message.reply_text(
            f"❌ Sorry, {extract_domain(url) or url} is not supported yet.\n\n"
            f"Supported sites:\n"
            f"{format_domain_list(app_ctx.registry.list_supported_domains())}",
            disable_web_page_preview=True
        )
        return

    mode = JobMode.SINGLE if session.state is SessionState.WAITING_SINGLE_URL else JobMode.MULTI
    session.state = SessionState.PROCESSING

    try:
        await _process_submission(update, app_ctx, url, mode)
    finally:
        app_ctx.sessions.reset(user_id)


async def _process_submission(update: Update, app_ctx, url: str, mode: JobMode):
    wait_note = 'Please wait.' if mode is JobMode.SINGLE else 'This may take a while.'
    status = StatusMessage(await update.message.reply_text(f"⏳ Processing... {wait_note}"))

    logger.info(f"Processing {mode.value} gallery for user={update.effective_user.id}: {url}")

    try:
        result = await app_ctx.orchestrator.submit(url, mode, on_progress=status)

    except GalleryBotError as e:
        await status.show(f"❌ Error: {e.user_message}\n\nPlease try again.")
        return

    except Exception as e:
        logger.error(f"{mode.value} gallery processing failed for {url}: {e}", exc_info=True)
        await status.show("❌ Something went wrong. Please try again or use /start to restart.")
        return

    await send_with_retry(lambda: update.message.reply_text(
        format_result_message(result),
        parse_mode='Markdown',
        disable_web_page_preview=True
    ))
    await status.delete()
    logger.info(f"Download link sent: {', '.join(os.path.basename(p) for p in result.files)}")

    await send_with_retry(lambda: update.message.reply_text(
        'Ready for next download!',
        reply_markup=get_main_menu()
    ))
