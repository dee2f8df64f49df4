"""Help handlers - usage text and supported sites."""

import logging
from typing import List

from telegram import Update
from telegram.ext import ContextTypes

from .. import config
from ..shared.state import get_app_context

logger = logging.getLogger(__name__)


HELP_TEXT = """📚 *How to use this bot:*

*Single Gallery Mode:*
1. Click "📸 Single Gallery"
2. Send the gallery URL
3. Wait for download
4. Receive direct download link

*Multi Gallery Mode:*
1. Click "📚 Multi Gallery"
2. Send the model page URL
3. Wait for download
4. Receive direct download link

*Download Links:*
Files are hosted on our server for {expiry} hours.
Large archives are split into parts: download all parts and open the `.001` file."""


def format_domain_list(domains: List[str]) -> str:
    """Bullet list of domains, or a placeholder when none are loaded."""
    if not domains:
        return "• (none configured)"
    return '\n'.join(f"• {domain}" for domain in domains)


def build_help_text(domains: List[str]) -> str:
    text = HELP_TEXT.format(expiry=config.LINK_EXPIRY_HOURS)
    return f"{text}\n\n*Supported Sites:*\n{format_domain_list(domains)}"


async def handle_help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /help command and the ℹ️ Help button."""
    app_ctx = get_app_context(context)
    domains = app_ctx.registry.list_supported_domains()
    logger.debug(f"[HELP] user={update.effective_user.id} domains={len(domains)}")

    await update.message.reply_text(
        build_help_text(domains),
        parse_mode='Markdown',
        disable_web_page_preview=True
    )
