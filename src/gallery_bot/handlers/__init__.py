"""Handlers package for Gallery Downloader bot."""

from .gallery import (
    BUTTON_HELP,
    BUTTON_MULTI,
    BUTTON_RESTART,
    BUTTON_SINGLE,
    StatusMessage,
    format_result_message,
    get_main_menu,
    handle_multi_mode,
    handle_restart,
    handle_single_mode,
    handle_start,
    handle_url_message,
    send_with_retry,
)
from .help import build_help_text, handle_help_command

__all__ = [
    'BUTTON_HELP',
    'BUTTON_MULTI',
    'BUTTON_RESTART',
    'BUTTON_SINGLE',
    'StatusMessage',
    'format_result_message',
    'get_main_menu',
    'handle_multi_mode',
    'handle_restart',
    'handle_single_mode',
    'handle_start',
    'handle_url_message',
    'send_with_retry',
    'build_help_text',
    'handle_help_command',
]
