"""
Configuration - Gallery Downloader Bot

Loads environment variables and app configuration.
"""

import os
import tempfile
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Bot configuration (token is validated when the application is created)
BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN')
BOT_MODE = os.getenv('BOT_MODE', 'polling').lower()
WEBHOOK_URL = os.getenv('WEBHOOK_URL')
PORT = int(os.getenv('PORT', '8443'))

# Health check / static file server (0 disables)
HEALTH_PORT = int(os.getenv('HEALTH_PORT', '3000'))
SERVE_DOWNLOADS = os.getenv('SERVE_DOWNLOADS', 'false').lower() == 'true'

# Strategy store: a JSON file or a directory of per-site JSON files
STRATEGIES_PATH = os.getenv('STRATEGIES_PATH', 'strategies')
STRATEGY_MATCH_SUBDOMAINS = os.getenv('STRATEGY_MATCH_SUBDOMAINS', 'true').lower() == 'true'

# Scratch space and public output
TEMP_DIR = os.getenv('TEMP_DIR') or os.path.join(tempfile.gettempdir(), 'gallery_bot')
DOWNLOADS_DIR = os.getenv('DOWNLOADS_DIR', './downloads')
DOWNLOAD_BASE_URL = os.getenv('DOWNLOAD_BASE_URL', 'http://localhost:3000/downloads')
TEMP_RETENTION_MINUTES = int(os.getenv('TEMP_RETENTION_MINUTES', '60'))
LINK_EXPIRY_HOURS = int(os.getenv('LINK_EXPIRY_HOURS', '24'))
CLEANUP_INTERVAL_MINUTES = int(os.getenv('CLEANUP_INTERVAL_MINUTES', '60'))

# Download settings
DOWNLOAD_CONCURRENCY = int(os.getenv('DOWNLOAD_CONCURRENCY', '5'))
DOWNLOAD_TIMEOUT = int(os.getenv('DOWNLOAD_TIMEOUT', '60'))  # seconds per file
DOWNLOAD_MAX_ATTEMPTS = int(os.getenv('DOWNLOAD_MAX_ATTEMPTS', '3'))
FETCH_TIMEOUT = int(os.getenv('FETCH_TIMEOUT', '30'))  # seconds per page
VERIFY_SSL = os.getenv('VERIFY_SSL', 'true').lower() == 'true'

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) '
    'AppleWebKit/537.36 (KHTML, like Gecko) '
    'Chrome/120.0.0.0 Safari/537.36'
)

# Playwright settings
BROWSER_HEADLESS = os.getenv('BROWSER_HEADLESS', 'true').lower() == 'true'
NAVIGATION_TIMEOUT = int(os.getenv('NAVIGATION_TIMEOUT', '60000'))  # 60 seconds
SCROLL_TIMEOUT = int(os.getenv('SCROLL_TIMEOUT', '60'))  # seconds

# Archive settings
SEVEN_ZIP_PATH = os.getenv('SEVEN_ZIP_PATH', '7z')
ARCHIVE_COMPRESSION_LEVEL = int(os.getenv('ARCHIVE_COMPRESSION_LEVEL', '5'))
MAX_VOLUME_SIZE = int(os.getenv('MAX_VOLUME_SIZE_MB', '45')) * 1024 * 1024

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
