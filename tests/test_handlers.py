"""
Tests for chat handlers and bot wiring
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from telegram import Update
from telegram.error import BadRequest, RetryAfter

from gallery_bot.download_module.image_downloader import DownloadResult
from gallery_bot.handlers import gallery
from gallery_bot.handlers.gallery import (
    StatusMessage,
    format_result_message,
    handle_multi_mode,
    handle_restart,
    handle_single_mode,
    handle_start,
    handle_url_message,
    send_with_retry,
)
from gallery_bot.handlers.help import build_help_text, handle_help_command
from gallery_bot.pipeline.job import JobMode, JobState, PipelineResult, ProgressEvent
from gallery_bot.shared.errors import EmptyResultError
from gallery_bot.shared.state import APP_CONTEXT_KEY, AppContext, SessionRegistry, SessionState


def make_result(mode=JobMode.SINGLE, volumes=1):
    if volumes == 1:
        files = ['/srv/public/summer-set_1700000000_abcd1234.7z']
    else:
        files = [f'/srv/public/set.7z.{i:03d}' for i in range(1, volumes + 1)]
    return PipelineResult(
        job_id='abcd1234' * 4,
        mode=mode,
        name='summer-set',
        files=files,
        urls=[f"https://files.example.com/downloads/{f.rsplit('/', 1)[1]}" for f in files],
        total_size=3 * 1024 * 1024,
        gallery_count=2,
        result=DownloadResult(total=45, success=42, failed=3)
    )


class TestSessionRegistry:
    """Test cases for SessionRegistry."""

    def test_get_creates_idle_session(self):
        sessions = SessionRegistry()

        session = sessions.get(42)

        assert session.state is SessionState.IDLE
        assert sessions.get(42) is session
        assert len(sessions) == 1

    def test_reset_and_active_count(self):
        sessions = SessionRegistry()
        sessions.get(1).state = SessionState.PROCESSING
        sessions.get(2).state = SessionState.WAITING_SINGLE_URL

        assert sessions.active_count() == 1
        sessions.reset(1)
        assert sessions.active_count() == 0
        assert sessions.get(2).is_waiting


class TestHandlers:
    """Test cases for menu and URL handlers."""

    @pytest.fixture
    def registry(self):
        registry = Mock()
        registry.is_supported = Mock(side_effect=lambda url: 'example.com' in url)
        registry.list_supported_domains = Mock(return_value=['example.com'])
        return registry

    @pytest.fixture
    def app_ctx(self, registry):
        orchestrator = Mock()
        orchestrator.submit = AsyncMock(return_value=make_result())
        return AppContext(registry=registry, orchestrator=orchestrator)

    @pytest.fixture
    def context(self, app_ctx):
        context = Mock()
        context.application.bot_data = {APP_CONTEXT_KEY: app_ctx}
        return context

    @pytest.fixture
    def status_message(self):
        message = Mock()
        message.edit_text = AsyncMock()
        message.delete = AsyncMock()
        return message

    @pytest.fixture
    def make_update(self, status_message):
        def factory(text='', user_id=7):
            update = Mock()
            update.effective_user.id = user_id
            update.message.text = text
            update.message.reply_text = AsyncMock(return_value=status_message)
            return update
        return factory

    @pytest.mark.asyncio
    async def test_start_resets_session(self, make_update, context, app_ctx):
        app_ctx.sessions.get(7).state = SessionState.WAITING_MULTI_URL
        update = make_update('/start')

        await handle_start(update, context)

        assert app_ctx.sessions.get(7).state is SessionState.IDLE
        kwargs = update.message.reply_text.call_args.kwargs
        assert kwargs['reply_markup'] is not None

    @pytest.mark.asyncio
    async def test_mode_buttons(self, make_update, context, app_ctx):
        await handle_single_mode(make_update(gallery.BUTTON_SINGLE), context)
        assert app_ctx.sessions.get(7).state is SessionState.WAITING_SINGLE_URL

        await handle_multi_mode(make_update(gallery.BUTTON_MULTI), context)
        assert app_ctx.sessions.get(7).state is SessionState.WAITING_MULTI_URL

        await handle_restart(make_update(gallery.BUTTON_RESTART), context)
        assert app_ctx.sessions.get(7).state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_text_ignored_when_idle(self, make_update, context, app_ctx):
        update = make_update('https://example.com/gallery/x')

        await handle_url_message(update, context)

        update.message.reply_text.assert_not_called()
        app_ctx.orchestrator.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_url(self, make_update, context, app_ctx):
        app_ctx.sessions.get(7).state = SessionState.WAITING_SINGLE_URL
        update = make_update('example.com/gallery/x')

        await handle_url_message(update, context)

        assert 'Invalid URL' in update.message.reply_text.call_args.args[0]
        assert app_ctx.sessions.get(7).state is SessionState.WAITING_SINGLE_URL

    @pytest.mark.asyncio
    async def test_unsupported_site_lists_domains(self, make_update, context, app_ctx):
        app_ctx.sessions.get(7).state = SessionState.WAITING_SINGLE_URL
        update = make_update('https://www.other.net/gallery/x')

        await handle_url_message(update, context)

        text = update.message.reply_text.call_args.args[0]
        assert 'other.net is not supported yet' in text
        assert '• example.com' in text
        app_ctx.orchestrator.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_single_gallery_success(self, make_update, context, app_ctx, status_message):
        app_ctx.sessions.get(7).state = SessionState.WAITING_SINGLE_URL
        update = make_update('  https://example.com/gallery/summer-set  ')

        await handle_url_message(update, context)

        url, mode = app_ctx.orchestrator.submit.call_args.args
        assert url == 'https://example.com/gallery/summer-set'
        assert mode is JobMode.SINGLE
        assert isinstance(app_ctx.orchestrator.submit.call_args.kwargs['on_progress'], StatusMessage)

        texts = [c.args[0] for c in update.message.reply_text.call_args_list]
        assert any('File Ready' in t and 'summer-set_1700000000_abcd1234.7z' in t for t in texts)
        assert texts[-1] == 'Ready for next download!'
        status_message.delete.assert_awaited_once()
        assert app_ctx.sessions.get(7).state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_multi_mode_submits_multi(self, make_update, context, app_ctx):
        app_ctx.sessions.get(7).state = SessionState.WAITING_MULTI_URL

        await handle_url_message(make_update('https://example.com/model/jane'), context)

        assert app_ctx.orchestrator.submit.call_args.args[1] is JobMode.MULTI

    @pytest.mark.asyncio
    async def test_pipeline_error_shown_to_user(self, make_update, context, app_ctx, status_message):
        app_ctx.sessions.get(7).state = SessionState.WAITING_SINGLE_URL
        app_ctx.orchestrator.submit.side_effect = EmptyResultError("No images found in gallery")

        await handle_url_message(make_update('https://example.com/gallery/x'), context)

        text = status_message.edit_text.call_args.args[0]
        assert 'No images found in gallery' in text
        assert app_ctx.sessions.get(7).state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_unexpected_error_gets_generic_message(self, make_update, context, app_ctx, status_message):
        app_ctx.sessions.get(7).state = SessionState.WAITING_SINGLE_URL
        app_ctx.orchestrator.submit.side_effect = KeyError('internal detail')

        await handle_url_message(make_update('https://example.com/gallery/x'), context)

        text = status_message.edit_text.call_args.args[0]
        assert 'Something went wrong' in text
        assert 'internal detail' not in text
        assert app_ctx.sessions.get(7).state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_rejects_while_processing(self, make_update, context, app_ctx):
        app_ctx.sessions.get(7).state = SessionState.PROCESSING
        update = make_update('https://example.com/gallery/x')

        await handle_url_message(update, context)
        await handle_single_mode(make_update(gallery.BUTTON_SINGLE), context)

        assert 'still running' in update.message.reply_text.call_args.args[0]
        app_ctx.orchestrator.submit.assert_not_called()
        assert app_ctx.sessions.get(7).state is SessionState.PROCESSING

    @pytest.mark.asyncio
    async def test_help_lists_domains(self, make_update, context):
        update = make_update('/help')

        await handle_help_command(update, context)

        text = update.message.reply_text.call_args.args[0]
        assert '• example.com' in text
        assert 'Single Gallery Mode' in text


class TestStatusMessage:
    """Test cases for progress rendering."""

    def event(self, state, **fields):
        return ProgressEvent(job_id='job', state=state, **fields)

    def test_download_progress_throttled(self):
        render = StatusMessage.render

        assert render(self.event(JobState.DOWNLOADING, current=3, total=12, success=3)) is None
        assert 'Downloading: 5/12' in render(self.event(JobState.DOWNLOADING, current=5, total=12, success=5))
        assert 'Downloading: 12/12' in render(self.event(JobState.DOWNLOADING, current=12, total=12,
                                                        success=11, failed=1))

    def test_multi_download_progress(self):
        text = StatusMessage.render(self.event(
            JobState.DOWNLOADING, current=5, total=10, gallery_name='first',
            completed_galleries=0, total_galleries=3
        ))

        assert 'Downloading gallery: 1/3' in text
        assert 'Current: first' in text

    def test_stage_messages(self):
        assert 'Creating archive' in StatusMessage.render(self.event(JobState.ARCHIVING))
        assert 'download link' in StatusMessage.render(self.event(JobState.PUBLISHING))
        assert 'Found 4 galleries' in StatusMessage.render(
            self.event(JobState.EXTRACTING_IMAGES, total=4, total_galleries=4)
        )

    @pytest.mark.asyncio
    async def test_show_skips_duplicates_and_swallows_edit_errors(self):
        message = Mock()
        message.edit_text = AsyncMock(side_effect=BadRequest('Message is not modified'))
        status = StatusMessage(message)

        await status.show('hello')
        await status.show('hello')

        message.edit_text.assert_awaited_once_with('hello')


class TestResultMessage:
    """Test cases for format_result_message."""

    def test_single_file(self):
        text = format_result_message(make_result())

        assert 'Download Complete' in text
        assert 'Images: 42/45' in text
        assert '3.00 MB' in text
        assert '(https://files.example.com/downloads/summer-set_1700000000_abcd1234.7z)' in text
        assert 'expire' in text

    def test_multi_volume(self):
        text = format_result_message(make_result(mode=JobMode.MULTI, volumes=3))

        assert 'Multi-Gallery Download Complete' in text
        assert 'Galleries: 2' in text
        assert '3 Files Ready' in text
        for index in range(1, 4):
            assert f'Part {index}: set.7z.{index:03d}' in text


class TestSendWithRetry:
    """Test cases for send_with_retry."""

    @pytest.mark.asyncio
    async def test_retries_on_flood_control(self):
        send = AsyncMock(side_effect=[RetryAfter(3), RetryAfter(1), 'sent'])

        with patch('gallery_bot.handlers.gallery.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            result = await send_with_retry(send, base_delay=1.0)

        assert result == 'sent'
        assert send.await_count == 3
        delays = [c.args[0] for c in mock_sleep.await_args_list]
        assert delays == [3.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        send = AsyncMock(side_effect=RetryAfter(1))

        with patch('gallery_bot.handlers.gallery.asyncio.sleep', new_callable=AsyncMock):
            with pytest.raises(RetryAfter):
                await send_with_retry(send, max_retries=2)

        assert send.await_count == 3

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        send = AsyncMock(side_effect=BadRequest('Chat not found'))

        with pytest.raises(BadRequest):
            await send_with_retry(send)

        assert send.await_count == 1


class TestBotWiring:
    """Test cases for create_application and the error handler."""

    @pytest.fixture
    def app_ctx(self):
        registry = Mock()
        registry.list_supported_domains = Mock(return_value=[])
        return AppContext(registry=registry, orchestrator=Mock())

    def test_help_text_without_domains(self):
        assert '(none configured)' in build_help_text([])

    def test_create_application_requires_token(self, app_ctx):
        from gallery_bot import bot

        with patch.object(bot.config, 'BOT_TOKEN', None):
            with pytest.raises(ValueError):
                bot.create_application(app_context=app_ctx)

    def test_create_application_registers_handlers(self, app_ctx):
        from gallery_bot import bot

        app = bot.create_application(token='123456:TEST-token', app_context=app_ctx)

        assert app.bot_data[APP_CONTEXT_KEY] is app_ctx
        assert len(app.handlers[0]) == 7
        assert app.error_handlers

    @pytest.mark.asyncio
    async def test_error_handler_resets_session(self, app_ctx):
        from gallery_bot import bot

        app_ctx.sessions.get(5).state = SessionState.PROCESSING
        update = Mock(spec=Update)
        update.effective_user = Mock(id=5)
        update.effective_message = Mock()
        update.effective_message.reply_text = AsyncMock()
        context = Mock()
        context.error = RuntimeError("boom")
        context.application.bot_data = {APP_CONTEXT_KEY: app_ctx}

        await bot.error_handler(update, context)

        assert app_ctx.sessions.get(5).state is SessionState.IDLE
        update.effective_message.reply_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_post_shutdown_stops_services(self, app_ctx):
        from gallery_bot import bot

        app_ctx.cleanup_manager = Mock()
        app_ctx.cleanup_manager.shutdown = AsyncMock()
        app_ctx.web_runner = Mock()
        app = Mock()
        app.bot_data = {APP_CONTEXT_KEY: app_ctx}

        with patch.object(bot, 'stop_web_server', new_callable=AsyncMock) as mock_stop:
            await bot.post_shutdown(app)

        app_ctx.cleanup_manager.shutdown.assert_awaited_once()
        mock_stop.assert_awaited_once()
        assert app_ctx.web_runner is None
