"""
Tests for Telegram handlers: replies, menus, alerts and the per-event catch.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from telegram import InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import BadRequest

from conftest import paid
from course_bot.handlers import ButtonHandler, CommandHandler, MessageHandler
from course_bot.services import ConversationService
from course_bot.services.conversation_service import (
    VERIFIED_MESSAGE,
    VERIFYING_MESSAGE,
    WELCOME_MESSAGE,
)
from exceptions import GENERIC_ERROR_MESSAGE


def make_update(chat_id=555, text=None, data=None):
    update = Mock()
    update.effective_chat.id = chat_id
    message = Mock()
    message.text = text
    message.reply_text = AsyncMock()
    update.effective_message = message
    if data is not None:
        query = Mock()
        query.data = data
        query.answer = AsyncMock()
        query.edit_message_text = AsyncMock()
        query.message = message
        update.callback_query = query
    return update


def sent_texts(update):
    return [call.args[0] for call in update.effective_message.reply_text.await_args_list]


@pytest.fixture
def conversation(record_store, session_store, oracle, chat_limiter):
    return ConversationService(record_store, session_store, oracle, rate_limiter=chat_limiter)


@pytest.fixture
def verified_user(record_store):
    record_store.upsert_user("555", "a@b.com", is_verified=True, order_id="9001")
    course = record_store.create_course("Python Basics")
    record_store.create_subcontent(course.id, "Intro", content="Hello")
    return course


class TestCommandHandler:

    @pytest.mark.asyncio
    async def test_start_sends_welcome(self, conversation, session_store):
        update = make_update()
        await CommandHandler(conversation).handle_start(update, Mock())

        update.effective_message.reply_text.assert_awaited_once_with(
            WELCOME_MESSAGE, parse_mode=ParseMode.HTML, reply_markup=None
        )
        assert 555 in session_store

    @pytest.mark.asyncio
    async def test_courses_sends_menu(self, conversation, verified_user):
        update = make_update()
        await CommandHandler(conversation).handle_courses(update, Mock())

        markup = update.effective_message.reply_text.await_args.kwargs["reply_markup"]
        assert isinstance(markup, InlineKeyboardMarkup)
        assert markup.inline_keyboard[0][0].callback_data == f"course_{verified_user.id}"

    @pytest.mark.asyncio
    async def test_help(self, conversation):
        update = make_update()
        await CommandHandler(conversation).handle_help(update, Mock())
        assert "/courses" in sent_texts(update)[0]

    @pytest.mark.asyncio
    async def test_unexpected_error_gets_apology(self):
        conversation = Mock(handle_start=AsyncMock(side_effect=RuntimeError("boom")))
        update = make_update()

        await CommandHandler(conversation).handle_start(update, Mock())

        assert sent_texts(update) == [GENERIC_ERROR_MESSAGE]


class TestMessageHandler:

    @pytest.mark.asyncio
    async def test_progress_then_result(self, conversation, oracle, record_store):
        handler = MessageHandler(conversation)
        await CommandHandler(conversation).handle_start(make_update(), Mock())
        await handler.handle_text_message(make_update(text="a@b.com"), Mock())
        oracle.queue(paid())

        update = make_update(text="9001")
        await handler.handle_text_message(update, Mock())

        texts = sent_texts(update)
        assert texts[0] == VERIFYING_MESSAGE
        assert texts[1] == VERIFIED_MESSAGE
        assert record_store.get_user_by_chat_id("555").is_verified

    @pytest.mark.asyncio
    async def test_empty_message_ignored(self):
        conversation = Mock(handle_text=AsyncMock())
        update = make_update(text="")
        await MessageHandler(conversation).handle_text_message(update, Mock())
        conversation.handle_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_session(self, conversation, session_store):
        await CommandHandler(conversation).handle_start(make_update(), Mock())
        conversation.record_store.get_user_by_email = Mock(side_effect=RuntimeError("db gone"))

        update = make_update(text="a@b.com")
        await MessageHandler(conversation).handle_text_message(update, Mock())

        assert sent_texts(update) == [GENERIC_ERROR_MESSAGE]
        assert session_store.get(555).pending_email is None


class TestButtonHandler:

    @pytest.mark.asyncio
    async def test_menu_edits_message_in_place(self, conversation, verified_user):
        update = make_update(data=f"course_{verified_user.id}")

        await ButtonHandler(conversation).handle_callback(update, Mock())

        update.callback_query.answer.assert_awaited_once_with()
        update.callback_query.edit_message_text.assert_awaited_once()
        assert "Python Basics" in update.callback_query.edit_message_text.await_args.args[0]

    @pytest.mark.asyncio
    async def test_not_found_is_alert(self, conversation, verified_user):
        update = make_update(data="course_999")

        await ButtonHandler(conversation).handle_callback(update, Mock())

        update.callback_query.answer.assert_awaited_once()
        assert update.callback_query.answer.await_args.kwargs == {"show_alert": True}
        update.callback_query.edit_message_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_modified_is_ignored(self, conversation, verified_user):
        update = make_update(data="courses_menu")
        update.callback_query.edit_message_text.side_effect = BadRequest("Message is not modified")

        await ButtonHandler(conversation).handle_callback(update, Mock())

        update.effective_message.reply_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_uneditable_message_falls_back_to_new_message(self, conversation, verified_user):
        update = make_update(data="courses_menu")
        update.callback_query.edit_message_text.side_effect = BadRequest("Message can't be edited")

        await ButtonHandler(conversation).handle_callback(update, Mock())

        update.effective_message.reply_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_long_lesson_is_split(self, conversation, record_store, verified_user):
        lesson = record_store.create_subcontent(verified_user.id, "Long", content="word. " * 1500)
        update = make_update(data=f"lesson_{lesson.id}")

        await ButtonHandler(conversation).handle_callback(update, Mock())

        calls = update.effective_message.reply_text.await_args_list
        assert len(calls) > 1
        assert all(len(call.args[0]) <= 4096 for call in calls)
        assert calls[-1].kwargs["reply_markup"] is not None
        assert calls[0].kwargs["reply_markup"] is None

    @pytest.mark.asyncio
    async def test_send_failure_after_ack_apologizes_in_chat(self, conversation, record_store, verified_user):
        lesson = record_store.create_subcontent(verified_user.id, "Long", content="word. " * 1500)
        update = make_update(data=f"lesson_{lesson.id}")
        update.effective_message.reply_text.side_effect = [BadRequest("Can't parse entities"), None]

        await ButtonHandler(conversation).handle_callback(update, Mock())

        update.callback_query.answer.assert_awaited_once_with()
        assert sent_texts(update)[-1] == GENERIC_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_lesson_with_ampersands_splits_into_valid_html(self, conversation, record_store, verified_user):
        lesson = record_store.create_subcontent(verified_user.id, "Symbols", content="a&" * 3000)
        update = make_update(data=f"lesson_{lesson.id}")

        await ButtonHandler(conversation).handle_callback(update, Mock())

        for text in sent_texts(update):
            assert not text.endswith(("&", "&a", "&am", "&amp"))
            assert not text.startswith(("amp;", "mp;", "p;", ";"))

    @pytest.mark.asyncio
    async def test_unexpected_error_is_alert(self):
        conversation = Mock(handle_selection=AsyncMock(side_effect=RuntimeError("boom")))
        update = make_update(data="courses_menu")

        await ButtonHandler(conversation).handle_callback(update, Mock())

        update.callback_query.answer.assert_awaited_once_with(GENERIC_ERROR_MESSAGE, show_alert=True)
