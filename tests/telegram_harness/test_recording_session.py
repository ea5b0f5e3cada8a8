import asyncio
from aiogram import Bot
from aiogram.types import BufferedInputFile, InlineKeyboardButton, InlineKeyboardMarkup

from tests.telegram_harness.session import RecordingSession


def test_recording_session_preserves_reply_markup() -> None:
    async def _run() -> None:
        session = RecordingSession()
        bot = Bot(token="123456:TEST", session=session)
        markup = InlineKeyboardMarkup(
            inline_keyboard=[[InlineKeyboardButton(text="Physics", callback_data="study_select:Physics")]]
        )

        message = await bot.send_message(chat_id=999, text="Welcome!", reply_markup=markup)

        assert message.reply_markup is not None
        assert message.reply_markup.inline_keyboard[0][0].callback_data == "study_select:Physics"
        assert session.messages_by_chat[999][-1].reply_markup is not None
        assert (
            session.messages_by_chat[999][-1].reply_markup.inline_keyboard[0][0].callback_data
            == "study_select:Physics"
        )

    asyncio.run(_run())


def test_recording_session_tracks_photo_captions_and_deletes() -> None:
    async def _run() -> None:
        session = RecordingSession()
        bot = Bot(token="123456:TEST", session=session)
        markup = InlineKeyboardMarkup(
            inline_keyboard=[[InlineKeyboardButton(text="A", callback_data="q:1:0:0")]]
        )
        status = await bot.send_message(chat_id=5, text="working")
        photo = await bot.send_photo(
            chat_id=5,
            photo=BufferedInputFile(b"png", filename="question.png"),
            reply_markup=markup,
        )
        assert photo.photo
        assert photo.reply_markup.inline_keyboard[0][0].callback_data == "q:1:0:0"

        await bot.edit_message_caption(chat_id=5, message_id=photo.message_id, caption="Correct")
        await bot.delete_message(chat_id=5, message_id=status.message_id)

        remaining = session.messages_by_chat[5]
        assert [m.message_id for m in remaining] == [photo.message_id]
        assert remaining[0].caption == "Correct"
        assert session.photos_sent == 1

    asyncio.run(_run())
