"""
MNEE Gatekeeper Telegram Bot - Update Envelope
The subset of a Telegram webhook update the bot acts on
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: str = "private"


class ReplyContext(BaseModel):
    text: Optional[str] = None


class TelegramMessage(BaseModel):
    """A "message" event: free text from a user in a chat"""
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    from_user: Optional[TelegramUser] = Field(None, alias="from")
    chat: TelegramChat
    text: Optional[str] = None
    reply_to_message: Optional[ReplyContext] = None


class CallbackMessage(BaseModel):
    chat: TelegramChat


class CallbackQuery(BaseModel):
    """A "button click" event"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Optional[CallbackMessage] = None
    data: Optional[str] = None

    @property
    def chat_id(self) -> int:
        # Inline-mode callbacks carry no message; answer in the private chat
        return self.message.chat.id if self.message else self.from_user.id


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[CallbackQuery] = None
