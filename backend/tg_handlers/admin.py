"""
MNEE Gatekeeper Telegram Bot - Command Handlers
Stateless dispatcher for channel owners and subscribers

Each handler reads, verifies the caller, then writes. Every outcome,
including bad input, is answered with a chat message.
"""

import logging
from typing import Awaitable, Callable, Dict

from infrastructure.config import AppConfig, TelegramConfig
from infrastructure.errors import (
    AuthorizationError,
    ConflictError,
    ErrorCode,
    ExternalServiceError,
    GatekeeperError,
    ValidationError,
)
from security.validation import is_wallet_address
from services.subscription_store import SubscriptionStore
from . import messages
from .bot import TelegramGateway
from .command_parser import (
    AddChannelCommand,
    AddPlanCommand,
    AdminCommand,
    Command,
    HelpCommand,
    InvalidArgument,
    PlansCommand,
    SelectChannelCallback,
    StartCommand,
    UsageError,
    parse_callback,
    parse_command,
)
from .updates import CallbackQuery, TelegramMessage, TelegramUpdate

logger = logging.getLogger("AdminCommands")

USAGE_TEXTS = {
    "addchannel": messages.ADDCHANNEL_USAGE,
    "addplan": messages.ADDPLAN_USAGE,
}

INVALID_ARGUMENT_TEXTS = {
    "price": messages.INVALID_PRICE,
    "days": messages.INVALID_DAYS,
}


class AdminCommandInterpreter:
    """
    Usage:
        interpreter = AdminCommandInterpreter(store, gateway, telegram_config, app_config)
        await interpreter.handle_update(update)
    """

    def __init__(
        self,
        store: SubscriptionStore,
        gateway: TelegramGateway,
        telegram_config: TelegramConfig,
        app_config: AppConfig,
    ):
        self.store = store
        self.gateway = gateway
        self.bot_username = telegram_config.bot_username
        self.app_url = app_config.app_url

        self._handlers: Dict[type, Callable[..., Awaitable[None]]] = {
            StartCommand: self._start,
            AdminCommand: self._admin,
            AddChannelCommand: self._add_channel,
            PlansCommand: self._plans,
            AddPlanCommand: self._add_plan,
            HelpCommand: self._help,
            SelectChannelCallback: self._select_channel,
            UsageError: self._usage,
            InvalidArgument: self._invalid_argument,
        }

    async def handle_update(self, update: TelegramUpdate):
        if update.callback_query:
            await self.handle_callback(update.callback_query)
        elif update.message:
            await self.handle_message(update.message)

    async def handle_message(self, message: TelegramMessage):
        if not message.text or message.from_user is None:
            return
        await self.dispatch(parse_command(message.text), message.chat.id, str(message.from_user.id))

    async def handle_callback(self, query: CallbackQuery):
        try:
            await self.gateway.answer_callback(query.id)
        except ExternalServiceError as e:
            logger.debug(f"Callback ack failed: {e.message}")
        await self.dispatch(parse_callback(query.data), query.chat_id, str(query.from_user.id))

    async def dispatch(self, command: Command, chat_id: int, user_id: str):
        handler = self._handlers.get(type(command))
        if handler is None:
            return

        try:
            await handler(command, chat_id, user_id)
        except AuthorizationError as e:
            logger.info(f"{type(command).__name__} from {user_id} denied")
            await self._reply_quietly(chat_id, e.message)
        except GatekeeperError as e:
            logger.error(f"{type(command).__name__} from {user_id} failed: {e.message}")
            await self._reply_quietly(chat_id, messages.SERVICE_UNAVAILABLE)

    # ===========================================
    # Subscriber commands
    # ===========================================

    async def _start(self, command: StartCommand, chat_id: int, user_id: str):
        if command.channel_ref:
            channel = await self.store.find_channel(command.channel_ref)
            if channel:
                plans = await self.store.list_active_plans(channel.id)
                if plans:
                    text, keyboard = messages.channel_welcome(channel, self.app_url)
                    await self.gateway.send_message(chat_id, text, reply_markup=keyboard)
                else:
                    await self.gateway.send_message(chat_id, messages.no_plans_available(channel))
                return

        await self.gateway.send_message(chat_id, messages.WELCOME_TEXT)

    async def _help(self, command: HelpCommand, chat_id: int, user_id: str):
        await self.gateway.send_message(chat_id, messages.HELP_TEXT)

    async def _select_channel(self, command: SelectChannelCallback, chat_id: int, user_id: str):
        plans = await self.store.list_active_plans(command.channel_id)
        if plans:
            await self.gateway.send_message(
                chat_id,
                messages.SELECT_PLAN_TEXT,
                reply_markup=messages.plans_keyboard(plans, command.channel_id, self.app_url)
            )

    # ===========================================
    # Channel owner commands
    # ===========================================

    async def _admin(self, command: AdminCommand, chat_id: int, user_id: str):
        channels = await self.store.list_channels_for_admin(user_id)
        if not channels:
            await self.gateway.send_message(chat_id, messages.ADMIN_EMPTY_TEXT)
            return

        rows = []
        for channel in channels:
            plans = await self.store.list_active_plans(channel.id)
            rows.append((channel, len(plans)))
        await self.gateway.send_message(chat_id, messages.admin_panel(rows))

    async def _add_channel(self, command: AddChannelCommand, chat_id: int, user_id: str):
        if not is_wallet_address(command.wallet_address):
            await self.gateway.send_message(chat_id, messages.INVALID_WALLET)
            return

        if not await self.gateway.is_channel_admin(command.channel_ref, user_id):
            raise AuthorizationError(messages.NOT_CHANNEL_ADMIN)

        title = await self.gateway.get_chat_title(command.channel_ref)
        if title is None:
            await self.gateway.send_message(chat_id, messages.CHANNEL_INACCESSIBLE)
            return

        if await self.store.get_channel_by_external_id(command.channel_ref):
            await self.gateway.send_message(chat_id, messages.CHANNEL_ALREADY_REGISTERED)
            return

        try:
            channel = await self.store.create_channel(
                external_id=command.channel_ref,
                channel_name=title,
                admin_telegram_id=user_id,
                wallet_address=command.wallet_address,
            )
        except ConflictError as e:
            if e.code != ErrorCode.CHANNEL_EXISTS:
                raise
            # registered by a concurrent request since the check above
            await self.gateway.send_message(chat_id, messages.CHANNEL_ALREADY_REGISTERED)
            return

        logger.info(f"📺 {user_id} registered {channel.channel_id} ({title})")
        await self.gateway.send_message(chat_id, messages.channel_registered(channel))

    async def _plans(self, command: PlansCommand, chat_id: int, user_id: str):
        channels = await self.store.list_channels_for_admin(user_id)
        if not channels:
            await self.gateway.send_message(chat_id, messages.NO_CHANNELS)
            return

        target = command.channel_ref or channels[0].id
        channel = next((c for c in channels if target in (c.id, c.channel_id)), None)
        if channel is None:
            await self.gateway.send_message(chat_id, messages.CHANNEL_NOT_FOUND)
            return

        plans = await self.store.list_active_plans(channel.id)
        if not plans:
            await self.gateway.send_message(chat_id, messages.channel_has_no_plans(channel))
            return
        await self.gateway.send_message(chat_id, messages.plan_list(channel, plans, self.bot_username))

    async def _add_plan(self, command: AddPlanCommand, chat_id: int, user_id: str):
        channel = await self.store.find_channel_for_admin(command.channel_ref, user_id)
        if channel is None:
            raise AuthorizationError(messages.CHANNEL_NOT_OWNED)

        try:
            plan = await self.store.create_plan(
                channel_id=channel.id,
                name=command.name,
                price=command.price,
                duration_days=command.duration_days,
            )
        except ValidationError as e:
            await self.gateway.send_message(chat_id, f"❌ {e.message}")
            return

        logger.info(f"📋 Plan '{plan.name}' ({plan.price_mnee} MNEE) added to {channel.channel_id}")
        await self.gateway.send_message(chat_id, messages.plan_created(channel, plan, self.bot_username))

    # ===========================================
    # Parse failures
    # ===========================================

    async def _usage(self, command: UsageError, chat_id: int, user_id: str):
        await self.gateway.send_message(chat_id, USAGE_TEXTS[command.command])

    async def _invalid_argument(self, command: InvalidArgument, chat_id: int, user_id: str):
        await self.gateway.send_message(chat_id, INVALID_ARGUMENT_TEXTS[command.argument])

    async def _reply_quietly(self, chat_id: int, text: str):
        try:
            await self.gateway.send_message(chat_id, text)
        except ExternalServiceError as e:
            logger.warning(f"Could not reply to {chat_id}: {e.message}")
