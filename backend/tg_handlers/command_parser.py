"""
MNEE Gatekeeper Telegram Bot - Command Parser
Turns message text and callback data into typed commands

Parsing never raises: bad input becomes UsageError / InvalidArgument,
which the interpreter answers with a help message.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union

# Telegram clients often turn straight quotes into typographic ones
DOUBLE_QUOTES_RE = re.compile("[“”„«»]")
SINGLE_QUOTES_RE = re.compile("[‘’‚‹›]")

SELECT_CHANNEL_PREFIX = "select_channel_"


@dataclass(frozen=True)
class StartCommand:
    channel_ref: Optional[str] = None


@dataclass(frozen=True)
class AdminCommand:
    pass


@dataclass(frozen=True)
class AddChannelCommand:
    channel_ref: str  # Telegram chat id, e.g. -1001234567890
    wallet_address: str


@dataclass(frozen=True)
class PlansCommand:
    channel_ref: Optional[str] = None


@dataclass(frozen=True)
class AddPlanCommand:
    channel_ref: str
    name: str
    price: Decimal
    duration_days: Optional[int] = None  # None = lifetime


@dataclass(frozen=True)
class HelpCommand:
    pass


@dataclass(frozen=True)
class SelectChannelCallback:
    channel_id: str


@dataclass(frozen=True)
class UsageError:
    command: str


@dataclass(frozen=True)
class InvalidArgument:
    command: str
    argument: str  # "price" | "days"


@dataclass(frozen=True)
class UnknownCommand:
    text: str = ""


Command = Union[
    StartCommand,
    AdminCommand,
    AddChannelCommand,
    PlansCommand,
    AddPlanCommand,
    HelpCommand,
    SelectChannelCallback,
    UsageError,
    InvalidArgument,
    UnknownCommand,
]


def normalize_quotes(text: str) -> str:
    return SINGLE_QUOTES_RE.sub("'", DOUBLE_QUOTES_RE.sub('"', text))


def parse_command(text: str) -> Command:
    """Parse a bot command. The leading token is case-insensitive."""
    tokens = (text or "").split()
    if not tokens or not tokens[0].startswith("/"):
        return UnknownCommand(text or "")

    # "/start@MyBot" in group chats
    name = tokens[0].split("@", 1)[0].lower()
    args = tokens[1:]

    if name == "/start":
        return StartCommand(args[0] if args else None)
    if name == "/admin":
        return AdminCommand()
    if name == "/help":
        return HelpCommand()
    if name == "/plans":
        return PlansCommand(args[0] if args else None)
    if name == "/addchannel":
        if len(args) < 2:
            return UsageError("addchannel")
        return AddChannelCommand(channel_ref=args[0], wallet_address=args[1])
    if name == "/addplan":
        return _parse_addplan(args)
    return UnknownCommand(text)


def parse_callback(data: Optional[str]) -> Command:
    if data and data.startswith(SELECT_CHANNEL_PREFIX):
        channel_id = data[len(SELECT_CHANNEL_PREFIX):]
        if channel_id:
            return SelectChannelCallback(channel_id)
    return UnknownCommand(data or "")


def _parse_addplan(args: List[str]) -> Command:
    """
    /addplan <channel> "<name with spaces>" <price> [days]
    /addplan <channel> <name> <price> [days]
    """
    if len(args) < 3:
        return UsageError("addplan")

    channel_ref = args[0]
    args = [normalize_quotes(a) for a in args]

    if args[1].startswith('"'):
        price_index = None
        words = []
        for i in range(1, len(args)):
            words.append(args[i])
            # a lone '"' opens the name, it doesn't close it
            if args[i].endswith('"') and (i > 1 or len(args[i]) > 1):
                price_index = i + 1
                break
        if price_index is None:
            return UsageError("addplan")
        name = " ".join(words).replace('"', "").strip()
    else:
        name = args[1]
        price_index = 2

    if not name:
        return UsageError("addplan")

    price = _parse_price(args[price_index] if price_index < len(args) else "")
    if price is None:
        return InvalidArgument("addplan", "price")

    days = None
    if price_index + 1 < len(args):
        days = _parse_days(args[price_index + 1])
        if days is None:
            return InvalidArgument("addplan", "days")

    return AddPlanCommand(channel_ref=channel_ref, name=name, price=price, duration_days=days)


def _parse_price(raw: str) -> Optional[Decimal]:
    try:
        price = Decimal(raw)
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def _parse_days(raw: str) -> Optional[int]:
    if not (raw.isascii() and raw.isdigit()):
        return None
    days = int(raw)
    return days if days > 0 else None
