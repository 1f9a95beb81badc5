"""
MNEE Gatekeeper Telegram Bot - Message Texts
HTML message bodies and inline keyboards
"""

from datetime import datetime
from decimal import Decimal
from html import escape
from typing import List, Optional

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo

from services.models import Channel, SubscriptionPlan


def format_price(price: Decimal) -> str:
    # Decimal("10.00") -> "10", Decimal("2.50") -> "2.5"
    return format(price.normalize(), "f")


def duration_text(days: Optional[int]) -> str:
    return "Lifetime" if days is None else f"{days} days"


def share_link(bot_username: str, channel: Channel) -> str:
    return f"https://t.me/{bot_username}?start={channel.id}"


# ===========================================
# Subscriber messages
# ===========================================

WELCOME_TEXT = (
    "👋 <b>Welcome to MNEE Gatekeeper!</b>\n\n"
    "I help Telegram channel owners accept MNEE stablecoin payments for subscriptions.\n\n"
    "<b>For Subscribers:</b>\n"
    "Click subscribe links from channel owners to access premium content.\n\n"
    "<b>For Channel Owners:</b>\n"
    "/admin - Manage your channels\n"
    "/help - View all commands"
)

HELP_TEXT = (
    "<b>📚 MNEE Gatekeeper Commands</b>\n\n"
    "<b>For Everyone:</b>\n"
    "/start - Welcome message\n"
    "/help - Show this help\n\n"
    "<b>For Channel Owners:</b>\n"
    "/admin - View your channels\n"
    "/addchannel [id] [wallet] - Register channel\n"
    "/plans [channel_id] - View subscription plans\n"
    "/addplan - Create subscription plan\n\n"
    "<b>Setup Steps:</b>\n"
    "1. Add bot as admin to your channel\n"
    "2. /addchannel with channel ID and wallet\n"
    "3. /addplan to create subscription tiers\n"
    "4. Share the subscription link with users"
)


def channel_welcome(channel: Channel, app_url: str):
    """Welcome text plus the Mini App subscribe button"""
    text = (
        f"🔐 <b>Welcome to {escape(channel.channel_name)} Subscription</b>\n\n"
        "Click the button below to subscribe using MNEE tokens."
    )
    keyboard = InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(
            text="💳 Subscribe Now",
            web_app=WebAppInfo(url=f"{app_url}?channelId={channel.id}")
        )
    ]])
    return text, keyboard


def no_plans_available(channel: Channel) -> str:
    return f"No subscription plans available for {escape(channel.channel_name)} yet."


def plans_keyboard(plans: List[SubscriptionPlan], channel_id: str, app_url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(
            text=f"{plan.name} - {format_price(plan.price_mnee)} MNEE",
            web_app=WebAppInfo(url=f"{app_url}?channelId={channel_id}&planId={plan.id}")
        )]
        for plan in plans
    ])


SELECT_PLAN_TEXT = "Select a subscription plan:"


def payment_confirmed(channel: Channel, expiry_date: Optional[datetime], invite_link: str) -> str:
    if expiry_date:
        expiry = f"Your subscription is valid until {expiry_date.strftime('%Y-%m-%d')}."
    else:
        expiry = "You have lifetime access!"
    return (
        "🎉 <b>Payment Confirmed!</b>\n\n"
        f"You've subscribed to <b>{escape(channel.channel_name)}</b>.\n\n"
        f"{expiry}\n\n"
        f"Click the link below to join:\n{invite_link}\n\n"
        "<i>This link expires in 24 hours and can only be used once.</i>"
    )


def subscription_expired(channel: Channel, bot_username: str) -> str:
    return (
        "⏰ <b>Subscription Expired</b>\n\n"
        f"Your access to <b>{escape(channel.channel_name)}</b> has expired.\n\n"
        "To renew, click here:\n"
        f"{share_link(bot_username, channel)}"
    )


# ===========================================
# Admin messages
# ===========================================

ADMIN_EMPTY_TEXT = (
    "<b>🔧 Admin Panel</b>\n\n"
    "You haven't registered any channels yet.\n\n"
    "To add a channel:\n"
    "1. Add this bot as an admin to your private channel\n"
    "2. Run: /addchannel [channel_id] [wallet_address]\n\n"
    "Example:\n"
    "<code>/addchannel -1001234567890 0x1234...abcd</code>"
)


def admin_panel(channels_with_counts) -> str:
    lines = ["<b>🔧 Admin Panel</b>\n\n<b>Your Channels:</b>\n"]
    for channel, plan_count in channels_with_counts:
        lines.append(
            f"📺 <b>{escape(channel.channel_name)}</b>\n"
            f"   ID: <code>{escape(channel.channel_id)}</code>\n"
            f"   Plans: {plan_count}\n"
            f"   Wallet: <code>{channel.wallet_address[:10]}...</code>\n"
        )
    lines.append(
        "\n<b>Commands:</b>\n"
        "/addchannel - Add new channel\n"
        "/plans [channel_id] - View plans\n"
        "/addplan - Add subscription plan"
    )
    return "\n".join(lines)


ADDCHANNEL_USAGE = (
    "<b>Usage:</b>\n<code>/addchannel [channel_id] [wallet_address]</code>\n\n"
    "Example:\n<code>/addchannel -1001234567890 0x1234...abcd</code>\n\n"
    "<i>Make sure the bot is an admin in the channel first!</i>"
)

ADDPLAN_USAGE = (
    "<b>Usage:</b>\n<code>/addplan [channel_id] \"Plan Name\" [price] [days]</code>\n\n"
    "Examples:\n"
    "30 days: <code>/addplan abc123 \"Monthly\" 10 30</code>\n"
    "Lifetime: <code>/addplan abc123 \"Lifetime\" 50</code>\n\n"
    "<i>Omit days for lifetime access.</i>"
)

INVALID_WALLET = "❌ Invalid wallet address format."
NOT_CHANNEL_ADMIN = (
    "❌ You must be an admin of the channel to register it.\n\n"
    "Also make sure the bot is an admin in the channel."
)
CHANNEL_INACCESSIBLE = "❌ Could not access channel. Make sure the bot is an admin."
CHANNEL_ALREADY_REGISTERED = "❌ This channel is already registered."
INVALID_PRICE = "❌ Invalid price. Must be a positive number."
INVALID_DAYS = "❌ Invalid duration. Days must be a positive whole number."
CHANNEL_NOT_OWNED = "❌ Channel not found or you're not the admin."
NO_CHANNELS = "You don't have any registered channels."
CHANNEL_NOT_FOUND = "Channel not found."
SERVICE_UNAVAILABLE = "⚠️ Something went wrong. Please try again in a moment."


def channel_registered(channel: Channel) -> str:
    return (
        "✅ <b>Channel Registered!</b>\n\n"
        f"<b>{escape(channel.channel_name)}</b>\n"
        f"ID: <code>{channel.id}</code>\n\n"
        "Now add subscription plans:\n"
        f"<code>/addplan {channel.id} \"Plan Name\" [price] [days]</code>\n\n"
        "Example for 30-day plan at 10 MNEE:\n"
        f"<code>/addplan {channel.id} \"30 Day Access\" 10 30</code>"
    )


def channel_has_no_plans(channel: Channel) -> str:
    return (
        f"<b>{escape(channel.channel_name)}</b> has no plans yet.\n\n"
        "Add one with:\n"
        f"<code>/addplan {channel.id} \"Plan Name\" [price] [days]</code>"
    )


def plan_list(channel: Channel, plans: List[SubscriptionPlan], bot_username: str) -> str:
    parts = [f"<b>📋 Plans for {escape(channel.channel_name)}</b>\n"]
    for plan in plans:
        parts.append(
            f"• <b>{escape(plan.name)}</b>\n"
            f"  Price: {format_price(plan.price_mnee)} MNEE\n"
            f"  Duration: {duration_text(plan.duration_days)}\n"
            f"  ID: <code>{plan.id}</code>\n"
        )
    parts.append(
        "\n<b>Share this link:</b>\n"
        f"<code>{share_link(bot_username, channel)}</code>"
    )
    return "\n".join(parts)


def plan_created(channel: Channel, plan: SubscriptionPlan, bot_username: str) -> str:
    return (
        "✅ <b>Plan Created!</b>\n\n"
        f"<b>{escape(plan.name)}</b>\n"
        f"Price: {format_price(plan.price_mnee)} MNEE\n"
        f"Duration: {duration_text(plan.duration_days)}\n\n"
        "Share subscription link:\n"
        f"<code>{share_link(bot_username, channel)}</code>"
    )
