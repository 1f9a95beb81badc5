"""
Supabase Table Creation Script
Prints the gatekeeper schema after checking the REST endpoint is reachable.

Usage: python scripts/create_supabase_tables.py
"""

import os
import sys

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from infrastructure.config import get_config

# Unique constraints on channels.channel_id, users.telegram_id and
# transactions.tx_hash are what the application relies on under concurrency.
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS channels (
    id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
    channel_id TEXT NOT NULL UNIQUE,
    channel_name TEXT NOT NULL,
    admin_telegram_id TEXT NOT NULL,
    wallet_address TEXT NOT NULL CHECK (wallet_address ~ '^0x[0-9a-f]{40}$'),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS subscription_plans (
    id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
    channel_id UUID NOT NULL REFERENCES channels(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    price_mnee NUMERIC NOT NULL CHECK (price_mnee > 0),
    duration_days INTEGER CHECK (duration_days IS NULL OR duration_days > 0),
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS users (
    id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
    telegram_id TEXT NOT NULL UNIQUE,
    wallet_address TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
    user_id UUID NOT NULL REFERENCES users(id),
    channel_id UUID NOT NULL REFERENCES channels(id),
    plan_id UUID NOT NULL REFERENCES subscription_plans(id),
    status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'expired', 'cancelled')),
    expiry_date TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS transactions (
    id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
    subscription_id UUID NOT NULL UNIQUE REFERENCES subscriptions(id) ON DELETE CASCADE,
    tx_hash TEXT NOT NULL UNIQUE,
    from_address TEXT NOT NULL,
    to_address TEXT NOT NULL,
    amount NUMERIC NOT NULL,
    status TEXT NOT NULL DEFAULT 'confirmed' CHECK (status IN ('pending', 'confirmed', 'failed')),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_channels_admin ON channels(admin_telegram_id);
CREATE INDEX IF NOT EXISTS idx_plans_channel ON subscription_plans(channel_id) WHERE is_active;
CREATE INDEX IF NOT EXISTS idx_subscriptions_expiry ON subscriptions(expiry_date) WHERE status = 'active';
"""


def test_connection(url: str, key: str) -> bool:
    """Check the PostgREST root answers with the service key"""
    print("Testing Supabase connection...")
    print(f"URL: {url}")

    headers = {
        "apikey": key,
        "Authorization": f"Bearer {key}",
    }

    try:
        response = httpx.get(f"{url}/rest/v1/", headers=headers, timeout=10.0)
    except httpx.HTTPError as e:
        print(f"Request failed: {e}")
        return False

    print(f"Status: {response.status_code}")
    return response.status_code == 200


def main():
    print("=" * 50)
    print("MNEE Gatekeeper - Supabase Tables")
    print("=" * 50)

    supabase = get_config().supabase
    if not supabase.is_configured:
        print("ERROR: Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY in .env")
        return

    if test_connection(supabase.url, supabase.service_key):
        print("\n✅ Connection successful!")
        print("\n📋 To create tables, copy the SQL below and run it in the Supabase SQL Editor:")
        print("=" * 50)
        print(SCHEMA_SQL)
        print("=" * 50)
    else:
        print("\n❌ Connection failed. Check your service key.")


if __name__ == "__main__":
    main()
