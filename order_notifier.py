import argparse
import asyncio
import datetime
import os
import sys
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

import httpx
from dotenv import load_dotenv

from cliq_notifier import CliqWebhookError, build_webhook_url, send_to_cliq

load_dotenv()

PAGE_SIZE = 100 # Magento searchCriteria[pageSize]
CHUNK_SIZE = 10 # Order numbers per Cliq message
MESSAGE_DELAY_SECONDS = 1.0 # Pause after every Cliq message (rate limit)

UTC = datetime.timezone.utc

REQUIRED_ENV_VARS = (
    "MAGENTO_HOST",
    "MAGENTO_TOKEN",
    "ZOHO_CLIQ_API_ENDPOINT",
    "ZOHO_CLIQ_WEBHOOK_TOKEN",
)


class ConfigError(Exception):
    """Raised when required environment variables are missing."""


@dataclass(frozen=True)
class Settings:
    magento_host: str
    magento_token: str
    cliq_endpoint: str
    cliq_webhook_token: str
    cliq_bot_name: Optional[str] = None

    @property
    def webhook_url(self):
        return build_webhook_url(self.cliq_endpoint, self.cliq_webhook_token)


def load_settings(environ=None) -> Settings:
    """Reads connection settings from the environment (after .env has been loaded)."""
    env = os.environ if environ is None else environ
    missing = [name for name in REQUIRED_ENV_VARS if not env.get(name)]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")
    return Settings(
        magento_host=env["MAGENTO_HOST"],
        magento_token=env["MAGENTO_TOKEN"],
        cliq_endpoint=env["ZOHO_CLIQ_API_ENDPOINT"],
        cliq_webhook_token=env["ZOHO_CLIQ_WEBHOOK_TOKEN"],
        cliq_bot_name=env.get("ZOHO_CLIQ_BOTNAME") or None,
    )


# --- Date windows ---
def yesterday_window(now):
    """Yesterday in UTC, 00:00:00.000 through 23:59:59.999."""
    yesterday = (now - datetime.timedelta(days=1)).astimezone(UTC).date()
    start = datetime.datetime.combine(yesterday, datetime.time.min, tzinfo=UTC)
    end = datetime.datetime.combine(yesterday, datetime.time(23, 59, 59, 999000), tzinfo=UTC)
    return start, end


def last_days_window(days):
    def window(now):
        return now - datetime.timedelta(days=days), now
    return window


@dataclass(frozen=True)
class QueryProfile:
    """One scheduled variant of the fetch -> filter -> notify pipeline."""

    name: str
    schedule: str
    status: str
    window: Callable
    label: str
    threshold: Optional[Decimal] = None

    def date_range(self, now):
        start, end = self.window(now)
        if start > end:
            raise ValueError(f"Profile {self.name}: window start {start} is after end {end}")
        return start, end


PROFILES = (
    QueryProfile(
        name="processing",
        schedule="0 4 * * *",
        status="processing",
        window=yesterday_window,
        label="💰 Processing orders > $500 from yesterday",
        threshold=Decimal("500"),
    ),
    QueryProfile(
        name="holded",
        schedule="0 5 * * *",
        status="holded",
        window=last_days_window(30),
        label="📦 Holded orders within last 30 days",
    ),
)


def find_profile(schedule, profiles=PROFILES):
    for profile in profiles:
        if profile.schedule == schedule:
            return profile
    return None


# --- Timestamp helpers ---
def format_timestamp(dt):
    """ISO-8601 UTC with milliseconds and a Z suffix, e.g. 2024-05-01T00:00:00.000Z"""
    dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


def parse_timestamp(value):
    # Magento returns "YYYY-MM-DD HH:MM:SS" in UTC without an offset
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def build_search_params(status, start, end, current_page, page_size=PAGE_SIZE):
    return [
        ("searchCriteria[filter_groups][0][filters][0][field]", "status"),
        ("searchCriteria[filter_groups][0][filters][0][value]", status),
        ("searchCriteria[filter_groups][0][filters][0][condition_type]", "eq"),
        ("searchCriteria[filter_groups][1][filters][0][field]", "created_at"),
        ("searchCriteria[filter_groups][1][filters][0][value]", format_timestamp(start)),
        ("searchCriteria[filter_groups][1][filters][0][condition_type]", "gteq"),
        ("searchCriteria[filter_groups][1][filters][1][field]", "created_at"),
        ("searchCriteria[filter_groups][1][filters][1][value]", format_timestamp(end)),
        ("searchCriteria[filter_groups][1][filters][1][condition_type]", "lteq"),
        ("searchCriteria[pageSize]", str(page_size)),
        ("searchCriteria[currentPage]", str(current_page)),
    ]


# --- Orders API ---
async def fetch_orders(client, magento_host, token, status, start, end, page_size=PAGE_SIZE):
    """
    Fetches every order with the given status created within [start, end].

    Pages are requested one at a time starting at 1. Fetching stops at the first
    page holding fewer than page_size items, or at the first non-2xx response, in
    which case the orders collected so far are returned as-is.
    """
    orders_url = f"{magento_host.rstrip('/')}/rest/V1/orders"
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }
    all_orders = []
    current_page = 1

    while True:
        params = build_search_params(status, start, end, current_page, page_size)
        response = await client.get(orders_url, params=params, headers=headers)

        if not response.is_success:
            print(f"[ERROR] Failed to fetch {status} orders: {response.status_code} {response.reason_phrase}")
            break

        data = response.json()
        items = data.get("items") or []
        all_orders.extend(items)

        print(f"[INFO] Fetched page {current_page}: {len(items)} {status} orders")

        if len(items) < page_size:
            break # Last page reached
        current_page += 1

    return all_orders


# --- Filtering ---
def _within_window(order, start, end):
    try:
        created = parse_timestamp(order.get("created_at"))
    except (TypeError, ValueError):
        print(f"[WARNING] Order {order.get('increment_id')}: unparseable created_at {order.get('created_at')!r}, skipping.")
        return False
    return start <= created <= end


def _above_threshold(order, threshold):
    try:
        # NaN parses but raises on comparison
        return Decimal(str(order.get("grand_total"))) > threshold
    except (InvalidOperation, TypeError, ValueError):
        print(f"[WARNING] Order {order.get('increment_id')}: unparseable grand_total {order.get('grand_total')!r}, skipping.")
        return False


def select_order_numbers(orders, profile, start, end):
    """Applies the profile's client-side filters and returns the increment_ids in fetch order."""
    if profile.threshold is None:
        selected = list(orders)
    else:
        in_window = [order for order in orders if _within_window(order, start, end)]
        selected = [order for order in in_window if _above_threshold(order, profile.threshold)]
    return [order.get("increment_id") for order in selected]


# --- Chunking and notification ---
def chunk_order_numbers(order_numbers, chunk_size=CHUNK_SIZE):
    return [order_numbers[i:i + chunk_size] for i in range(0, len(order_numbers), chunk_size)]


def format_chunk_message(label, chunk, first, total):
    last = first + len(chunk) - 1
    return f"{label} ({first}-{last} of {total}):\n{', '.join(str(n) for n in chunk)}"


async def notify_chunks(client, webhook_url, label, order_numbers, bot_name=None, delay=MESSAGE_DELAY_SECONDS):
    """Sends one Cliq message per chunk, in order, sleeping `delay` seconds after each. Returns messages sent."""
    sent = 0
    first = 1
    for chunk in chunk_order_numbers(order_numbers):
        message_text = format_chunk_message(label, chunk, first, len(order_numbers))
        await send_to_cliq(client, webhook_url, message_text, bot_name)
        sent += 1
        first += len(chunk)
        await asyncio.sleep(delay)
    return sent


# --- Pipeline ---
async def run_profile(profile, settings, client, now=None, delay=MESSAGE_DELAY_SECONDS):
    now = now or datetime.datetime.now(UTC)
    start, end = profile.date_range(now)
    print(f"[INFO] Profile {profile.name}: fetching {profile.status} orders from {format_timestamp(start)} to {format_timestamp(end)}")

    orders = await fetch_orders(client, settings.magento_host, settings.magento_token, profile.status, start, end)
    print(f"[INFO] Total fetched {profile.status} orders: {len(orders)}")

    order_numbers = select_order_numbers(orders, profile, start, end)
    print(f"[INFO] {profile.name} order numbers ({len(order_numbers)}): {order_numbers}")

    return await notify_chunks(
        client,
        settings.webhook_url,
        profile.label,
        order_numbers,
        bot_name=settings.cliq_bot_name,
        delay=delay,
    )


async def run_scheduled(schedule, settings, client, now=None, delay=MESSAGE_DELAY_SECONDS, profiles=PROFILES):
    """Runs the profile registered for `schedule`. Unknown schedules do nothing and return 0."""
    profile = find_profile(schedule, profiles)
    if profile is None:
        print(f"[INFO] No profile registered for schedule '{schedule}'. Nothing to do.")
        return 0
    return await run_profile(profile, settings, client, now=now, delay=delay)


async def run_invocation(schedule, settings=None, now=None):
    """One scheduled firing: own client, sequential requests, closed on exit."""
    settings = settings or load_settings()
    timeout = httpx.Timeout(60.0, connect=10.0)
    async with httpx.AsyncClient(timeout=timeout) as client:
        return await run_scheduled(schedule, settings, client, now=now)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Post Magento order summaries to Zoho Cliq.")
    parser.add_argument("schedule", nargs="?", help='Schedule identity of the firing trigger, e.g. "0 4 * * *".')
    parser.add_argument("--list-profiles", action="store_true", help="Print the registered query profiles and exit.")
    args = parser.parse_args(argv)

    if args.list_profiles:
        for profile in PROFILES:
            threshold = f" > {profile.threshold}" if profile.threshold is not None else ""
            print(f"{profile.schedule}\t{profile.name}\tstatus={profile.status}{threshold}")
        return 0

    if not args.schedule:
        parser.error("schedule is required unless --list-profiles is given")

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"[ERROR] {e}. Exiting.")
        return 1

    try:
        sent = asyncio.run(run_invocation(args.schedule, settings))
    except (CliqWebhookError, httpx.HTTPError) as e:
        print(f"[ERROR] Run for schedule '{args.schedule}' FAILED: {e}")
        return 1

    print(f"[INFO] Job completed. {sent} message(s) sent.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
