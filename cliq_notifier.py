import asyncio
import os
import sys

import httpx
from dotenv import load_dotenv

# --- Configuration and Setup ---
load_dotenv() # Load environment variables from .env file

# --- Webhook credentials (Loaded from Environment Variables) ---
ZOHO_CLIQ_API_ENDPOINT = os.getenv("ZOHO_CLIQ_API_ENDPOINT")
ZOHO_CLIQ_WEBHOOK_TOKEN = os.getenv("ZOHO_CLIQ_WEBHOOK_TOKEN")
ZOHO_CLIQ_BOTNAME = os.getenv("ZOHO_CLIQ_BOTNAME")


class CliqWebhookError(Exception):
    """Raised when the Cliq webhook answers with a non-2xx status."""

    def __init__(self, status_code, reason, body):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"Failed to send message to Cliq: {reason}; {body}")


def build_webhook_url(endpoint, webhook_token):
    return f"{endpoint}?zapikey={webhook_token}"


def build_payload(message_text, bot_name=None):
    payload = {"text": message_text}
    if bot_name:
        payload["bot"] = {"name": bot_name}
    return payload


async def send_to_cliq(client: httpx.AsyncClient, webhook_url: str, message_text: str, bot_name: str = None) -> str:
    """
    Posts a single text message to a Zoho Cliq incoming webhook.

    Args:
        client: The shared AsyncClient for this run.
        webhook_url: Full webhook URL including the zapikey query parameter.
        message_text: The message body.
        bot_name: Optional display name for the posting bot.

    Returns:
        The response body returned by Cliq.

    Raises:
        CliqWebhookError: If Cliq answers with a non-2xx status. Not retried.
        httpx.RequestError: If the webhook cannot be reached.
    """
    response = await client.post(
        webhook_url,
        json=build_payload(message_text, bot_name),
        headers={"Content-Type": "application/json"},
    )
    response_text = response.text
    print(f"[INFO] Cliq response: {response_text}")
    if not response.is_success:
        raise CliqWebhookError(response.status_code, response.reason_phrase, response_text)
    return response_text


# --- Example Usage (when script is run directly) ---
async def _send_test_message(text):
    webhook_url = build_webhook_url(ZOHO_CLIQ_API_ENDPOINT, ZOHO_CLIQ_WEBHOOK_TOKEN)
    async with httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0)) as client:
        await send_to_cliq(client, webhook_url, text, ZOHO_CLIQ_BOTNAME)


if __name__ == "__main__":
    if not ZOHO_CLIQ_API_ENDPOINT or not ZOHO_CLIQ_WEBHOOK_TOKEN:
        print("[ERROR] ZOHO_CLIQ_API_ENDPOINT or ZOHO_CLIQ_WEBHOOK_TOKEN environment variables not set. Exiting.")
        sys.exit(1)

    test_text = " ".join(sys.argv[1:]) or "Test message from order_notifier"
    try:
        asyncio.run(_send_test_message(test_text))
        print("[INFO] Test message sent.")
    except (CliqWebhookError, httpx.RequestError) as e:
        print(f"[ERROR] Test message FAILED: {e}")
        sys.exit(1)
