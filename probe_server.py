"""Manual probe for the order notifier.

GET / explains how to fire a test run; GET /__scheduled?cron=<schedule> runs
one invocation of the pipeline the same way the host's cron would.
"""

import os
import sys

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

from cliq_notifier import CliqWebhookError
from order_notifier import ConfigError, run_invocation

load_dotenv()

TEST_SCHEDULE = "* * * * *"

app = FastAPI(title="Order Notifier Probe", version="0.1.0")


def build_probe_text(url):
    test_url = url.replace(path="/__scheduled", query="").include_query_params(cron=TEST_SCHEDULE)
    return f'To test the scheduled handler, try running "curl {test_url}".'


@app.get("/", response_class=PlainTextResponse)
async def probe(request: Request):
    return build_probe_text(request.url)


@app.get("/__scheduled", response_class=PlainTextResponse)
async def trigger_scheduled(cron: str = TEST_SCHEDULE):
    print(f"[INFO] Manual trigger for schedule '{cron}'")
    try:
        sent = await run_invocation(cron)
    except ConfigError as e:
        print(f"[ERROR] {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except (CliqWebhookError, httpx.HTTPError) as e:
        print(f"[ERROR] Manual run for schedule '{cron}' FAILED: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return f'Ran "{cron}": {sent} message(s) sent.'


def main() -> None:
    host = os.getenv("PROBE_HOST", "127.0.0.1")
    port = int(os.getenv("PROBE_PORT", "8787"))
    print(f"[INFO] Starting probe server on {host}:{port}")
    try:
        uvicorn.run("probe_server:app", host=host, port=port, reload=False, log_level="info", workers=1)
    except Exception as e:
        print(f"[ERROR] Fatal error in probe server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
