# /orderbot/utils/dependencies.py

import secrets
import structlog
from fastapi import Request, HTTPException
from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from orderbot.config.settings import settings
from orderbot.utils.metrics import interaction_counter

log = structlog.get_logger(__name__)


def verify_discord_signature_bytes(body: bytes, signature: str, timestamp: str, public_key: str) -> bool:
    """Checks Discord's Ed25519 signature over timestamp + raw body."""
    if not (signature and timestamp and public_key):
        return False
    try:
        VerifyKey(bytes.fromhex(public_key)).verify(timestamp.encode() + body, bytes.fromhex(signature))
        return True
    except (BadSignatureError, ValueError):
        return False


async def verify_discord_signature(request: Request) -> bytes:
    body = await request.body()
    signature = request.headers.get("x-signature-ed25519", "")
    timestamp = request.headers.get("x-signature-timestamp", "")
    if not verify_discord_signature_bytes(body, signature, timestamp, settings.discord_public_key):
        interaction_counter.labels(kind="signature", outcome="invalid").inc()
        log.error("Invalid interaction signature.", signature=signature[:16])
        # Discord expects 401 for requests that fail verification.
        raise HTTPException(status_code=401, detail="Invalid request signature")
    return body


async def verify_api_key(request: Request):
    if settings.api_key:
        provided_key = request.headers.get("X-API-KEY")
        if not (provided_key and secrets.compare_digest(provided_key, settings.api_key)):
            raise HTTPException(status_code=403, detail="Invalid or missing API key")


async def verify_admin_key(request: Request):
    if not settings.api_key:
        raise HTTPException(status_code=501, detail="Admin endpoints are not configured (API_KEY is unset).")
    provided_key = request.headers.get("X-API-KEY")
    if not (provided_key and secrets.compare_digest(provided_key, settings.api_key)):
        raise HTTPException(status_code=403, detail="Invalid or missing API key")
