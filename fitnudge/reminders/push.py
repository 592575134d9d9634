"""
Send primitive: one multicast push to a list of device tokens.

`send(tokens, title, body, data)` returns a SendResult with success and
failure counts plus the tokens the provider reported as permanently invalid.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from .config import settings
from .errors import SendPrimitiveError

logger = logging.getLogger(__name__)

# FCM accepts at most 500 tokens per multicast call
MULTICAST_LIMIT = 500


@dataclass
class SendResult:
    success: bool
    success_count: int = 0
    failure_count: int = 0
    invalid_tokens: List[str] = field(default_factory=list)
    error: Optional[str] = None


class PushSender:
    def send(self, tokens: List[str], title: str, body: str, data: Optional[Dict[str, str]] = None) -> SendResult:
        raise NotImplementedError


def _ensure_firebase_initialized() -> bool:
    if firebase_admin._apps:
        return True

    proj = settings.FCM_PROJECT_ID
    env_gac_json = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
    env_gac = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    cfg_val = settings.FCM_CREDENTIALS_JSON
    options = {"projectId": proj} if proj else None

    logger.info(
        f"[FCM] Initializing Firebase | project_id={proj} "
        f"REMINDER_FCM_CREDENTIALS_JSON set={bool(cfg_val)}, "
        f"GOOGLE_APPLICATION_CREDENTIALS_JSON set={bool(env_gac_json)}, "
        f"GOOGLE_APPLICATION_CREDENTIALS set={bool(env_gac)}"
    )

    creds_json: Optional[str] = cfg_val or env_gac_json or env_gac

    try:
        if creds_json and creds_json.strip().startswith("{"):
            firebase_admin.initialize_app(credentials.Certificate(json.loads(creds_json)), options=options)
            logger.info("[FCM] Firebase app initialized (inline JSON)")
        elif creds_json and os.path.exists(creds_json):
            firebase_admin.initialize_app(credentials.Certificate(creds_json), options=options)
            logger.info("[FCM] Firebase app initialized (file)")
        elif proj:
            firebase_admin.initialize_app(options=options)
            logger.info("[FCM] Firebase app initialized (projectId only)")
        else:
            logger.warning("[FCM] No credentials provided - push notifications are disabled")
            return False
    except (ValueError, OSError, exceptions.FirebaseError) as e:
        logger.error(f"[FCM] Failed to initialize Firebase: {e!r}")
        return False
    return True


def _is_invalid_token_error(exc: Optional[BaseException]) -> bool:
    # registration-token-not-registered, invalid-registration-token, invalid-argument
    return isinstance(exc, (messaging.UnregisteredError, exceptions.InvalidArgumentError))


class FCMPushSender(PushSender):
    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.PUSH_TTL_SECONDS

    def _message(self, tokens: List[str], title: str, body: str, data: Dict[str, str]) -> messaging.MulticastMessage:
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=title, body=body),
            data=data,
            android=messaging.AndroidConfig(priority="high", ttl=timedelta(seconds=self.ttl_seconds)),
            webpush=messaging.WebpushConfig(headers={"TTL": str(self.ttl_seconds)}),
        )

    def send(self, tokens, title, body, data=None):
        if not _ensure_firebase_initialized():
            raise SendPrimitiveError("Firebase not initialized")

        # Duplicate tokens would deliver twice to the same device
        unique_tokens = list(dict.fromkeys(tokens))
        payload = {str(k): str(v) for k, v in (data or {}).items()}
        result = SendResult(success=True)

        try:
            for offset in range(0, len(unique_tokens), MULTICAST_LIMIT):
                batch = unique_tokens[offset:offset + MULTICAST_LIMIT]
                response = messaging.send_each_for_multicast(self._message(batch, title, body, payload))
                result.success_count += response.success_count
                result.failure_count += response.failure_count
                for token, resp in zip(batch, response.responses):
                    if not resp.success and _is_invalid_token_error(resp.exception):
                        result.invalid_tokens.append(token)
        except (exceptions.FirebaseError, ValueError) as e:
            logger.error(f"[FCM] Failed to send notification: {e!r}")
            return SendResult(
                success=False,
                success_count=result.success_count,
                failure_count=result.failure_count,
                invalid_tokens=result.invalid_tokens,
                error=str(e),
            )

        logger.info(
            f"[FCM] Sent '{title}' | success={result.success_count} failure={result.failure_count} "
            f"invalid={len(result.invalid_tokens)}"
        )
        return result
