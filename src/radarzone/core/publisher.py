from __future__ import annotations

import logging

import httpx
import jwt

from .errors import NetworkError, StorageError
from .storage import TOKEN_KEY, KeyValueStore

logger = logging.getLogger(__name__)

RECORD_PATH = "/api/radar-viewers"
FALLBACK_USER_ID = "unknown_user"


def user_id_from_token(token: str) -> str:
    """Read the `id` claim without verifying the signature; fall back when unreadable."""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning("Could not decode credential payload (%s), using %s", e, FALLBACK_USER_ID)
        return FALLBACK_USER_ID
    user_id = payload.get("id") if isinstance(payload, dict) else None
    if user_id is None or user_id == "":
        return FALLBACK_USER_ID
    return str(user_id)


class RecordPublisher:
    """
    Pushes an improved record to the remote endpoint.

    Single attempt, no retry, no queue. Every failure is logged and swallowed:
    the local record is already reconciled by the time this runs.
    """

    def __init__(self, store: KeyValueStore, client: httpx.AsyncClient, base_url: str):
        self.store = store
        self.client = client
        self.url = base_url.rstrip("/") + RECORD_PATH

    def _token(self) -> str | None:
        try:
            return self.store.get(TOKEN_KEY)
        except StorageError as e:
            logger.error("Credential unreadable: %s", e)
            return None

    async def publish(self, seconds: int) -> bool:
        token = self._token()
        if not token:
            logger.warning("No credential stored, record %ss not sent", seconds)
            return False

        body = {"data": {"id_user": user_id_from_token(token), "time": int(seconds)}}
        try:
            await self._post(token, body)
        except NetworkError as e:
            logger.error("Sending record %ss failed: %s", seconds, e)
            return False
        logger.info("Record %ss sent", seconds)
        return True

    async def _post(self, token: str, body: dict) -> None:
        try:
            resp = await self.client.post(
                self.url,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise NetworkError(str(e)) from e
        if not resp.is_success:
            raise NetworkError(f"{resp.status_code} - {resp.reason_phrase}")
