"""
Flux distant du journal de classe (pull) et appels unitaires de push.
"""

import time
from typing import Optional

from app.remote.client import RemoteClient
from app.schemas.sync import DiaryPullResult, RemoteDiaryRecord, RemoteUserProfile


def _now_ms() -> int:
    return int(time.time() * 1000)


class DiaryFeedAPI:

    def __init__(self, client: RemoteClient, clock=_now_ms) -> None:
        self._client = client
        self._clock = clock

    def fetch_changes(self, since: int, class_section_id: Optional[str] = None) -> DiaryPullResult:
        """
        Enregistrements modifiés depuis `since`.
        L'horodatage du lot est pris AVANT la requête (à défaut d'un `timestamp`
        fourni par le serveur) : une modification concurrente sera re-téléchargée
        au cycle suivant plutôt que perdue.
        """
        requested_at = self._clock()
        payload = self._client.get(
            "/diary",
            params={"updated_since": since or 0, "class_section_id": class_section_id},
        )

        timestamp = requested_at
        if isinstance(payload, dict):
            raw_records = payload.get("data") or payload.get("items") or []
            if payload.get("timestamp") is not None:
                timestamp = int(payload["timestamp"])
        else:
            raw_records = payload or []

        return DiaryPullResult(
            records=[RemoteDiaryRecord.model_validate(r) for r in raw_records],
            timestamp=timestamp,
        )

    def fetch_profile(self) -> RemoteUserProfile:
        payload = self._client.get("/auth/me")
        if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
            payload = payload["user"]
        return RemoteUserProfile.model_validate(payload)

    def create_entry(self, payload: dict) -> None:
        self._client.post("/diary", payload)

    def update_entry(self, entry_id: str, payload: dict) -> None:
        self._client.put(f"/diary/{entry_id}", payload)

    def delete_entry(self, entry_id: str) -> None:
        self._client.delete(f"/diary/{entry_id}")
