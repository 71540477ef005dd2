"""Client for the external social directory (Neynar Farcaster API).

Resolves player ids to usernames, searches by name, lists who a player
follows, and publishes casts. Every call is best-effort: transport errors and
non-success responses raise ExternalLookupFailure, which game code catches,
logs and skips.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import httpx

from arena.errors import ExternalLookupFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryUser:
    id: int
    username: str

    @classmethod
    def from_api(cls, payload: dict) -> 'DirectoryUser':
        return cls(id=int(payload['fid']), username=payload.get('username') or '')


class NeynarDirectory:
    def __init__(self, api_key: str, base_url: str = 'https://api.neynar.com/v2/farcaster',
                 signer_uuid: str = '', timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.signer_uuid = signer_uuid
        self._client = httpx.Client(
            base_url=base_url,
            headers={'accept': 'application/json', 'x-api-key': api_key},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config) -> 'NeynarDirectory':
        return cls(
            api_key=config.get('NEYNAR_API_KEY', 'NEYNAR_API_DOCS'),
            base_url=config.get('NEYNAR_BASE_URL', 'https://api.neynar.com/v2/farcaster'),
            signer_uuid=config.get('NEYNAR_SIGNER_UUID', ''),
            timeout=float(config.get('DIRECTORY_TIMEOUT_SEC', 10)),
        )

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ExternalLookupFailure(f"{method} {path} failed: {exc}") from exc
        if not response.is_success:
            raise ExternalLookupFailure(f"{method} {path} returned {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalLookupFailure(f"{method} {path} returned invalid JSON") from exc

    def lookup_users(self, player_ids: Iterable[int]) -> Dict[int, DirectoryUser]:
        """Bulk lookup by id. Ids the directory does not know are absent."""
        ids = [str(pid) for pid in player_ids]
        if not ids:
            return {}
        data = self._request('GET', '/user/bulk', params={'fids': ','.join(ids)})
        users = {}
        for payload in data.get('users') or []:
            if payload.get('fid') is None:
                continue
            user = DirectoryUser.from_api(payload)
            users[user.id] = user
        return users

    def search_user(self, query: str) -> Optional[DirectoryUser]:
        """Best match for a username prefix: an exact username wins, else the first hit."""
        data = self._request('GET', '/user/search', params={'q': query, 'limit': 5})
        candidates = [
            DirectoryUser.from_api(p)
            for p in ((data.get('result') or {}).get('users') or [])
            if p.get('fid') is not None
        ]
        if not candidates:
            return None
        wanted = query.lower()
        for user in candidates:
            if user.username.lower() == wanted:
                return user
        return candidates[0]

    def following(self, player_id: int, limit: int = 5) -> List[DirectoryUser]:
        data = self._request('GET', '/following', params={'fid': player_id, 'limit': limit})
        users = []
        for item in data.get('users') or []:
            # Entries are wrapped as {"object": "follow", "user": {...}}
            payload = item.get('user', item)
            if payload.get('fid') is None:
                continue
            users.append(DirectoryUser.from_api(payload))
        return users[:limit]

    def publish_cast(self, text: str) -> None:
        if not self.signer_uuid:
            logger.debug("No signer configured; cast not published: %s", text)
            return
        self._request('POST', '/cast', json={'signer_uuid': self.signer_uuid, 'text': text})
