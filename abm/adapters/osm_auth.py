import threading
from typing import Dict, Any, Optional

import requests

from ..core.constants import OSM_AUTH_URL, OSM_TIMEOUT_S
from ..core.errors import CredentialsMissing, TokenExchangeFailed
from ..utils.log import log_line

CREDENTIAL_KEYS = ("osm_client_id", "osm_client_secret", "osm_refresh_token")

class TokenCache:
    """
    Process-wide bearer token, fetched once and never invalidated.

    OSM OAuth2 access tokens do not expire, so there is no expiry tracking
    and no refresh. The lock makes the first exchange happen once even when
    several threads ask at the same time.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._token: Optional[str] = None

    @property
    def token(self) -> Optional[str]:
        return self._token

    def get(self, cfg: Dict[str, Any]) -> str:
        token = self._token
        if token:
            return token
        with self._lock:
            if not self._token:
                self._token = exchange_refresh_token(cfg)
            return self._token

    def clear(self) -> None:
        with self._lock:
            self._token = None

_TOKEN_CACHE = TokenCache()

def get_token(cfg: Dict[str, Any]) -> str:
    return _TOKEN_CACHE.get(cfg)

def reset_token_cache() -> None:
    _TOKEN_CACHE.clear()

def exchange_refresh_token(cfg: Dict[str, Any]) -> str:
    """
    Trade the long-lived refresh credential for a bearer token.

    If the token endpoint answers unsupported_grant_type, the refresh
    credential is itself a usable (non-expiring) access token and is
    returned as-is.
    """
    missing = [k for k in CREDENTIAL_KEYS if not str(cfg.get(k, "") or "").strip()]
    if missing:
        raise CredentialsMissing(missing)

    client_id = str(cfg["osm_client_id"])
    client_secret = str(cfg["osm_client_secret"])
    refresh_token = str(cfg["osm_refresh_token"])
    url = str(cfg.get("osm_auth_url") or OSM_AUTH_URL)
    headers = {"User-Agent": str(cfg.get("user_agent") or "AussieBitcoinMerchants/1.0")}

    try:
        r = requests.post(
            url,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            auth=(client_id, client_secret),
            headers=headers,
            timeout=float(cfg.get("osm_timeout_s") or OSM_TIMEOUT_S),
        )
    except requests.RequestException as e:
        raise TokenExchangeFailed(0, str(e)) from e

    if 200 <= r.status_code < 300:
        try:
            data = r.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        token = data.get("access_token") or data.get("accessToken") or refresh_token
        log_line("OSM AUTH | token exchanged")
        return token

    body = r.text or ""
    try:
        err = r.json()
    except ValueError:
        err = None
    if isinstance(err, dict) and err.get("error") == "unsupported_grant_type":
        log_line("OSM AUTH | refresh_token grant unsupported, using refresh token as access token", "WARN")
        return refresh_token

    log_line(f"OSM AUTH | token exchange failed | status={r.status_code} body={body[:200]!r}", "ERROR")
    raise TokenExchangeFailed(r.status_code, body)
