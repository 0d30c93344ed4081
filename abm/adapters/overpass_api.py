import requests
from typing import Dict, Any, List

from ..core.constants import OVERPASS_URL, OVERPASS_TIMEOUT_S
from ..core.errors import DuplicateCheckFailed

def overpass_post(cfg: Dict[str, Any], query: str) -> List[Dict[str, Any]]:
    """
    Run one Overpass QL query and return its `elements`.
    Any failure (transport, status, body) raises DuplicateCheckFailed.
    """
    url = str(cfg.get("overpass_url") or OVERPASS_URL)
    headers = {"User-Agent": str(cfg.get("user_agent") or "AussieBitcoinMerchants/1.0")}
    try:
        r = requests.post(
            url,
            data={"data": query},
            headers=headers,
            timeout=float(cfg.get("overpass_timeout_s") or OVERPASS_TIMEOUT_S),
        )
    except requests.RequestException as e:
        raise DuplicateCheckFailed(f"Overpass request failed: {e!r}") from e

    if r.status_code != 200:
        raise DuplicateCheckFailed(f"Overpass API error: {r.status_code}")
    try:
        data = r.json()
    except ValueError as e:
        raise DuplicateCheckFailed("Overpass returned invalid JSON") from e

    if not isinstance(data, dict):
        raise DuplicateCheckFailed("Overpass returned an unexpected payload")
    elements = data.get("elements") or []
    return [el for el in elements if isinstance(el, dict)]
