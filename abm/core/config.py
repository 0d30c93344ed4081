import os
from pathlib import Path
from typing import Any, Dict, Optional

from . import constants as C
from ..utils.files import load_json

DEFAULT_CONFIG: Dict[str, Any] = {
    "osm_api_url": C.OSM_API_URL,
    "osm_auth_url": C.OSM_AUTH_URL,
    "osm_web_url": C.OSM_WEB_URL,
    "overpass_url": C.OVERPASS_URL,
    "user_agent": "AussieBitcoinMerchants/1.0",
    "generator": C.GENERATOR,
    "created_by": C.CREATED_BY,
    "hashtags": C.HASHTAGS,
    "osm_timeout_s": C.OSM_TIMEOUT_S,
    "overpass_timeout_s": C.OVERPASS_TIMEOUT_S,
    "duplicate_radius_m": C.DUPLICATE_RADIUS_M,
    "enrich_workers": C.ENRICH_WORKERS,
    "confirm_version": False,
    "osm_client_id": "",
    "osm_client_secret": "",
    "osm_refresh_token": "",
}

# environment variable -> config key
ENV_KEYS = {
    "OSM_CLIENT_ID": "osm_client_id",
    "OSM_CLIENT_SECRET": "osm_client_secret",
    "OSM_REFRESH_TOKEN": "osm_refresh_token",
    "OSM_API_URL": "osm_api_url",
    "OVERPASS_URL": "overpass_url",
}

def load_config(
    cfg_path: Optional[Path] = Path("config.json"),
    secrets_path: Optional[Path] = Path("secrets.json"),
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Merge defaults <- config.json <- secrets.json <- environment.
    Missing or broken files are skipped.
    """
    cfg = dict(DEFAULT_CONFIG)
    for path in (cfg_path, secrets_path):
        if path is None:
            continue
        data = load_json(Path(path), {})
        if isinstance(data, dict):
            cfg.update(data)

    env = os.environ if environ is None else environ
    for var, key in ENV_KEYS.items():
        value = env.get(var)
        if value:
            cfg[key] = value
    return cfg

def api_url(cfg: Dict[str, Any], path: str) -> str:
    base = str(cfg.get("osm_api_url") or C.OSM_API_URL).rstrip("/")
    return f"{base}/{path.lstrip('/')}"

def element_url(cfg: Dict[str, Any], element_type: str, element_id: int) -> str:
    base = str(cfg.get("osm_web_url") or C.OSM_WEB_URL).rstrip("/")
    return f"{base}/{element_type}/{element_id}"
