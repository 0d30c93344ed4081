import requests
from typing import Dict, Any, Optional, Type

from ..core.config import api_url
from ..core.constants import OSM_TIMEOUT_S, GENERATOR, CREATED_BY, HASHTAGS
from ..core.errors import (
    HttpFailure, ChangesetOpenFailed, ChangesetCloseFailed, FetchFailed,
    CreateFailed, UpdateFailed, VersionConflict, ElementGone,
)
from ..core.models import Node, Way, Changeset, ElementType
from ..domain import osm_xml
from ..utils.log import log_line
from .osm_auth import get_token

def _ok(r: requests.Response) -> bool:
    return 200 <= r.status_code < 300

def _timeout(cfg: Dict[str, Any]) -> float:
    return float(cfg.get("osm_timeout_s") or OSM_TIMEOUT_S)

def _base_headers(cfg: Dict[str, Any]) -> Dict[str, str]:
    return {"User-Agent": str(cfg.get("user_agent") or "AussieBitcoinMerchants/1.0")}

def _write_headers(cfg: Dict[str, Any], with_body: bool = True) -> Dict[str, str]:
    headers = _base_headers(cfg)
    headers["Authorization"] = f"Bearer {get_token(cfg)}"
    if with_body:
        headers["Content-Type"] = "application/xml"
    return headers

def api_get(cfg: Dict[str, Any], path: str, error_cls: Type[HttpFailure] = FetchFailed) -> requests.Response:
    """Anonymous read. Transport errors surface as error_cls with status 0."""
    try:
        return requests.get(api_url(cfg, path), headers=_base_headers(cfg), timeout=_timeout(cfg))
    except requests.RequestException as e:
        raise error_cls(0, str(e)) from e

def api_put(cfg: Dict[str, Any], path: str, body: Optional[str], error_cls: Type[HttpFailure]) -> requests.Response:
    """Authenticated write (Bearer token from the credential cache)."""
    headers = _write_headers(cfg, with_body=body is not None)
    data = body.encode("utf-8") if body is not None else None
    try:
        return requests.put(api_url(cfg, path), data=data, headers=headers, timeout=_timeout(cfg))
    except requests.RequestException as e:
        raise error_cls(0, str(e)) from e

def _parse_id(r: requests.Response, error_cls: Type[HttpFailure]) -> int:
    text = (r.text or "").strip()
    try:
        return int(text)
    except ValueError:
        raise error_cls(r.status_code, text, f"Failed to {error_cls.action}: unexpected response body {text!r}")

# =========================
# CHANGESETS
# =========================

def open_changeset(cfg: Dict[str, Any], comment: str) -> int:
    body = osm_xml.changeset_document(
        comment,
        created_by=str(cfg.get("created_by") or CREATED_BY),
        hashtags=str(cfg.get("hashtags") or HASHTAGS),
        generator=str(cfg.get("generator") or GENERATOR),
    )
    r = api_put(cfg, "changeset/create", body, ChangesetOpenFailed)
    if not _ok(r):
        log_line(f"OSM | changeset open failed | status={r.status_code}", "ERROR")
        raise ChangesetOpenFailed(r.status_code, r.text)
    changeset_id = _parse_id(r, ChangesetOpenFailed)
    log_line(f"OSM | changeset opened | id={changeset_id}")
    return changeset_id

def close_changeset(cfg: Dict[str, Any], changeset_id: int) -> None:
    r = api_put(cfg, f"changeset/{int(changeset_id)}/close", None, ChangesetCloseFailed)
    if not _ok(r):
        log_line(f"OSM | changeset close failed | id={changeset_id} status={r.status_code}", "ERROR")
        raise ChangesetCloseFailed(r.status_code, r.text)
    log_line(f"OSM | changeset closed | id={changeset_id}")

def fetch_changeset(cfg: Dict[str, Any], changeset_id: int) -> Changeset:
    """Changeset metadata (created_at is what the duplicate matcher ranks on)."""
    r = api_get(cfg, f"changeset/{int(changeset_id)}")
    if not _ok(r):
        raise FetchFailed(r.status_code, r.text, f"Failed to fetch changeset {changeset_id}: {r.status_code}")
    try:
        return osm_xml.parse_changeset(r.text)
    except ValueError as e:
        raise FetchFailed(r.status_code, r.text, f"Failed to parse changeset {changeset_id}: {e}") from e

# =========================
# ELEMENTS
# =========================

def _fetch(cfg: Dict[str, Any], element_type: ElementType, element_id: int) -> str:
    kind = element_type.value
    r = api_get(cfg, f"{kind}/{int(element_id)}")
    if r.status_code == 410:
        raise ElementGone(kind, int(element_id), r.text)
    if not _ok(r):
        raise FetchFailed(r.status_code, r.text, f"Failed to fetch {kind} {element_id}: {r.status_code} {r.text}".rstrip())
    return r.text

def fetch_node(cfg: Dict[str, Any], node_id: int) -> Node:
    xml = _fetch(cfg, ElementType.NODE, node_id)
    try:
        return osm_xml.parse_node(xml)
    except ValueError as e:
        raise FetchFailed(200, xml, f"Failed to parse node {node_id}: {e}") from e

def fetch_way(cfg: Dict[str, Any], way_id: int) -> Way:
    xml = _fetch(cfg, ElementType.WAY, way_id)
    try:
        return osm_xml.parse_way(xml)
    except ValueError as e:
        raise FetchFailed(200, xml, f"Failed to parse way {way_id}: {e}") from e

def fetch_element(cfg: Dict[str, Any], element_type: ElementType, element_id: int):
    if ElementType(element_type) is ElementType.WAY:
        return fetch_way(cfg, element_id)
    return fetch_node(cfg, element_id)

def create_node(cfg: Dict[str, Any], node: Node, changeset_id: int) -> int:
    """Create a fresh node; the server assigns the id. Ways are never created."""
    body = osm_xml.node_document(node, changeset_id, str(cfg.get("generator") or GENERATOR))
    r = api_put(cfg, "node/create", body, CreateFailed)
    if not _ok(r):
        log_line(f"OSM | node create failed | changeset={changeset_id} status={r.status_code}", "ERROR")
        raise CreateFailed(r.status_code, r.text)
    node_id = _parse_id(r, CreateFailed)
    log_line(f"OSM | node created | id={node_id} changeset={changeset_id}")
    return node_id

def _check_update(r: requests.Response, kind: str, element_id: int, version: int, changeset_id: int) -> None:
    if r.status_code == 409:
        log_line(f"OSM | {kind} update conflict | id={element_id} version={version}", "WARN")
        raise VersionConflict(kind, element_id, version, r.text)
    if r.status_code == 410:
        log_line(f"OSM | {kind} update target deleted | id={element_id}", "WARN")
        raise ElementGone(kind, element_id, r.text)
    if not _ok(r):
        log_line(f"OSM | {kind} update failed | id={element_id} status={r.status_code}", "ERROR")
        raise UpdateFailed(r.status_code, r.text, f"Failed to update {kind}: {r.status_code} {r.text}".rstrip())
    log_line(f"OSM | {kind} updated | id={element_id} version={version} changeset={changeset_id}")

def update_node(cfg: Dict[str, Any], node_id: int, node: Node, version: int, changeset_id: int) -> None:
    """
    Write tags (and the unchanged position) back under optimistic concurrency.
    `version` and the coordinates must come from a fetch_node() of the same id.
    """
    body = osm_xml.node_document(node, changeset_id, str(cfg.get("generator") or GENERATOR),
                                 node_id=node_id, version=version)
    r = api_put(cfg, f"node/{int(node_id)}", body, UpdateFailed)
    _check_update(r, "node", int(node_id), int(version), changeset_id)

def update_way(cfg: Dict[str, Any], way_id: int, way: Way, version: int, changeset_id: int) -> None:
    """
    Write tags back. `way.node_refs` is sent exactly as fetched: geometry is
    never edited here.
    """
    body = osm_xml.way_document(way_id, way, version, changeset_id, str(cfg.get("generator") or GENERATOR))
    r = api_put(cfg, f"way/{int(way_id)}", body, UpdateFailed)
    _check_update(r, "way", int(way_id), int(version), changeset_id)
