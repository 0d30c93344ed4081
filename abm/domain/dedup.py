"""
Duplicate detection before anything is written to OSM.

One Overpass query collects candidates near the submitted point (bitcoin-tagged
elements, plus elements whose name shares a keyword with the business name).
Each candidate is then enriched from the OSM API with its current tags and the
creation time of the changeset that last touched it, and the most recently
edited candidate becomes the primary match.

find_duplicates() never raises: a broken matcher must not block a submission.
"""
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Tuple

from ..adapters import osm_api
from ..adapters.overpass_api import overpass_post
from ..core.constants import (
    BITCOIN_TAGS, STOP_WORDS, MIN_KEYWORD_LEN, DUPLICATE_RADIUS_M,
    OVERPASS_QUERY_TIMEOUT_S, ENRICH_WORKERS,
)
from ..core.errors import OsmSyncError, DuplicateCheckFailed
from ..core.models import DuplicateMatch, DuplicateCheckResult, ElementType, MatchReason
from ..utils.log import log_line
from .osm_xml import format_coord

RE_PUNCT = re.compile(r"[^\w\s]")
RE_SPACES = re.compile(r"\s+")
RE_REGEX_SPECIAL = re.compile(r"[.*+?^${}()|\[\]\\]")

@dataclass
class Outcome:
    """Result of one enrichment step: either a value or the error that replaced it."""
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

def extract_keywords(business_name: Optional[str]) -> List[str]:
    """Significant lower-case words of a business name (stop words and short words dropped)."""
    if not business_name:
        return []
    normalized = RE_PUNCT.sub(" ", business_name.lower())
    normalized = RE_SPACES.sub(" ", normalized).strip()
    words = [w for w in normalized.split(" ") if len(w) >= MIN_KEYWORD_LEN and w not in STOP_WORDS]
    return list(dict.fromkeys(words))

def build_name_regex(keywords: List[str]) -> str:
    """Overpass name filter suffix, e.g. ~"great|coffee",i. Empty when there are no keywords."""
    if not keywords:
        return ""
    escaped = [RE_REGEX_SPECIAL.sub(lambda m: "\\" + m.group(0), k) for k in keywords]
    return f'~"{"|".join(escaped)}",i'

def build_overpass_query(lat: float, lon: float, business_name: Optional[str],
                         radius_m: int = DUPLICATE_RADIUS_M) -> str:
    around = f"(around:{int(radius_m)},{format_coord(lat)},{format_coord(lon)})"
    lines = [f"[out:json][timeout:{OVERPASS_QUERY_TIMEOUT_S}];", "("]
    for kind in ("node", "way"):
        lines.append(f'  {kind}["currency:XBT"]{around};')
        lines.append(f'  {kind}["payment:bitcoin"]{around};')
        lines.append(f'  {kind}["bitcoin:accepts"="yes"]{around};')

    name_regex = build_name_regex(extract_keywords(business_name))
    if name_regex:
        for kind in ("node", "way"):
            lines.append(f'  {kind}["name"{name_regex}]{around};')

    lines += [");", "out center body;"]
    return "\n".join(lines)

def is_bitcoin_tagged(tags: Dict[str, str]) -> bool:
    return any(k in tags for k in BITCOIN_TAGS)

def _coordinates(element: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    center = element.get("center")
    if isinstance(center, dict) and "lat" in center and "lon" in center:
        return float(center["lat"]), float(center["lon"])
    if "lat" in element and "lon" in element:
        return float(element["lat"]), float(element["lon"])
    return None

def candidate_from_element(element: Dict[str, Any]) -> Optional[DuplicateMatch]:
    """Overpass element -> un-enriched match. Relations and malformed rows are skipped."""
    try:
        osm_type = ElementType(element.get("type"))
        osm_id = int(element["id"])
    except (ValueError, KeyError, TypeError):
        return None
    tags = {str(k): str(v) for k, v in (element.get("tags") or {}).items()}
    return _with_tags(DuplicateMatch(
        osm_id=osm_id,
        osm_type=osm_type,
        match_reason=MatchReason.SIMILAR_NAME,
        coordinates=_coordinates(element),
    ), tags)

def _with_tags(match: DuplicateMatch, tags: Dict[str, str]) -> DuplicateMatch:
    match.tags = dict(tags)
    match.name = tags.get("name")
    match.category = tags.get("shop") or tags.get("amenity")
    match.match_reason = MatchReason.BITCOIN_TAGGED if is_bitcoin_tagged(tags) else MatchReason.SIMILAR_NAME
    return match

def _fetch_element(cfg: Dict[str, Any], match: DuplicateMatch) -> Outcome:
    try:
        return Outcome(value=osm_api.fetch_element(cfg, match.osm_type, match.osm_id))
    except OsmSyncError as e:
        return Outcome(error=e)

def _fetch_changeset(cfg: Dict[str, Any], changeset_id: Optional[int]) -> Outcome:
    if changeset_id is None:
        return Outcome(error=DuplicateCheckFailed("element has no changeset attribute"))
    try:
        return Outcome(value=osm_api.fetch_changeset(cfg, changeset_id))
    except OsmSyncError as e:
        return Outcome(error=e)

def enrich_candidate(cfg: Dict[str, Any], match: DuplicateMatch) -> DuplicateMatch:
    """
    Replace Overpass tags with the authoritative element's and attach the
    last-edit timestamp. A failed read leaves the candidate without a timestamp.
    """
    element = _fetch_element(cfg, match)
    if not element.ok:
        log_line(f"DEDUP | enrich skipped | {match.osm_type.value}/{match.osm_id} err={element.error}", "WARN")
        return match

    _with_tags(match, element.value.tags)
    match.changeset_id = element.value.changeset

    changeset = _fetch_changeset(cfg, match.changeset_id)
    if not changeset.ok:
        log_line(f"DEDUP | no timestamp | {match.osm_type.value}/{match.osm_id} err={changeset.error}", "WARN")
        return match

    match.last_updated = changeset.value.created_at
    return match

def enrich_candidates(cfg: Dict[str, Any], candidates: List[DuplicateMatch]) -> List[DuplicateMatch]:
    """Enrich all candidates concurrently; output keeps the input order."""
    if not candidates:
        return []
    workers = max(1, min(len(candidates), int(cfg.get("enrich_workers") or ENRICH_WORKERS)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(enrich_candidate, cfg, c) for c in candidates]
        return [f.result() for f in futures]

def rank_matches(matches: List[DuplicateMatch]) -> List[DuplicateMatch]:
    """
    Most recently edited first. Candidates without a timestamp follow all
    timestamped ones in their original order.
    """
    dated = [m for m in matches if m.last_updated is not None]
    undated = [m for m in matches if m.last_updated is None]
    dated.sort(key=lambda m: m.last_updated, reverse=True)
    return dated + undated

def _check(cfg: Dict[str, Any], lat: float, lon: float, business_name: Optional[str]) -> DuplicateCheckResult:
    radius = int(cfg.get("duplicate_radius_m") or DUPLICATE_RADIUS_M)
    query = build_overpass_query(lat, lon, business_name, radius)
    elements = overpass_post(cfg, query)

    candidates = [c for c in (candidate_from_element(el) for el in elements) if c is not None]
    if not candidates:
        return DuplicateCheckResult(is_duplicate=False)

    ranked = rank_matches(enrich_candidates(cfg, candidates))
    primary = ranked[0]
    log_line(
        f"DEDUP | duplicates found | n={len(ranked)} primary={primary.osm_type.value}/{primary.osm_id} "
        f"reason={primary.match_reason.value}"
    )
    return DuplicateCheckResult(is_duplicate=True, primary=primary, matches=ranked)

def find_duplicates(cfg: Dict[str, Any], lat: float, lon: float, business_name: Optional[str] = None) -> DuplicateCheckResult:
    """
    Returns is_duplicate/primary/matches. Fail-open: every internal error
    becomes is_duplicate=False (logged, with error="Check failed").
    """
    try:
        return _check(cfg, float(lat), float(lon), business_name)
    except Exception as e:
        log_line(f"DEDUP | check failed | lat={lat} lon={lon} err={e!r}", "WARN")
        return DuplicateCheckResult(is_duplicate=False, error="Check failed")
