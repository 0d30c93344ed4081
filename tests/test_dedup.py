"""
Tests for dedup.py - Overpass candidates, enrichment and ranking.

These tests verify:
- Keyword extraction and the name-regex branch of the query
- Candidates are enriched from the OSM API and ranked by last edit
- Any failure of the check degrades to "not a duplicate"
"""

from datetime import datetime, timezone

import requests
from abm.core.models import DuplicateMatch, ElementType, MatchReason
from abm.domain.dedup import (
    extract_keywords,
    build_name_regex,
    build_overpass_query,
    is_bitcoin_tagged,
    candidate_from_element,
    rank_matches,
    find_duplicates,
)
from conftest import make_response, node_xml, way_xml, changeset_xml


def overpass(elements):
    return make_response(200, json_data={"elements": elements})


class TestKeywords:
    """Tests for extract_keywords / build_name_regex."""

    def test_drops_stop_words_and_short_words(self):
        """Stop words and words under three letters are dropped."""
        assert extract_keywords("The Great Coffee Shop") == ["great", "coffee"]

    def test_punctuation_and_case(self):
        """Punctuation splits words and case is folded."""
        assert extract_keywords("Joe's  CAFÉ & Bar!") == ["joe", "café", "bar"]

    def test_duplicates_removed(self):
        """Each keyword appears once."""
        assert extract_keywords("Coffee coffee COFFEE") == ["coffee"]

    def test_idempotent_on_own_output(self):
        """Re-extracting from the keywords gives the same keywords."""
        words = extract_keywords("Bitcoin Bakery of Melbourne")
        assert extract_keywords(" ".join(words)) == words

    def test_empty(self):
        """No name or only stop words gives no keywords."""
        assert extract_keywords(None) == []
        assert extract_keywords("The A An") == []

    def test_regex(self):
        """Keywords join into a case-insensitive alternation."""
        assert build_name_regex(["great", "coffee"]) == '~"great|coffee",i'
        assert build_name_regex([]) == ""

    def test_regex_escapes_specials(self):
        """Regex metacharacters in keywords are escaped."""
        assert build_name_regex(["c++"]) == '~"c\\+\\+",i'


class TestQuery:
    """Tests for build_overpass_query."""

    def test_bitcoin_branches_always_present(self):
        """All three bitcoin tags are queried for nodes and ways."""
        q = build_overpass_query(-37.8136, 144.9631, None)
        around = "(around:25,-37.8136,144.9631)"
        for kind in ("node", "way"):
            assert f'{kind}["currency:XBT"]{around};' in q
            assert f'{kind}["payment:bitcoin"]{around};' in q
            assert f'{kind}["bitcoin:accepts"="yes"]{around};' in q
        assert '["name"' not in q
        assert q.startswith("[out:json][timeout:25];")
        assert q.endswith("out center body;")

    def test_name_branch(self):
        """Keywords add a name-regex branch for nodes and ways."""
        q = build_overpass_query(-37.8136, 144.9631, "Great Coffee")
        assert 'node["name"~"great|coffee",i](around:25,-37.8136,144.9631);' in q
        assert 'way["name"~"great|coffee",i](around:25,-37.8136,144.9631);' in q

    def test_radius(self):
        """The search radius is configurable."""
        assert "(around:50," in build_overpass_query(0.5, 0.5, None, radius_m=50)


class TestCandidates:
    """Tests for Overpass element -> candidate."""

    def test_bitcoin_tagged(self):
        """Any bitcoin key counts, whatever its value."""
        assert is_bitcoin_tagged({"currency:XBT": "yes"})
        assert is_bitcoin_tagged({"payment:bitcoin": "no"})
        assert not is_bitcoin_tagged({"name": "X"})

    def test_node_candidate(self):
        """A node row keeps its coordinates, category and reason."""
        m = candidate_from_element({
            "type": "node", "id": 1, "lat": -37.8, "lon": 144.9,
            "tags": {"name": "Cafe", "amenity": "cafe", "currency:XBT": "yes"},
        })
        assert m.osm_type is ElementType.NODE
        assert m.match_reason is MatchReason.BITCOIN_TAGGED
        assert m.category == "cafe"
        assert m.coordinates == (-37.8, 144.9)

    def test_way_uses_center(self):
        """A way row takes its coordinates from center."""
        m = candidate_from_element({
            "type": "way", "id": 2, "center": {"lat": -37.81, "lon": 144.96},
            "tags": {"name": "Great Coffee"},
        })
        assert m.osm_type is ElementType.WAY
        assert m.match_reason is MatchReason.SIMILAR_NAME
        assert m.coordinates == (-37.81, 144.96)

    def test_relation_skipped(self):
        """Relations and rows without an id are skipped."""
        assert candidate_from_element({"type": "relation", "id": 3}) is None
        assert candidate_from_element({"type": "node"}) is None


class TestRanking:
    """Tests for rank_matches."""

    def _match(self, osm_id, ts=None):
        return DuplicateMatch(osm_id=osm_id, osm_type=ElementType.NODE,
                              match_reason=MatchReason.SIMILAR_NAME, last_updated=ts)

    def test_newest_first_then_undated_in_order(self):
        """Dated matches sort newest first; undated ones follow in input order."""
        old = self._match(1, datetime(2024, 1, 10, tzinfo=timezone.utc))
        none_a = self._match(2)
        new = self._match(3, datetime(2024, 1, 20, tzinfo=timezone.utc))
        none_b = self._match(4)
        ranked = rank_matches([old, none_a, new, none_b])
        assert [m.osm_id for m in ranked] == [3, 1, 2, 4]


class TestFindDuplicates:
    """Tests for find_duplicates against fake Overpass/OSM servers."""

    def test_no_candidates(self, cfg, server):
        """An empty Overpass result is not a duplicate and not an error."""
        server.add("POST", "/api/interpreter", overpass([]))
        result = find_duplicates(cfg, -37.8136, 144.9631, "Test Cafe")
        assert result.is_duplicate is False
        assert result.primary is None
        assert result.error is None
        assert result.to_dict() == {"isDuplicate": False}

    def test_query_sent_as_form_field(self, cfg, server):
        """The query goes out as the data form field."""
        server.add("POST", "/api/interpreter", overpass([]))
        find_duplicates(cfg, -37.8136, 144.9631, "Great Coffee")
        (_, _, kwargs), = server.calls_to("POST", "/api/interpreter")
        assert "great|coffee" in kwargs["data"]["data"]

    def test_most_recent_edit_is_primary(self, cfg, server):
        """The candidate edited most recently becomes primary."""
        server.add("POST", "/api/interpreter", overpass([
            {"type": "node", "id": 111, "lat": -37.8136, "lon": 144.9631, "tags": {"name": "Old"}},
            {"type": "node", "id": 222, "lat": -37.8137, "lon": 144.9632, "tags": {"name": "New"}},
        ]))
        server.add("GET", "/node/111", make_response(200, node_xml(
            111, 3, -37.8136, 144.9631, {"name": "Old Cafe", "currency:XBT": "yes"}, changeset=5001)))
        server.add("GET", "/node/222", make_response(200, node_xml(
            222, 1, -37.8137, 144.9632, {"name": "New Cafe", "shop": "coffee"}, changeset=5002)))
        server.add("GET", "/changeset/5001", make_response(200, changeset_xml(5001, "2024-01-10T10:00:00Z")))
        server.add("GET", "/changeset/5002", make_response(200, changeset_xml(5002, "2024-01-20T10:00:00Z")))

        result = find_duplicates(cfg, -37.8136, 144.9631, "Cafe Test")
        assert result.is_duplicate is True
        assert result.primary.osm_id == 222
        assert result.primary.name == "New Cafe"
        assert result.primary.category == "coffee"
        assert [m.osm_id for m in result.matches] == [222, 111]
        assert result.matches[1].match_reason is MatchReason.BITCOIN_TAGGED

        out = result.to_dict()
        assert out["isDuplicate"] is True
        assert out["osmId"] == 222
        assert out["lastUpdated"] == "2024-01-20T10:00:00+00:00"
        assert len(out["matches"]) == 2

    def test_changeset_failure_leaves_candidate_undated(self, cfg, server):
        """A failed changeset read only drops that candidate's timestamp."""
        server.add("POST", "/api/interpreter", overpass([
            {"type": "node", "id": 111, "lat": 1.0, "lon": 1.0, "tags": {"name": "A"}},
            {"type": "node", "id": 222, "lat": 1.0, "lon": 1.0, "tags": {"name": "B"}},
        ]))
        server.add("GET", "/node/111", make_response(200, node_xml(111, 1, 1.0, 1.0, {"name": "A"}, changeset=5001)))
        server.add("GET", "/node/222", make_response(200, node_xml(222, 1, 1.0, 1.0, {"name": "B"}, changeset=5002)))
        # /changeset/5001 unrouted -> 404
        server.add("GET", "/changeset/5002", make_response(200, changeset_xml(5002, "2024-01-10T10:00:00Z")))

        result = find_duplicates(cfg, 1.0, 1.0, "A")
        assert [m.osm_id for m in result.matches] == [222, 111]
        assert result.matches[1].last_updated is None
        assert result.matches[1].changeset_id == 5001

    def test_element_fetch_failure_keeps_overpass_data(self, cfg, server):
        """A failed element read keeps the Overpass tags."""
        server.add("POST", "/api/interpreter", overpass([
            {"type": "way", "id": 333, "center": {"lat": 1.0, "lon": 2.0},
             "tags": {"name": "Great Coffee", "payment:bitcoin": "yes"}},
        ]))
        result = find_duplicates(cfg, 1.0, 2.0, "Great Coffee")
        assert result.is_duplicate is True
        assert result.primary.osm_type is ElementType.WAY
        assert result.primary.name == "Great Coffee"
        assert result.primary.last_updated is None
        assert result.primary.match_reason is MatchReason.BITCOIN_TAGGED

    def test_way_enriched(self, cfg, server):
        """A way is enriched from the way endpoint."""
        server.add("POST", "/api/interpreter", overpass([
            {"type": "way", "id": 333, "center": {"lat": 1.0, "lon": 2.0}, "tags": {"name": "X"}},
        ]))
        server.add("GET", "/way/333", make_response(200, way_xml(333, 4, [1, 2, 3], {"name": "Great Coffee"}, changeset=7)))
        server.add("GET", "/changeset/7", make_response(200, changeset_xml(7, "2024-03-01T00:00:00Z")))
        result = find_duplicates(cfg, 1.0, 2.0, "Great Coffee")
        assert result.primary.name == "Great Coffee"
        assert result.primary.coordinates == (1.0, 2.0)
        assert result.primary.last_updated == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_overpass_error_fails_open(self, cfg, server):
        """An Overpass error status means not a duplicate."""
        server.add("POST", "/api/interpreter", make_response(504, "Gateway Timeout"))
        result = find_duplicates(cfg, -37.8136, 144.9631, "Test Cafe")
        assert result.is_duplicate is False
        assert result.error == "Check failed"
        assert result.to_dict() == {"isDuplicate": False, "error": "Check failed"}

    def test_overpass_transport_error_fails_open(self, cfg, server):
        """A transport error means not a duplicate."""
        server.add("POST", "/api/interpreter", requests.ConnectionError("down"))
        result = find_duplicates(cfg, -37.8136, 144.9631)
        assert result.is_duplicate is False
        assert result.error == "Check failed"

    def test_bad_json_fails_open(self, cfg, server):
        """A non-JSON Overpass body means not a duplicate."""
        server.add("POST", "/api/interpreter", make_response(200, "<html>"))
        assert find_duplicates(cfg, 0.0, 0.0).error == "Check failed"

    def test_reads_are_anonymous(self, cfg, server):
        """The duplicate check never asks for a token."""
        server.add("POST", "/api/interpreter", overpass([
            {"type": "node", "id": 111, "lat": 1.0, "lon": 1.0, "tags": {"name": "A"}},
        ]))
        server.add("GET", "/node/111", make_response(200, node_xml(111, 1, 1.0, 1.0, {"name": "A"}, changeset=5001)))
        find_duplicates(cfg, 1.0, 1.0, "A")
        assert server.calls_to("POST", "/oauth2/token") == []
