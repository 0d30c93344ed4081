import threading
from unittest.mock import Mock, patch

import pytest
import requests

from abm.adapters.osm_auth import reset_token_cache

API = "https://api.osm.test/api/0.6"
AUTH = "https://www.osm.test/oauth2/token"
WEB = "https://www.osm.test"
OVERPASS = "https://overpass.test/api/interpreter"


def make_response(status=200, text="", json_data=None):
    r = Mock()
    r.status_code = status
    r.text = text
    if json_data is None:
        r.json.side_effect = ValueError("not json")
    else:
        r.json.return_value = json_data
    return r


def node_xml(node_id, version, lat, lon, tags=None, changeset=12345, attr_order=None):
    attrs = {"id": node_id, "version": version, "lat": lat, "lon": lon, "changeset": changeset}
    order = attr_order or ["id", "version", "lat", "lon", "changeset"]
    head = " ".join(f'{k}="{attrs[k]}"' for k in order)
    tag_xml = "\n".join(f'    <tag k="{k}" v="{v}"/>' for k, v in (tags or {}).items())
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6" generator="test">
  <node {head}>
{tag_xml}
  </node>
</osm>"""


def way_xml(way_id, version, refs, tags=None, changeset=12345):
    nds = "\n".join(f'    <nd ref="{r}"/>' for r in refs)
    tag_xml = "\n".join(f'    <tag k="{k}" v="{v}"/>' for k, v in (tags or {}).items())
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6" generator="test">
  <way id="{way_id}" version="{version}" changeset="{changeset}">
{nds}
{tag_xml}
  </way>
</osm>"""


def changeset_xml(changeset_id, timestamp):
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6" generator="test">
  <changeset id="{changeset_id}" created_at="{timestamp}" closed_at="{timestamp}">
    <tag k="created_by" v="test"/>
    <tag k="comment" v="test changeset"/>
  </changeset>
</osm>"""


class FakeServer:
    """Answers requests.get/put/post by (method, URL suffix); unknown URLs get 404."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, method, url_suffix, response):
        self.routes[(method, url_suffix)] = response

    def handle(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((method, url, kwargs))
        for (m, suffix), response in self.routes.items():
            if m == method and url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        return make_response(404, "Not Found")

    def calls_to(self, method, url_suffix):
        return [c for c in self.calls if c[0] == method and c[1].endswith(url_suffix)]

    def body_of(self, method, url_suffix):
        data = self.calls_to(method, url_suffix)[-1][2].get("data")
        return data.decode("utf-8") if isinstance(data, bytes) else data


@pytest.fixture(autouse=True)
def fresh_token_cache():
    reset_token_cache()
    yield
    reset_token_cache()


@pytest.fixture
def cfg():
    return {
        "osm_api_url": API,
        "osm_auth_url": AUTH,
        "osm_web_url": WEB,
        "overpass_url": OVERPASS,
        "user_agent": "TestAgent",
        "generator": "Aussie-Bitcoin-Merchants",
        "created_by": "Aussie Bitcoin Merchants",
        "hashtags": "#btcmap",
        "osm_client_id": "test-client-id",
        "osm_client_secret": "test-client-secret",
        "osm_refresh_token": "test-refresh-token",
        "enrich_workers": 4,
    }


@pytest.fixture
def server():
    fake = FakeServer()
    fake.add("POST", "/oauth2/token", make_response(200, json_data={"access_token": "test-token"}))
    with patch.object(requests, "get", side_effect=lambda url, **kw: fake.handle("GET", url, **kw)), \
         patch.object(requests, "put", side_effect=lambda url, **kw: fake.handle("PUT", url, **kw)), \
         patch.object(requests, "post", side_effect=lambda url, **kw: fake.handle("POST", url, **kw)):
        yield fake
