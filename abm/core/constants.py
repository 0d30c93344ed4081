# Endpoints (overridable through config.json / environment)
OSM_API_URL = "https://api.openstreetmap.org/api/0.6"
OSM_AUTH_URL = "https://www.openstreetmap.org/oauth2/token"
OSM_WEB_URL = "https://www.openstreetmap.org"
OVERPASS_URL = "https://overpass-api.de/api/interpreter"

# Timeouts (seconds, client side)
OSM_TIMEOUT_S = 30
OVERPASS_TIMEOUT_S = 45

# Changeset provenance
GENERATOR = "Aussie-Bitcoin-Merchants"
CREATED_BY = "Aussie Bitcoin Merchants"
HASHTAGS = "#btcmap"
COMMENT_CREATE = "Added Bitcoin-accepting business via Aussie Bitcoin Merchants"
COMMENT_UPDATE = "Updated Bitcoin-accepting business via Aussie Bitcoin Merchants"

# Duplicate check
DUPLICATE_RADIUS_M = 25
OVERPASS_QUERY_TIMEOUT_S = 25
ENRICH_WORKERS = 8
MIN_KEYWORD_LEN = 3

# Three conventions for "this place takes bitcoin"
BITCOIN_TAGS = ("currency:XBT", "payment:bitcoin", "bitcoin:accepts")

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
    "been", "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "could", "should", "may", "might", "must", "can", "this",
    "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
    "s", "t", "ll", "ve", "re", "d", "m", "n", "shop", "store", "business",
})
