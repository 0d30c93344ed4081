from typing import Dict, Optional

from ..core.models import SubmissionFields
from ..utils.time import today_iso

# field -> OSM key, written only when the field has a value
ADDRESS_KEYS = (
    ("housenumber", "addr:housenumber"),
    ("street", "addr:street"),
    ("suburb", "addr:suburb"),
    ("postcode", "addr:postcode"),
    ("state", "addr:state"),
    ("city", "addr:city"),
)

# phone/website/email go under contact:* and the legacy bare key
CONTACT_KEYS = (
    ("phone", ("contact:phone", "phone")),
    ("website", ("contact:website", "website")),
    ("email", ("contact:email", "email")),
    ("facebook", ("contact:facebook",)),
    ("instagram", ("contact:instagram",)),
)

def _clean(value: Optional[str]) -> str:
    return str(value).strip() if value is not None else ""

def category_tag(category: Optional[str]) -> Optional[tuple]:
    """'shop=cafe' -> ('shop', 'cafe'); 'amenity=bar' -> ('amenity', 'bar'); 'bakery' -> ('shop', 'bakery')."""
    category = _clean(category)
    if not category:
        return None
    for key in ("shop", "amenity"):
        prefix = key + "="
        if category.startswith(prefix):
            value = category[len(prefix):].strip()
            return (key, value) if value else None
    return ("shop", category)

def build_tags_from_fields(fields: SubmissionFields, today: Optional[str] = None) -> Dict[str, str]:
    """
    Submission fields -> OSM tags. Empty fields never produce a tag;
    check_date is always stamped.
    """
    today = today or today_iso()
    tags: Dict[str, str] = {}

    name = _clean(fields.business_name)
    if name:
        tags["name"] = name

    cat = category_tag(fields.category)
    if cat:
        tags[cat[0]] = cat[1]

    description = _clean(fields.description)
    if description:
        tags["description"] = description

    for attr, key in ADDRESS_KEYS:
        value = _clean(getattr(fields, attr))
        if value:
            tags[key] = value

    for attr, keys in CONTACT_KEYS:
        value = _clean(getattr(fields, attr))
        if value:
            for key in keys:
                tags[key] = value

    opening_hours = _clean(fields.opening_hours)
    if opening_hours:
        tags["opening_hours"] = opening_hours
    wheelchair = _clean(fields.wheelchair)
    if wheelchair:
        tags["wheelchair"] = wheelchair

    tags["check_date"] = today

    btc = fields.bitcoin
    if btc:
        if btc.on_chain:
            tags["currency:XBT"] = "yes"
            tags["payment:onchain"] = "yes"
            tags["check_date:currency:XBT"] = today
        if btc.lightning:
            tags["payment:lightning"] = "yes"
        if btc.lightning_contactless:
            tags["payment:lightning_contactless"] = "yes"
        operator = _clean(btc.lightning_operator)
        if operator:
            tags["payment:lightning:operator"] = operator
        other = [o.strip() for o in (btc.other or []) if o and o.strip()]
        if other:
            tags["payment:bitcoin:other"] = ";".join(other)

    return tags

def merge_tags(existing: Dict[str, str], new: Dict[str, str]) -> Dict[str, str]:
    """Existing tags overlaid with new ones: new wins on collision, the rest survive untouched."""
    merged = dict(existing)
    merged.update(new)
    return merged
