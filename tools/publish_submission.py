#!/usr/bin/env python3
"""
Publish one approved submission to OpenStreetMap.

The submission file is the validated form payload (camelCase keys, e.g.
businessName, category, latitude, longitude, bitcoinDetails).

- --check-duplicates runs the duplicate check first and, if it finds a
  match, updates that element instead of creating a new node.
- If an update target turns out to be deleted, the submission is created
  as a new node instead.
- Every successful publish is appended to the upload record file.

Usage:
    python tools/publish_submission.py submission.json --check-duplicates
    python tools/publish_submission.py submission.json --strategy update --target-type way --target-id 12345
"""
import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from abm.core.config import load_config
from abm.core.errors import ElementGone, PublishFailed
from abm.core.models import ElementRef, ElementType, PublishStrategy, SubmissionFields
from abm.core.publisher import publish
from abm.domain.dedup import find_duplicates
from abm.utils.files import load_json, append_json_record
from abm.utils.log import log_line, setup_logging

def choose_target(cfg: Dict[str, Any], fields: SubmissionFields) -> Optional[ElementRef]:
    if fields.latitude is None or fields.longitude is None:
        return None
    check = find_duplicates(cfg, fields.latitude, fields.longitude, fields.business_name)
    if not check.is_duplicate or check.primary is None:
        return None
    return ElementRef(id=check.primary.osm_id, type=check.primary.osm_type)

def run(cfg: Dict[str, Any], fields: SubmissionFields, strategy: PublishStrategy,
        target: Optional[ElementRef], record_path: Optional[Path]) -> int:
    try:
        try:
            result = publish(cfg, fields, strategy, target)
        except PublishFailed as e:
            if strategy is PublishStrategy.UPDATE and isinstance(e.cause, ElementGone):
                log_line(f"TOOL | update target gone, creating new node | target={target}", "WARN")
                result = publish(cfg, fields, PublishStrategy.CREATE)
            else:
                raise
    except PublishFailed as e:
        print(json.dumps({"success": False, "error": str(e), "changesetId": e.changeset_id}, indent=2))
        return 1

    record = result.to_record()
    if record_path is not None:
        append_json_record(record_path, record)
    print(json.dumps({"success": True, **record}, ensure_ascii=False, indent=2))
    return 0

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Publish a submission to OpenStreetMap")
    parser.add_argument("submission", help="JSON file with the validated form fields")
    parser.add_argument("--strategy", choices=[s.value for s in PublishStrategy], default=None)
    parser.add_argument("--target-type", choices=[t.value for t in ElementType], default="node")
    parser.add_argument("--target-id", type=int, default=None)
    parser.add_argument("--check-duplicates", action="store_true")
    parser.add_argument("--record", default=str(ROOT / "uploads.json"))
    parser.add_argument("--config", default=str(ROOT / "config.json"))
    parser.add_argument("--secrets", default=str(ROOT / "secrets.json"))
    parser.add_argument("--log-dir", default=None)
    args = parser.parse_args(argv)

    if args.log_dir:
        setup_logging(Path(args.log_dir))

    cfg = load_config(Path(args.config), Path(args.secrets))
    data = load_json(Path(args.submission), None)
    if not isinstance(data, dict):
        print(f"Cannot read submission: {args.submission}", file=sys.stderr)
        return 2
    fields = SubmissionFields.from_dict(data)

    target = None
    if args.target_id is not None:
        target = ElementRef(id=args.target_id, type=ElementType(args.target_type))
    elif args.check_duplicates:
        target = choose_target(cfg, fields)

    if args.strategy:
        strategy = PublishStrategy(args.strategy)
    else:
        strategy = PublishStrategy.UPDATE if target else PublishStrategy.CREATE

    if strategy is PublishStrategy.UPDATE and target is None:
        print("--strategy update needs --target-id or a duplicate match", file=sys.stderr)
        return 2

    return run(cfg, fields, strategy, target, Path(args.record) if args.record else None)

if __name__ == "__main__":
    sys.exit(main())
