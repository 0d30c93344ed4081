#!/usr/bin/env python3
"""
Run the pre-publish duplicate check for one location and print the result as JSON.

Usage:
    python tools/check_duplicate.py --lat -37.8136 --lon 144.9631 --name "Test Cafe"
"""
import argparse
import json
import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from abm.core.config import load_config
from abm.domain.dedup import find_duplicates

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check OSM for an existing listing of a business")
    parser.add_argument("--lat", type=float, required=True)
    parser.add_argument("--lon", type=float, required=True)
    parser.add_argument("--name", default="")
    parser.add_argument("--config", default=str(ROOT / "config.json"))
    parser.add_argument("--secrets", default=str(ROOT / "secrets.json"))
    args = parser.parse_args(argv)

    cfg = load_config(Path(args.config), Path(args.secrets))
    result = find_duplicates(cfg, args.lat, args.lon, args.name)
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0

if __name__ == "__main__":
    sys.exit(main())
