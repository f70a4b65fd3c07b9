#!/usr/bin/env python3
"""
Place dark stores over a service area by clustering synthetic demand.

Loads a scenario (or just a boundary GeoJSON), samples background and hotspot
demand inside the boundary, runs k-means and prints the facilities together
with per-facility coverage statistics as JSON.

Usage:

  python scripts/place_facilities.py --scenario examples/chandigarh --k 5 --seed 42
  python scripts/place_facilities.py --boundary area.geojson --k 3

Exits with code 0 on success, 1 on configuration errors.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from darksim.config.loaders import load_scenario
from darksim.errors import DarksimError
from darksim.logging import get_logger, init_logging
from darksim.placement import place_facilities

logger = get_logger("darksim.scripts.place_facilities")


def main() -> None:
    p = argparse.ArgumentParser(description="Place dark stores by k-means clustering of demand")
    p.add_argument("--scenario", default=None, help="scenario JSON file or directory")
    p.add_argument("--boundary", default=None, help="boundary GeoJSON (overrides the scenario)")
    p.add_argument("--k", type=int, default=None, help="number of facilities")
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--background", type=int, default=None, help="background demand points")
    p.add_argument("--hotspot", type=int, default=None, help="hotspot demand points")
    p.add_argument("--output", default=None, help="also write the JSON summary to this file")
    p.add_argument("--log-level", default=None)
    args = p.parse_args()

    init_logging(args.log_level or "INFO")
    try:
        if not args.scenario and not args.boundary:
            p.error("one of --scenario or --boundary is required")
        cfg, boundary = load_scenario(args.scenario, boundary_file=args.boundary)
        if args.log_level is None:
            init_logging(cfg.log_level)

        demand = cfg.demand
        if args.background is not None:
            demand.background_count = args.background
        if args.hotspot is not None:
            demand.hotspot_count = args.hotspot
        demand.validate()

        result = place_facilities(boundary, demand, k=args.k, seed=args.seed)
    except (DarksimError, FileNotFoundError) as e:
        print(json.dumps({"error": str(e)}))
        sys.exit(1)

    payload = {"scenario": cfg.name, **result.to_dict()}
    text = json.dumps(payload, indent=2)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        logger.info("Wrote placement summary to %s", args.output)
    print(text)
    sys.exit(0)


if __name__ == "__main__":
    main()
