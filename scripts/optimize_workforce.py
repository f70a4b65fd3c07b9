#!/usr/bin/env python3
"""
Recommend how many delivery agents a dark store needs.

The facility is taken from --lat/--lng, from the scenario's `facility`, or by
running placement and picking --facility-id (default 0). For every agent count
in --agent-range the dispatch simulation is repeated --runs-per times; the
configuration with the lowest average cost per delivered order is recommended.

Usage:

  python scripts/optimize_workforce.py --scenario examples/chandigarh \
    --agent-range 1-8 --runs-per 5 --seed 7 --workers 4

Prints a JSON summary to stdout and exits with code 0 when a recommendation
exists, 2 when no configuration delivered any orders, 1 on input errors.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from darksim.config.loaders import load_scenario
from darksim.errors import DarksimError
from darksim.geo.boundary import Point
from darksim.logging import get_logger, init_logging
from darksim.optimization import WorkforceOptimizer
from darksim.placement import place_facilities, select_facility
from darksim.utils import parse_range

logger = get_logger("darksim.scripts.optimize_workforce")


def main() -> None:
    p = argparse.ArgumentParser(description="Sweep agent counts and recommend the cheapest staffing level")
    p.add_argument("--scenario", default=None, help="scenario JSON file or directory")
    p.add_argument("--boundary", default=None, help="boundary GeoJSON (overrides the scenario)")
    p.add_argument("--lat", type=float, default=None, help="facility latitude")
    p.add_argument("--lng", type=float, default=None, help="facility longitude")
    p.add_argument("--facility-id", type=int, default=None, help="index into the placed facilities")
    p.add_argument("--agent-range", type=str, default=None, help="e.g. 1-10")
    p.add_argument("--runs-per", type=int, default=None)
    p.add_argument("--orders", type=int, default=None, help="orders generated per run")
    p.add_argument("--sim-time", type=int, default=None, help="simulated minutes per run")
    p.add_argument("--sla", type=float, default=None, help="delivery-time target in minutes")
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--workers", type=int, default=None)
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

        sim = cfg.simulation
        if args.orders is not None:
            sim.orders_per_run = args.orders
        if args.sim_time is not None:
            sim.max_sim_time_min = args.sim_time
        if args.sla is not None:
            sim.sla_minutes = args.sla
        sim.validate()

        opt = cfg.optimization
        agent_counts = parse_range(args.agent_range) if args.agent_range else opt.agent_counts
        runs_per = args.runs_per if args.runs_per is not None else opt.runs_per_count
        seed = args.seed if args.seed is not None else opt.base_seed

        if args.lat is not None and args.lng is not None:
            facility = Point(lat=args.lat, lng=args.lng)
        elif cfg.facility is not None and args.facility_id is None:
            facility = cfg.facility
        else:
            placement = place_facilities(boundary, cfg.demand, seed=seed)
            chosen = select_facility(
                placement.facilities,
                args.facility_id if args.facility_id is not None else cfg.facility_id,
            )
            logger.info("Optimizing for %s at (%.5f, %.5f)", chosen.name, chosen.lat, chosen.lng)
            facility = chosen.location

        optimizer = WorkforceOptimizer(
            boundary,
            base_seed=seed,
            max_workers=args.workers if args.workers is not None else opt.max_workers,
            min_completion_rate=opt.min_completion_rate,
            min_sla_pct=opt.min_sla_pct,
        )
        agent_range = (agent_counts[0], agent_counts[-1]) if agent_counts else ()
        result = optimizer.optimize(facility, agent_range, runs_per, sim)
    except (DarksimError, FileNotFoundError, ValueError) as e:
        print(json.dumps({"error": str(e)}))
        sys.exit(1)

    payload = {
        "scenario": cfg.name,
        "sla_minutes": sim.sla_minutes,
        "orders_per_run": sim.orders_per_run,
        "max_sim_time_min": sim.max_sim_time_min,
        **result.to_dict(),
    }
    text = json.dumps(payload, indent=2)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        logger.info("Wrote optimization summary to %s", args.output)
    print(text)
    sys.exit(0 if result.is_feasible else 2)


if __name__ == "__main__":
    main()
