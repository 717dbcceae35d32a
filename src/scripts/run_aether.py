#!/usr/bin/env python3
"""
Aether Simulation Runner

Runs (or resumes) a single source Aether simulation and writes a backup.
"""

import argparse
import sys
from pathlib import Path

# Add package root to path
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from aether_sim import AetherConfig, AetherSimulator, utils
from aether_sim.aether import parse_initial_value
from aether_sim.values import VALUE_KINDS


def build_config(args) -> AetherConfig:
    params = utils.load_params(args.params) if args.params else {}
    if args.dimension is not None:
        params["dimension"] = args.dimension
    if args.initial_value is not None:
        params["initial_value"] = parse_initial_value(args.initial_value)
    if args.value_type is not None:
        params["value_type"] = args.value_type
    if args.track_compliance:
        params["track_compliance"] = True
    return AetherConfig.from_dict(params)


def main():
    parser = argparse.ArgumentParser(
        description="Run a single source Aether simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--dimension",
        type=int,
        default=None,
        help="Grid dimension (default: 2)",
    )
    parser.add_argument(
        "--initial-value",
        type=str,
        default=None,
        help="Source value: integer, fraction like 3/2, or true/false (default: 1000)",
    )
    parser.add_argument(
        "--value-type",
        choices=sorted(VALUE_KINDS),
        default=None,
        help="Cell value representation (default: int64)",
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=1000,
        help="Maximum number of steps to run (default: 1000)",
    )
    parser.add_argument(
        "--params",
        type=str,
        default=None,
        help="JSON or TOML parameter file; command line flags take precedence",
    )
    parser.add_argument(
        "--resume",
        type=str,
        default=None,
        help="Backup .npz to continue from",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Output .npz file path (auto-generated if not provided)",
    )
    parser.add_argument(
        "--track-compliance",
        action="store_true",
        help="Track toppling alternation compliance",
    )

    args = parser.parse_args()
    config = build_config(args)

    if args.resume:
        explicit = args.params or args.dimension or args.initial_value or args.value_type
        sim = AetherSimulator.from_backup(
            args.resume,
            config if explicit else None,
            track_compliance=config.track_compliance,
        )
        print(f"Resumed {args.resume} at step {sim.current_step()}")
    else:
        sim = AetherSimulator(config)

    sim.run(args.steps)

    if sim.compliance is not None:
        print(f"Compliance at step {sim.compliance.step}: "
              f"{sim.compliance.non_compliant_count()} non-compliant cells")

    if args.out is None:
        output_dir = Path("results")
        output_dir.mkdir(exist_ok=True)
        args.out = str(
            output_dir
            / f"aether_{sim.dimension}d_{sim.kind.tag}_{sim.source_text.replace('/', 'over')}"
            f"_{sim.current_step()}_{utils.now_str()}.npz"
        )

    sim.save(args.out)
    print(f"Saved backup to {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
