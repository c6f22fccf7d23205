#!/usr/bin/env python3
"""Simulate buyers moving through the marketplace.

This script runs the buyer journey scenario and prints:
- Offer statistics and store counts
- Portfolios of a few buyers with verified payments
- Optionally, the generated records (--show-records)

With --kafka-bootstrap, the final availability of every property is also
published to the availability topic.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from marketplace_engine.config import EngineConfig
from marketplace_engine.exceptions import SinkError
from marketplace_engine.logging import get_logger, setup_logging
from marketplace_engine.scenarios import BuyerJourneyScenario
from marketplace_engine.sinks import ConsoleSink, KafkaSink

logger = get_logger(__name__)


def publish_availability(scenario: BuyerJourneyScenario, config: EngineConfig) -> int:
    """Publish the last known availability of each property to Kafka."""
    sink = KafkaSink(
        config.kafka,
        topic=config.dispatch.availability_topic,
        flush_timeout=config.dispatch.flush_timeout,
    )
    published = 0
    try:
        for property_id, available in scenario.availability.items():
            try:
                sink.notify_availability_changed(property_id, available)
            except SinkError as exc:
                logger.error("Could not publish %s: %s", property_id, exc)
                continue
            published += 1
    finally:
        sink.close()
    return published


def print_portfolios(scenario: BuyerJourneyScenario, limit: int) -> None:
    """Print the portfolio of the first ``limit`` buyers that have one."""
    console = ConsoleSink(pretty=True)
    shown = 0
    for user_id in scenario.store.ledgers:
        entries = scenario.service.get_portfolio(user_id)
        if not entries:
            continue
        console.write_batch(f"portfolio {user_id}", entries)
        shown += 1
        if shown >= limit:
            break


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Simulate marketplace buyer journeys")
    parser.add_argument(
        "--buyers",
        type=int,
        default=50,
        help="Number of buyers to simulate (default: 50)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed (default: SEED env)")
    parser.add_argument(
        "--approval-rate",
        type=float,
        default=0.70,
        help="Probability a reviewer approves an offer (default: 0.70)",
    )
    parser.add_argument(
        "--portfolios",
        type=int,
        default=3,
        help="Number of buyer portfolios to print (default: 3)",
    )
    parser.add_argument(
        "--show-records",
        action="store_true",
        help="Print every generated ledger, offer and payment",
    )
    parser.add_argument(
        "--kafka-bootstrap",
        type=str,
        default=None,
        help="Publish final property availability to this Kafka cluster",
    )
    args = parser.parse_args()

    config = EngineConfig.from_env()
    setup_logging(config.log_level, config.log_format)
    if args.kafka_bootstrap:
        config.kafka.bootstrap_servers = args.kafka_bootstrap
    seed = args.seed if args.seed is not None else config.seed

    logger.info("=" * 60)
    logger.info("Marketplace Simulation")
    logger.info("=" * 60)
    logger.info("Buyers: %d", args.buyers)
    logger.info("Seed: %s", seed)

    scenario = BuyerJourneyScenario(
        num_buyers=args.buyers,
        approval_rate=args.approval_rate,
        config=config,
        seed=seed,
    )
    store = scenario.generate()

    stats = scenario.service.get_offer_stats()
    print(f"\n{'='*60}")
    print("Offer statistics")
    print("=" * 60)
    print(f"  total:     {stats.total}")
    print(f"  pending:   {stats.pending}")
    print(f"  approved:  {stats.approved}")
    print(f"  rejected:  {stats.rejected}")
    print(f"  withdrawn: {stats.withdrawn}")
    print(f"  expired:   {stats.expired}")
    for name, count in store.summary().items():
        print(f"  {name}: {count}")

    print_portfolios(scenario, args.portfolios)

    if args.show_records:
        console = ConsoleSink(pretty=False, max_records=20)
        scenario.export([console])
        console.close()

    if args.kafka_bootstrap:
        published = publish_availability(scenario, config)
        logger.info("Published availability for %d properties", published)


if __name__ == "__main__":
    main()
