#!/usr/bin/env python3
"""
Portfolio Risk Engine - Command Line Interface

Usage:
    portfolio-risk assess --input <file> [--config <file>] [--seed <n>] [--output <file>]
    portfolio-risk stress --input <file> [--config <file>]
    portfolio-risk monitor --input <file> [--config <file>]
    portfolio-risk size --symbol <ticker> --portfolio-value <v> --risk-tolerance <f> [market flags]
    portfolio-risk stop-loss --symbol <ticker> --entry-price <p> --current-price <p> --age-hours <h>
    portfolio-risk config [--show | --generate <file>]
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import yaml

from . import __version__
from .config import Config, load_config, setup_logging
from .engine import create_risk_engine
from .models import MarketConditions, RiskAssessmentInput
from .risk.volatility import HistoricalVolatilityProvider


def load_snapshot(path: str) -> RiskAssessmentInput:
    """Read a portfolio snapshot from a JSON or YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f) or {}
        else:
            data = json.load(f)

    return RiskAssessmentInput.from_dict(data)


def market_conditions_from_args(args) -> MarketConditions:
    """Market conditions from --vix/--trend/--liquidity flags."""
    return MarketConditions(
        volatility_index=args.vix,
        market_trend=args.trend,
        liquidity_conditions=args.liquidity,
    )


def emit(payload: Dict[str, Any], output: Optional[str] = None) -> None:
    """Print a JSON payload, or write it to a file."""
    text = json.dumps(payload, indent=2, default=str)
    if output:
        Path(output).write_text(text + "\n")
        print(f"Results saved to: {output}")
    else:
        print(text)


def cmd_assess(args, config: Config) -> int:
    """Run a full risk assessment."""
    engine = create_risk_engine(config=config)
    snapshot = load_snapshot(args.input)

    rng = np.random.default_rng(args.seed) if args.seed is not None else None
    metrics = engine.assess_portfolio_risk(snapshot, rng=rng)

    if args.json or args.output:
        emit(metrics.to_dict(), args.output)
        return 0

    risk = metrics.portfolio_risk
    mc = metrics.scenario_analysis.monte_carlo_results

    print(f"\n{'='*60}")
    print("PORTFOLIO RISK ASSESSMENT")
    print(f"{'='*60}\n")
    print(f"Portfolio value:     ${snapshot.portfolio_value:>14,.2f}")
    print(f"95% VaR:             ${risk.var_95:>14,.2f}")
    print(f"99% VaR:             ${risk.var_99:>14,.2f}")
    print(f"Expected shortfall:  ${risk.expected_shortfall:>14,.2f}")
    print(f"Correlation risk:     {risk.correlation_risk:>14.4f}")
    print(f"Concentration (HHI):  {risk.concentration_index:>14.4f}")
    print(f"Sharpe / Sortino:     {risk.sharpe_ratio:>6.2f} / {risk.sortino_ratio:.2f}")

    print(f"\n{'Symbol':<10} {'Individual':>14} {'Contribution':>14} {'Weight':>8} {'Corr':>6}")
    for p in metrics.position_risks:
        print(
            f"{p.symbol:<10} {p.individual_risk:>14,.2f} {p.contribution_to_risk:>14,.2f} "
            f"{p.concentration:>8.2%} {p.correlation_risk:>6.2f}"
        )

    print("\nMonte Carlo returns:")
    print(f"  worst 1% {mc.worst_case_1:+.4%}   worst 5% {mc.worst_case_5:+.4%}")
    print(f"  expected {mc.expected_return:+.4%}")
    print(f"  best 95% {mc.best_case_95:+.4%}   best 99% {mc.best_case_99:+.4%}")
    return 0


def cmd_stress(args, config: Config) -> int:
    """Run the stress scenario library."""
    engine = create_risk_engine(config=config)
    results = engine.perform_stress_testing(load_snapshot(args.input))

    if args.json:
        emit({"stress_test_results": [r.to_dict() for r in results]})
        return 0

    print(f"{'Scenario':<32} {'Impact':>14} {'Prob':>6}")
    for r in results:
        print(f"{r.scenario:<32} {r.portfolio_impact:>14,.2f} {r.probability:>6.2f}")
    return 0


def cmd_monitor(args, config: Config) -> int:
    """List risk alerts. Exit code 2 when any alert requires action."""
    engine = create_risk_engine(config=config)
    alerts = engine.monitor_risks(load_snapshot(args.input))

    if args.json:
        emit({"alerts": [a.to_dict() for a in alerts]})
    elif not alerts:
        print("No risk alerts")
    else:
        for a in alerts:
            print(f"[{a.severity.value.upper():<8}] {a.type.value:<14} {a.message}")
            for rec in a.recommendations:
                print(f"{'':<11}- {rec}")

    return 2 if any(a.requires_action for a in alerts) else 0


def cmd_size(args, config: Config) -> int:
    """Recommend a position size."""
    provider = None
    if args.volatility is not None:
        provider = HistoricalVolatilityProvider({args.symbol: args.volatility})
    engine = create_risk_engine(config=config, volatility_provider=provider)

    sizing = engine.calculate_dynamic_position_size(
        args.symbol, args.portfolio_value, args.risk_tolerance, market_conditions_from_args(args)
    )

    if args.json:
        emit(sizing.to_dict())
        return 0

    ci = sizing.confidence_interval
    print(f"Recommended size for {sizing.symbol}: ${sizing.recommended_size:,.2f}")
    print(f"  Max position:   ${sizing.max_position:,.2f}")
    print(f"  Risk budget:    {sizing.risk_budget:.2f}%")
    print(f"  Interval:       ${ci.lower:,.2f} - ${ci.upper:,.2f}")
    for line in sizing.reasoning:
        print(f"  {line}")
    return 0


def cmd_stop_loss(args, config: Config) -> int:
    """Recommend a stop-loss level."""
    provider = None
    if args.volatility is not None:
        provider = HistoricalVolatilityProvider({args.symbol: args.volatility})
    engine = create_risk_engine(config=config, volatility_provider=provider)

    stop = engine.calculate_adaptive_stop_loss(
        args.symbol,
        args.entry_price,
        args.current_price,
        args.age_hours,
        market_conditions_from_args(args),
    )

    if args.json:
        emit(stop.to_dict())
        return 0

    print(f"Stop-loss for {stop.symbol}: {stop.new_stop_loss:,.4f} ({stop.stop_loss_type.value})")
    print(f"  Current stop:   {stop.current_stop_loss:,.4f}")
    print(f"  Risk ratio:     {stop.risk_ratio:.4f}")
    print(f"  Time decay:     {stop.time_decay:.4f}")
    for name, level in stop.candidates.items():
        print(f"  {name:<12}    {level:,.4f}")
    return 0


def cmd_config(args, config: Config) -> int:
    """Manage configuration."""
    if args.generate:
        Config().save(args.generate)
        print(f"Configuration template saved to: {args.generate}")
        return 0

    if args.show:
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    print("Configuration management:")
    print("  --show          Show current configuration")
    print("  --generate FILE Generate configuration template")
    return 0


def _add_market_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--vix", type=float, default=20.0, help="Volatility index (default: 20)")
    parser.add_argument("--trend", choices=["bull", "bear", "sideways"], default="sideways",
                        help="Market trend (default: sideways)")
    parser.add_argument("--liquidity", choices=["high", "medium", "low"], default="medium",
                        help="Liquidity conditions (default: medium)")
    parser.add_argument("--volatility", type=float,
                        help="Symbol volatility (default: configured baseline)")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="portfolio-risk",
        description="Portfolio Risk Engine - VaR, stress tests, sizing and stop-losses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full risk report with a reproducible Monte Carlo run
  portfolio-risk assess --input portfolio.json --seed 42

  # Concentration and other alerts
  portfolio-risk monitor --input portfolio.yaml

  # Position size under a bear market
  portfolio-risk size --symbol AAPL --portfolio-value 100000 --risk-tolerance 0.5 --trend bear

  # Stop-loss for a day-old position
  portfolio-risk stop-loss --symbol AAPL --entry-price 100 --current-price 104 --age-hours 24

  # Generate config template
  portfolio-risk config --generate config.yaml
        """
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--debug", action="store_true", help="Debug output")
    parser.add_argument("--config", "-c", help="Config file (JSON/YAML)")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    assess_parser = subparsers.add_parser("assess", help="Full portfolio risk assessment")
    assess_parser.add_argument("--input", "-i", required=True, help="Portfolio snapshot (JSON/YAML)")
    assess_parser.add_argument("--seed", type=int, help="Monte Carlo seed")
    assess_parser.add_argument("--output", "-o", help="Output file for results (JSON)")

    stress_parser = subparsers.add_parser("stress", help="Run stress scenarios")
    stress_parser.add_argument("--input", "-i", required=True, help="Portfolio snapshot (JSON/YAML)")

    monitor_parser = subparsers.add_parser("monitor", help="Check risk alerts")
    monitor_parser.add_argument("--input", "-i", required=True, help="Portfolio snapshot (JSON/YAML)")

    size_parser = subparsers.add_parser("size", help="Dynamic position sizing")
    size_parser.add_argument("--symbol", "-s", required=True, help="Ticker symbol")
    size_parser.add_argument("--portfolio-value", type=float, required=True, help="Portfolio value")
    size_parser.add_argument("--risk-tolerance", type=float, required=True,
                             help="Risk tolerance as a fraction (e.g. 0.5)")
    _add_market_flags(size_parser)

    stop_parser = subparsers.add_parser("stop-loss", help="Adaptive stop-loss")
    stop_parser.add_argument("--symbol", "-s", required=True, help="Ticker symbol")
    stop_parser.add_argument("--entry-price", type=float, required=True, help="Entry price")
    stop_parser.add_argument("--current-price", type=float, required=True, help="Current price")
    stop_parser.add_argument("--age-hours", type=float, default=0.0,
                             help="Hours since entry (default: 0)")
    _add_market_flags(stop_parser)

    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_parser.add_argument("--show", action="store_true", help="Show current config")
    config_parser.add_argument("--generate", metavar="FILE", help="Generate config template")

    return parser


COMMANDS = {
    "assess": cmd_assess,
    "stress": cmd_stress,
    "monitor": cmd_monitor,
    "size": cmd_size,
    "stop-loss": cmd_stop_loss,
    "config": cmd_config,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)

        if args.debug:
            level = "DEBUG"
        elif args.verbose:
            level = "INFO"
        else:
            level = "WARNING"
        setup_logging(replace(config.logging, level=level))

        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        if args.debug:
            raise
        logging.getLogger(__name__).debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
