"""brickworks.cli

Command line interface entry point for brickworks.

Design constraints:
- argparse-based.
- Lazy imports: do not import the ordering engine at parse time.
- Secrets come from the environment, never from flags.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

EPILOG = "Credentials: BRICKWORKS_FACTORY__URL, BRICKWORKS_FACTORY__EMAIL, BRICKWORKS_FACTORY__SECRET_KEY."


@dataclass(frozen=True)
class CliContext:
    repo_root: Path
    config_path: Path | None = None
    simulate: bool = False


@dataclass
class Engine:
    """Everything a command needs, wired from config."""

    config: Any
    transport: Any
    lifecycle: Any
    procurement: Any
    ledger: Any


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="brickworks",
        description="Mine factory credits, order bricks, verify every delivered unit.",
        epilog=EPILOG,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit.")
    parser.add_argument("--config", type=Path, default=None, help="YAML config file (default: config/default.yaml).")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Run against an in-memory factory instead of the network.",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("balance", help="Print the account balance")

    p_refill = sub.add_parser("refill", help="Mine credits until the balance reaches an amount")
    p_refill.add_argument("--amount", type=float, default=None, help="Target balance (default: ordering.refill_amount).")

    p_buy = sub.add_parser("buy", help="Order one reference")
    p_buy.add_argument("reference", help='Brick reference, e.g. "2-2/c9cae2".')
    p_buy.add_argument("quantity", type=int)

    p_restock = sub.add_parser("restock", help="Order every listed reference through the batch coordinator")
    p_restock.add_argument("--references", type=Path, required=True, help="File with one reference per line.")
    p_restock.add_argument("--quantity", type=int, default=None, help="Units per reference (default: ordering.restock_quantity).")

    p_pro = sub.add_parser("proactive", help="Top low-stock references up to a target")
    p_pro.add_argument("--stock", type=Path, required=True, help="YAML/JSON mapping of reference -> units on hand.")
    p_pro.add_argument("--target", type=int, default=None, help="Units per reference after restocking (default: ordering.low_stock_target).")

    return parser


def _print_version() -> None:
    from brickworks import __version__

    print(f"brickworks v{__version__}")


def _load_config(ctx: CliContext) -> Any:
    from brickworks.core.config import Config

    if ctx.config_path is not None:
        return Config.from_yaml(ctx.config_path)
    default = ctx.repo_root / "config" / "default.yaml"
    return Config.from_yaml(default) if default.exists() else Config()


def _build_engine(ctx: CliContext, cfg: Any, *, stock: dict[str, int] | None = None) -> Engine:
    from brickworks.core.client import ClientConfig, HttpTransport
    from brickworks.execution.delivery import DeliveryPoller, DeliveryProcessor
    from brickworks.execution.funding import ProofOfWorkFunding
    from brickworks.execution.lifecycle import OrderLifecycle
    from brickworks.execution.restock import Procurement
    from brickworks.security.pow import ProofOfWorkSolver
    from brickworks.security.verifier import BrickVerifier
    from brickworks.stock.sink import InMemoryStockLedger

    if ctx.simulate:
        from brickworks.simulator import FactorySimulator

        transport: Any = FactorySimulator(hash_algorithm=cfg.pow.hash_algorithm)
    else:
        transport = HttpTransport(ClientConfig.from_factory(cfg.require_factory()))

    solver = ProofOfWorkSolver(cfg.pow.hash_algorithm, check_interval=cfg.pow.cancel_check_interval)
    lifecycle = OrderLifecycle(
        transport,
        funding=ProofOfWorkFunding(solver),
        refill_amount=cfg.ordering.refill_amount,
    )
    ledger = InMemoryStockLedger(stock, low_stock_threshold=cfg.stock.low_stock_threshold)
    poller = DeliveryPoller(
        lifecycle,
        interval_s=0.0 if ctx.simulate else cfg.ordering.poll_interval_s,
        timeout_s=cfg.ordering.poll_timeout_s,
    )
    delivery = DeliveryProcessor(poller, BrickVerifier(transport), ledger)
    procurement = Procurement(
        lifecycle,
        ledger,
        delivery,
        batch_size=cfg.ordering.batch_size,
        funding_margin=cfg.ordering.funding_margin,
    )
    return Engine(
        config=cfg,
        transport=transport,
        lifecycle=lifecycle,
        procurement=procurement,
        ledger=ledger,
    )


def _read_references(path: Path) -> list[str]:
    refs: list[str] = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            refs.append(line)
    return refs


def _read_stock(path: Path) -> dict[str, int]:
    import yaml

    raw = yaml.safe_load(path.read_text()) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"stock file must contain a mapping: {path}")
    return {str(k): int(v) for k, v in raw.items()}


def _print_delivery(result: Any) -> None:
    print(f"- quote: {result.quote_id}")
    print(f"- accepted: {len(result.accepted)}")
    print(f"- rejected: {len(result.rejected)}")


def _cmd_balance(ctx: CliContext, args: argparse.Namespace, engine: Engine) -> int:
    print(engine.lifecycle.get_balance())
    return 0


def _cmd_refill(ctx: CliContext, args: argparse.Namespace, engine: Engine) -> int:
    target = args.amount if args.amount is not None else engine.lifecycle.refill_amount
    estimate = engine.lifecycle.recharge_account(target)
    print(f"balance estimate: {estimate}")
    return 0


def _cmd_buy(ctx: CliContext, args: argparse.Namespace, engine: Engine) -> int:
    from brickworks.stock.sink import normalize_reference

    result = engine.procurement.buy(normalize_reference(args.reference), args.quantity)
    print(f"ordered {args.quantity} x {args.reference} for {result.price}")
    _print_delivery(result.delivery)
    return 0 if not result.delivery.rejected else 1


def _cmd_restock(ctx: CliContext, args: argparse.Namespace, engine: Engine) -> int:
    from brickworks.stock.sink import normalize_reference

    refs = [normalize_reference(r) for r in _read_references(args.references)]
    quantity = args.quantity if args.quantity is not None else engine.config.ordering.restock_quantity
    report = engine.procurement.restock_all(refs, quantity)

    print(f"ordered groups: {len(report.ordered)}")
    print(f"units accepted: {report.units_accepted}")
    for ref, reason in sorted(report.dropped.items()):
        print(f"dropped {ref}: {reason}")
    for group in report.failed:
        print(f"failed group: {', '.join(sorted(group))}")
    errored = [o for o in report.ordered if o.error]
    for outcome in errored:
        print(f"paid but incomplete {outcome.quote_id}: {outcome.error}")
    return 0 if not report.dropped and not report.failed and not errored else 1


def _cmd_proactive(ctx: CliContext, args: argparse.Namespace, engine: Engine) -> int:
    target = args.target if args.target is not None else engine.config.ordering.low_stock_target
    result = engine.procurement.restock_low_stock(engine.ledger, target)
    if result is None:
        print("stock is healthy; nothing ordered")
        return 0
    for ref, qty in sorted(result.cart.items()):
        print(f"ordered {qty} x {ref}")
    _print_delivery(result.delivery)
    return 0 if not result.delivery.rejected else 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    ctx = CliContext(repo_root=_repo_root_from_cwd(), config_path=args.config, simulate=bool(args.simulate))

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace, Engine], int]] = {
        "balance": _cmd_balance,
        "refill": _cmd_refill,
        "buy": _cmd_buy,
        "restock": _cmd_restock,
        "proactive": _cmd_proactive,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    from brickworks.core.exceptions import BrickworksError
    from brickworks.core.logging_config import configure_logging

    try:
        cfg = _load_config(ctx)
        configure_logging(cfg.logging)
        stock = _read_stock(args.stock) if args.command == "proactive" else None
        engine = _build_engine(ctx, cfg, stock=stock)
        try:
            return int(fn(ctx, args, engine))
        finally:
            close = getattr(engine.transport, "close", None)
            if close is not None:
                close()
    except (BrickworksError, OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
