#!/usr/bin/env python3
"""Simple CLI for running CCTP bridge operations locally"""

import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation
from typing import Optional

from cctp_bridge.config import settings
from cctp_bridge.core.bridge.constants import USDC_DECIMALS, resolve_chain
from cctp_bridge.core.bridge.errors import BridgeError
from cctp_bridge.core.bridge.fees import build_fee_breakdown
from cctp_bridge.core.bridge.models import BridgeProgressEvent, BridgeRequest
from cctp_bridge.core.bridge.orchestrator import get_bridge_orchestrator
from cctp_bridge.core.bridge.timing import estimate_for
from cctp_bridge.core.recovery import RecoverableError, UnrecoverableError
from cctp_bridge.logging_config import setup_logging


def parse_amount(value: str, usdc: bool = False) -> int:
    """Smallest units by default; whole USDC (e.g. ``1.5``) with ``usdc=True``"""
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}")
    if usdc:
        amount = amount * (Decimal(10) ** USDC_DECIMALS)
    if amount != amount.to_integral_value():
        raise argparse.ArgumentTypeError(f"Amount has more precision than USDC allows: {value}")
    return int(amount)


def format_usdc(units: int) -> str:
    return f"{Decimal(units) / (Decimal(10) ** USDC_DECIMALS):,.6f} USDC"


def print_event(event: BridgeProgressEvent) -> None:
    line = f"   ⏱  {event.timestamp:%H:%M:%S} {event.phase.value}"
    if event.tx_hash:
        line += f" tx={event.tx_hash}"
    if event.error:
        line += f" error={event.error}"
    print(line)


def cli_fee(amount: int):
    """CLI command to show the fee breakdown"""
    breakdown = build_fee_breakdown(amount)
    print(f"\n💸 Bridge fee for {format_usdc(amount)}")
    print("=" * 50)
    print(f"Fee:        {format_usdc(breakdown.total_fee)} ({breakdown.total_fee} units)")
    print(f"Net amount: {format_usdc(breakdown.net_amount)} ({breakdown.net_amount} units)")
    if breakdown.net_amount <= 0:
        print("\n⚠️  Fee exceeds the amount; nothing would arrive on the destination chain")


def cli_estimate(chain: str):
    """CLI command to show expected attestation latency"""
    destination = resolve_chain(chain)
    estimate = estimate_for(destination)
    print(f"\n⏳ Estimated bridge time to {destination.value}")
    print(f"   min {estimate.min_seconds // 60} min, "
          f"max {estimate.max_seconds // 60} min, "
          f"typically {estimate.average_seconds // 60} min")


async def cli_attestation(message_hash: str, interval: Optional[float], max_attempts: Optional[int]):
    """Poll the attestation service until the message is attested"""
    orchestrator = get_bridge_orchestrator()
    print(f"🔍 Waiting for attestation of {message_hash}...")
    try:
        result = await orchestrator.wait_for_attestation(
            message_hash,
            polling_interval=interval,
            max_attempts=max_attempts,
        )
        print(f"✅ Attested after {result.attempts} poll(s)")
        print(f"Attestation: {result.attestation}")
    finally:
        await orchestrator.aclose()


async def cli_bridge(amount: int, destination: str, recipient: Optional[str]):
    """Run a full burn -> attest -> mint transfer"""
    orchestrator = get_bridge_orchestrator()
    orchestrator.on(print_event)

    request = BridgeRequest(amount=amount, destination_chain=destination, recipient=recipient)
    print(f"🌉 Bridging {format_usdc(amount)} from {orchestrator.source_chain.value} to {destination.upper()}")
    try:
        result = await orchestrator.execute_bridge(request)
        # Let the progress printer drain
        await asyncio.sleep(0)
        if result.success:
            print(f"\n✅ Completed ({result.tracking_id})")
            print(f"Source tx:      {result.source_tx_hash}")
            print(f"Destination tx: {result.dest_tx_hash}")
        else:
            print(f"\n❌ Claim failed ({result.tracking_id}): {result.error}")
            print("   The burn is final; retry the claim with the same message and attestation.")
    finally:
        await orchestrator.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CCTP Bridge CLI")
    subparsers = parser.add_subparsers(dest="command")

    fee_parser = subparsers.add_parser("fee", help="Show the fee for an amount")
    fee_parser.add_argument("amount", help="Amount in smallest units (or USDC with --usdc)")
    fee_parser.add_argument("--usdc", action="store_true", help="Interpret amount as whole USDC")

    estimate_parser = subparsers.add_parser("estimate", help="Show expected bridge time")
    estimate_parser.add_argument("chain", help="Destination chain")

    attestation_parser = subparsers.add_parser("attestation", help="Wait for a message attestation")
    attestation_parser.add_argument("message_hash", help="keccak256 of the CCTP message")
    attestation_parser.add_argument("--interval", type=float, help="Seconds between polls")
    attestation_parser.add_argument("--max-attempts", type=int, help="Polls before giving up")

    bridge_parser = subparsers.add_parser("bridge", help="Burn, wait for attestation and mint")
    bridge_parser.add_argument("--amount", required=True, help="Amount in smallest units (or USDC with --usdc)")
    bridge_parser.add_argument("--usdc", action="store_true", help="Interpret amount as whole USDC")
    bridge_parser.add_argument("--destination", required=True, help="Destination chain")
    bridge_parser.add_argument("--recipient", help="Mint recipient (default: signer address)")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    # Interleaved with printed output, so render for humans
    setup_logging(settings.log_level, json_logs=False)
    command = args.command.lower()

    try:
        if command == "fee":
            cli_fee(parse_amount(args.amount, args.usdc))

        elif command == "estimate":
            cli_estimate(args.chain)

        elif command == "attestation":
            await cli_attestation(args.message_hash, args.interval, args.max_attempts)

        elif command == "bridge":
            await cli_bridge(parse_amount(args.amount, args.usdc), args.destination, args.recipient)

        else:
            print(f"❌ Unknown command: {command}")
            parser.print_help()

    except argparse.ArgumentTypeError as e:
        print(f"❌ {e}")
        sys.exit(2)
    except BridgeError as e:
        print(f"❌ [{e.code}] {e}")
        sys.exit(1)
    except (RecoverableError, UnrecoverableError) as e:
        print(f"❌ [{getattr(e, 'code', e.category.value)}] {e}")
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
