#!/usr/bin/env python3
"""
htlc CLI - operate swaps against a running htlc server

Usage:
    python3 scripts/htlc_cli.py secret
    python3 scripts/htlc_cli.py --caller alice initiate --hashlock <64hex> --recipient bob --amount 100 --timeout 1
    python3 scripts/htlc_cli.py --caller bob withdraw <lock_id> --preimage <secret>
    python3 scripts/htlc_cli.py --caller alice refund <lock_id>
    python3 scripts/htlc_cli.py lock <lock_id>
    python3 scripts/htlc_cli.py --caller relayer.local complete --source-chain ethereum \\
        --source-address 0xabc --destination bob --amount 100 --preimage <secret>
    python3 scripts/htlc_cli.py relayers
    python3 scripts/htlc_cli.py --caller owner.local relayers --add relayer.local
    python3 scripts/htlc_cli.py transfers --state failed
    python3 scripts/htlc_cli.py --caller owner.local retry <transfer_id>
"""

import os
import sys
import json
import logging
import argparse

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from htlc_sdk import HTLCClient, HTLCError, generate_secret

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)

DEFAULT_URL = os.environ.get("HTLC_URL", "http://127.0.0.1:8080")


def _print(data):
    print(json.dumps(data, indent=2, sort_keys=True))


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_secret(client: HTLCClient, args):
    secret, hashlock = generate_secret()
    _print({"secret": secret, "hashlock": hashlock})


def cmd_initiate(client: HTLCClient, args):
    lock_id = client.initiate_swap(
        secret_hash=args.hashlock,
        recipient=args.recipient,
        amount=args.amount,
        timeout=args.timeout,
        timeout_unit=args.unit,
        target_chain=args.target_chain,
        target_address=args.target_address,
    )
    log.info(f"Lock created: {lock_id}")
    _print(client.get_lock(lock_id))


def cmd_withdraw(client: HTLCClient, args):
    client.withdraw(args.lock_id, args.preimage)
    log.info(f"Withdrawn: {args.lock_id}")


def cmd_refund(client: HTLCClient, args):
    client.refund(args.lock_id)
    log.info(f"Refunded: {args.lock_id}")


def cmd_lock(client: HTLCClient, args):
    lock = client.get_lock(args.lock_id)
    if lock is None:
        print(f"ERROR: lock {args.lock_id} not found")
        sys.exit(1)
    _print(lock)


def cmd_locks(client: HTLCClient, args):
    _print(client.list_locks(args.status))


def cmd_complete(client: HTLCClient, args):
    client.complete_swap(
        source_chain=args.source_chain,
        source_address=args.source_address,
        destination=args.destination,
        amount=args.amount,
        preimage=args.preimage,
    )
    log.info(f"Completion submitted: {args.amount} to {args.destination}")


def cmd_call(client: HTLCClient, args):
    _print(client.execute_cross_chain_call(
        args.chain_id, args.contract_address, args.calldata, args.gas_limit
    ))


def cmd_relayers(client: HTLCClient, args):
    if args.add:
        client.add_relayer(args.add)
        log.info(f"Added relayer {args.add}")
    elif args.remove:
        client.remove_relayer(args.remove)
        log.info(f"Removed relayer {args.remove}")
    else:
        _print(client.relayers())


def cmd_transfers(client: HTLCClient, args):
    _print(client.list_transfers(args.state))


def cmd_retry(client: HTLCClient, args):
    _print(client.retry_transfer(args.transfer_id))


def cmd_status(client: HTLCClient, args):
    _print(client.status())


# =============================================================================
# MAIN
# =============================================================================

def main():
    parser = argparse.ArgumentParser(description="htlc CLI - hash time-locked swaps")
    parser.add_argument("--url", default=DEFAULT_URL, help="htlc server URL")
    parser.add_argument("--caller", default=os.environ.get("HTLC_CALLER", ""),
                        help="Identity sent as X-Caller-Id")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("secret", help="Generate a secret and its hashlock")
    sub.add_parser("status", help="Server status")

    p = sub.add_parser("initiate", help="Lock tokens for a recipient")
    p.add_argument("--hashlock", required=True, help="SHA256 hashlock (64 hex chars)")
    p.add_argument("--recipient", required=True)
    p.add_argument("--amount", type=int, required=True)
    p.add_argument("--timeout", type=int, required=True)
    p.add_argument("--unit", default="hours", choices=["seconds", "minutes", "hours"])
    p.add_argument("--target-chain", default="")
    p.add_argument("--target-address", default="")

    p = sub.add_parser("withdraw", help="Claim a lock with the preimage")
    p.add_argument("lock_id")
    p.add_argument("--preimage", required=True)

    p = sub.add_parser("refund", help="Reclaim an expired lock")
    p.add_argument("lock_id")

    p = sub.add_parser("lock", help="Show one lock")
    p.add_argument("lock_id")

    p = sub.add_parser("locks", help="List locks")
    p.add_argument("--status", choices=["open", "withdrawn", "refunded"])

    p = sub.add_parser("complete", help="Relayer: complete a foreign-chain swap")
    p.add_argument("--source-chain", required=True)
    p.add_argument("--source-address", required=True)
    p.add_argument("--destination", required=True)
    p.add_argument("--amount", type=int, required=True)
    p.add_argument("--preimage", required=True)

    p = sub.add_parser("call", help="Record a cross-chain EVM call intent")
    p.add_argument("--chain-id", required=True)
    p.add_argument("--contract-address", required=True)
    p.add_argument("--calldata", required=True)
    p.add_argument("--gas-limit", type=int, default=0)

    p = sub.add_parser("relayers", help="List or manage relayers")
    p.add_argument("--add")
    p.add_argument("--remove")

    p = sub.add_parser("transfers", help="List ledger operations")
    p.add_argument("--state", choices=["pending", "failed"])

    p = sub.add_parser("retry", help="Owner: retry a failed payout")
    p.add_argument("transfer_id")

    args = parser.parse_args()

    commands = {
        "secret": cmd_secret,
        "status": cmd_status,
        "initiate": cmd_initiate,
        "withdraw": cmd_withdraw,
        "refund": cmd_refund,
        "lock": cmd_lock,
        "locks": cmd_locks,
        "complete": cmd_complete,
        "call": cmd_call,
        "relayers": cmd_relayers,
        "transfers": cmd_transfers,
        "retry": cmd_retry,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    with HTLCClient(args.url, caller_id=args.caller) as client:
        try:
            handler(client, args)
        except HTLCError as e:
            log.error(f"{type(e).__name__}: {e}")
            sys.exit(1)


if __name__ == "__main__":
    main()
