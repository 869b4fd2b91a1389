from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Node Simulator Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("simulators", help="Show the last pass of every NodeSimulator")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--simulator", help="Only events of namespace/name")

    s_rep = sub.add_parser("reports", help="Show pass reports")
    s_rep.add_argument("--limit", type=int, default=20)

    s_rec = sub.add_parser("reconcile", help="Run one pass for a NodeSimulator now")
    s_rec.add_argument("--namespace", default="default")
    s_rec.add_argument("--name", required=True)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "simulators":
        _print(requests.get(f"{base}/simulators", timeout=10).json())
        return 0

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.simulator:
            params["simulator"] = args.simulator
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    if args.cmd == "reports":
        _print(requests.get(f"{base}/reports", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "reconcile":
        r = requests.post(f"{base}/simulators/{args.namespace}/{args.name}/reconcile", timeout=60)
        _print(r.json())
        if not r.ok:
            return 1
        return 1 if r.json().get("requeue") else 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
