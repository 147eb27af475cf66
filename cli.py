from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="NewResource Controller CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_ls = sub.add_parser("resources", help="List resources")
    s_ls.add_argument("--namespace", "-n", default=None)

    s_get = sub.add_parser("get", help="Show one resource")
    s_get.add_argument("name")
    s_get.add_argument("--namespace", "-n", default="default")

    s_apply = sub.add_parser("apply", help="Create a resource or replace its spec")
    s_apply.add_argument("name")
    s_apply.add_argument("--namespace", "-n", default="default")
    s_apply.add_argument("--spec", default="{}", help="Desired state as a JSON object")

    s_del = sub.add_parser("delete", help="Delete a resource")
    s_del.add_argument("name")
    s_del.add_argument("--namespace", "-n", default="default")

    s_rec = sub.add_parser("reconcile", help="Enqueue a resource for reconciliation now")
    s_rec.add_argument("name")
    s_rec.add_argument("--namespace", "-n", default="default")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)

    sub.add_parser("metrics", help="Dump the Prometheus metrics text")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "resources":
        params = {"namespace": args.namespace} if args.namespace else None
        _print(requests.get(f"{base}/resources", params=params, timeout=10).json())
        return 0

    if args.cmd == "get":
        r = requests.get(f"{base}/resources/{args.namespace}/{args.name}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "apply":
        try:
            spec = json.loads(args.spec)
        except ValueError as e:
            print(f"--spec is not valid JSON: {e}", file=sys.stderr)
            return 2
        if not isinstance(spec, dict):
            print("--spec must be a JSON object", file=sys.stderr)
            return 2
        payload = {"namespace": args.namespace, "name": args.name, "spec": spec}
        r = requests.post(f"{base}/resources", json=payload, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "delete":
        r = requests.delete(f"{base}/resources/{args.namespace}/{args.name}", timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reconcile":
        r = requests.post(f"{base}/resources/{args.namespace}/{args.name}/reconcile", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "metrics":
        r = requests.get(f"{base}/metrics", timeout=10)
        print(r.text)
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
