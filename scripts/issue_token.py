from __future__ import annotations

import argparse
import sys

from amlguard.services.auth.roles import normalize_role
from amlguard.services.auth.tokens import create_access_token


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Issue a bearer token for API access")
    parser.add_argument("--subject", required=True, help="User id placed in the token subject")
    parser.add_argument("--role", required=True, help="Role: Entity|Supervisor|Administrator")
    parser.add_argument("--hours", type=float, default=None, help="Lifetime in hours (default: session TTL)")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    try:
        role = normalize_role(args.role)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    # Tokens issued here carry no session id, so logout cannot revoke them.
    token, expires_at = create_access_token(subject=args.subject, role=role, ttl_hours=args.hours)
    print(f"Token: {token}")
    print(f"Expires at: {expires_at.isoformat()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
