from __future__ import annotations

import argparse
from datetime import datetime, timedelta

import jwt


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate a JWT for the recruitment tracker API. Roles come from the user roster."
    )
    parser.add_argument("--secret", required=True)
    parser.add_argument("--user-id", required=True, help="Roster user id placed in the sub claim.")
    parser.add_argument("--hours", type=int, default=12)
    parser.add_argument("--algorithm", default="HS256")
    args = parser.parse_args()

    payload = {
        "sub": args.user_id,
        "exp": datetime.utcnow() + timedelta(hours=args.hours),
    }
    token = jwt.encode(payload, args.secret, algorithm=args.algorithm)
    print(token)


if __name__ == "__main__":
    main()
