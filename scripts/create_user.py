"""Create a user directly in the DB (no Stripe customer is created).

Usage:
  python scripts/create_user.py --email alice@example.com --first-name Alice --last-name Smith \
      --password '...' --access-level 1

NOTE: This is intended for local/dev and for creating staff accounts.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from support_desk.auth.crud import create_user
from support_desk.config import load_config
from support_desk.db import connect, init_db


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--first-name", required=True)
    ap.add_argument("--last-name", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--access-level", type=int, default=0)
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        u = create_user(
            conn,
            email=args.email,
            first_name=args.first_name,
            last_name=args.last_name,
            password=args.password,
            access_level=args.access_level,
        )

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
