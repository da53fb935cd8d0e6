"""Grant or revoke staff privileges.

Usage:
  python scripts/set_access_level.py --email alice@example.com --level 1   # staff
  python scripts/set_access_level.py --email alice@example.com --level 0   # ordinary user
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from support_desk.auth.crud import set_access_level
from support_desk.config import load_config
from support_desk.db import connect


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--level", type=int, required=True)
    args = ap.parse_args()

    cfg = load_config()
    with connect(cfg.DB_DSN) as conn:
        u = set_access_level(conn, args.email, args.level)

    print("Updated user:")
    print(u)


if __name__ == "__main__":
    main()
