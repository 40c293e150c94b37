"""
CLI helper to print the projects and certificates held by the configured store.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, TextIO

from portfolio.config import get_settings
from portfolio.db import ContentStore
from portfolio.dependencies import build_store


def dump(store: ContentStore, section: str, out: TextIO) -> None:
    if section in ("all", "projects"):
        print("--- PROJECTS ---", file=out)
        projects = [record.as_dict() for record in store.list_projects()]
        print(json.dumps(projects, indent=2, default=str), file=out)
    if section in ("all", "certificates"):
        if section == "all":
            print(file=out)
        print("--- CERTIFICATES ---", file=out)
        certificates = [record.as_dict() for record in store.list_certificates()]
        print(json.dumps(certificates, indent=2, default=str), file=out)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Dump portfolio content")
    parser.add_argument(
        "section",
        nargs="?",
        choices=("all", "projects", "certificates"),
        default="all",
        help="Which table to print",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL for the SQL store",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.database_url:
        settings = settings.model_copy(
            update={"store_backend": "sql", "database_url": args.database_url}
        )
    store = build_store(settings)
    store.open()
    try:
        dump(store, args.section, sys.stdout)
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
