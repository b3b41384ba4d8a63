#!/usr/bin/env python3
"""
DAX query check script

Usage:
    python scripts/validate_dax.py "EVALUATE ROW(\"Total\", 1)"
    python scripts/validate_dax.py --file query.dax
"""
import argparse
import sys
from pathlib import Path

# Add the backend directory to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "backend"))

from pbi_chat.dax.validator import validate_dax_query


def check(query: str) -> int:
    """Print the verdict; returns the process exit code"""
    result = validate_dax_query(query)
    if result.valid:
        print("✓ Valid DAX query")
        print(result.query)
        return 0

    print(f"✗ {result.error} ({result.kind.value})")
    if result.fixed_query:
        print("Suggested fix:")
        print(result.fixed_query)
    return 1


def main():
    parser = argparse.ArgumentParser(description="Validate a DAX query before sending it to Power BI")
    parser.add_argument("query", nargs="?", help="DAX query text")
    parser.add_argument("--file", type=Path, help="Read the query from a file")
    args = parser.parse_args()

    if args.file:
        query = args.file.read_text(encoding="utf-8")
    elif args.query is not None:
        query = args.query
    else:
        query = sys.stdin.read()

    sys.exit(check(query))


if __name__ == "__main__":
    main()
