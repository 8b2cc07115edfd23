"""
Write the master employee import template to disk.

Usage:
    python scripts/generate_import_template.py [--out-dir templates]
"""

import argparse
import os
import sys

# Allow imports from the project root when running as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.template_service import TEMPLATE_FILENAME, build_employee_template  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generate the employee import template")
    parser.add_argument("--out-dir", default="templates", help="Output directory")
    args = parser.parse_args(argv)

    os.makedirs(args.out_dir, exist_ok=True)
    out_path = os.path.join(args.out_dir, TEMPLATE_FILENAME)
    with open(out_path, "wb") as f:
        f.write(build_employee_template().getvalue())

    print(out_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
