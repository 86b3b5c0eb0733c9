#!/usr/bin/env python3
"""
Generate out_code (list of words) and out_code_hex for a golden YAML record.
Usage: python generate_golden_fields.py path/to/golden.yaml
"""

from __future__ import annotations

import os
import sys
from typing import Any

import yaml

from isa import disassemble
from parser import parse_program


def update_golden(doc: dict[str, Any]) -> dict[str, Any]:
    """Fill out_code/out_code_hex in `doc` from its in_source; return the target section."""
    src_code = doc.get("in_source")
    if src_code is None:
        err = "No 'in_source' found in golden record"
        raise KeyError(err)

    code = parse_program(src_code)

    # prefer an existing out section, then expect; create out otherwise
    if "out" in doc:
        target = doc["out"]
    elif "expect" in doc:
        target = doc["expect"]
    else:
        doc["out"] = {}
        target = doc["out"]

    target["out_code"] = code
    target["out_code_hex"] = disassemble(code)
    return target


def main(path: str) -> None:
    if not os.path.exists(path):
        print("File not found:", path)
        sys.exit(2)

    with open(path, encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}

    try:
        update_golden(doc)
    except KeyError as e:
        print(e.args[0])
        sys.exit(2)

    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    print(f"Updated {path} with out_code and out_code_hex.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: generate_golden_fields.py path/to/golden.yaml")
        sys.exit(1)
    main(sys.argv[1])
