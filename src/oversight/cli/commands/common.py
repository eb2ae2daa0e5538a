#!/usr/bin/env python
"""
Helpers shared by CLI commands.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Optional

from oversight.config import GovernanceConfig
from oversight.errors import ValidationError
from oversight.governance import GovernanceAPI


def build_api(args: argparse.Namespace) -> GovernanceAPI:
    """GovernanceAPI for the --root/--db options and OVERSIGHT_* environment."""
    return GovernanceAPI(
        root=Path(args.root),
        db_path=Path(args.db) if args.db else None,
        config=GovernanceConfig.from_env(),
    )


def parse_json_arg(value: Optional[str], name: str) -> Any:
    """Decode a JSON command-line argument. Bare text is kept as a string."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        if value.lstrip().startswith(("{", "[")):
            raise ValidationError(f"{name} is not valid JSON: {value}")
        return value
