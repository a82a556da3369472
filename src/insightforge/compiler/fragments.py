"""SQL fragments with named bind parameters.

literal values never get interpolated into sql text - they go through a
ParamBinder which hands back a ":pN" placeholder. one binder per statement so
placeholder names stay unique across every clause.
"""

import re
from dataclasses import dataclass, field
from typing import Any

# same shape sqlalchemy's text() recognises; our names are always pN
PLACEHOLDER_RE = re.compile(r"(?<![:\w\\]):(p\d+)(?!:)")


class ParamBinder:
    """Allocates bind parameter names for one statement."""

    def __init__(self) -> None:
        self.params: dict[str, Any] = {}

    def bind(self, value: Any) -> str:
        name = f"p{len(self.params)}"
        self.params[name] = value
        return f":{name}"


@dataclass(frozen=True)
class Statement:
    """A compiled, self-contained, read-only statement."""

    sql: str
    params: dict[str, Any] = field(default_factory=dict)
    dialect: str = "duckdb"

    def placeholders(self) -> list[str]:
        return PLACEHOLDER_RE.findall(self.sql)


def to_dollar_params(sql: str) -> str:
    """Rewrite :pN placeholders to duckdb's native $pN style."""
    return PLACEHOLDER_RE.sub(r"$\1", sql)
