from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import pandas as pd


UNCATEGORIZED = "Não categorizado"


@dataclass(frozen=True)
class CategorySpec:
    label: str
    tokens: Tuple[str, ...]


CATEGORY_MAP: List[CategorySpec] = [
    CategorySpec("Backup/Restore", ("backup", "restore")),
    CategorySpec("IT Security", ("security", "segurança")),
    CategorySpec("Monitoring", ("monitor",)),
    CategorySpec("Network", ("rede", "network")),
    CategorySpec("Server", ("servidor", "server")),
    CategorySpec("Service Support", ("suporte", "support")),
    CategorySpec("Software", ("software", "programa")),
    CategorySpec("Hardware", ("hardware", "equipment")),
    CategorySpec("Cloud", ("cloud", "nuvem")),
    CategorySpec("Database", ("database", "banco de dados")),
]


def clean_category(value: object) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return UNCATEGORIZED
    s = str(value).strip()
    return s or UNCATEGORIZED


def bucket_category(value: object) -> str:
    """Bucket a raw category into a broad label; unmatched values pass through trimmed."""
    category = clean_category(value)
    lowered = category.lower()
    for spec in CATEGORY_MAP:
        if any(tok in lowered for tok in spec.tokens):
            return spec.label
    return category


def category_options(df: pd.DataFrame) -> List[str]:
    if df.empty or "category" not in df.columns:
        return []
    return sorted({bucket_category(v) for v in df["category"].tolist()})
