from datetime import date

import pandas as pd

from core.data import prepare_incidents
from core.filters import IncidentFilters


NOW = pd.Timestamp("2025-03-10T12:00:00Z")
WINDOW = IncidentFilters(start_date=date(2025, 1, 1), end_date=date(2025, 3, 10))

SAMPLE_RECORDS = [
    {
        "Number": "0000007",
        "Opened": "2025-03-01T10:00:00Z",
        "ShortDescription": "VPN fora do ar",
        "Caller": "Ana",
        "Priority": "P1 - Critical",
        "State": "In Progress",
        "Category": "Problema de rede",
        "AssignmentGroup": "Network Team",
        "AssignedTo": "Bruno",
        "Updated": "2025-03-05T10:00:00Z",
        "Location": "São Paulo",
    },
    {
        "Number": "7",
        "Opened": "2025-02-15T08:00:00Z",
        "ShortDescription": "Troca de teclado",
        "Caller": "Carlos",
        "Priority": "baixa",
        "State": "Resolvido",
        "Category": "Hardware",
        "Subcategory": "Teclado",
        "AssignmentGroup": "Service Desk",
        "Updated": "2025-02-16T08:00:00Z",
    },
    {
        "Number": "1234",
        "Opened": "2025-03-02T09:00:00Z",
        "ShortDescription": "Licença expirada",
        "Caller": "Ana",
        "Priority": "2",
        "State": "On Hold - aguardando fornecedor",
        "Category": "Software",
        "AssignmentGroup": "Service Desk",
        "Subcategory": "Licenciamento",
        "Updated": "2025-03-03T09:00:00Z",
    },
    {
        "Number": "5555",
        "Opened": "2025-03-04T09:00:00Z",
        "ShortDescription": "Duplicado",
        "Caller": "Dora",
        "Priority": "P3",
        "State": "Cancelled",
        "Category": "Software",
    },
    {
        "Number": "8888",
        "Opened": "not a date",
        "ShortDescription": "Sem acesso",
        "Caller": "",
        "Priority": "P2",
        "State": "New",
        "Category": "",
    },
    {
        "Number": "9999",
        "Opened": "2025-03-09T09:00:00Z",
        "ShortDescription": "Disco cheio",
        "Caller": "Eva",
        "Priority": "whatever",
        "State": "Assigned",
        "Category": "Servidor Linux",
        "AssignmentGroup": "Infra",
        "Updated": "",
    },
]


def sample_frame() -> pd.DataFrame:
    return prepare_incidents(SAMPLE_RECORDS, loaded_at=NOW)


def numbers(df: pd.DataFrame) -> list:
    return sorted(df["number"].tolist())
