"""
Header-name based column resolution for ledger and directory tables.

Columns are never assumed to sit at fixed positions: every operation
resolves the header row into a ColumnMap first.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

# Canonical field -> accepted header names, in priority order
LEDGER_COLUMN_SYNONYMS: Dict[str, List[str]] = {
    "date": ["fecha", "fecha y hora", "marca de tiempo", "date", "timestamp"],
    "identity": ["cédula", "cedula", "id", "identity", "identificación"],
    "name": ["nombre", "nombres", "name"],
    "company": ["empresa", "compania", "compañía", "organización", "company"],
    "entry": ["entrada", "hora entrada", "hora_entrada", "entry", "entry_time"],
    "exit": ["salida", "hora salida", "hora_salida", "exit", "exit_time"],
    "status": ["estado del acceso", "estado", "acceso", "status"],
    "duration": ["duración", "duracion", "tiempo", "duration"],
}

# Header row written when this service creates a ledger table
DEFAULT_LEDGER_HEADERS = [
    "Fecha", "Cédula", "Nombre", "Estado del Acceso",
    "Entrada", "Salida", "Duración", "Empresa",
]

DEFAULT_PERSONNEL_HEADERS = ["Cédula", "Nombre", "Empresa"]

# Administrator roster ("Clave" sheet)
ADMIN_COLUMN_SYNONYMS: Dict[str, List[str]] = {
    "identity": ["cédula", "cedula", "id", "identity", "identificación"],
    "name": ["nombre", "nombres", "name"],
    "role": ["cargo", "rol", "role"],
    "email": ["email", "correo", "e-mail"],
    "status": ["estado", "status"],
}

DEFAULT_ADMIN_HEADERS = ["Cédula", "Nombre", "Cargo", "Email", "Estado"]

AUDIT_HEADERS = [
    "Session_ID", "Fecha_Hora", "Tipo_Evento", "Operador", "Personas_Afectadas",
    "Detalle_Personas", "Estado", "Observaciones", "Notas_Adicionales",
]

AUDIT_ERROR_HEADERS = ["Fecha", "Tipo_Error", "Mensaje", "Detalles"]

LEDGER_REQUIRED_FIELDS = ("identity", "entry", "exit")
PERSONNEL_REQUIRED_FIELDS = ("identity",)
PERSONNEL_WRITE_FIELDS = ("identity", "name")
ADMIN_REQUIRED_FIELDS = ("identity",)


@dataclass
class ColumnMap:
    """Canonical field name -> column index (missing fields are absent)."""

    indices: Dict[str, int] = field(default_factory=dict)

    def get(self, name: str) -> Optional[int]:
        return self.indices.get(name)

    def has(self, name: str) -> bool:
        return name in self.indices

    def missing(self, required: Iterable[str]) -> List[str]:
        return [name for name in required if name not in self.indices]

    def cell(self, row: Sequence, name: str, default=None):
        """Value of a canonical column in a row, or default when absent or out of range."""
        index = self.indices.get(name)
        if index is None or index >= len(row):
            return default
        return row[index]

    @property
    def width(self) -> int:
        return max(self.indices.values()) + 1 if self.indices else 0


def _clean_header(header) -> str:
    if header is None:
        return ""
    return str(header).strip().lower()


def resolve_columns(headers: Sequence, synonyms: Optional[Dict[str, List[str]]] = None) -> ColumnMap:
    """Map canonical fields to indices using exact (case-insensitive) header matches."""
    synonyms = synonyms or LEDGER_COLUMN_SYNONYMS
    cleaned = [_clean_header(h) for h in headers]

    indices = {}
    for canonical, names in synonyms.items():
        for name in names:
            try:
                indices[canonical] = cleaned.index(name.lower())
                break
            except ValueError:
                continue
    return ColumnMap(indices=indices)
