"""NAP data models.

This module defines the models for NAP cabinets as they are stored in the
registry spreadsheet, one row per NAP in columns A to M, plus the payloads
used to register and validate them.
"""
import datetime as dt
import logging
from enum import Enum
from typing import Any, List, Optional, Sequence

from pydantic import Field, field_validator

from src.models.base import BaseDataModel

logger = logging.getLogger(__name__)

SHEET_HEADERS = [
    "ID",
    "Latitud",
    "Longitud",
    "Estado",
    "Registrado Por",
    "Fecha Registro",
    "Validado Por",
    "Fecha Validación",
    "Comentarios Validación",
    "Observaciones",
    "Fotos",
    "Municipio",
    "Sector",
]

# Column letter per field in the NAP sheet
SHEET_COLUMNS = {
    "id": "A",
    "latitude": "B",
    "longitude": "C",
    "status": "D",
    "registered_by": "E",
    "registration_date": "F",
    "validated_by": "G",
    "validation_date": "H",
    "validation_comments": "I",
    "observations": "J",
    "photos": "K",
    "municipality": "L",
    "sector": "M",
}

# Day zero of Google Sheets date serial numbers
SHEETS_EPOCH = dt.datetime(1899, 12, 30, tzinfo=dt.timezone.utc)

# Hand-typed date formats accepted besides ISO 8601 (day first)
SHEET_DATE_FORMATS = ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M", "%d/%m/%Y")


class NapStatus(str, Enum):
    """Lifecycle status of a NAP, as written in the sheet."""

    PENDING = "pendiente"
    UNDER_CONSTRUCTION = "en_construccion"
    ACTIVE = "activo"
    VALIDATED = "validado"
    REJECTED = "rechazado"


class Coordinates(BaseDataModel):
    """Geographic position of a NAP (WGS84 degrees)."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class NapCreate(BaseDataModel):
    """Payload for registering a new NAP.

    Attributes:
        coordinates: Position of the cabinet
        status: Initial status (pending by default)
        registered_by: Email of the technician registering the NAP
        registration_date: When the NAP was registered
        observations: Free-text notes
        photos: Photo URLs
        municipality: Municipality name
        sector: Sector name
    """

    coordinates: Coordinates
    status: NapStatus = NapStatus.PENDING
    registered_by: str = Field(..., min_length=1)
    registration_date: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )
    observations: str = ""
    photos: Optional[List[str]] = None
    municipality: str = ""
    sector: str = ""

    @field_validator("registered_by")
    @classmethod
    def validate_not_empty(cls, v: str, info) -> str:
        if not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return v.strip()


class NapUpdate(BaseDataModel):
    """Fields written when a NAP is validated or its status changes.

    Only the fields that are set are written to the sheet.
    """

    status: Optional[NapStatus] = None
    validated_by: Optional[str] = None
    validation_date: Optional[dt.datetime] = None
    validation_comments: Optional[str] = None

    def column_values(self) -> List[tuple]:
        """(column letter, cell value) pairs for the fields that are set."""
        values = []
        if self.status is not None:
            values.append((SHEET_COLUMNS["status"], self.status.value))
        if self.validated_by is not None:
            values.append((SHEET_COLUMNS["validated_by"], self.validated_by))
        if self.validation_date is not None:
            values.append(
                (SHEET_COLUMNS["validation_date"], self.validation_date.isoformat())
            )
        if self.validation_comments is not None:
            values.append(
                (SHEET_COLUMNS["validation_comments"], self.validation_comments)
            )
        return values


class Nap(NapCreate):
    """A registered NAP cabinet.

    Example:
        >>> nap = Nap.from_row(["NAP_1", "4.6", "-74.1", "pendiente", "tec@isp.co"])
        >>> nap.status
        <NapStatus.PENDING: 'pendiente'>
    """

    id: str = Field(..., min_length=1)
    validated_by: Optional[str] = None
    validation_date: Optional[dt.datetime] = None
    validation_comments: Optional[str] = None

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Nap":
        """Build a NAP from a sheet row (missing trailing cells allowed).

        Unknown statuses are read as pending. Dates may be ISO strings,
        Sheets serial numbers or dd/mm/yyyy; an unreadable registration
        date becomes now and an unreadable validation date becomes None.

        Raises:
            ValueError: If a coordinate is out of range
        """
        cells = [_cell(row, i) for i in range(len(SHEET_HEADERS))]
        photos = [p for p in cells[10].split(",") if p] if cells[10] else None

        return cls(
            id=cells[0],
            coordinates=Coordinates(
                latitude=_to_float(cells[1]), longitude=_to_float(cells[2])
            ),
            status=_parse_status(cells[3]),
            registered_by=cells[4] or "unknown",
            registration_date=_parse_datetime(cells[5]) or dt.datetime.now(dt.timezone.utc),
            validated_by=cells[6] or None,
            validation_date=_parse_datetime(cells[7]),
            validation_comments=cells[8] or None,
            observations=cells[9],
            photos=photos,
            municipality=cells[11],
            sector=cells[12],
        )

    def to_row(self) -> List[Any]:
        """Sheet row for this NAP, in column order A to M."""
        return [
            self.id,
            self.coordinates.latitude,
            self.coordinates.longitude,
            self.status.value,
            self.registered_by,
            self.registration_date.isoformat(),
            self.validated_by or "",
            self.validation_date.isoformat() if self.validation_date else "",
            self.validation_comments or "",
            self.observations,
            ",".join(self.photos) if self.photos else "",
            self.municipality,
            self.sector,
        ]

    def changed_since(self, since: dt.datetime) -> bool:
        """True if the NAP was registered or validated after ``since``."""
        if _aware(self.registration_date) > _aware(since):
            return True
        return self.validation_date is not None and _aware(
            self.validation_date
        ) > _aware(since)


def _cell(row: Sequence[Any], index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index]).strip()


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def _parse_status(value: str) -> NapStatus:
    if not value:
        return NapStatus.PENDING
    try:
        return NapStatus(value.lower())
    except ValueError:
        logger.warning(f"Unknown NAP status '{value}', treating it as pending")
        return NapStatus.PENDING


def _parse_datetime(value: str) -> Optional[dt.datetime]:
    """Parse an ISO string, a Sheets serial number or a dd/mm/yyyy date.

    Returns None for empty or unrecognized values.
    """
    if not value:
        return None

    try:
        return SHEETS_EPOCH + dt.timedelta(days=float(value))
    except (ValueError, OverflowError):
        pass

    try:
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in SHEET_DATE_FORMATS:
        try:
            return dt.datetime.strptime(value, fmt).replace(tzinfo=dt.timezone.utc)
        except ValueError:
            continue

    logger.warning(f"Unrecognized date '{value}' in NAP sheet")
    return None


def _aware(value: dt.datetime) -> dt.datetime:
    return value if value.tzinfo else value.replace(tzinfo=dt.timezone.utc)
