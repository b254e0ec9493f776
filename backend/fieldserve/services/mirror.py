"""
Mirror store: the legacy spreadsheet ledger kept eventually consistent with
the authoritative database.

All knowledge of the flat row layout lives here. Tabs are addressed by
header name through a ``HeaderIndex`` built once per read, and rows are
turned into typed records whose attribute names match the ORM models, so
services can render either source through the same code path.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from fieldserve.domain import Assignment, AssignedTo, Unassigned, assignment_for
from fieldserve.errors import MirrorStoreError
from fieldserve.services.sheets_client import SheetsClient

logger = logging.getLogger(__name__)

# Legacy marker stored in the ElectricianID column of broadcast requests
BROADCAST = "BROADCAST"


@dataclass(frozen=True)
class SheetSchema:
    """A mirror tab: its name, natural-key column and canonical column order."""

    tab: str
    key: str
    columns: tuple[str, ...]


CUSTOMERS = SheetSchema(
    tab="Customers",
    key="CustomerID",
    columns=("Timestamp", "CustomerID", "Name", "Phone", "Email", "City", "Pincode", "Address"),
)

SERVICE_REQUESTS = SheetSchema(
    tab="ServiceRequests",
    key="RequestID",
    columns=(
        "Timestamp", "RequestID", "CustomerID", "ElectricianID", "ServiceType",
        "Status", "Urgency", "PreferredDate", "PreferredSlot", "Description",
        "City", "Pincode", "Address", "Lat", "Lng",
        "CustomerName", "CustomerPhone", "CustomerAddress", "CustomerCity",
        "ElectricianName", "ElectricianPhone", "ElectricianCity",
        "AcceptedAt", "CompletedAt", "Rating", "Feedback",
    ),
)

REQUEST_LOGS = SheetSchema(
    tab="RequestLogs",
    key="RequestID",
    columns=("Timestamp", "RequestID", "Status", "Description"),
)

WORKERS = SheetSchema(
    tab="Electricians",
    key="ElectricianID",
    columns=(
        "Timestamp", "ElectricianID", "NameAsPerAadhaar", "PhonePrimary",
        "PhoneSecondary", "Email", "HouseNo", "Area", "City", "District",
        "State", "Pincode", "Lat", "Lng", "ReferralCode", "ReferredBy", "Status",
    ),
)

USERS = SheetSchema(
    tab="Users",
    key="UserID",
    columns=("UserID", "Phone", "Email", "Name", "UserType", "Username", "AuthProvider"),
)


class HeaderIndex:
    """Header name -> column position lookup for one read of a tab."""

    def __init__(self, header: list[str]):
        self.names = [name.strip() for name in header]
        self._positions = {name: i for i, name in enumerate(self.names) if name}

    def __contains__(self, column: str) -> bool:
        return column in self._positions

    def position(self, column: str) -> int | None:
        return self._positions.get(column)

    def get(self, row: list[str], column: str) -> str:
        """Cell value by column name; missing columns and short rows read as ''."""
        pos = self._positions.get(column)
        if pos is None or pos >= len(row):
            return ""
        return row[pos].strip()

    def record(self, row: list[str]) -> dict[str, str]:
        return {name: self.get(row, name) for name in self._positions}

    def add(self, column: str) -> int:
        self.names.append(column)
        self._positions[column] = len(self.names) - 1
        return self._positions[column]


@dataclass
class MirrorTable:
    """One read of a tab. Row numbers are 1-based sheet rows (header is row 1)."""

    schema: SheetSchema
    header: HeaderIndex
    rows: list[list[str]]
    has_header: bool = True

    def records(self) -> list[dict[str, str]]:
        return [self.header.record(row) for row in self.rows]

    def find_row(self, column: str, value: str) -> tuple[int, dict[str, str]] | None:
        for offset, row in enumerate(self.rows):
            if self.header.get(row, column) == value:
                return offset + 2, self.header.record(row)
        return None


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 cell; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_float(value: str) -> float | None:
    try:
        return float(value) if value else None
    except ValueError:
        return None


def _parse_int(value: str) -> int | None:
    try:
        return int(float(value)) if value else None
    except ValueError:
        return None


def assignment_from_cell(value: str) -> Assignment:
    if not value or value == BROADCAST:
        return Unassigned()
    return AssignedTo(value)


def assignment_to_cell(assignment: Assignment) -> str:
    if isinstance(assignment, AssignedTo):
        return assignment.worker_id
    return BROADCAST


# ============================================================================
# TYPED ROWS
# ============================================================================


@dataclass
class MirrorCustomer:
    """Customer row; attribute names match ``models.Customer``."""

    customer_id: str
    name: str = ""
    phone: str = ""
    email: str = ""
    city: str = ""
    pincode: str = ""
    address: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: dict[str, str]) -> "MirrorCustomer":
        return cls(
            customer_id=record.get("CustomerID", ""),
            name=record.get("Name", ""),
            phone=record.get("Phone", ""),
            email=record.get("Email", ""),
            city=record.get("City", ""),
            pincode=record.get("Pincode", ""),
            address=record.get("Address", ""),
            created_at=parse_timestamp(record.get("Timestamp", "")),
        )


@dataclass
class MirrorWorker:
    """Worker row; attribute names match ``models.Worker``."""

    worker_id: str
    name: str | None = None
    phone: str | None = None
    phone_secondary: str | None = None
    email: str | None = None
    house_no: str | None = None
    area: str | None = None
    city: str | None = None
    district: str | None = None
    state: str | None = None
    pincode: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    referral_code: str | None = None
    referred_by: str | None = None
    status: str = "PENDING"

    @classmethod
    def from_record(cls, record: dict[str, str]) -> "MirrorWorker":
        def opt(column: str) -> str | None:
            return record.get(column) or None

        return cls(
            worker_id=record.get("ElectricianID", ""),
            # Older sheets carry a plain Name column
            name=opt("NameAsPerAadhaar") or opt("Name"),
            phone=opt("PhonePrimary") or opt("Phone"),
            phone_secondary=opt("PhoneSecondary"),
            email=opt("Email"),
            house_no=opt("HouseNo"),
            area=opt("Area"),
            city=opt("City"),
            district=opt("District"),
            state=opt("State"),
            pincode=opt("Pincode"),
            latitude=_parse_float(record.get("Lat", "")),
            longitude=_parse_float(record.get("Lng", "")),
            referral_code=opt("ReferralCode"),
            referred_by=opt("ReferredBy"),
            status=record.get("Status") or "PENDING",
        )


@dataclass
class MirrorServiceRequest:
    """Service request row; attribute names match ``models.ServiceRequest``."""

    request_id: str
    customer_id: str = ""
    worker_id: str | None = None
    service_type: str = ""
    urgency: str = ""
    status: str = ""
    preferred_date: str = ""
    preferred_slot: str = ""
    description: str = ""
    city: str = ""
    pincode: str = ""
    address: str = ""
    latitude: float | None = None
    longitude: float | None = None
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    customer_city: str = ""
    worker_name: str | None = None
    worker_phone: str | None = None
    worker_city: str | None = None
    rating: int | None = None
    feedback: str | None = None
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def assignment(self) -> Assignment:
        return assignment_for(self.worker_id)

    @classmethod
    def from_record(cls, record: dict[str, str]) -> "MirrorServiceRequest":
        assignment = assignment_from_cell(record.get("ElectricianID", ""))
        return cls(
            request_id=record.get("RequestID", ""),
            customer_id=record.get("CustomerID", ""),
            worker_id=assignment.worker_id,
            service_type=record.get("ServiceType", ""),
            urgency=record.get("Urgency", ""),
            status=record.get("Status", ""),
            preferred_date=record.get("PreferredDate", ""),
            preferred_slot=record.get("PreferredSlot", ""),
            description=record.get("Description", ""),
            city=record.get("City", ""),
            pincode=record.get("Pincode", ""),
            address=record.get("Address", ""),
            latitude=_parse_float(record.get("Lat", "")),
            longitude=_parse_float(record.get("Lng", "")),
            customer_name=record.get("CustomerName", ""),
            customer_phone=record.get("CustomerPhone", ""),
            customer_address=record.get("CustomerAddress", ""),
            customer_city=record.get("CustomerCity", ""),
            worker_name=record.get("ElectricianName") or None,
            worker_phone=record.get("ElectricianPhone") or None,
            worker_city=record.get("ElectricianCity") or None,
            rating=_parse_int(record.get("Rating", "")),
            feedback=record.get("Feedback") or None,
            created_at=parse_timestamp(record.get("Timestamp", "")),
            accepted_at=parse_timestamp(record.get("AcceptedAt", "")),
            completed_at=parse_timestamp(record.get("CompletedAt", "")),
        )


@dataclass
class MirrorRequestLog:
    """Request log row; attribute names match ``models.RequestLog``."""

    request_id: str
    status: str
    description: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: dict[str, str]) -> "MirrorRequestLog":
        return cls(
            request_id=record.get("RequestID", ""),
            status=record.get("Status", ""),
            description=record.get("Description", ""),
            created_at=parse_timestamp(record.get("Timestamp", "")),
        )


# ============================================================================
# RECORD BUILDERS (authoritative object -> mirror record)
# ============================================================================


def customer_record(customer: Any) -> dict[str, str]:
    return {
        "Timestamp": _cell(customer.created_at),
        "CustomerID": customer.customer_id,
        "Name": _cell(customer.name),
        "Phone": _cell(customer.phone),
        "Email": _cell(customer.email),
        "City": _cell(customer.city),
        "Pincode": _cell(customer.pincode),
        "Address": _cell(customer.address),
    }


def request_record(request: Any) -> dict[str, str]:
    return {
        "Timestamp": _cell(request.created_at),
        "RequestID": request.request_id,
        "CustomerID": request.customer_id,
        "ElectricianID": assignment_to_cell(request.assignment),
        "ServiceType": _cell(request.service_type),
        "Status": _cell(request.status),
        "Urgency": _cell(request.urgency),
        "PreferredDate": _cell(request.preferred_date),
        "PreferredSlot": _cell(request.preferred_slot),
        "Description": _cell(request.description),
        "City": _cell(request.city),
        "Pincode": _cell(request.pincode),
        "Address": _cell(request.address),
        "Lat": _cell(request.latitude),
        "Lng": _cell(request.longitude),
        "CustomerName": _cell(request.customer_name),
        "CustomerPhone": _cell(request.customer_phone),
        "CustomerAddress": _cell(request.customer_address),
        "CustomerCity": _cell(request.customer_city),
        "ElectricianName": _cell(request.worker_name),
        "ElectricianPhone": _cell(request.worker_phone),
        "ElectricianCity": _cell(request.worker_city),
        "AcceptedAt": _cell(request.accepted_at),
        "CompletedAt": _cell(request.completed_at),
        "Rating": _cell(request.rating),
        "Feedback": _cell(request.feedback),
    }


def log_record(log: Any) -> dict[str, str]:
    return {
        "Timestamp": _cell(log.created_at),
        "RequestID": log.request_id,
        "Status": _cell(log.status),
        "Description": _cell(log.description),
    }


# ============================================================================
# STORE
# ============================================================================


@dataclass
class MirrorStore:
    """
    Generic get/insert/update/upsert over mirror tabs, keyed by natural id.

    Every call reads the tab it touches fresh; there is no cross-call cache,
    since other writers (operators editing the sheet) change it at any time.
    """

    client: SheetsClient
    enabled: bool = True

    def _check_enabled(self) -> None:
        if not self.enabled:
            raise MirrorStoreError("Mirror store disabled")

    async def table(self, schema: SheetSchema) -> MirrorTable:
        """Read a whole tab and build its header index once."""
        self._check_enabled()
        rows = await self.client.get_rows(schema.tab)
        if not rows:
            return MirrorTable(
                schema=schema,
                header=HeaderIndex(list(schema.columns)),
                rows=[],
                has_header=False,
            )
        return MirrorTable(schema=schema, header=HeaderIndex(rows[0]), rows=rows[1:])

    async def records(self, schema: SheetSchema) -> list[dict[str, str]]:
        return (await self.table(schema)).records()

    async def find(self, schema: SheetSchema, column: str, value: str) -> dict[str, str] | None:
        found = (await self.table(schema)).find_row(column, value)
        return found[1] if found else None

    async def get(self, schema: SheetSchema, key_value: str) -> dict[str, str] | None:
        return await self.find(schema, schema.key, key_value)

    async def insert(self, schema: SheetSchema, record: dict[str, str]) -> None:
        table = await self.table(schema)
        await self._append(table, record)

    async def update(
        self,
        schema: SheetSchema,
        key_value: str,
        changes: dict[str, str],
    ) -> bool:
        """Update cells of the row holding ``key_value``; False if there is none."""
        table = await self.table(schema)
        return await self._update(table, key_value, changes)

    async def upsert(self, schema: SheetSchema, record: dict[str, str]) -> None:
        table = await self.table(schema)
        key_value = record[schema.key]
        changes = {k: v for k, v in record.items() if k != schema.key}
        if not await self._update(table, key_value, changes):
            await self._append(table, record)

    async def _append(self, table: MirrorTable, record: dict[str, str]) -> None:
        tab = table.schema.tab
        if not table.has_header:
            await self.client.append_row(tab, list(table.header.names))
            table.has_header = True
        await self._ensure_columns(table, record.keys())

        row = [""] * len(table.header.names)
        for column, value in record.items():
            row[table.header.position(column)] = _cell(value)
        await self.client.append_row(tab, row)
        table.rows.append(row)

    async def _update(
        self,
        table: MirrorTable,
        key_value: str,
        changes: dict[str, str],
    ) -> bool:
        found = table.find_row(table.schema.key, key_value)
        if found is None:
            return False
        row_number, _ = found

        await self._ensure_columns(table, changes.keys())
        cells = [
            (row_number, table.header.position(column), _cell(value))
            for column, value in changes.items()
        ]
        await self.client.update_cells(table.schema.tab, cells)
        return True

    async def _ensure_columns(self, table: MirrorTable, columns: Any) -> None:
        """Extend the header row with any column the sheet does not have yet."""
        missing = [c for c in columns if c not in table.header]
        if not missing:
            return
        cells = [(1, table.header.add(column), column) for column in missing]
        logger.info(f"Adding mirror columns to {table.schema.tab}: {missing}")
        await self.client.update_cells(table.schema.tab, cells)
