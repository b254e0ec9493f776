"""Customer identity resolution: find-or-create by phone or email."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from fieldserve.config import get_settings
from fieldserve.domain import alt_phone_format, new_id, phone_key
from fieldserve.errors import NotFoundError, ValidationError
from fieldserve.models import Customer
from fieldserve.schemas.customer import CustomerOut
from fieldserve.services.dual_store import DualStore
from fieldserve.services.mirror import CUSTOMERS, MirrorCustomer, MirrorStore, customer_record

logger = logging.getLogger(__name__)
settings = get_settings()

# Fields merged onto an existing customer, last non-empty value wins
MERGE_FIELDS = ("name", "phone", "email", "city", "pincode", "address")

MAX_ID_ATTEMPTS = 10


@dataclass
class CustomerDetails:
    """Identity and profile fields supplied by a caller. Empty means omitted."""

    phone: str = ""
    email: str = ""
    name: str = ""
    city: str = ""
    pincode: str = ""
    address: str = ""

    def __post_init__(self) -> None:
        for name in MERGE_FIELDS:
            setattr(self, name, (getattr(self, name) or "").strip())


def phone_variants(phone: str, country_code: str = settings.id_country_code) -> list[str]:
    """The phone as given plus its alternate country-code form."""
    phone = phone.strip()
    if not phone:
        return []
    alternate = alt_phone_format(phone, country_code)
    return [phone] if alternate == phone else [phone, alternate]


class IdentityResolver:
    """
    Resolves a phone/email pair to exactly one customer id.

    Lookup order: exact phone, alternate phone form, email. A match has the
    supplied non-empty fields merged in; no match creates a new customer.
    """

    def __init__(self, store: DualStore, country_code: str = settings.id_country_code):
        self.store = store
        self.db = store.db
        self.country_code = country_code

    async def find(self, phone: str, email: str) -> Customer | None:
        """Authoritative lookup by phone (either form), then by email."""
        key = phone_key(phone, self.country_code)
        if key:
            result = await self.db.execute(
                select(Customer)
                .where(or_(
                    Customer.phone_key == key,
                    Customer.phone.in_(phone_variants(phone, self.country_code)),
                ))
                .order_by(Customer.id)
                .limit(1)
            )
            customer = result.scalar_one_or_none()
            if customer:
                return customer

        if email:
            result = await self.db.execute(
                select(Customer).where(Customer.email == email).order_by(Customer.id).limit(1)
            )
            return result.scalar_one_or_none()

        return None

    async def _unused_customer_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = new_id("CUST")
            result = await self.db.execute(
                select(Customer.id).where(Customer.customer_id == candidate)
            )
            if result.first() is None:
                return candidate
        raise RuntimeError("Could not allocate a unique customer id")

    def _merge(self, customer: Customer, details: CustomerDetails, now: datetime) -> Customer:
        changed = False
        for name in MERGE_FIELDS:
            value = getattr(details, name)
            if value and getattr(customer, name) != value:
                setattr(customer, name, value)
                changed = True
        if changed:
            customer.phone_key = phone_key(customer.phone, self.country_code)
            customer.updated_at = now
            logger.info(f"Updated customer {customer.customer_id}")
        return customer

    async def resolve_in_session(self, details: CustomerDetails) -> Customer:
        """
        Find or create the customer inside the caller's open transaction.

        Does not commit; callers wrap this in ``DualStore.write``. The insert
        runs in a savepoint so that losing a race on ``phone_key`` to a
        concurrent first submission resolves to the customer that won.
        """
        if not details.phone and not details.email:
            raise ValidationError("Phone number or email is required")

        customer = await self.find(details.phone, details.email)
        now = datetime.now(UTC)

        if customer is not None:
            return self._merge(customer, details, now)

        customer = Customer(
            customer_id=await self._unused_customer_id(),
            name=details.name,
            phone=details.phone,
            phone_key=phone_key(details.phone, self.country_code),
            email=details.email,
            city=details.city,
            pincode=details.pincode,
            address=details.address,
            created_at=now,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(customer)
                await self.db.flush()
        except IntegrityError:
            existing = await self.find(details.phone, details.email)
            if existing is None:
                raise
            logger.info(f"Phone {details.phone} was registered concurrently, using {existing.customer_id}")
            return self._merge(existing, details, now)

        logger.info(f"Created customer {customer.customer_id}")
        return customer

    async def resolve(self, details: CustomerDetails) -> str:
        """Find or create the customer, commit, replicate; returns customer_id."""
        customer = await self.store.write(
            lambda: self.resolve_in_session(details),
            replicate_customer,
            label="save customer",
        )
        return customer.customer_id

    async def get_profile(self, phone: str) -> CustomerOut:
        """Customer profile by phone, from either store."""
        if not phone or not phone.strip():
            raise ValidationError("Phone number is required")

        async def primary() -> CustomerOut | None:
            customer = await self.find(phone, "")
            return CustomerOut.model_validate(customer) if customer else None

        async def fallback(mirror: MirrorStore) -> CustomerOut | None:
            variants = set(phone_variants(phone, self.country_code))
            for record in await mirror.records(CUSTOMERS):
                if record.get("Phone") in variants:
                    return CustomerOut.model_validate(MirrorCustomer.from_record(record))
            return None

        profile = await self.store.read(primary, fallback, label="fetch customer profile")
        if profile is None:
            raise NotFoundError("Customer not found")
        return profile


async def replicate_customer(mirror: MirrorStore, customer: Customer) -> None:
    await mirror.upsert(CUSTOMERS, customer_record(customer))
