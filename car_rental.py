from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from threading import Lock, RLock
import logging
import re
import uuid


logger = logging.getLogger(__name__)


# ==================== Enums ====================

class CarType(Enum):
    """Types of cars in the fleet"""
    SEDAN = "Sedan"
    SUV = "SUV"
    TRUCK = "Truck"
    COMPACT = "Compact"
    LUXURY = "Luxury"
    VAN = "Van"


class CarStatus(Enum):
    """Availability of a car"""
    AVAILABLE = "Available"
    PENDING_APPROVAL = "PendingApproval"   # Booked, waiting for an admin
    RENTED = "Rented"


class BookingStatus(Enum):
    """Status of a booking"""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"
    PAID = "Paid"


class PaymentStatus(Enum):
    """Status of payment"""
    COMPLETED = "Completed"


class PaymentMethod(Enum):
    """Payment methods"""
    CREDIT_CARD = "Credit Card"
    PAYPAL = "PayPal"
    CASH = "Cash"


class Role(Enum):
    """What a user is allowed to do"""
    ADMIN = "admin"
    CUSTOMER = "customer"


# ==================== Errors ====================

class RentalError(Exception):
    """Base class for every recoverable rental error"""


class ValidationError(RentalError):
    """One or more fields hold a bad value"""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        details = "; ".join(f"{name}: {message}" for name, message in self.errors.items())
        super().__init__(f"Invalid input ({details})")


class AmountMismatchError(ValidationError):
    """Payment amount differs from the booking total"""

    def __init__(self, expected: Decimal, received: Decimal):
        self.expected = expected
        self.received = received
        super().__init__({"amount": f"expected ${expected:.2f}, got ${received}"})


class NotFoundError(RentalError):
    """Unknown identifier"""


class CarNotFoundError(NotFoundError):
    def __init__(self, car_id):
        self.car_id = car_id
        super().__init__(f"Car not found: {car_id}")


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: {booking_id}")


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class InvalidTransition(RentalError):
    """Booking status change not allowed by the booking state machine"""

    def __init__(self, booking_id: int, current: BookingStatus, requested: BookingStatus):
        self.booking_id = booking_id
        self.current = current
        self.requested = requested
        super().__init__(f"Booking {booking_id} cannot go from "
                         f"{current.value} to {requested.value}")


class DateFormatError(RentalError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid date '{value}', expected YYYY-MM-DD")


class InvalidDateRange(RentalError):
    def __init__(self, start: date, end: date):
        self.start = start
        self.end = end
        super().__init__(f"End date {end.isoformat()} must be after start date {start.isoformat()}")


class AlreadyPaidError(RentalError):
    def __init__(self, booking_id: int):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} has already been paid")


class IneligibleStatusError(RentalError):
    def __init__(self, booking_id: int, status: BookingStatus):
        self.booking_id = booking_id
        self.status = status
        super().__init__(f"Booking {booking_id} is {status.value}; "
                         f"only Approved bookings can be paid")


class DuplicateError(RentalError):
    """Username or registration number already in use"""


class CarUnavailableError(RentalError):
    def __init__(self, car_id: int, status: CarStatus):
        self.car_id = car_id
        self.status = status
        super().__init__(f"Car {car_id} is not available ({status.value})")


class CarInUseError(RentalError):
    def __init__(self, car_id: int, booking_ids: List[int]):
        self.car_id = car_id
        self.booking_ids = list(booking_ids)
        ids = ", ".join(str(b) for b in booking_ids)
        super().__init__(f"Car {car_id} is held by open booking(s): {ids}")


class AuthenticationError(RentalError):
    def __init__(self):
        super().__init__("Authentication failed! Invalid username or password.")


class AuthorizationError(RentalError):
    def __init__(self, message: str = "You are not authorized to perform this action!"):
        super().__init__(message)


class StorageError(RentalError):
    """A durable record could not be written"""


# ==================== Value Helpers ====================

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
REGISTRATION_PATTERN = re.compile(r"^[A-Z0-9]+(-[A-Z0-9]+)*$")
CENTS = Decimal("0.01")
RECORD_SEPARATORS = ",\r\n"   # would split a line of the flat files


def _has_separator(text: str) -> bool:
    return any(c in text for c in RECORD_SEPARATORS)


def parse_date(value) -> date:
    """Parse a strict YYYY-MM-DD calendar date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not DATE_PATTERN.match(text):
        raise DateFormatError(value)
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        raise DateFormatError(value) from None


def days_between(start, end) -> int:
    """
    Whole calendar days from start to end.

    Plain date subtraction is proleptic Gregorian, so month ends and
    leap days are counted exactly. The result can be zero or negative;
    callers decide whether that is acceptable.
    """
    return (parse_date(end) - parse_date(start)).days


def to_money(value, field_name: str = "amount") -> Decimal:
    """Convert user input to a Decimal without rounding it"""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError({field_name: f"'{value}' is not a number"}) from None
    if not amount.is_finite():
        raise ValidationError({field_name: f"'{value}' is not a number"})
    return amount


def _parse_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower()
    for member in enum_cls:
        if text in (member.value.lower(), member.name.lower()):
            return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationError({field_name: f"'{value}' is not one of {allowed}"})


def _check_text(errors: Dict[str, str], field_name: str, value) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        errors[field_name] = "must not be empty"
    elif _has_separator(text):
        errors[field_name] = "must not contain commas or line breaks"
    return text


# ==================== Core Models ====================

class Car:
    """Represents a rental car"""

    def __init__(self, car_id: int, brand: str, model: str, car_type: CarType,
                 year: int, color: str, price_per_day: Decimal,
                 registration_number: str, status: CarStatus = CarStatus.AVAILABLE):
        self._car_id = car_id
        self._brand = brand
        self._model = model
        self._car_type = car_type
        self._year = year
        self._color = color
        self._price_per_day = price_per_day
        self._registration_number = registration_number
        self._status = status
        self._lock = Lock()

    def get_id(self) -> int:
        return self._car_id

    def get_brand(self) -> str:
        return self._brand

    def get_model(self) -> str:
        return self._model

    def get_type(self) -> CarType:
        return self._car_type

    def get_year(self) -> int:
        return self._year

    def get_color(self) -> str:
        return self._color

    def get_registration_number(self) -> str:
        return self._registration_number

    def get_price_per_day(self) -> Decimal:
        with self._lock:
            return self._price_per_day

    def set_price_per_day(self, price: Decimal) -> None:
        with self._lock:
            self._price_per_day = price

    def get_status(self) -> CarStatus:
        with self._lock:
            return self._status

    def set_status(self, status: CarStatus) -> None:
        with self._lock:
            self._status = status

    def is_available(self) -> bool:
        return self.get_status() == CarStatus.AVAILABLE

    def get_display_name(self) -> str:
        return f"{self._brand} {self._model}"

    def __repr__(self) -> str:
        return f"{self._year} {self._brand} {self._model} ({self._registration_number})"

    def __hash__(self) -> int:
        return hash(self._car_id)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Car):
            return False
        return (self._car_id == other._car_id
                and self._brand == other._brand
                and self._model == other._model
                and self._car_type == other._car_type
                and self._year == other._year
                and self._color == other._color
                and self.get_price_per_day() == other.get_price_per_day()
                and self._registration_number == other._registration_number
                and self.get_status() == other.get_status())


class Booking:
    """Represents a rental booking"""

    def __init__(self, booking_id: int, user_id: int, car_id: int,
                 start_date: date, end_date: date, day_count: int,
                 total_price: Decimal):
        self._booking_id = booking_id
        self._user_id = user_id
        self._car_id = car_id
        self._start_date = start_date
        self._end_date = end_date
        self._day_count = day_count
        self._total_price = total_price
        self._status = BookingStatus.PENDING
        self._created_at = datetime.now()
        self._returned_at: Optional[datetime] = None
        self._lock = Lock()

    def get_id(self) -> int:
        return self._booking_id

    def get_user_id(self) -> int:
        return self._user_id

    def get_car_id(self) -> int:
        return self._car_id

    def get_start_date(self) -> date:
        return self._start_date

    def get_end_date(self) -> date:
        return self._end_date

    def get_day_count(self) -> int:
        return self._day_count

    def get_total_price(self) -> Decimal:
        return self._total_price

    def get_created_at(self) -> datetime:
        return self._created_at

    def get_status(self) -> BookingStatus:
        with self._lock:
            return self._status

    def _set_status(self, status: BookingStatus) -> None:
        # Only BookingLedger moves a booking through its states
        with self._lock:
            self._status = status

    def get_returned_at(self) -> Optional[datetime]:
        with self._lock:
            return self._returned_at

    def _mark_returned(self) -> None:
        with self._lock:
            self._returned_at = datetime.now()

    def is_open(self) -> bool:
        """True while the booking still holds its car"""
        status = self.get_status()
        if status in [BookingStatus.PENDING, BookingStatus.APPROVED]:
            return True
        return status == BookingStatus.PAID and self.get_returned_at() is None

    def __repr__(self) -> str:
        return (f"Booking({self._booking_id}, car={self._car_id}, "
                f"{self._start_date} to {self._end_date}, {self.get_status().value})")


@dataclass(frozen=True)
class Payment:
    """Represents a completed payment"""
    payment_id: int
    booking_id: int
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str
    receipt: str = ""

    def __repr__(self) -> str:
        return f"Payment({self.payment_id}, ${self.amount:.2f}, {self.status.value})"


class User:
    """A registered user; the role decides which operations are allowed"""

    def __init__(self, user_id: int, username: str, password: str,
                 email: str, role: Role = Role.CUSTOMER):
        self._user_id = user_id
        self._username = username
        self._password = password
        self._email = email
        self._role = role

    def get_id(self) -> int:
        return self._user_id

    def get_username(self) -> str:
        return self._username

    def get_password(self) -> str:
        return self._password

    def set_password(self, password: str) -> None:
        self._password = password

    def get_email(self) -> str:
        return self._email

    def set_email(self, email: str) -> None:
        self._email = email

    def get_role(self) -> Role:
        return self._role

    def is_admin(self) -> bool:
        return self._role == Role.ADMIN

    def check_password(self, password: str) -> bool:
        return self._password == password

    def __repr__(self) -> str:
        return f"User({self._user_id}, {self._username}, {self._role.value})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, User):
            return False
        return (self._user_id, self._username, self._password, self._email, self._role) == \
            (other._user_id, other._username, other._password, other._email, other._role)

    def __hash__(self) -> int:
        return hash(self._user_id)


# ==================== Car Catalog ====================

class CarCatalog:
    """Owns the car inventory and each car's status"""

    MIN_YEAR = 1900
    MAX_PRICE = Decimal("1000")
    MIN_REGISTRATION_LENGTH = 4
    MAX_REGISTRATION_LENGTH = 10

    def __init__(self):
        self._cars: Dict[int, Car] = {}  # car_id -> Car, insertion ordered
        self._next_id = 1
        self._lock = Lock()

    def load(self, cars: List[Car]) -> None:
        """Replace the inventory with stored records"""
        with self._lock:
            self._cars = {car.get_id(): car for car in cars}
            self._next_id = max(self._cars, default=0) + 1

    def add_car(self, brand: str, model: str, car_type, year, color: str,
                price_per_day, registration_number: str) -> int:
        """Validate and add a car, returning its new id"""
        errors: Dict[str, str] = {}
        brand = _check_text(errors, "brand", brand)
        model = _check_text(errors, "model", model)
        color = _check_text(errors, "color", color)

        try:
            car_type = _parse_enum(CarType, car_type, "type")
        except ValidationError as e:
            errors.update(e.errors)

        current_year = datetime.now().year
        try:
            year = int(str(year).strip())
            if not self.MIN_YEAR <= year <= current_year:
                errors["year"] = f"must be between {self.MIN_YEAR} and {current_year}"
        except (TypeError, ValueError):
            errors["year"] = f"'{year}' is not a whole number"

        try:
            price_per_day = self._validate_price(price_per_day)
        except ValidationError as e:
            errors.update(e.errors)

        registration_number = str(registration_number or "").strip().upper()
        if not (self.MIN_REGISTRATION_LENGTH <= len(registration_number)
                <= self.MAX_REGISTRATION_LENGTH
                and REGISTRATION_PATTERN.match(registration_number)):
            errors["registration_number"] = (
                f"must be {self.MIN_REGISTRATION_LENGTH}-{self.MAX_REGISTRATION_LENGTH} "
                f"letters/digits, optionally separated by '-'")

        if errors:
            raise ValidationError(errors)

        with self._lock:
            for car in self._cars.values():
                if car.get_registration_number() == registration_number:
                    raise DuplicateError(
                        f"Registration number {registration_number} is already registered")

            car_id = self._next_id
            self._next_id += 1
            self._cars[car_id] = Car(car_id, brand, model, car_type, year, color,
                                     price_per_day, registration_number)

        logger.info(f"Added car {car_id}: {self._cars[car_id]}")
        return car_id

    def _validate_price(self, value) -> Decimal:
        price = to_money(value, "price_per_day").quantize(CENTS, rounding=ROUND_HALF_UP)
        if not Decimal("0") < price <= self.MAX_PRICE:
            raise ValidationError({"price_per_day": f"must be above 0 and at most {self.MAX_PRICE}"})
        return price

    def get_car(self, car_id: int) -> Car:
        with self._lock:
            car = self._cars.get(car_id)
        if car is None:
            raise CarNotFoundError(car_id)
        return car

    def list_cars(self) -> List[Car]:
        with self._lock:
            return list(self._cars.values())

    def list_available(self) -> List[Car]:
        return [car for car in self.list_cars() if car.is_available()]

    def search_available(self, brand: Optional[str] = None, car_type=None,
                         min_price=None, max_price=None) -> List[Car]:
        """Filter available cars by brand fragment, type and price range"""
        cars = self.list_available()
        if brand:
            fragment = brand.strip().lower()
            cars = [c for c in cars if fragment in c.get_brand().lower()]
        if car_type:
            wanted = _parse_enum(CarType, car_type, "type")
            cars = [c for c in cars if c.get_type() == wanted]
        if min_price is not None:
            low = to_money(min_price, "min_price")
            cars = [c for c in cars if c.get_price_per_day() >= low]
        if max_price is not None:
            high = to_money(max_price, "max_price")
            cars = [c for c in cars if c.get_price_per_day() <= high]
        return cars

    def set_status(self, car_id: int, status: CarStatus) -> None:
        self.get_car(car_id).set_status(status)

    def update_price(self, car_id: int, price_per_day) -> Decimal:
        """Set a new daily price, returning the old one"""
        car = self.get_car(car_id)
        new_price = self._validate_price(price_per_day)
        old_price = car.get_price_per_day()
        car.set_price_per_day(new_price)
        return old_price

    def remove_car(self, car_id: int) -> Car:
        with self._lock:
            car = self._cars.pop(car_id, None)
        if car is None:
            raise CarNotFoundError(car_id)
        logger.info(f"Removed car {car_id}: {car}")
        return car


# ==================== Booking Ledger ====================

ALLOWED_TRANSITIONS: Dict[BookingStatus, Tuple[BookingStatus, ...]] = {
    BookingStatus.PENDING: (BookingStatus.APPROVED, BookingStatus.REJECTED,
                            BookingStatus.CANCELLED),
    BookingStatus.APPROVED: (BookingStatus.CANCELLED, BookingStatus.PAID),
}

TERMINAL_STATUSES = (BookingStatus.REJECTED, BookingStatus.CANCELLED, BookingStatus.PAID)


class BookingLedger:
    """Owns bookings, their state machine and their date arithmetic"""

    def __init__(self, catalog: CarCatalog):
        self._catalog = catalog
        self._bookings: Dict[int, Booking] = {}
        self._next_id = 1
        self._lock = Lock()

    def create(self, user_id: int, car_id: int, start_date, end_date) -> Booking:
        """Create a Pending booking priced from the car's current daily rate"""
        car = self._catalog.get_car(car_id)
        if not car.is_available():
            raise CarUnavailableError(car_id, car.get_status())

        start = parse_date(start_date)
        end = parse_date(end_date)
        day_count = days_between(start, end)
        if day_count <= 0:
            raise InvalidDateRange(start, end)

        total_price = (car.get_price_per_day() * day_count).quantize(CENTS, rounding=ROUND_HALF_UP)

        with self._lock:
            booking_id = self._next_id
            self._next_id += 1
            booking = Booking(booking_id, user_id, car_id, start, end, day_count, total_price)
            self._bookings[booking_id] = booking

        logger.info(f"Created {booking} for user {user_id}, total ${total_price:.2f}")
        return booking

    def get_booking(self, booking_id: int) -> Booking:
        with self._lock:
            booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def list_bookings(self) -> List[Booking]:
        with self._lock:
            return list(self._bookings.values())

    def bookings_for_user(self, user_id: int) -> List[Booking]:
        return [b for b in self.list_bookings() if b.get_user_id() == user_id]

    def open_bookings_for_car(self, car_id: int) -> List[Booking]:
        return [b for b in self.list_bookings()
                if b.get_car_id() == car_id and b.is_open()]

    def check_transition(self, booking: Booking, new_status: BookingStatus) -> None:
        current = booking.get_status()
        if new_status not in ALLOWED_TRANSITIONS.get(current, ()):
            raise InvalidTransition(booking.get_id(), current, new_status)

    def set_status(self, booking_id: int, new_status: BookingStatus) -> Booking:
        booking = self.get_booking(booking_id)
        with self._lock:
            self.check_transition(booking, new_status)
            old_status = booking.get_status()
            booking._set_status(new_status)
        logger.info(f"Booking {booking_id}: {old_status.value} -> {new_status.value}")
        return booking

    def cancel(self, booking_id: int) -> Booking:
        return self.set_status(booking_id, BookingStatus.CANCELLED)

    def mark_returned(self, booking_id: int) -> Booking:
        """Record that the car of a paid booking came back"""
        booking = self.get_booking(booking_id)
        with self._lock:
            if booking.get_status() != BookingStatus.PAID or booking.get_returned_at():
                raise RentalError(f"Booking {booking_id} has no car out on rent")
            booking._mark_returned()
        logger.info(f"Booking {booking_id}: car returned")
        return booking

    def discard(self, booking_id: int) -> None:
        """Drop a booking that was never made visible"""
        with self._lock:
            self._bookings.pop(booking_id, None)


# ==================== Strategy Pattern: Payment Processing ====================

class PaymentProcessor(ABC):
    """Abstract payment processor"""

    @abstractmethod
    def process_payment(self, booking: Booking, amount: Decimal) -> str:
        """Take the money and return a receipt line"""
        pass


class CreditCardProcessor(PaymentProcessor):
    def process_payment(self, booking: Booking, amount: Decimal) -> str:
        return f"Paid {amount:.2f} via Credit Card"


class PayPalProcessor(PaymentProcessor):
    def process_payment(self, booking: Booking, amount: Decimal) -> str:
        return f"Paid {amount:.2f} via PayPal"


class CashProcessor(PaymentProcessor):
    def process_payment(self, booking: Booking, amount: Decimal) -> str:
        return f"Paid {amount:.2f} in Cash"


# ==================== Payment Recorder ====================

class PaymentRecorder:
    """Records at most one completed payment per booking"""

    def __init__(self, ledger: BookingLedger):
        self._ledger = ledger
        self._processors: Dict[PaymentMethod, PaymentProcessor] = {
            PaymentMethod.CREDIT_CARD: CreditCardProcessor(),
            PaymentMethod.PAYPAL: PayPalProcessor(),
            PaymentMethod.CASH: CashProcessor(),
        }
        self._payments: Dict[int, Payment] = {}       # payment_id -> Payment
        self._by_booking: Dict[int, int] = {}         # booking_id -> payment_id
        self._next_id = 1
        self._lock = Lock()

    def pay(self, booking_id: int, amount, method) -> Payment:
        """
        Pay the full total of an Approved booking.

        Raises AlreadyPaidError if the booking has a payment (or is Paid),
        IneligibleStatusError for any other status than Approved and
        AmountMismatchError unless amount equals the booking total exactly.
        Moving the booking to Paid is left to the caller.
        """
        booking = self._ledger.get_booking(booking_id)
        method = _parse_enum(PaymentMethod, method, "method")
        amount = to_money(amount)

        with self._lock:
            status = booking.get_status()
            if booking_id in self._by_booking or status == BookingStatus.PAID:
                raise AlreadyPaidError(booking_id)
            if status != BookingStatus.APPROVED:
                raise IneligibleStatusError(booking_id, status)
            if amount != booking.get_total_price():
                raise AmountMismatchError(booking.get_total_price(), amount)

            receipt = self._processors[method].process_payment(booking, amount)
            payment = Payment(
                payment_id=self._next_id,
                booking_id=booking_id,
                amount=booking.get_total_price(),
                payment_date=date.today(),
                method=method,
                status=PaymentStatus.COMPLETED,
                transaction_id=f"TXN-{uuid.uuid4().hex[:12].upper()}",
                receipt=receipt,
            )
            self._next_id += 1
            self._payments[payment.payment_id] = payment
            self._by_booking[booking_id] = payment.payment_id

        logger.info(f"[Payment] {receipt} for booking {booking_id} ({payment.transaction_id})")
        return payment

    def get_payment_for_booking(self, booking_id: int) -> Optional[Payment]:
        with self._lock:
            payment_id = self._by_booking.get(booking_id)
            return self._payments.get(payment_id) if payment_id else None

    def list_payments(self) -> List[Payment]:
        with self._lock:
            return list(self._payments.values())

    def discard(self, payment_id: int) -> None:
        """Forget a payment whose booking could not be marked Paid"""
        with self._lock:
            payment = self._payments.pop(payment_id, None)
            if payment:
                self._by_booking.pop(payment.booking_id, None)


# ==================== User Directory ====================

class UserDirectory:
    """Registered users, credentials and profile rules"""

    MIN_USERNAME = 3
    MAX_USERNAME = 20
    MIN_PASSWORD = 6

    def __init__(self):
        self._users: Dict[int, User] = {}
        self._next_id = 1
        self._lock = Lock()

    def load(self, users: List[User]) -> None:
        with self._lock:
            self._users = {user.get_id(): user for user in users}
            self._next_id = max(self._users, default=0) + 1

    def _validate_password(self, errors: Dict[str, str], password) -> str:
        password = "" if password is None else str(password)
        if len(password) < self.MIN_PASSWORD:
            errors["password"] = f"must be at least {self.MIN_PASSWORD} characters"
        elif _has_separator(password):
            errors["password"] = "must not contain commas or line breaks"
        return password

    def _validate_email(self, errors: Dict[str, str], email) -> str:
        email = _check_text(errors, "email", email)
        if "email" not in errors and ("@" not in email or "." not in email):
            errors["email"] = "must include @ and ."
        return email

    def register(self, username: str, password: str, email: str,
                 role: Role = Role.CUSTOMER) -> User:
        errors: Dict[str, str] = {}
        username = "" if username is None else str(username).strip()
        if not self.MIN_USERNAME <= len(username) <= self.MAX_USERNAME or " " in username:
            errors["username"] = (f"must be {self.MIN_USERNAME}-{self.MAX_USERNAME} "
                                  f"characters with no spaces")
        elif _has_separator(username):
            errors["username"] = "must not contain commas or line breaks"
        password = self._validate_password(errors, password)
        email = self._validate_email(errors, email)
        if errors:
            raise ValidationError(errors)

        with self._lock:
            if any(u.get_username() == username for u in self._users.values()):
                raise DuplicateError(f"Username already exists: {username}")
            user = User(self._next_id, username, password, email, role)
            self._users[user.get_id()] = user
            self._next_id += 1

        logger.info(f"Registered {user}")
        return user

    def authenticate(self, username: str, password: str) -> User:
        with self._lock:
            users = list(self._users.values())
        for user in users:
            if user.get_username() == username and user.check_password(password):
                return user
        logger.warning(f"Failed login for '{username}'")
        raise AuthenticationError()

    def get_user(self, user_id: int) -> User:
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def list_users(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def update_profile(self, user_id: int, email: Optional[str] = None,
                       password: Optional[str] = None) -> User:
        """Change email and/or password; empty values keep the current one"""
        user = self.get_user(user_id)
        errors: Dict[str, str] = {}
        if email:
            email = self._validate_email(errors, email)
        if password:
            password = self._validate_password(errors, password)
        if errors:
            raise ValidationError(errors)
        if email:
            user.set_email(email)
        if password:
            user.set_password(password)
        return user

    def remove_user(self, user_id: int) -> None:
        with self._lock:
            self._users.pop(user_id, None)


# ==================== Car Rental System ====================

class CarRentalSystem:
    """
    Coordinates the catalog, ledger and payments.

    Every operation that touches more than one entity goes through here,
    under one lock, so a car's status and the booking holding it never
    disagree. Car and user records are rewritten to their stores after each
    change; a failed write puts the in-memory state back and raises
    StorageError. The transaction logger only observes.
    """

    def __init__(self, car_store=None, user_store=None, transaction_logger=None):
        self._catalog = CarCatalog()
        self._ledger = BookingLedger(self._catalog)
        self._payments = PaymentRecorder(self._ledger)
        self._users = UserDirectory()
        self._car_store = car_store
        self._user_store = user_store
        self._transaction_logger = transaction_logger
        self._lock = RLock()

    # ---------- startup ----------

    def load(self) -> None:
        """Read car and user records from the stores"""
        with self._lock:
            if self._car_store:
                self._catalog.load(self._car_store.load())
            if self._user_store:
                self._users.load(self._user_store.load())
        logger.info(f"Loaded {len(self._catalog.list_cars())} cars and "
                    f"{len(self._users.list_users())} users")

    def seed_defaults(self) -> None:
        """Create the demo accounts and fleet when the stores are empty"""
        with self._lock:
            if not self._users.list_users():
                self._users.register("admin", "admin123", "admin@carrental.com", Role.ADMIN)
                self._users.register("john", "john123", "john@example.com")
                self._users.register("alice", "alice123", "alice@example.com")
                self._save_users(lambda: self._users.load([]))
            if not self._catalog.list_cars():
                self._catalog.add_car("Toyota", "Camry", CarType.SEDAN, 2022, "Blue", "50.00", "ABC123")
                self._catalog.add_car("Honda", "Civic", CarType.SEDAN, 2021, "Red", "45.00", "DEF456")
                self._catalog.add_car("Ford", "Explorer", CarType.SUV, 2023, "Black", "70.00", "GHI789")
                self._catalog.add_car("Chevrolet", "Silverado", CarType.TRUCK, 2020, "White", "85.00", "JKL012")
                self._save_cars(lambda: self._catalog.load([]))

    # ---------- persistence helpers ----------

    def _save_cars(self, rollback: Callable[[], None]) -> None:
        if not self._car_store:
            return
        try:
            self._car_store.save(self._catalog.list_cars())
        except StorageError:
            rollback()
            raise

    def _save_users(self, rollback: Callable[[], None]) -> None:
        if not self._user_store:
            return
        try:
            self._user_store.save(self._users.list_users())
        except StorageError:
            rollback()
            raise

    def _change_car_status(self, car: Car, status: CarStatus) -> None:
        old_status = car.get_status()
        car.set_status(status)
        self._save_cars(lambda: car.set_status(old_status))

    def _log_status_change(self, action: str, booking: Booking, car: Car) -> None:
        if not self._transaction_logger:
            return
        customer = self._users.get_user(booking.get_user_id())
        try:
            self._transaction_logger.record_booking_status_change(customer, action, booking, car)
        except StorageError as e:
            logger.error(f"Booking {booking.get_id()} {action.lower()} but not logged: {e}")

    @staticmethod
    def _require_admin(user: User) -> None:
        if not user.is_admin():
            raise AuthorizationError()

    # ---------- users ----------

    def register_user(self, username: str, password: str, email: str) -> User:
        with self._lock:
            user = self._users.register(username, password, email)
            self._save_users(lambda: self._users.remove_user(user.get_id()))
            return user

    def authenticate(self, username: str, password: str) -> User:
        return self._users.authenticate(username, password)

    def update_profile(self, user: User, email: Optional[str] = None,
                       password: Optional[str] = None) -> User:
        with self._lock:
            old_email, old_password = user.get_email(), user.get_password()

            def rollback():
                user.set_email(old_email)
                user.set_password(old_password)

            self._users.update_profile(user.get_id(), email, password)
            self._save_users(rollback)
            return user

    def get_user(self, user_id: int) -> User:
        return self._users.get_user(user_id)

    def list_users(self, admin: User) -> List[User]:
        self._require_admin(admin)
        return self._users.list_users()

    # ---------- inventory ----------

    def add_car(self, admin: User, brand: str, model: str, car_type, year,
                color: str, price_per_day, registration_number: str) -> int:
        self._require_admin(admin)
        with self._lock:
            car_id = self._catalog.add_car(brand, model, car_type, year, color,
                                           price_per_day, registration_number)
            self._save_cars(lambda: self._catalog.remove_car(car_id))
            return car_id

    def update_car_price(self, admin: User, car_id: int, price_per_day) -> Car:
        """New price applies to future bookings only"""
        self._require_admin(admin)
        with self._lock:
            old_price = self._catalog.update_price(car_id, price_per_day)
            car = self._catalog.get_car(car_id)
            self._save_cars(lambda: car.set_price_per_day(old_price))
            return car

    def set_car_status(self, admin: User, car_id: int, status) -> Car:
        """
        Release a car back to Available.

        Only bookings put a car in PendingApproval or Rented, so those are
        refused here, as is any change while a booking holds the car.
        """
        self._require_admin(admin)
        status = _parse_enum(CarStatus, status, "status")
        if status != CarStatus.AVAILABLE:
            raise ValidationError({"status": "only Available can be set by hand; "
                                             "bookings set the other statuses"})
        with self._lock:
            car = self._catalog.get_car(car_id)
            open_bookings = self._ledger.open_bookings_for_car(car_id)
            if open_bookings:
                raise CarInUseError(car_id, [b.get_id() for b in open_bookings])
            self._change_car_status(car, status)
            return car

    def remove_car(self, admin: User, car_id: int) -> Car:
        self._require_admin(admin)
        with self._lock:
            self._catalog.get_car(car_id)
            open_bookings = self._ledger.open_bookings_for_car(car_id)
            if open_bookings:
                logger.warning(f"Refused to remove car {car_id} with open bookings")
                raise CarInUseError(car_id, [b.get_id() for b in open_bookings])
            snapshot = self._catalog.list_cars()
            car = self._catalog.remove_car(car_id)
            self._save_cars(lambda: self._catalog.load(snapshot))
            return car

    def get_car(self, car_id: int) -> Car:
        return self._catalog.get_car(car_id)

    def list_cars(self) -> List[Car]:
        return self._catalog.list_cars()

    def list_available_cars(self) -> List[Car]:
        return self._catalog.list_available()

    def search_cars(self, brand: Optional[str] = None, car_type=None,
                    min_price=None, max_price=None) -> List[Car]:
        return self._catalog.search_available(brand, car_type, min_price, max_price)

    # ---------- booking lifecycle ----------

    def book_car(self, user: User, car_id: int, start_date, end_date) -> Booking:
        """Create a Pending booking and hold the car for admin approval"""
        with self._lock:
            self._users.get_user(user.get_id())
            booking = self._ledger.create(user.get_id(), car_id, start_date, end_date)
            car = self._catalog.get_car(car_id)
            try:
                self._change_car_status(car, CarStatus.PENDING_APPROVAL)
            except StorageError:
                self._ledger.discard(booking.get_id())
                raise
            return booking

    def _decide(self, booking_id: int, new_status: BookingStatus,
                car_status: CarStatus, action: str) -> Booking:
        with self._lock:
            booking = self._ledger.get_booking(booking_id)
            self._ledger.check_transition(booking, new_status)
            car = self._catalog.get_car(booking.get_car_id())
            self._change_car_status(car, car_status)
            self._ledger.set_status(booking_id, new_status)
        self._log_status_change(action, booking, car)
        return booking

    def approve_booking(self, admin: User, booking_id: int) -> Booking:
        self._require_admin(admin)
        return self._decide(booking_id, BookingStatus.APPROVED, CarStatus.RENTED, "Approved")

    def reject_booking(self, admin: User, booking_id: int) -> Booking:
        self._require_admin(admin)
        return self._decide(booking_id, BookingStatus.REJECTED, CarStatus.AVAILABLE, "Rejected")

    def cancel_booking(self, user: User, booking_id: int) -> Booking:
        """Customers cancel their own bookings; admins may cancel any"""
        booking = self._ledger.get_booking(booking_id)
        if booking.get_user_id() != user.get_id() and not user.is_admin():
            raise AuthorizationError("You can only cancel your own bookings.")
        return self._decide(booking_id, BookingStatus.CANCELLED, CarStatus.AVAILABLE, "Cancelled")

    def pay(self, user: User, booking_id: int, amount, method) -> Payment:
        """Record the payment and mark the booking Paid as one step"""
        with self._lock:
            booking = self._ledger.get_booking(booking_id)
            if booking.get_user_id() != user.get_id():
                raise AuthorizationError("You can only pay for your own bookings.")
            payment = self._payments.pay(booking_id, amount, method)
            try:
                self._ledger.set_status(booking_id, BookingStatus.PAID)
            except RentalError:
                self._payments.discard(payment.payment_id)
                raise
            car = self._catalog.get_car(booking.get_car_id())

        if self._transaction_logger:
            try:
                self._transaction_logger.record_transaction(user, car, booking, payment)
            except StorageError as e:
                logger.error(f"Payment {payment.payment_id} completed but not logged: {e}")
        return payment

    def return_car(self, admin: User, booking_id: int) -> Booking:
        """Close out a paid rental and free the car"""
        self._require_admin(admin)
        with self._lock:
            booking = self._ledger.get_booking(booking_id)
            if booking.get_status() != BookingStatus.PAID or booking.get_returned_at():
                raise RentalError(f"Booking {booking_id} has no car out on rent")
            car = self._catalog.get_car(booking.get_car_id())
            self._change_car_status(car, CarStatus.AVAILABLE)
            self._ledger.mark_returned(booking_id)
        self._log_status_change("Returned", booking, car)
        return booking

    # ---------- queries ----------

    def get_booking(self, booking_id: int) -> Booking:
        return self._ledger.get_booking(booking_id)

    def list_bookings(self, admin: User) -> List[Booking]:
        self._require_admin(admin)
        return self._ledger.list_bookings()

    def bookings_for_user(self, user: User) -> List[Booking]:
        return self._ledger.bookings_for_user(user.get_id())

    def rental_history(self, user: User) -> List[Tuple[Booking, Optional[Payment]]]:
        """User's bookings, latest start date first, each with its payment"""
        bookings = sorted(self._ledger.bookings_for_user(user.get_id()),
                          key=lambda b: b.get_start_date(), reverse=True)
        return [(b, self._payments.get_payment_for_booking(b.get_id())) for b in bookings]

    def get_payment_for_booking(self, booking_id: int) -> Optional[Payment]:
        return self._payments.get_payment_for_booking(booking_id)

    def list_payments(self, admin: User) -> List[Payment]:
        self._require_admin(admin)
        return self._payments.list_payments()

    def read_logs(self, admin: User) -> List[str]:
        """Raw transaction and booking-update log lines for reporting"""
        self._require_admin(admin)
        if not self._transaction_logger:
            return []
        return self._transaction_logger.read_all()


# ==================== Demo Usage ====================

def main():
    """Walk one booking through its whole lifecycle in memory"""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print("=== Car Rental System Demo ===\n")

    system = CarRentalSystem()
    system.seed_defaults()
    admin = system.authenticate("admin", "admin123")
    john = system.authenticate("john", "john123")

    car_id = system.add_car(admin, "Mazda", "CX-5", "SUV", 2023, "Grey", "50.00", "MZD-501")
    booking = system.book_car(john, car_id, "2024-01-01", "2024-01-04")
    print(f"Booked {booking}: {booking.get_day_count()} days, ${booking.get_total_price():.2f}")
    print(f"Car status: {system.get_car(car_id).get_status().value}")

    system.approve_booking(admin, booking.get_id())
    print(f"After approval car is {system.get_car(car_id).get_status().value}")

    payment = system.pay(john, booking.get_id(), booking.get_total_price(), PaymentMethod.CASH)
    print(f"{payment} -> booking {system.get_booking(booking.get_id()).get_status().value}")

    try:
        system.pay(john, booking.get_id(), booking.get_total_price(), PaymentMethod.CASH)
    except AlreadyPaidError as e:
        print(f"[Expected] {e}")

    system.return_car(admin, booking.get_id())
    print(f"After return car is {system.get_car(car_id).get_status().value}")
    print("\n=== Demo Complete ===")


if __name__ == "__main__":
    main()


# Key Design Decisions

# Booking state machine:
# Pending -> Approved | Rejected | Cancelled
# Approved -> Cancelled | Paid
# Rejected, Cancelled and Paid are terminal.

# Car status follows the booking holding it:
# booked -> PendingApproval, approved -> Rented,
# rejected/cancelled/returned -> Available.

# Payment:
# Only Approved bookings, full amount only, one payment per booking.
# Strategy pattern picks the processor for Credit Card / PayPal / Cash.

# Concurrency:
# CarRentalSystem: one RLock around every check-then-mutate sequence
# Car / Booking: Lock around status and price fields
# TransactionLogger: Lock around each file append
