"""
Flat-file persistence for the car rental system.

Cars and users are kept one record per line, comma separated, and each
store is rewritten in full on every save. Completed transactions and
booking status changes are appended as labeled text blocks that the
reports module reads back.
"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal, InvalidOperation
from threading import Lock
import logging
import os

from car_rental import (
    Booking, Car, CarRentalSystem, CarStatus, CarType, Payment, Role,
    StorageError, User,
)
from rental_config import RentalConfig


logger = logging.getLogger(__name__)


def _ensure_directory(path: str) -> None:
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)


def _read_lines(path: str) -> List[str]:
    if not os.path.exists(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            return [line.rstrip("\n") for line in f]
    except OSError as e:
        raise StorageError(f"Could not read {path}: {e}") from e


def _rewrite(path: str, lines: List[str]) -> None:
    """Replace the file contents, never leaving a half-written file"""
    tmp_path = f"{path}.tmp"
    try:
        _ensure_directory(path)
        with open(tmp_path, "w", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
        os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise StorageError(f"Could not write {path}: {e}") from e


# ==================== Record Stores ====================

class CarStore:
    """id,brand,model,type,year,color,pricePerDay,registrationNumber,status"""

    FIELD_COUNT = 9

    def __init__(self, path: str):
        self._path = path

    def get_path(self) -> str:
        return self._path

    @staticmethod
    def serialize(car: Car) -> str:
        return ",".join([
            str(car.get_id()),
            car.get_brand(),
            car.get_model(),
            car.get_type().value,
            str(car.get_year()),
            car.get_color(),
            f"{car.get_price_per_day():.2f}",
            car.get_registration_number(),
            car.get_status().value,
        ])

    @classmethod
    def deserialize(cls, line: str) -> Car:
        fields = line.split(",")
        if len(fields) != cls.FIELD_COUNT:
            raise ValueError(f"expected {cls.FIELD_COUNT} fields, got {len(fields)}")
        car_id, brand, model, car_type, year, color, price, registration, status = fields
        try:
            price_per_day = Decimal(price)
        except InvalidOperation:
            raise ValueError(f"bad price '{price}'") from None
        return Car(int(car_id), brand, model, CarType(car_type), int(year), color,
                   price_per_day, registration.strip().upper(), CarStatus(status))

    def load(self) -> List[Car]:
        cars = []
        for number, line in enumerate(_read_lines(self._path), start=1):
            if not line.strip():
                continue
            try:
                cars.append(self.deserialize(line))
            except ValueError as e:
                logger.warning(f"Skipping {self._path}:{number}: {e}")
        return cars

    def save(self, cars: List[Car]) -> None:
        _rewrite(self._path, [self.serialize(car) for car in cars])


class UserStore:
    """id,username,password,email,role"""

    FIELD_COUNT = 5

    def __init__(self, path: str):
        self._path = path

    def get_path(self) -> str:
        return self._path

    @staticmethod
    def serialize(user: User) -> str:
        return ",".join([
            str(user.get_id()),
            user.get_username(),
            user.get_password(),
            user.get_email(),
            user.get_role().value,
        ])

    @classmethod
    def deserialize(cls, line: str) -> User:
        fields = line.split(",")
        if len(fields) != cls.FIELD_COUNT:
            raise ValueError(f"expected {cls.FIELD_COUNT} fields, got {len(fields)}")
        user_id, username, password, email, role = fields
        role = Role.ADMIN if role == Role.ADMIN.value else Role.CUSTOMER
        return User(int(user_id), username, password, email, role)

    def load(self) -> List[User]:
        users = []
        for number, line in enumerate(_read_lines(self._path), start=1):
            if not line.strip():
                continue
            try:
                users.append(self.deserialize(line))
            except ValueError as e:
                logger.warning(f"Skipping {self._path}:{number}: {e}")
        return users

    def save(self, users: List[User]) -> None:
        _rewrite(self._path, [self.serialize(user) for user in users])


# ==================== Transaction Logger ====================

class TransactionLogger:
    """
    Append-only audit trail of payments and booking status changes.

    Each entry is a labeled text block. Appends are serialized with a lock
    so concurrent writers cannot interleave partial blocks.
    """

    TRANSACTION_HEADER = "=== TRANSACTION LOG ==="
    BOOKING_UPDATE_HEADER = "=== BOOKING UPDATE ==="
    FOOTER = "========================"

    def __init__(self, transaction_path: str, booking_update_path: str):
        self._transaction_path = transaction_path
        self._booking_update_path = booking_update_path
        self._lock = Lock()

    @staticmethod
    def _timestamp() -> str:
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def _append(self, path: str, lines: List[str]) -> None:
        with self._lock:
            try:
                _ensure_directory(path)
                with open(path, "a", encoding="utf-8") as f:
                    f.write("\n" + "\n".join(lines) + "\n")
                    f.flush()
            except OSError as e:
                raise StorageError(f"Could not append to {path}: {e}") from e

    def record_transaction(self, user: User, car: Car, booking: Booking,
                           payment: Payment) -> None:
        lines = [
            self.TRANSACTION_HEADER,
            f"Timestamp: {self._timestamp()}",
            "Customer Details:",
            f"  Username: {user.get_username()}",
            f"  Email: {user.get_email()}",
            "Car Details:",
            f"  ID: {car.get_id()}",
            f"  Brand: {car.get_brand()} {car.get_model()}",
            f"  Type: {car.get_type().value}",
            f"  Registration: {car.get_registration_number()}",
            "Booking Details:",
            f"  Booking ID: {booking.get_id()}",
            f"  Start Date: {booking.get_start_date().isoformat()}",
            f"  End Date: {booking.get_end_date().isoformat()}",
            f"  Duration: {booking.get_day_count()} days",
            "Payment Details:",
            f"  Payment ID: {payment.payment_id}",
            f"  Amount: ${payment.amount:.2f}",
            f"  Method: {payment.method.value}",
            f"  Status: {payment.status.value}",
            f"  Transaction ID: {payment.transaction_id}",
            f"Revenue Generated: ${payment.amount:.2f}",
            self.FOOTER,
        ]
        self._append(self._transaction_path, lines)
        logger.info(f"Logged transaction for booking {booking.get_id()}")

    def record_booking_status_change(self, user: User, action: str,
                                     booking: Booking, car: Car) -> None:
        lines = [
            self.BOOKING_UPDATE_HEADER,
            f"Timestamp: {self._timestamp()}",
            f"Action: {action}",
            f"Customer: {user.get_username()}",
            "Booking Details:",
            f"  Booking ID: {booking.get_id()}",
            f"  Car: {car.get_brand()} {car.get_model()}",
            f"  Status: {booking.get_status().value}",
            self.FOOTER,
        ]
        self._append(self._booking_update_path, lines)

    def read_all(self) -> List[str]:
        """Every line of both logs, transactions first, in append order"""
        with self._lock:
            lines = _read_lines(self._transaction_path)
            if os.path.abspath(self._booking_update_path) != os.path.abspath(self._transaction_path):
                lines.extend(_read_lines(self._booking_update_path))
            return lines


# ==================== Factory Pattern ====================

class CarRentalSystemFactory:
    """Builds car rental systems wired to their stores"""

    @staticmethod
    def create_in_memory_system(seed: bool = True) -> CarRentalSystem:
        system = CarRentalSystem()
        if seed:
            system.seed_defaults()
        return system

    @staticmethod
    def create_persistent_system(config: Optional[RentalConfig] = None) -> CarRentalSystem:
        """Load cars and users from disk and log to the configured files"""
        config = config or RentalConfig.from_env()
        system = CarRentalSystem(
            car_store=CarStore(config.cars_path),
            user_store=UserStore(config.users_path),
            transaction_logger=TransactionLogger(config.transaction_log_path,
                                                 config.booking_log_path),
        )
        system.load()
        if config.seed_defaults:
            system.seed_defaults()
        return system
