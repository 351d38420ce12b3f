"""
Pytest tests for the flat-file stores, the transaction logger and the factory.
Run with: pytest tests/test_rental_storage.py -v
"""

import threading
from datetime import date
from decimal import Decimal

import pytest

from car_rental import (
    Booking, BookingStatus, Car, CarCatalog, CarStatus, CarType, DuplicateError,
    Payment, PaymentMethod, PaymentStatus, Role, StorageError, User, ValidationError,
)
from rental_config import RentalConfig
from rental_storage import CarRentalSystemFactory, CarStore, TransactionLogger, UserStore


@pytest.fixture
def config(tmp_path):
    return RentalConfig(data_dir=str(tmp_path))


def make_car(car_id=1, status=CarStatus.AVAILABLE):
    return Car(car_id, "Toyota", "Camry", CarType.SEDAN, 2022, "Blue",
               Decimal("50.00"), f"ABC{car_id:03d}", status)


def make_booking():
    return Booking(1, 2, 1, date(2024, 1, 1), date(2024, 1, 4), 3, Decimal("150.00"))


class TestCarStore:
    """Car records on disk"""

    def test_round_trip_keeps_order(self, tmp_path):
        store = CarStore(str(tmp_path / "cars.txt"))
        cars = [make_car(3), make_car(1, CarStatus.RENTED), make_car(2, CarStatus.PENDING_APPROVAL)]
        store.save(cars)
        assert store.load() == cars

    def test_line_format(self, tmp_path):
        path = tmp_path / "cars.txt"
        CarStore(str(path)).save([make_car()])
        assert path.read_text() == "1,Toyota,Camry,Sedan,2022,Blue,50.00,ABC001,Available\n"

    def test_missing_file_is_empty(self, tmp_path):
        assert CarStore(str(tmp_path / "nope.txt")).load() == []

    def test_malformed_lines_skipped(self, tmp_path):
        path = tmp_path / "cars.txt"
        path.write_text(
            "1,Toyota,Camry,Sedan,2022,Blue,50.00,ABC001,Available\n"
            "2,Honda,Civic\n"
            "3,Ford,Explorer,Hovercraft,2023,Black,70.00,GHI789,Available\n"
            "\n"
            "4,Ford,Explorer,SUV,2023,Black,seventy,GHI789,Available\n"
            "5,Kia,Rio,Compact,2020,White,30.00,KIA001,Rented\n"
        )
        assert [car.get_id() for car in CarStore(str(path)).load()] == [1, 5]

    def test_registration_normalized_on_load(self, tmp_path):
        """A hand-edited lowercase plate still blocks its duplicate."""
        path = tmp_path / "cars.txt"
        path.write_text("1,Toyota,Camry,Sedan,2022,Blue,50.00,abc123,Available\n")
        [car] = CarStore(str(path)).load()
        assert car.get_registration_number() == "ABC123"

        catalog = CarCatalog()
        catalog.load([car])
        with pytest.raises(DuplicateError):
            catalog.add_car("Honda", "Civic", "Sedan", 2021, "Red", "45", "ABC123")

    def test_write_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = CarStore(str(blocker / "cars.txt"))
        with pytest.raises(StorageError):
            store.save([make_car()])


class TestUserStore:
    """User records on disk"""

    def test_round_trip(self, tmp_path):
        store = UserStore(str(tmp_path / "users.dat"))
        users = [User(1, "admin", "admin123", "admin@carrental.com", Role.ADMIN),
                 User(2, "john", "john123", "john@example.com")]
        store.save(users)
        assert store.load() == users

    def test_unknown_role_is_customer(self, tmp_path):
        path = tmp_path / "users.dat"
        path.write_text("7,bob,secret1,bob@example.com,superuser\n")
        [user] = UserStore(str(path)).load()
        assert user.get_role() == Role.CUSTOMER
        assert user.get_id() == 7


class TestTransactionLogger:
    """Append-only labeled blocks"""

    @pytest.fixture
    def transaction_logger(self, tmp_path):
        return TransactionLogger(str(tmp_path / "transactions.log"),
                                 str(tmp_path / "booking_updates.log"))

    def test_transaction_block(self, transaction_logger):
        user = User(2, "john", "john123", "john@example.com")
        booking = make_booking()
        booking._set_status(BookingStatus.PAID)
        payment = Payment(1, 1, Decimal("150.00"), date(2024, 1, 1), PaymentMethod.CASH,
                          PaymentStatus.COMPLETED, "TXN-ABC")
        transaction_logger.record_transaction(user, make_car(), booking, payment)

        lines = [line.strip() for line in transaction_logger.read_all()]
        assert lines[0] == ""
        assert lines[1] == TransactionLogger.TRANSACTION_HEADER
        assert "Username: john" in lines
        assert "Brand: Toyota Camry" in lines
        assert "Duration: 3 days" in lines
        assert "Amount: $150.00" in lines
        assert "Method: Cash" in lines
        assert "Transaction ID: TXN-ABC" in lines
        assert "Revenue Generated: $150.00" in lines
        assert lines[-1] == TransactionLogger.FOOTER

    def test_read_all_puts_transactions_first(self, transaction_logger):
        user = User(2, "john", "john123", "john@example.com")
        booking = make_booking()
        transaction_logger.record_booking_status_change(user, "Approved", booking, make_car())
        payment = Payment(1, 1, Decimal("150.00"), date(2024, 1, 1), PaymentMethod.CASH,
                          PaymentStatus.COMPLETED, "TXN-ABC")
        transaction_logger.record_transaction(user, make_car(), booking, payment)

        headers = [line for line in transaction_logger.read_all() if line.startswith("===")
                   and line != TransactionLogger.FOOTER]
        assert headers == [TransactionLogger.TRANSACTION_HEADER,
                           TransactionLogger.BOOKING_UPDATE_HEADER]

    def test_shared_file_read_once(self, tmp_path):
        path = str(tmp_path / "all.log")
        transaction_logger = TransactionLogger(path, path)
        user = User(2, "john", "john123", "john@example.com")
        transaction_logger.record_booking_status_change(user, "Rejected", make_booking(), make_car())
        lines = transaction_logger.read_all()
        assert lines.count(TransactionLogger.BOOKING_UPDATE_HEADER) == 1

    def test_concurrent_appends_do_not_interleave(self, transaction_logger):
        user = User(2, "john", "john123", "john@example.com")
        booking = make_booking()
        car = make_car()

        def write():
            for _ in range(20):
                transaction_logger.record_booking_status_change(user, "Approved", booking, car)

        threads = [threading.Thread(target=write) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = transaction_logger.read_all()
        starts = [i for i, line in enumerate(lines)
                  if line == TransactionLogger.BOOKING_UPDATE_HEADER]
        assert len(starts) == 200
        for i in starts:
            assert lines[i + 1].startswith("Timestamp: ")
            assert lines[i + 8] == TransactionLogger.FOOTER


class TestCarRentalSystemFactory:
    """Systems wired to the configured files"""

    def test_in_memory_system(self):
        system = CarRentalSystemFactory.create_in_memory_system()
        assert len(system.list_cars()) == 4
        assert CarRentalSystemFactory.create_in_memory_system(seed=False).list_cars() == []

    def test_first_start_seeds_files(self, config, tmp_path):
        CarRentalSystemFactory.create_persistent_system(config)
        assert len((tmp_path / "cars.txt").read_text().splitlines()) == 4
        users = (tmp_path / "users.dat").read_text().splitlines()
        assert users[0] == "1,admin,admin123,admin@carrental.com,admin"
        assert len(users) == 3

    def test_restart_keeps_records(self, config):
        system = CarRentalSystemFactory.create_persistent_system(config)
        admin = system.authenticate("admin", "admin123")
        john = system.authenticate("john", "john123")
        car_id = system.add_car(admin, "Mazda", "CX-5", "SUV", 2023, "Grey", "50.00", "MZD-501")
        booking = system.book_car(john, car_id, "2024-01-01", "2024-01-04")
        system.approve_booking(admin, booking.get_id())
        system.register_user("bob", "secret1", "bob@example.com")

        restarted = CarRentalSystemFactory.create_persistent_system(config)
        assert restarted.list_cars() == system.list_cars()
        assert restarted.get_car(car_id).get_status() == CarStatus.RENTED
        assert restarted.authenticate("bob", "secret1").get_id() == 4
        # bookings are not persisted, so nothing holds the car after a restart
        assert restarted.list_bookings(restarted.authenticate("admin", "admin123")) == []
        restarted.set_car_status(restarted.authenticate("admin", "admin123"), car_id, "Available")
        assert restarted.get_car(car_id).is_available()

    def test_line_breaks_never_reach_the_files(self, config):
        """Every accepted record survives a reload."""
        system = CarRentalSystemFactory.create_persistent_system(config)
        admin = system.authenticate("admin", "admin123")
        with pytest.raises(ValidationError):
            system.register_user("bob", "pass\rword", "bob@example.com")
        with pytest.raises(ValidationError):
            system.add_car(admin, "Kia", "Rio", "Compact", 2020, "Wh\rite", "30", "KIA-001")
        system.register_user("carl", "secret1", "carl@example.com")

        restarted = CarRentalSystemFactory.create_persistent_system(config)
        restarted_admin = restarted.authenticate("admin", "admin123")
        assert [u.get_username() for u in restarted.list_users(restarted_admin)] == \
            ["admin", "john", "alice", "carl"]
        assert restarted.list_cars() == system.list_cars()

    def test_logs_written(self, config):
        system = CarRentalSystemFactory.create_persistent_system(config)
        admin = system.authenticate("admin", "admin123")
        john = system.authenticate("john", "john123")
        booking = system.book_car(john, 1, "2024-01-01", "2024-01-04")
        system.approve_booking(admin, booking.get_id())
        system.pay(john, booking.get_id(), "150.00", "Cash")

        lines = [line.strip() for line in system.read_logs(admin)]
        assert "Revenue Generated: $150.00" in lines
        assert "Action: Approved" in lines
