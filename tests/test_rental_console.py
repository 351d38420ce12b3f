"""
Pytest tests driving the console with scripted input.
"""

from decimal import Decimal

from car_rental import BookingStatus, CarStatus, PaymentMethod
from rental_console import RentalConsole


class ScriptedConsole:
    """Feeds answers to a RentalConsole and keeps what it prints"""

    def __init__(self, system, answers):
        self._answers = iter(answers)
        self.output = []
        self.console = RentalConsole(system, input_func=self._next, print_func=self.output.append)

    def _next(self, prompt):
        try:
            return next(self._answers)
        except StopIteration:
            raise EOFError from None

    def run(self):
        self.console.run()
        return "\n".join(self.output)


class TestMainMenu:
    """Login, registration and exit"""

    def test_exit(self, system):
        output = ScriptedConsole(system, ["0"]).run()
        assert output.endswith("Exiting system...")

    def test_end_of_input_exits(self, system):
        output = ScriptedConsole(system, ["1", "john"]).run()
        assert "Exiting system..." in output

    def test_bad_login_keeps_menu(self, system):
        output = ScriptedConsole(system, ["1", "john", "wrong", "9", "0"]).run()
        assert "Error: Authentication failed! Invalid username or password." in output
        assert "Invalid choice! Try again." in output

    def test_register(self, system):
        output = ScriptedConsole(system, ["2", "bob", "secret1", "bob@example.com", "0"]).run()
        assert "Registration successful! You can now login." in output
        assert system.authenticate("bob", "secret1").get_email() == "bob@example.com"

    def test_register_invalid_email(self, system):
        output = ScriptedConsole(system, ["2", "bob", "secret1", "bob-at-example", "0"]).run()
        assert "Error: Invalid input (email: must include @ and .)" in output


class TestCustomerMenu:
    """Booking, cancelling and paying from the customer dashboard"""

    def test_book_car(self, system, john, car_id):
        output = ScriptedConsole(system, [
            "1", "john", "john123",
            "2", str(car_id), "2024-01-01", "2024-01-04",
            "0", "0",
        ]).run()
        assert "Booking successful! Waiting for admin approval." in output
        assert "Total Price: $150.00" in output
        [booking] = system.bookings_for_user(john)
        assert booking.get_total_price() == Decimal("150.00")
        assert system.get_car(car_id).get_status() == CarStatus.PENDING_APPROVAL

    def test_bad_dates_reported(self, system, john, car_id):
        output = ScriptedConsole(system, [
            "1", "john", "john123",
            "2", str(car_id), "2024-01-04", "2024-01-01",
            "2", "abc",
            "0", "0",
        ]).run()
        assert "Error: End date 2024-01-01 must be after start date 2024-01-04" in output
        assert "Error: Invalid input (car_id: 'abc' is not a whole number)" in output
        assert system.bookings_for_user(john) == []

    def test_pay_approved_booking(self, system, admin, john, car_id):
        booking = system.book_car(john, car_id, "2024-01-01", "2024-01-04")
        system.approve_booking(admin, booking.get_id())
        output = ScriptedConsole(system, [
            "1", "john", "john123",
            "6", str(booking.get_id()), "3",
            "0", "0",
        ]).run()
        assert "Paid 150.00 in Cash" in output
        assert "Payment completed successfully via Cash." in output
        payment = system.get_payment_for_booking(booking.get_id())
        assert payment.method == PaymentMethod.CASH
        assert booking.get_status() == BookingStatus.PAID

    def test_nothing_to_pay(self, system, john, car_id):
        system.book_car(john, car_id, "2024-01-01", "2024-01-04")
        output = ScriptedConsole(system, ["1", "john", "john123", "6", "0", "0"]).run()
        assert "No approved bookings requiring payment." in output

    def test_cancel_booking(self, system, john, car_id):
        booking = system.book_car(john, car_id, "2024-01-01", "2024-01-04")
        output = ScriptedConsole(system, [
            "1", "john", "john123", "4", str(booking.get_id()), "0", "0",
        ]).run()
        assert "Booking cancelled successfully." in output
        assert booking.get_status() == BookingStatus.CANCELLED
        assert system.get_car(car_id).is_available()


class TestAdminMenu:
    """Booking decisions and inventory from the admin dashboard"""

    def test_approve_booking(self, system, john, car_id):
        booking = system.book_car(john, car_id, "2024-01-01", "2024-01-04")
        output = ScriptedConsole(system, [
            "1", "admin", "admin123",
            "2", "2", str(booking.get_id()), "1",
            "2", str(booking.get_id()), "1",
            "0", "0", "0",
        ]).run()
        assert "Booking Approved successfully." in output
        assert "Error: Booking 1 cannot go from Approved to Approved" in output
        assert booking.get_status() == BookingStatus.APPROVED
        assert system.get_car(car_id).get_status() == CarStatus.RENTED

    def test_add_car(self, system):
        output = ScriptedConsole(system, [
            "1", "admin", "admin123",
            "1", "1", "Kia", "Rio", "Compact", "2020", "White", "kia-001", "30",
            "0", "0", "0",
        ]).run()
        assert "Car added successfully with ID: 5" in output
        assert system.get_car(5).get_registration_number() == "KIA-001"

    def test_remove_car_in_use(self, system, john, car_id):
        system.book_car(john, car_id, "2024-01-01", "2024-01-04")
        output = ScriptedConsole(system, [
            "1", "admin", "admin123",
            "1", "4", str(car_id),
            "0", "0", "0",
        ]).run()
        assert "Error: Car 5 is held by open booking(s): 1" in output
        assert system.get_car(car_id)

    def test_revenue_without_logs(self, system):
        output = ScriptedConsole(system, [
            "1", "admin", "admin123", "3", "2", "0", "0",
        ]).run()
        assert "Total Revenue: $0.00" in output
