"""
Interactive console for customers and admins.

Each menu action is run in isolation: a RentalError is printed and the
menu comes back, so one bad input never ends the session.
"""

from typing import Callable, List, Tuple
import logging
import sys

from car_rental import (
    Booking, BookingStatus, Car, CarRentalSystem, CarStatus, CarType,
    PaymentMethod, RentalError, StorageError, User, ValidationError,
)
from rental_config import RentalConfig
from rental_reports import RentalReports
from rental_storage import CarRentalSystemFactory


logger = logging.getLogger(__name__)

MenuOption = Tuple[str, str, Callable[[], None]]


def format_car(car: Car) -> str:
    return (f"ID: {car.get_id()} | {car.get_year()} {car.get_brand()} {car.get_model()} "
            f"({car.get_color()})\n"
            f"Type: {car.get_type().value} | Reg: {car.get_registration_number()} | "
            f"Price/Day: ${car.get_price_per_day():.2f} | Status: {car.get_status().value}")


def format_booking(booking: Booking) -> str:
    returned = " | Returned" if booking.get_returned_at() else ""
    return (f"Booking ID: {booking.get_id()} | Car ID: {booking.get_car_id()}\n"
            f"Dates: {booking.get_start_date()} to {booking.get_end_date()} "
            f"({booking.get_day_count()} days) | "
            f"Booked on: {booking.get_created_at():%Y-%m-%d}\n"
            f"Total: ${booking.get_total_price():.2f} | "
            f"Status: {booking.get_status().value}{returned}")


class RentalConsole:
    """Menu-driven front end over a CarRentalSystem"""

    SEPARATOR = "-" * 40

    def __init__(self, system: CarRentalSystem,
                 input_func: Callable[[str], str] = input,
                 print_func: Callable[[str], None] = print):
        self._system = system
        self._input = input_func
        self._print = print_func

    # ---------- input helpers ----------

    def _ask(self, prompt: str) -> str:
        return self._input(prompt).strip()

    def _ask_int(self, prompt: str, field_name: str) -> int:
        value = self._ask(prompt)
        try:
            return int(value)
        except ValueError:
            raise ValidationError({field_name: f"'{value}' is not a whole number"}) from None

    def _attempt(self, action: Callable[[], None]) -> None:
        try:
            action()
        except RentalError as e:
            logger.debug(f"Action failed: {e!r}")
            self._print(f"Error: {e}")

    def _menu(self, title: str, options: List[MenuOption], back_label: str = "Back") -> None:
        handlers = {key: handler for key, _, handler in options}
        while True:
            self._print(f"\n=== {title} ===")
            for key, label, _ in options:
                self._print(f"{key}. {label}")
            self._print(f"0. {back_label}")
            choice = self._ask("Enter your choice: ")
            if choice == "0":
                return
            handler = handlers.get(choice)
            if handler is None:
                self._print("Invalid choice! Try again.")
                continue
            self._attempt(handler)

    def _show_cars(self, cars: List[Car], empty_message: str) -> None:
        if not cars:
            self._print(empty_message)
            return
        for car in cars:
            self._print(format_car(car))
            self._print(self.SEPARATOR)

    def _show_bookings(self, bookings: List[Booking], empty_message: str) -> None:
        if not bookings:
            self._print(empty_message)
            return
        for booking in bookings:
            self._print(format_booking(booking))
            self._print(self.SEPARATOR)

    # ---------- main menu ----------

    def run(self) -> None:
        while True:
            self._print("\n=== CAR RENTAL SYSTEM ===")
            self._print("1. Login")
            self._print("2. Register New User")
            self._print("0. Exit")
            try:
                choice = self._ask("Enter your choice: ")
            except EOFError:
                choice = "0"
            if choice == "0":
                self._print("Exiting system...")
                return
            try:
                if choice == "1":
                    self._attempt(self._login)
                elif choice == "2":
                    self._attempt(self._register)
                else:
                    self._print("Invalid choice! Try again.")
            except EOFError:
                self._print("Exiting system...")
                return

    def _login(self) -> None:
        self._print("\n--- Login ---")
        username = self._ask("Username: ")
        password = self._ask("Password: ")
        user = self._system.authenticate(username, password)
        self._print(f"Login successful! Welcome, {user.get_username()}.")
        if user.is_admin():
            self._admin_menu(user)
        else:
            self._customer_menu(user)
        self._print("Logging out...")

    def _register(self) -> None:
        self._print("\n--- Register New User ---")
        username = self._ask("Username (3-20 chars, no spaces): ")
        password = self._ask("Password (6+ chars): ")
        email = self._ask("Email: ")
        self._system.register_user(username, password, email)
        self._print("Registration successful! You can now login.")

    def _update_profile(self, user: User) -> None:
        self._print("\n--- Update Profile ---")
        self._print(f"Current email: {user.get_email()}")
        email = self._ask("Enter new email (or press Enter to keep current): ")
        password = self._ask("Enter new password (or press Enter to keep current): ")
        self._system.update_profile(user, email or None, password or None)
        self._print("Profile updated successfully!")

    # ---------- customer ----------

    def _customer_menu(self, user: User) -> None:
        self._menu(f"CUSTOMER DASHBOARD - {user.get_username()}", [
            ("1", "Search Cars", self._search_cars),
            ("2", "Book a Car", lambda: self._book_car(user)),
            ("3", "View My Bookings", lambda: self._view_my_bookings(user)),
            ("4", "Cancel Booking", lambda: self._cancel_booking(user)),
            ("5", "View Rental History", lambda: self._rental_history(user)),
            ("6", "Make Payment", lambda: self._make_payment(user)),
            ("7", "Update Profile", lambda: self._update_profile(user)),
        ], back_label="Logout")

    def _search_cars(self) -> None:
        self._print("\n--- Search Cars ---")
        self._print("1. By Brand\n2. By Type\n3. By Price Range\n4. Show All Available Cars")
        choice = self._ask("Enter your choice: ")
        if choice == "1":
            cars = self._system.search_cars(brand=self._ask("Enter brand name (or part of it): "))
        elif choice == "2":
            types = "/".join(t.value for t in CarType)
            cars = self._system.search_cars(car_type=self._ask(f"Enter type ({types}): "))
        elif choice == "3":
            low = self._ask("Enter minimum price: ")
            high = self._ask("Enter maximum price: ")
            cars = self._system.search_cars(min_price=low, max_price=high)
        else:
            if choice != "4":
                self._print("Invalid choice. Showing all available cars.")
            cars = self._system.list_available_cars()

        if cars:
            self._print(f"\nFound {len(cars)} car(s):")
        self._show_cars(cars, "No cars match your criteria.")

    def _book_car(self, user: User) -> None:
        self._print("\n--- Book a Car ---")
        available = self._system.list_available_cars()
        if not available:
            self._print("No cars available for booking at the moment.")
            return
        self._show_cars(available, "")
        car_id = self._ask_int("Enter Car ID to book: ", "car_id")
        start = self._ask("Enter start date (YYYY-MM-DD): ")
        end = self._ask("Enter end date (YYYY-MM-DD): ")
        booking = self._system.book_car(user, car_id, start, end)
        car = self._system.get_car(car_id)
        self._print("\nBooking successful! Waiting for admin approval.")
        self._print(f"Booking ID: {booking.get_id()}")
        self._print(f"Car: {car.get_display_name()}")
        self._print(f"Rental Period: {booking.get_start_date()} to {booking.get_end_date()}")
        self._print(f"Total Days: {booking.get_day_count()}")
        self._print(f"Total Price: ${booking.get_total_price():.2f}")

    def _view_my_bookings(self, user: User) -> None:
        self._print("\n--- My Bookings ---")
        self._show_bookings(self._system.bookings_for_user(user), "No bookings found.")

    def _cancel_booking(self, user: User) -> None:
        self._print("\n--- Cancel Booking ---")
        booking_id = self._ask_int("Enter Booking ID to cancel: ", "booking_id")
        self._system.cancel_booking(user, booking_id)
        self._print("Booking cancelled successfully.")

    def _rental_history(self, user: User) -> None:
        self._print("\n--- Rental History ---")
        history = self._system.rental_history(user)
        if not history:
            self._print("No rental history found.")
            return
        self._print(f"You have {len(history)} booking(s):")
        for booking, payment in history:
            self._print(format_booking(booking))
            if payment:
                self._print(f"Payment Method: {payment.method.value}")
                self._print(f"Payment Status: {payment.status.value}")
            else:
                self._print("Payment: Pending")
            self._print(self.SEPARATOR)

    def _make_payment(self, user: User) -> None:
        self._print("\n--- Make Payment ---")
        approved = [b for b in self._system.bookings_for_user(user)
                    if b.get_status() == BookingStatus.APPROVED]
        if not approved:
            self._print("No approved bookings requiring payment.")
            return
        self._show_bookings(approved, "")
        booking_id = self._ask_int("Enter Booking ID to pay for: ", "booking_id")
        booking = self._system.get_booking(booking_id)

        methods = list(PaymentMethod)
        self._print("Select payment method:")
        for number, method in enumerate(methods, start=1):
            self._print(f"{number}. {method.value}")
        choice = self._ask_int("Choice: ", "method")
        if not 1 <= choice <= len(methods):
            raise ValidationError({"method": "choose one of the listed methods"})

        self._print(f"Processing payment of ${booking.get_total_price():.2f}...")
        payment = self._system.pay(user, booking_id, booking.get_total_price(),
                                   methods[choice - 1])
        self._print(payment.receipt)
        self._print(f"Payment completed successfully via {payment.method.value}.")
        self._print(f"Payment ID: {payment.payment_id} | Transaction: {payment.transaction_id}")

    # ---------- admin ----------

    def _admin_menu(self, admin: User) -> None:
        self._menu(f"ADMIN DASHBOARD - {admin.get_username()}", [
            ("1", "Manage Cars", lambda: self._manage_cars(admin)),
            ("2", "Manage Bookings", lambda: self._manage_bookings(admin)),
            ("3", "View Payment Records", lambda: self._payment_records(admin)),
            ("4", "Manage Users", lambda: self._manage_users(admin)),
            ("5", "Generate Reports", lambda: self._reports(admin)),
            ("6", "Update Profile", lambda: self._update_profile(admin)),
        ], back_label="Logout")

    def _manage_cars(self, admin: User) -> None:
        self._menu("Manage Cars", [
            ("1", "Add New Car", lambda: self._add_car(admin)),
            ("2", "Update Price Per Day", lambda: self._update_price(admin)),
            ("3", "Release Car (Mark Available)", lambda: self._update_status(admin)),
            ("4", "Remove Car", lambda: self._remove_car(admin)),
            ("5", "View All Cars", lambda: self._show_cars(self._system.list_cars(),
                                                           "No cars in the system.")),
        ])

    def _add_car(self, admin: User) -> None:
        self._print("\n--- Add New Car ---")
        brand = self._ask("Enter brand: ")
        model = self._ask("Enter model: ")
        car_type = self._ask(f"Enter type ({'/'.join(t.value for t in CarType)}): ")
        year = self._ask("Enter year: ")
        color = self._ask("Enter color: ")
        registration = self._ask("Enter registration number: ")
        price = self._ask("Enter price per day: ")
        car_id = self._system.add_car(admin, brand, model, car_type, year, color,
                                      price, registration)
        self._print(f"Car added successfully with ID: {car_id}")

    def _update_price(self, admin: User) -> None:
        car_id = self._ask_int("Enter Car ID to update: ", "car_id")
        price = self._ask("Enter new price per day: ")
        self._system.update_car_price(admin, car_id, price)
        self._print("Price updated successfully.")

    def _update_status(self, admin: User) -> None:
        car_id = self._ask_int("Enter Car ID to mark Available: ", "car_id")
        self._system.set_car_status(admin, car_id, CarStatus.AVAILABLE)
        self._print("Availability updated successfully.")

    def _remove_car(self, admin: User) -> None:
        car_id = self._ask_int("Enter Car ID to remove: ", "car_id")
        self._system.remove_car(admin, car_id)
        self._print("Car removed successfully.")

    def _manage_bookings(self, admin: User) -> None:
        self._menu("Manage Bookings", [
            ("1", "View All Bookings", lambda: self._show_bookings(
                self._system.list_bookings(admin), "No bookings in the system.")),
            ("2", "Approve/Reject Booking", lambda: self._decide_booking(admin)),
            ("3", "Record Car Return", lambda: self._record_return(admin)),
            ("4", "View Booking History", lambda: self._show_log(admin)),
        ])

    def _decide_booking(self, admin: User) -> None:
        booking_id = self._ask_int("Enter Booking ID to manage: ", "booking_id")
        self._print(format_booking(self._system.get_booking(booking_id)))
        action = self._ask("1. Approve\n2. Reject\nChoice: ")
        if action == "1":
            self._system.approve_booking(admin, booking_id)
            self._print("Booking Approved successfully.")
        elif action == "2":
            self._system.reject_booking(admin, booking_id)
            self._print("Booking Rejected successfully.")
        else:
            self._print("Invalid choice.")

    def _record_return(self, admin: User) -> None:
        booking_id = self._ask_int("Enter Booking ID of the returned car: ", "booking_id")
        self._system.return_car(admin, booking_id)
        self._print("Car return recorded.")

    def _show_log(self, admin: User) -> None:
        lines = self._system.read_logs(admin)
        if not lines:
            self._print("No log entries yet.")
        for line in lines:
            self._print(line)

    def _payment_records(self, admin: User) -> None:
        self._print("\n--- Payment Records ---")
        self._print("1. View All Transactions\n2. View Revenue Report")
        choice = self._ask("Enter choice: ")
        if choice == "1":
            payments = self._system.list_payments(admin)
            if not payments:
                self._print("No payments recorded.")
            for payment in payments:
                self._print(f"Payment ID: {payment.payment_id} | Booking ID: {payment.booking_id} "
                            f"| Transaction: {payment.transaction_id}")
                self._print(f"Amount: ${payment.amount:.2f} | Date: {payment.payment_date} "
                            f"| Method: {payment.method.value} | Status: {payment.status.value}")
                self._print(self.SEPARATOR)
        elif choice == "2":
            self._print(RentalReports(self._system.read_logs(admin)).render_revenue())
        else:
            self._print("Invalid choice!")

    def _manage_users(self, admin: User) -> None:
        self._menu("Manage Users", [
            ("1", "View All Users", lambda: self._list_users(admin)),
            ("2", "View User Activity", lambda: self._user_activity(admin)),
        ])

    def _list_users(self, admin: User) -> None:
        for user in self._system.list_users(admin):
            self._print(f"ID: {user.get_id()} | Username: {user.get_username()} | "
                        f"Email: {user.get_email()} | Role: {user.get_role().value}")

    def _user_activity(self, admin: User) -> None:
        username = self._ask("Enter username to view activity: ")
        lines = RentalReports(self._system.read_logs(admin)).user_activity(username)
        self._print(f"\nActivity for user '{username}':")
        if not lines:
            self._print("No activity found for this user.")
        for line in lines:
            self._print(line.strip())

    def _reports(self, admin: User) -> None:
        self._print("\n=== Generate Reports ===")
        self._print("1. Revenue Report\n2. Booking Statistics\n"
                    "3. Popular Cars Report\n4. Customer Activity Report")
        choice = self._ask("Enter choice: ")
        reports = RentalReports(self._system.read_logs(admin))
        renderers = {
            "1": reports.render_revenue,
            "2": reports.render_booking_statistics,
            "3": reports.render_popular_cars,
            "4": reports.render_customer_activity,
        }
        renderer = renderers.get(choice)
        if renderer is None:
            self._print("Invalid choice!")
            return
        self._print(renderer())


# ==================== Entry Point ====================

def main() -> int:
    config = RentalConfig.from_env()
    logging.basicConfig(
        level=config.get_log_level(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        system = CarRentalSystemFactory.create_persistent_system(config)
    except StorageError as e:
        print(f"Error: {e}")
        return 1

    try:
        RentalConsole(system).run()
    except KeyboardInterrupt:
        print("\nExiting system...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
