from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple
import logging

from rental_storage import TransactionLogger


logger = logging.getLogger(__name__)


# ==================== Log Parsing ====================

@dataclass
class LogBlock:
    """One labeled entry read back from the transaction logs"""
    kind: str
    fields: Dict[str, str] = field(default_factory=dict)

    def get(self, label: str, default: str = "") -> str:
        return self.fields.get(label, default)

    def get_amount(self, label: str) -> Optional[Decimal]:
        value = self.get(label).lstrip("$")
        try:
            return Decimal(value)
        except InvalidOperation:
            return None


def parse_blocks(lines: List[str]) -> List[LogBlock]:
    """Group log lines into blocks keyed by their field labels"""
    headers = {
        TransactionLogger.TRANSACTION_HEADER: "transaction",
        TransactionLogger.BOOKING_UPDATE_HEADER: "booking_update",
    }
    blocks: List[LogBlock] = []
    current: Optional[LogBlock] = None

    for raw in lines:
        line = raw.strip()
        if line in headers:
            current = LogBlock(headers[line])
            blocks.append(current)
        elif line == TransactionLogger.FOOTER:
            current = None
        elif current is not None and ": " in line:
            label, value = line.split(": ", 1)
            # first occurrence wins: "Status" appears once per block
            current.fields.setdefault(label, value.strip())
    return blocks


# ==================== Reports ====================

class RentalReports:
    """Revenue and activity figures computed from the log lines"""

    def __init__(self, lines: List[str]):
        self._lines = list(lines)
        self._blocks = parse_blocks(self._lines)

    @classmethod
    def from_logger(cls, transaction_logger: TransactionLogger) -> "RentalReports":
        return cls(transaction_logger.read_all())

    def _transactions(self) -> List[LogBlock]:
        return [b for b in self._blocks if b.kind == "transaction"]

    def _booking_updates(self) -> List[LogBlock]:
        return [b for b in self._blocks if b.kind == "booking_update"]

    def get_lines(self) -> List[str]:
        return list(self._lines)

    def revenue(self) -> Tuple[Decimal, Dict[str, Decimal]]:
        """Total revenue and revenue per payment method"""
        total = Decimal("0")
        by_method: Dict[str, Decimal] = defaultdict(Decimal)
        for block in self._transactions():
            amount = block.get_amount("Revenue Generated")
            if amount is None:
                logger.warning(f"Unreadable revenue in booking {block.get('Booking ID')}")
                continue
            total += amount
            by_method[block.get("Method", "Unknown")] += amount
        return total, dict(by_method)

    def booking_statistics(self) -> Tuple[Dict[str, int], Dict[str, int]]:
        """Status changes by resulting status and paid bookings by start month"""
        by_status: Dict[str, int] = defaultdict(int)
        for block in self._booking_updates():
            by_status[block.get("Status", "Unknown")] += 1

        by_month: Dict[str, int] = defaultdict(int)
        for block in self._transactions():
            start = block.get("Start Date")
            if start:
                by_month[start[:7]] += 1
        return dict(by_status), dict(sorted(by_month.items()))

    def popular_cars(self) -> Dict[str, Tuple[int, Decimal]]:
        """Paid bookings and revenue per car, most booked first"""
        stats: Dict[str, List] = defaultdict(lambda: [0, Decimal("0")])
        for block in self._transactions():
            car = block.get("Brand", "Unknown")
            stats[car][0] += 1
            stats[car][1] += block.get_amount("Revenue Generated") or Decimal("0")
        ranked = sorted(stats.items(), key=lambda item: (-item[1][0], item[0]))
        return {car: (count, revenue) for car, (count, revenue) in ranked}

    def customer_activity(self) -> Dict[str, Tuple[int, Decimal]]:
        """Paid bookings and total spending per username"""
        stats: Dict[str, List] = defaultdict(lambda: [0, Decimal("0")])
        for block in self._transactions():
            username = block.get("Username", "Unknown")
            stats[username][0] += 1
            stats[username][1] += block.get_amount("Amount") or Decimal("0")
        return {user: (count, spent) for user, (count, spent) in sorted(stats.items())}

    def user_activity(self, username: str) -> List[str]:
        """Raw log lines naming the user"""
        wanted = {f"Username: {username}", f"Customer: {username}"}
        return [line for line in self._lines if line.strip() in wanted]

    # ---------- text rendering ----------

    def render_revenue(self) -> str:
        total, by_method = self.revenue()
        out = ["=== Revenue Report ===", f"Total Revenue: ${total:.2f}", "",
               "Revenue by Payment Method:"]
        for method, amount in sorted(by_method.items()):
            share = (amount / total * 100) if total else Decimal("0")
            out.append(f"{method}: ${amount:.2f} ({share:.1f}%)")
        return "\n".join(out)

    def render_booking_statistics(self) -> str:
        by_status, by_month = self.booking_statistics()
        out = ["=== Booking Statistics ===", "Bookings by Status:"]
        out += [f"{status}: {count}" for status, count in sorted(by_status.items())]
        out += ["", "Bookings by Month:"]
        out += [f"{month}: {count}" for month, count in by_month.items()]
        return "\n".join(out)

    def render_popular_cars(self) -> str:
        out = ["=== Popular Cars Report ===", "Car Booking Frequency:"]
        for car, (count, revenue) in self.popular_cars().items():
            out += [f"{car}:", f"  Bookings: {count}", f"  Revenue: ${revenue:.2f}"]
        return "\n".join(out)

    def render_customer_activity(self) -> str:
        out = ["=== Customer Activity Report ===", "Customer Activity:"]
        for username, (count, spent) in self.customer_activity().items():
            out += [f"Customer: {username}", f"  Total Bookings: {count}",
                    f"  Total Spending: ${spent:.2f}"]
        return "\n".join(out)
