"""
Configuration for the car rental console.

Values come from CAR_RENTAL_* environment variables, optionally loaded
from a .env file, with defaults that keep every data file in the current
directory.
"""

import os
import logging
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

TRUTHY = ("1", "true", "yes", "on")


@dataclass
class RentalConfig:
    """File locations and runtime switches"""

    data_dir: str = "."
    cars_file: str = "cars.txt"
    users_file: str = "users.dat"
    transaction_log_file: str = "transactions.log"
    booking_log_file: str = "booking_updates.log"
    log_level: str = "WARNING"
    seed_defaults: bool = True

    @classmethod
    def from_env(cls) -> "RentalConfig":
        """
        Create RentalConfig from environment variables.

        Returns:
            RentalConfig: Configuration instance with values from environment
        """
        return cls(
            data_dir=os.getenv("CAR_RENTAL_DATA_DIR", "."),
            cars_file=os.getenv("CAR_RENTAL_CARS_FILE", "cars.txt"),
            users_file=os.getenv("CAR_RENTAL_USERS_FILE", "users.dat"),
            transaction_log_file=os.getenv("CAR_RENTAL_TRANSACTION_LOG", "transactions.log"),
            booking_log_file=os.getenv("CAR_RENTAL_BOOKING_LOG", "booking_updates.log"),
            log_level=os.getenv("CAR_RENTAL_LOG_LEVEL", "WARNING").upper(),
            seed_defaults=os.getenv("CAR_RENTAL_SEED_DEFAULTS", "true").strip().lower() in TRUTHY,
        )

    def _path(self, filename: str) -> str:
        return os.path.join(self.data_dir, filename)

    @property
    def cars_path(self) -> str:
        return self._path(self.cars_file)

    @property
    def users_path(self) -> str:
        return self._path(self.users_file)

    @property
    def transaction_log_path(self) -> str:
        return self._path(self.transaction_log_file)

    @property
    def booking_log_path(self) -> str:
        return self._path(self.booking_log_file)

    def get_log_level(self) -> int:
        level = logging.getLevelName(self.log_level)
        if not isinstance(level, int):
            logger.warning(f"Unknown log level {self.log_level}, using WARNING")
            return logging.WARNING
        return level
