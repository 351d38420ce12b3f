"""
Shared fixtures: a seeded in-memory system and its default accounts.
"""

import pytest

from car_rental import CarRentalSystem


@pytest.fixture
def system():
    system = CarRentalSystem()
    system.seed_defaults()
    return system


@pytest.fixture
def admin(system):
    return system.authenticate("admin", "admin123")


@pytest.fixture
def john(system):
    return system.authenticate("john", "john123")


@pytest.fixture
def alice(system):
    return system.authenticate("alice", "alice123")


@pytest.fixture
def car_id(system, admin):
    """A 50.00/day car added on top of the four seeded ones"""
    return system.add_car(admin, "Mazda", "CX-5", "SUV", 2023, "Grey", "50.00", "MZD-501")
