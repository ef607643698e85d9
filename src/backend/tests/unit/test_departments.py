"""
Unit tests for department name matching.
"""

import pytest

from services.guards import is_service_department, same_department


@pytest.mark.parametrize(
    "left,right,expected",
    [
        ("ELECTRICAL", "ELECTRICAL", True),
        ("Electrical ", "electrical", True),
        ("ELECTRICAL", "MECHANICAL", False),
        (None, "ELECTRICAL", False),
        (None, None, False),
    ],
)
def test_same_department(left, right, expected):
    assert same_department(left, right) is expected


@pytest.mark.parametrize("department", ["SERVICE", "Service", "  service  "])
def test_service_department_variants(department):
    assert is_service_department(department) is True


@pytest.mark.parametrize("department", ["ELECTRICAL", "", None, "SERVICES"])
def test_other_departments(department):
    assert is_service_department(department) is False
