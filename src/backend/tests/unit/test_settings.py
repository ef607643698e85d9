"""
Unit tests for lifecycle settings.
"""

import pytest
from pydantic import ValidationError

from core.config import LifecycleSettings, MinIOSettings
from db.enums import InternalStatus


def test_defaults():
    lifecycle = LifecycleSettings()
    assert lifecycle.post_assignment_status == InternalStatus.ASSIGNED
    assert lifecycle.ticket_sequence_padding == 3


@pytest.mark.parametrize("status", [InternalStatus.ASSIGNED, InternalStatus.OPEN])
def test_post_assignment_status_accepts_assigned_or_open(status):
    assert LifecycleSettings(post_assignment_status=status).post_assignment_status == status


@pytest.mark.parametrize(
    "status", [InternalStatus.NEW, InternalStatus.IN_PROGRESS, InternalStatus.CLOSED]
)
def test_post_assignment_status_rejects_other_states(status):
    with pytest.raises(ValidationError):
        LifecycleSettings(post_assignment_status=status)


def test_service_department_is_normalized():
    assert LifecycleSettings(service_department="  service ").service_department == "SERVICE"


def test_batch_size_is_bounded():
    with pytest.raises(ValidationError):
        MinIOSettings(max_files_per_batch=0)
