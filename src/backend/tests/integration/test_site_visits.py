"""
Integration tests for site visit requests and scheduled visits.

Tests:
- Request, schedule and complete a visit for another department
- Rejected requests and direct scheduling by the service department
- Cancelling visits and closing issues with visits outstanding
- Department checks on visit outcomes
- Engineer workload counters
"""

from uuid import UUID

import pytest
from sqlalchemy import select

from core.exceptions import ErrorKind
from db.enums import (
    SiteVisitRequestStatus,
    TimelineAction,
    VisitStatus,
)
from db.models import Employee, Issue, IssueSiteVisit, SiteVisitRequest
from repositories.timeline_repository import TimelineRepository
from schemas.actor import Actor
from services.assignment_service import AssignmentService
from services.issue_service import IssueService
from services.notification_service import NotificationDispatcher
from services.site_visit_service import SiteVisitService
from tests.factories import (
    DeviceTokenFactory,
    EmployeeFactory,
    missing_id,
    persist,
    reload,
    visit_date,
)


async def _request_and_schedule(db, head_actor, service_head_actor, issue_id, engineer_id):
    """Request a visit as the owning head and schedule it as the service head."""
    requested = await SiteVisitService.request_visit(db, head_actor, issue_id)
    assert requested.status, requested.message
    scheduled = await SiteVisitService.schedule_for_request(
        db, service_head_actor, issue_id, engineer_id, requested.data.id, visit_date()
    )
    assert scheduled.status, scheduled.message
    return requested.data.id, scheduled.data.id


async def _counters(db, engineer_id: UUID):
    engineer = await reload(db, Employee, engineer_id)
    return engineer.pending_visits, engineer.completed_visits


async def _visits(db, issue_id):
    result = await db.execute(select(IssueSiteVisit).where(IssueSiteVisit.issue_id == issue_id))
    return list(result.scalars().all())


# ============================================================================
# Requested visits
# ============================================================================


@pytest.mark.asyncio
async def test_request_schedule_and_complete_visit(
    db_session, head_actor, service_head_actor, service_head, engineer, started_issue_id
):
    engineer_id = engineer.id
    when = visit_date()

    requested = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)
    assert requested.status, requested.message
    assert requested.data.status == SiteVisitRequestStatus.PENDING
    assert requested.data.request_from_department == "ELECTRICAL"

    pending = await SiteVisitService.list_pending_requests(db_session, service_head_actor)
    assert [item.id for item in pending.data] == [requested.data.id]

    scheduled = await SiteVisitService.schedule_for_request(
        db_session, service_head_actor, started_issue_id, engineer_id, requested.data.id, when
    )
    assert scheduled.status, scheduled.message
    visit = scheduled.data
    assert visit.status == VisitStatus.SCHEDULED
    assert visit.working_department == "ELECTRICAL"
    assert visit.working_head_id == service_head.id
    assert visit.site_visit_request_id == requested.data.id
    assert await _counters(db_session, engineer_id) == (1, 0)

    request = await reload(db_session, SiteVisitRequest, requested.data.id)
    assert request.status == SiteVisitRequestStatus.COMPLETED
    issue = await reload(db_session, Issue, started_issue_id)
    assert issue.is_site_visit_scheduled is True
    assert issue.is_site_visit_requested is True

    timeline = await TimelineRepository.list_for_issue(db_session, started_issue_id)
    assert timeline[-1].action == TimelineAction.SITE_VISIT_SCHEDULED
    assert timeline[-1].visible_to_customer is True
    assert timeline[-1].comment == (
        f"Site visit scheduled for {when:%d %b %Y} by Service Engineer "
        f"Essam Engineer (Mobile: 01000000001)."
    )
    requested_entry = timeline[-2]
    assert requested_entry.action == TimelineAction.SITE_VISIT_REQUESTED
    assert requested_entry.visible_to_customer is False

    completed = await SiteVisitService.complete(
        db_session, head_actor, visit.id, "ELECTRICAL"
    )
    assert completed.status, completed.message
    assert completed.data.status == VisitStatus.COMPLETED
    assert completed.data.actual_date is not None
    assert await _counters(db_session, engineer_id) == (0, 1)

    issue = await reload(db_session, Issue, started_issue_id)
    assert issue.is_site_visit_scheduled is False
    assert issue.is_site_visit_requested is False
    timeline = await TimelineRepository.list_for_issue(db_session, started_issue_id)
    assert timeline[-1].action == TimelineAction.SITE_VISIT_COMPLETED


@pytest.mark.asyncio
async def test_duplicate_request_conflicts(db_session, head_actor, service_head, started_issue_id):
    await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)

    result = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)

    assert result.error_kind == ErrorKind.CONFLICT
    requests = await db_session.execute(
        select(SiteVisitRequest).where(SiteVisitRequest.issue_id == started_issue_id)
    )
    assert len(requests.scalars().all()) == 1


@pytest.mark.asyncio
async def test_request_while_visit_scheduled_conflicts(
    db_session, head_actor, service_head_actor, engineer, started_issue_id
):
    await _request_and_schedule(
        db_session, head_actor, service_head_actor, started_issue_id, engineer.id
    )

    result = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)

    assert result.error_kind == ErrorKind.CONFLICT


@pytest.mark.asyncio
async def test_service_head_cannot_request_visit(
    db_session, manager_actor, service_head_actor, service_head, new_issue_id
):
    await AssignmentService.assign_to_department(
        db_session, manager_actor, new_issue_id, service_head.id
    )

    result = await SiteVisitService.request_visit(db_session, service_head_actor, new_issue_id)

    assert result.error_kind == ErrorKind.PERMISSION_DENIED


@pytest.mark.asyncio
async def test_other_head_cannot_request_visit(
    db_session, other_head_actor, started_issue_id
):
    result = await SiteVisitService.request_visit(db_session, other_head_actor, started_issue_id)

    assert result.error_kind == ErrorKind.PERMISSION_DENIED


@pytest.mark.asyncio
async def test_service_heads_are_notified_of_request(
    db_session, head_actor, device_tokens, started_issue_id, push_sender
):
    await NotificationDispatcher.drain()
    push_sender.reset_mock()

    await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)
    await NotificationDispatcher.drain()

    sent = [call.args[0] for call in push_sender.await_args_list]
    assert [(n.token, n.title) for n in sent] == [("token-service-head", "Site Visit Requested")]


@pytest.mark.asyncio
async def test_mixed_case_service_head_is_notified(
    db_session, head_actor, started_issue_id, push_sender
):
    service_lead = await persist(
        db_session, EmployeeFactory.create_head(department=" Service ", name="Sara Service")
    )
    await persist(db_session, DeviceTokenFactory.create(service_lead.id, "token-sara"))
    service_lead_actor = Actor.head(service_lead.id, service_lead.department)
    await NotificationDispatcher.drain()
    push_sender.reset_mock()

    requested = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)
    await NotificationDispatcher.drain()

    assert requested.status, requested.message
    sent = [call.args[0] for call in push_sender.await_args_list]
    assert [(n.token, n.title) for n in sent] == [("token-sara", "Site Visit Requested")]

    pending = await SiteVisitService.list_pending_requests(db_session, service_lead_actor)
    assert [item.id for item in pending.data] == [requested.data.id]


@pytest.mark.asyncio
async def test_head_without_department_cannot_request_visit(
    db_session, manager_actor, service_head, new_issue_id
):
    unplaced = await persist(
        db_session, EmployeeFactory.create_head(department=None, name="Nader Nodept")
    )
    unplaced_actor = Actor.head(unplaced.id)
    assigned = await AssignmentService.assign_to_department(
        db_session, manager_actor, new_issue_id, unplaced.id
    )
    assert assigned.status, assigned.message

    result = await SiteVisitService.request_visit(db_session, unplaced_actor, new_issue_id)

    assert result.error_kind == ErrorKind.PERMISSION_DENIED
    requests = await db_session.execute(
        select(SiteVisitRequest).where(SiteVisitRequest.issue_id == new_issue_id)
    )
    assert requests.scalars().all() == []
    issue = await reload(db_session, Issue, new_issue_id)
    assert issue.is_site_visit_requested is False


@pytest.mark.asyncio
async def test_reject_request(
    db_session, head_actor, service_head_actor, device_tokens, started_issue_id, push_sender
):
    requested = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)
    await NotificationDispatcher.drain()
    push_sender.reset_mock()

    result = await SiteVisitService.reject_request(
        db_session, service_head_actor, requested.data.id, "Remote fix is possible"
    )
    await NotificationDispatcher.drain()

    assert result.status, result.message
    assert result.data.status == SiteVisitRequestStatus.REJECTED
    issue = await reload(db_session, Issue, started_issue_id)
    assert issue.is_site_visit_requested is False

    timeline = await TimelineRepository.list_for_issue(db_session, started_issue_id)
    assert timeline[-1].action == TimelineAction.SITE_VISIT_REQUEST_REJECTED
    assert timeline[-1].visible_to_customer is False
    assert "Remote fix is possible" in timeline[-1].comment

    sent = [call.args[0] for call in push_sender.await_args_list]
    assert [n.token for n in sent] == ["token-head"]

    again = await SiteVisitService.reject_request(
        db_session, service_head_actor, requested.data.id
    )
    assert again.error_kind == ErrorKind.INVALID_STATE


@pytest.mark.asyncio
async def test_only_service_heads_reject(
    db_session, head_actor, service_head, started_issue_id
):
    requested = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)

    result = await SiteVisitService.reject_request(db_session, head_actor, requested.data.id)

    assert result.error_kind == ErrorKind.PERMISSION_DENIED
    request = await reload(db_session, SiteVisitRequest, requested.data.id)
    assert request.status == SiteVisitRequestStatus.PENDING


@pytest.mark.asyncio
async def test_rejected_request_cannot_be_scheduled(
    db_session, head_actor, service_head_actor, engineer, started_issue_id
):
    engineer_id = engineer.id
    requested = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)
    await SiteVisitService.reject_request(db_session, service_head_actor, requested.data.id)

    result = await SiteVisitService.schedule_for_request(
        db_session,
        service_head_actor,
        started_issue_id,
        engineer_id,
        requested.data.id,
        visit_date(),
    )

    assert result.error_kind == ErrorKind.INVALID_STATE
    assert await _counters(db_session, engineer_id) == (0, 0)


@pytest.mark.asyncio
async def test_inactive_engineer_conflicts(
    db_session, head_actor, service_head_actor, started_issue_id
):
    away = await persist(db_session, EmployeeFactory.create_engineer(is_active=False))
    away_id = away.id
    requested = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)

    result = await SiteVisitService.schedule_for_request(
        db_session, service_head_actor, started_issue_id, away_id, requested.data.id, visit_date()
    )

    assert result.error_kind == ErrorKind.CONFLICT
    assert await _visits(db_session, started_issue_id) == []


# ============================================================================
# Direct scheduling
# ============================================================================


@pytest.mark.asyncio
async def test_service_department_schedules_directly(
    db_session, manager_actor, service_head_actor, service_head, engineer, new_issue_id
):
    engineer_id = engineer.id
    await AssignmentService.assign_to_department(
        db_session, manager_actor, new_issue_id, service_head.id
    )

    result = await SiteVisitService.schedule_direct(
        db_session, service_head_actor, new_issue_id, engineer_id, visit_date(5)
    )

    assert result.status, result.message
    assert result.data.working_department == "SERVICE"
    assert result.data.site_visit_request_id is None
    assert await _counters(db_session, engineer_id) == (1, 0)

    upcoming = await SiteVisitService.list_upcoming_visits(
        db_session, service_head_actor, engineer_id
    )
    assert [visit.id for visit in upcoming.data] == [result.data.id]


@pytest.mark.asyncio
async def test_direct_scheduling_needs_service_owned_issue(
    db_session, service_head_actor, engineer, started_issue_id
):
    engineer_id = engineer.id

    result = await SiteVisitService.schedule_direct(
        db_session, service_head_actor, started_issue_id, engineer_id, visit_date()
    )

    assert result.error_kind == ErrorKind.INVALID_STATE
    assert await _counters(db_session, engineer_id) == (0, 0)


@pytest.mark.asyncio
async def test_second_direct_visit_conflicts(
    db_session, manager_actor, service_head_actor, service_head, engineer, new_issue_id
):
    engineer_id = engineer.id
    await AssignmentService.assign_to_department(
        db_session, manager_actor, new_issue_id, service_head.id
    )
    await SiteVisitService.schedule_direct(
        db_session, service_head_actor, new_issue_id, engineer_id, visit_date()
    )

    result = await SiteVisitService.schedule_direct(
        db_session, service_head_actor, new_issue_id, engineer_id, visit_date(4)
    )

    assert result.error_kind == ErrorKind.CONFLICT
    assert len(await _visits(db_session, new_issue_id)) == 1
    assert await _counters(db_session, engineer_id) == (1, 0)


# ============================================================================
# Visit outcomes
# ============================================================================


@pytest.mark.asyncio
async def test_cancel_visit_with_remark(
    db_session, head_actor, service_head_actor, engineer, started_issue_id
):
    engineer_id = engineer.id
    _, visit_id = await _request_and_schedule(
        db_session, head_actor, service_head_actor, started_issue_id, engineer_id
    )

    result = await SiteVisitService.cancel(
        db_session, head_actor, visit_id, "ELECTRICAL", "Customer site closed for holiday"
    )

    assert result.status, result.message
    assert result.data.status == VisitStatus.CANCELLED
    assert result.data.remark == "Customer site closed for holiday"
    assert await _counters(db_session, engineer_id) == (0, 0)

    issue = await reload(db_session, Issue, started_issue_id)
    assert issue.is_site_visit_scheduled is False
    timeline = await TimelineRepository.list_for_issue(db_session, started_issue_id)
    assert timeline[-1].action == TimelineAction.SITE_VISIT_CANCELLED
    assert timeline[-1].comment == "Site visit cancelled. Remark: Customer site closed for holiday"
    assert timeline[-1].visible_to_customer is True


@pytest.mark.asyncio
async def test_visit_outcome_checks_department(
    db_session, head_actor, other_head_actor, service_head_actor, engineer, started_issue_id
):
    engineer_id = engineer.id
    _, visit_id = await _request_and_schedule(
        db_session, head_actor, service_head_actor, started_issue_id, engineer_id
    )

    wrong_department = await SiteVisitService.complete(
        db_session, head_actor, visit_id, "MECHANICAL"
    )
    wrong_head = await SiteVisitService.complete(
        db_session, other_head_actor, visit_id, "ELECTRICAL"
    )

    assert wrong_department.error_kind == ErrorKind.PERMISSION_DENIED
    assert wrong_head.error_kind == ErrorKind.PERMISSION_DENIED
    visit = await reload(db_session, IssueSiteVisit, visit_id)
    assert visit.status == VisitStatus.SCHEDULED
    assert await _counters(db_session, engineer_id) == (1, 0)


@pytest.mark.asyncio
async def test_service_head_can_complete_for_working_department(
    db_session, head_actor, service_head_actor, engineer, started_issue_id
):
    _, visit_id = await _request_and_schedule(
        db_session, head_actor, service_head_actor, started_issue_id, engineer.id
    )

    result = await SiteVisitService.complete(db_session, service_head_actor, visit_id, "ELECTRICAL")

    assert result.status, result.message


@pytest.mark.asyncio
async def test_finished_visit_cannot_change_again(
    db_session, head_actor, service_head_actor, engineer, started_issue_id
):
    engineer_id = engineer.id
    _, visit_id = await _request_and_schedule(
        db_session, head_actor, service_head_actor, started_issue_id, engineer_id
    )
    await SiteVisitService.complete(db_session, head_actor, visit_id, "ELECTRICAL")

    completed_again = await SiteVisitService.complete(db_session, head_actor, visit_id, "ELECTRICAL")
    cancelled = await SiteVisitService.cancel(db_session, head_actor, visit_id, "ELECTRICAL")

    assert completed_again.error_kind == ErrorKind.INVALID_STATE
    assert cancelled.error_kind == ErrorKind.INVALID_STATE
    assert await _counters(db_session, engineer_id) == (0, 1)


@pytest.mark.asyncio
async def test_unknown_visit_is_not_found(db_session, head_actor, head):
    result = await SiteVisitService.complete(db_session, head_actor, missing_id(), "ELECTRICAL")

    assert result.error_kind == ErrorKind.NOT_FOUND


# ============================================================================
# Closing issues with visits outstanding
# ============================================================================


@pytest.mark.asyncio
async def test_resolving_cancels_scheduled_visit(
    db_session, head_actor, service_head_actor, engineer, started_issue_id
):
    engineer_id = engineer.id
    request_id, visit_id = await _request_and_schedule(
        db_session, head_actor, service_head_actor, started_issue_id, engineer_id
    )

    result = await IssueService.mark_resolved(db_session, head_actor, started_issue_id)

    assert result.status, result.message
    visit = await reload(db_session, IssueSiteVisit, visit_id)
    assert visit.status == VisitStatus.CANCELLED
    assert await _counters(db_session, engineer_id) == (0, 0)
    request = await reload(db_session, SiteVisitRequest, request_id)
    assert request.status == SiteVisitRequestStatus.COMPLETED

    issue = await reload(db_session, Issue, started_issue_id)
    assert issue.is_site_visit_scheduled is False
    assert issue.is_site_visit_requested is False

    timeline = await TimelineRepository.list_for_issue(db_session, started_issue_id)
    assert [entry.action for entry in timeline[-2:]] == [
        TimelineAction.SITE_VISIT_CANCELLED,
        TimelineAction.RESOLVED,
    ]
    assert issue.latest_status_id == timeline[-1].id


@pytest.mark.asyncio
async def test_resolving_withdraws_pending_request(
    db_session, head_actor, service_head, started_issue_id
):
    requested = await SiteVisitService.request_visit(db_session, head_actor, started_issue_id)

    await IssueService.mark_resolved(db_session, head_actor, started_issue_id)

    request = await reload(db_session, SiteVisitRequest, requested.data.id)
    assert request.status == SiteVisitRequestStatus.CANCELLED
    timeline = await TimelineRepository.list_for_issue(db_session, started_issue_id)
    withdrawn = timeline[-2]
    assert withdrawn.action == TimelineAction.SITE_VISIT_CANCELLED
    assert withdrawn.visible_to_customer is False


@pytest.mark.asyncio
async def test_cancelling_issue_cancels_scheduled_visit(
    db_session, manager_actor, head_actor, service_head_actor, engineer, started_issue_id
):
    engineer_id = engineer.id
    _, visit_id = await _request_and_schedule(
        db_session, head_actor, service_head_actor, started_issue_id, engineer_id
    )

    await IssueService.cancel_issue(db_session, manager_actor, started_issue_id)

    visit = await reload(db_session, IssueSiteVisit, visit_id)
    assert visit.status == VisitStatus.CANCELLED
    assert await _counters(db_session, engineer_id) == (0, 0)


# ============================================================================
# Engineer workload
# ============================================================================


@pytest.mark.asyncio
async def test_counters_track_every_visit(
    db_session,
    customer_actor,
    project,
    manager_actor,
    head,
    head_actor,
    service_head_actor,
    engineer,
):
    engineer_id = engineer.id
    head_id = head.id
    project_id = project.id

    visit_ids = []
    for description in ("Pump cavitation", "Chiller alarm", "Capper torque drift"):
        created = await IssueService.create(db_session, customer_actor, project_id, description)
        issue_id = created.data.id
        await AssignmentService.assign_to_department(db_session, manager_actor, issue_id, head_id)
        await IssueService.start_working(db_session, head_actor, issue_id)
        _, visit_id = await _request_and_schedule(
            db_session, head_actor, service_head_actor, issue_id, engineer_id
        )
        visit_ids.append(visit_id)
    assert await _counters(db_session, engineer_id) == (3, 0)

    await SiteVisitService.complete(db_session, head_actor, visit_ids[0], "ELECTRICAL")
    await SiteVisitService.cancel(db_session, head_actor, visit_ids[1], "ELECTRICAL")
    assert await _counters(db_session, engineer_id) == (1, 1)

    engineers = await SiteVisitService.list_service_engineers(db_session, service_head_actor)
    assert [(e.id, e.pending_visits, e.completed_visits) for e in engineers.data] == [
        (engineer_id, 1, 1)
    ]

    scheduled = await SiteVisitService.list_site_visits(db_session, service_head_actor)
    assert [visit.id for visit in scheduled.data] == [visit_ids[2]]


@pytest.mark.asyncio
async def test_engineers_listed_least_loaded_first(db_session, service_head_actor):
    busy = EmployeeFactory.create_engineer(name="Busy Bakr", pending_visits=4)
    free = EmployeeFactory.create_engineer(name="Free Fady", pending_visits=0)
    await persist(db_session, busy, free)
    busy_id, free_id = busy.id, free.id

    result = await SiteVisitService.list_service_engineers(db_session, service_head_actor)

    assert [engineer.id for engineer in result.data] == [free_id, busy_id]


@pytest.mark.asyncio
async def test_engineers_have_no_scheduling_rights(db_session, engineer, started_issue_id):
    actor = Actor.service_engineer(engineer.id)

    result = await SiteVisitService.request_visit(db_session, actor, started_issue_id)

    assert result.error_kind == ErrorKind.PERMISSION_DENIED


@pytest.mark.asyncio
async def test_visit_outcome_department_ignores_case(
    db_session, head_actor, service_head_actor, engineer, started_issue_id
):
    engineer_id = engineer.id
    _, visit_id = await _request_and_schedule(
        db_session, head_actor, service_head_actor, started_issue_id, engineer_id
    )

    result = await SiteVisitService.complete(db_session, head_actor, visit_id, "electrical")

    assert result.status, result.message
    assert await _counters(db_session, engineer_id) == (0, 1)
