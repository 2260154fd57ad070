import uuid
from datetime import date, time

import pytest
import pytest_asyncio

from rollcall.backend.models.db_models import (
    AuditAction, Frequency, LocationType, OrganizationSettings, Role, UserAccount, Weekday,
)
from rollcall.backend.services.audit import AuditTrail
from rollcall.backend.services.errors import InputValidationError, NotAuthorizedError, NotFoundError
from rollcall.backend.services.organization_service import OrganizationService
from rollcall.backend.services.session_service import SessionService, SessionTemplateInput, SessionTemplateUpdate
from tests.fakes import ORG, VENUE, FixedClock, local, make_auth, make_batch, make_user

MANAGER = make_auth("boss", Role.MANAGER)


def draft(**overrides) -> SessionTemplateInput:
    data = dict(
        name="Daily Sync", frequency=Frequency.WEEKLY, start_date=date(2024, 1, 1),
        start_time=time(9, 0), end_time=time(9, 30), weekly_days=[Weekday.TUESDAY],
        location_type=LocationType.PHYSICAL, physical_location=VENUE, assigned_users=["u1", "u2", "u1"],
    )
    data.update(overrides)
    return SessionTemplateInput(**data)


@pytest_asyncio.fixture
async def service_instance(fake_db):
    await fake_db.add_users([UserAccount(**make_user(u).model_dump(), password_hash="x") for u in ("u1", "u2")])
    await fake_db.add_users([UserAccount(**make_user("u9", organization_id="org-2").model_dump(), password_hash="x")])
    organization_service = OrganizationService(fake_db, default_late_grace_minutes=30)
    clock = FixedClock(local(2024, 1, 10, 12, 0))
    service = SessionService(db_client=fake_db, organization_service=organization_service, clock=clock,
                             audit=AuditTrail(fake_db))
    return service, fake_db


@pytest.mark.asyncio
class TestSessionService:

    async def test_create_uses_organization_late_limit(self, service_instance):
        service, db = service_instance
        await db.upsert_organization_settings(OrganizationSettings(organization_id=ORG, late_attendance_limit=12))

        template = await service.create_template(MANAGER, draft())
        assert template.late_grace_minutes == 12
        assert template.assigned_users == ["u1", "u2"]
        assert template.created_by == "boss"
        assert template.session_id in db.templates

    async def test_create_defaults_late_limit_to_thirty(self, service_instance):
        service, _ = service_instance
        template = await service.create_template(MANAGER, draft())
        assert template.late_grace_minutes == 30

    async def test_explicit_grace_wins(self, service_instance):
        service, _ = service_instance
        template = await service.create_template(MANAGER, draft(late_grace_minutes=5))
        assert template.late_grace_minutes == 5

    @pytest.mark.parametrize("overrides", [
        {"weekly_days": []},
        {"physical_location": None},
        {"end_date": date(2023, 12, 1)},
    ])
    async def test_invalid_schedules_are_rejected(self, service_instance, overrides):
        service, db = service_instance
        with pytest.raises(InputValidationError):
            await service.create_template(MANAGER, draft(**overrides))
        assert db.templates == {}

    async def test_unknown_or_foreign_users_are_rejected(self, service_instance):
        service, _ = service_instance
        with pytest.raises(InputValidationError, match="u9"):
            await service.create_template(MANAGER, draft(assigned_users=["u1", "u9"]))

    async def test_end_user_cannot_create(self, service_instance):
        service, _ = service_instance
        with pytest.raises(NotAuthorizedError):
            await service.create_template(make_auth("u1"), draft())

    async def test_update_and_cancel(self, service_instance):
        service, db = service_instance
        template = await service.create_template(MANAGER, draft())

        updated = await service.update_template(MANAGER, template.session_id, SessionTemplateUpdate(name="Renamed", end_time=time(10, 0)))
        assert updated.name == "Renamed"
        assert updated.end_time == time(10, 0)
        assert updated.weekly_days == [Weekday.TUESDAY]

        cancelled = await service.cancel_template(MANAGER, template.session_id)
        assert cancelled.is_cancelled is True
        assert cancelled.cancelled_on == date(2024, 1, 10)
        assert db.templates[template.session_id].is_cancelled is True
        assert await service.list_templates(MANAGER) == []
        assert len(await service.list_templates(MANAGER, include_cancelled=True)) == 1

        [entry] = db.audit
        assert (entry.action, entry.performed_by) == (AuditAction.CANCEL_SESSION, "boss")
        assert entry.details == {"session_id": str(template.session_id), "cancelled_on": "2024-01-10"}

        again = await service.cancel_template(MANAGER, template.session_id)
        assert again.cancelled_on == date(2024, 1, 10)
        assert len(db.audit) == 1

    async def test_update_that_breaks_schedule_is_rejected(self, service_instance):
        service, _ = service_instance
        template = await service.create_template(MANAGER, draft())
        with pytest.raises(InputValidationError):
            await service.update_template(MANAGER, template.session_id, SessionTemplateUpdate(weekly_days=[]))

    async def test_get_template_visibility(self, service_instance):
        service, _ = service_instance
        template = await service.create_template(MANAGER, draft())

        assert (await service.get_template(make_auth("u1"), template.session_id)).name == "Daily Sync"
        with pytest.raises(NotAuthorizedError):
            await service.get_template(make_auth("u5"), template.session_id)
        with pytest.raises(NotAuthorizedError):
            await service.get_template(make_auth("boss", Role.MANAGER, "org-2"), template.session_id)
        with pytest.raises(NotFoundError):
            await service.get_template(MANAGER, uuid.uuid4())

    async def test_end_user_lists_only_own_sessions(self, service_instance):
        service, _ = service_instance
        await service.create_template(MANAGER, draft(name="Mine", assigned_users=["u1"]))
        await service.create_template(MANAGER, draft(name="Theirs", assigned_users=["u2"]))
        assert [t.name for t in await service.list_templates(make_auth("u1"))] == ["Mine"]

    async def test_sessions_join_batches_of_their_organization_only(self, service_instance):
        service, db = service_instance
        ours, foreign = make_batch(), make_batch(organization_id="org-2")
        await db.add_class_batch(ours)
        await db.add_class_batch(foreign)

        template = await service.create_template(MANAGER, draft(batch_id=ours.batch_id))
        assert db.templates[template.session_id].batch_id == ours.batch_id

        with pytest.raises(InputValidationError):
            await service.create_template(MANAGER, draft(batch_id=foreign.batch_id))
        with pytest.raises(InputValidationError):
            await service.update_template(MANAGER, template.session_id, SessionTemplateUpdate(batch_id=uuid.uuid4()))

        moved = await service.update_template(MANAGER, template.session_id, SessionTemplateUpdate(batch_id=None))
        assert moved.batch_id is None
