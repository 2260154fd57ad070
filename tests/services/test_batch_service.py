import uuid
from datetime import time

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from rollcall.backend.models.db_models import Role
from rollcall.backend.services.batch_service import BatchService, ClassBatchInput, ClassBatchUpdate
from rollcall.backend.services.errors import InputValidationError, NotAuthorizedError, NotFoundError, ServiceError
from tests.fakes import make_auth, make_batch, make_template

MANAGER = make_auth("boss", Role.MANAGER)


@pytest_asyncio.fixture
async def service_instance(fake_db):
    return BatchService(db_client=fake_db), fake_db


@pytest.mark.asyncio
class TestBatchService:

    async def test_create_and_update(self, service_instance):
        service, db = service_instance
        batch = await service.create_batch(MANAGER, ClassBatchInput(name="Grade 7", default_start_time=time(8, 30)))
        assert batch.organization_id == "org-1"
        assert batch.created_by == "boss"
        assert db.batches[batch.batch_id].name == "Grade 7"

        updated = await service.update_batch(MANAGER, batch.batch_id, ClassBatchUpdate(default_location="Room 4"))
        assert (updated.name, updated.default_location) == ("Grade 7", "Room 4")
        assert db.batches[batch.batch_id].default_location == "Room 4"

    async def test_end_user_cannot_edit(self, service_instance):
        service, db = service_instance
        with pytest.raises(NotAuthorizedError):
            await service.create_batch(make_auth("u1"), ClassBatchInput(name="Grade 7"))
        batch = make_batch()
        await db.add_class_batch(batch)
        with pytest.raises(NotAuthorizedError):
            await service.delete_batch(make_auth("u1"), batch.batch_id)

    async def test_end_user_sees_batches_of_own_sessions(self, service_instance):
        service, db = service_instance
        mine, theirs = make_batch(name="Mine"), make_batch(name="Theirs")
        for batch in (mine, theirs):
            await db.add_class_batch(batch)
        await db.add_session_template(make_template(batch_id=mine.batch_id, assigned_users=["u1"]))
        await db.add_session_template(make_template(batch_id=theirs.batch_id, assigned_users=["u2"]))

        assert [b.name for b in await service.list_batches(make_auth("u1"))] == ["Mine"]
        assert {b.name for b in await service.list_batches(MANAGER)} == {"Mine", "Theirs"}
        assert (await service.get_batch(make_auth("u1"), mine.batch_id)).name == "Mine"
        with pytest.raises(NotAuthorizedError):
            await service.get_batch(make_auth("u1"), theirs.batch_id)

    async def test_batch_sessions(self, service_instance):
        service, db = service_instance
        batch = make_batch()
        await db.add_class_batch(batch)
        kept = make_template(batch_id=batch.batch_id, assigned_users=["u1"])
        cancelled = make_template(batch_id=batch.batch_id, assigned_users=["u1"], is_cancelled=True)
        await db.add_session_template(kept)
        await db.add_session_template(cancelled)
        await db.add_session_template(make_template())

        assert {t.session_id for t in await service.list_batch_sessions(MANAGER, batch.batch_id)} == {
            kept.session_id, cancelled.session_id,
        }
        assert [t.session_id for t in await service.list_batch_sessions(make_auth("u1"), batch.batch_id)] == [kept.session_id]

    async def test_foreign_and_missing_batches(self, service_instance):
        service, db = service_instance
        foreign = make_batch(organization_id="org-2")
        await db.add_class_batch(foreign)
        with pytest.raises(NotAuthorizedError):
            await service.get_batch(MANAGER, foreign.batch_id)
        with pytest.raises(NotFoundError):
            await service.update_batch(MANAGER, uuid.uuid4(), ClassBatchUpdate(name="x"))

    async def test_delete_keeps_batch_with_sessions_unless_detaching(self, service_instance):
        service, db = service_instance
        batch = make_batch()
        await db.add_class_batch(batch)
        template = make_template(batch_id=batch.batch_id)
        await db.add_session_template(template)

        with pytest.raises(InputValidationError, match="1 session"):
            await service.delete_batch(MANAGER, batch.batch_id)
        assert batch.batch_id in db.batches

        assert await service.delete_batch(MANAGER, batch.batch_id, detach_sessions=True) == 1
        assert batch.batch_id not in db.batches
        assert db.templates[template.session_id].batch_id is None

    async def test_empty_batch_deletes_directly(self, service_instance):
        service, db = service_instance
        batch = make_batch()
        await db.add_class_batch(batch)
        assert await service.delete_batch(MANAGER, batch.batch_id) == 0
        assert db.batches == {}

    async def test_database_errors_are_wrapped(self):
        mock_db_client = AsyncMock()
        mock_db_client.get_class_batches.side_effect = OSError("connection reset")
        service = BatchService(db_client=mock_db_client)
        with pytest.raises(ServiceError, match="fetching batches"):
            await service.list_batches(MANAGER)
