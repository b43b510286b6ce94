"""Tests for task intake and least-loaded worker assignment."""
import random

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from app.models.task import Task
from app.models.user import ROLE_ADMIN, ROLE_USER
from app.schemas.task import TaskCreate
from app.services import assignment
from app.services.assignment import (
    add_task_action,
    assign_task_to_worker,
    create_task_record,
    get_worker_loads,
    get_worker_with_least_tasks,
    ASSIGNED_MESSAGE,
    NO_WORKER_MESSAGE,
    INTERNAL_ERROR_MESSAGE,
)
from app.services.cache import ADMIN_DASHBOARD_TAG, get_cache
from conftest import VALID_TASK, make_task, make_user


async def task_count(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(func.count(Task.id)))
        return result.scalar_one()


async def load_of(session_factory, user_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.count(Task.id)).where(Task.assigned_to_id == user_id)
        )
        return result.scalar_one()


class TestLeastLoadedSelector:

    @pytest.mark.asyncio
    async def test_no_workers_returns_none(self, db):
        assert await get_worker_with_least_tasks(db) is None

    @pytest.mark.asyncio
    async def test_only_admins_and_customers_returns_none(self, db):
        await make_user(db, "boss@example.com", role=ROLE_ADMIN)
        await make_user(db, "client@example.com", role=ROLE_USER)
        assert await get_worker_with_least_tasks(db) is None

    @pytest.mark.asyncio
    async def test_picks_worker_with_fewest_tasks(self, db):
        busy = await make_user(db, "busy@example.com")
        idle = await make_user(db, "idle@example.com")
        await make_task(db, assigned_to=busy)
        await make_task(db, assigned_to=busy)

        worker = await get_worker_with_least_tasks(db)
        assert worker.id == idle.id

    @pytest.mark.asyncio
    async def test_tie_goes_to_lowest_id(self, db):
        first = await make_user(db, "first@example.com")
        second = await make_user(db, "second@example.com")
        await make_task(db, assigned_to=first)
        await make_task(db, assigned_to=second)

        worker = await get_worker_with_least_tasks(db)
        assert worker.id == min(first.id, second.id)

    @pytest.mark.asyncio
    async def test_inactive_workers_are_skipped(self, db):
        await make_user(db, "gone@example.com", is_active=False)
        active = await make_user(db, "active@example.com")
        await make_task(db, assigned_to=active)

        worker = await get_worker_with_least_tasks(db)
        assert worker.id == active.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_selected_load_is_minimal(self, db, seed):
        rng = random.Random(seed)
        workers = [await make_user(db, f"w{seed}_{i}@example.com") for i in range(5)]
        for worker in workers:
            for _ in range(rng.randint(0, 4)):
                await make_task(db, assigned_to=worker)

        chosen = await get_worker_with_least_tasks(db)
        loads = {worker.id: count for worker, count in await get_worker_loads(db)}
        assert loads[chosen.id] == min(loads.values())

    @pytest.mark.asyncio
    async def test_worker_loads_sorted_ascending(self, db):
        a = await make_user(db, "a@example.com")
        b = await make_user(db, "b@example.com")
        await make_task(db, assigned_to=a)

        loads = [(worker.id, count) for worker, count in await get_worker_loads(db)]
        assert loads == [(b.id, 0), (a.id, 1)]


class TestTaskRecordStore:

    @pytest.mark.asyncio
    async def test_creates_pending_unassigned_task(self, db):
        task = await create_task_record(db, TaskCreate.model_validate(VALID_TASK))

        assert task.id is not None
        assert task.status == "Pending"
        assert task.assigned_to_id is None
        assert task.customer_phone == "+996700000000"
        assert float(task.total_cost) == 1500


class TestAssignmentWriter:

    @pytest.mark.asyncio
    async def test_appends_task_to_worker(self, db, session_factory):
        worker = await make_user(db, "w@example.com")
        task = await make_task(db)

        assert await assign_task_to_worker(db, worker.id, task.id) is True
        assert await load_of(session_factory, worker.id) == 1

    @pytest.mark.asyncio
    async def test_assigning_twice_does_not_duplicate(self, db, session_factory):
        worker = await make_user(db, "w@example.com")
        task = await make_task(db)

        await assign_task_to_worker(db, worker.id, task.id)
        await assign_task_to_worker(db, worker.id, task.id)
        assert await load_of(session_factory, worker.id) == 1

    @pytest.mark.asyncio
    async def test_missing_worker_returns_false(self, db, session_factory):
        task = await make_task(db)

        assert await assign_task_to_worker(db, 9999, task.id) is False
        assert await task_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_non_worker_is_not_assignable(self, db):
        boss = await make_user(db, "boss@example.com", role=ROLE_ADMIN)
        task = await make_task(db)

        assert await assign_task_to_worker(db, boss.id, task.id) is False

    @pytest.mark.asyncio
    async def test_inactive_worker_is_not_assignable(self, db, session_factory):
        worker = await make_user(db, "gone@example.com", is_active=False)
        task = await make_task(db)

        assert await assign_task_to_worker(db, worker.id, task.id) is False
        assert await load_of(session_factory, worker.id) == 0

    @pytest.mark.asyncio
    async def test_missing_task_returns_false(self, db):
        worker = await make_user(db, "w@example.com")
        assert await assign_task_to_worker(db, worker.id, 9999) is False


class TestAddTaskAction:

    @pytest.mark.asyncio
    async def test_end_to_end_assigns_to_idle_worker(self, db, session_factory):
        busy = await make_user(db, "busy@example.com")
        idle = await make_user(db, "idle@example.com")
        await make_task(db, assigned_to=busy)
        await make_task(db, assigned_to=busy)

        result = await add_task_action(db, VALID_TASK)

        assert result.model_dump() == {"status": "success", "message": ASSIGNED_MESSAGE}
        assert result.message == "Task created and assigned successfully!"
        assert await task_count(session_factory) == 3
        assert await load_of(session_factory, idle.id) == 1
        assert await load_of(session_factory, busy.id) == 2

    @pytest.mark.asyncio
    async def test_exactly_one_worker_grows_by_one(self, db, session_factory):
        workers = [await make_user(db, f"w{i}@example.com") for i in range(3)]
        await make_task(db, assigned_to=workers[0])
        before = {w.id: await load_of(session_factory, w.id) for w in workers}

        await add_task_action(db, VALID_TASK)

        after = {w.id: await load_of(session_factory, w.id) for w in workers}
        grown = [wid for wid in after if after[wid] != before[wid]]
        assert len(grown) == 1
        assert after[grown[0]] - before[grown[0]] == 1

    @pytest.mark.asyncio
    async def test_no_worker_leaves_task_unassigned(self, db, session_factory):
        result = await add_task_action(db, VALID_TASK)

        assert result.status == "success"
        assert result.message == NO_WORKER_MESSAGE
        async with session_factory() as session:
            tasks = (await session.execute(select(Task))).scalars().all()
        assert len(tasks) == 1
        assert tasks[0].assigned_to_id is None

    @pytest.mark.asyncio
    async def test_negative_cost_rejected_before_persistence(self, db, session_factory):
        await make_user(db, "w@example.com")
        result = await add_task_action(db, {**VALID_TASK, "totalCost": -1})

        assert result.status == "error"
        assert result.message == "Total cost must be a non-negative number"
        assert await task_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_bad_phone_rejected_before_persistence(self, db, session_factory):
        result = await add_task_action(db, {**VALID_TASK, "customerPhone": "12345"})

        assert result.status == "error"
        assert result.message == "Invalid phone number"
        assert await task_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_missing_field_rejected(self, db, session_factory):
        payload = dict(VALID_TASK)
        del payload["laptopModel"]
        result = await add_task_action(db, payload)

        assert result.status == "error"
        assert "laptopModel" in result.message
        assert await task_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_storage_failure_reports_internal_error(self, db, session_factory, monkeypatch):
        async def broken_store(db, task_in):
            raise OperationalError("INSERT INTO tasks", {}, Exception("database is down"))

        monkeypatch.setattr(assignment, "create_task_record", broken_store)
        result = await add_task_action(db, VALID_TASK)

        assert result.model_dump() == {"status": "error", "message": INTERNAL_ERROR_MESSAGE}
        assert await task_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_assignment_failure_is_soft(self, db, session_factory, monkeypatch):
        worker = await make_user(db, "w@example.com")
        # the soft-failure rollback expires ORM instances in this session
        worker_id = worker.id

        async def broken_writer(db, worker_id, task_id):
            raise OperationalError("UPDATE tasks", {}, Exception("lock timeout"))

        monkeypatch.setattr(assignment, "assign_task_to_worker", broken_writer)
        result = await add_task_action(db, VALID_TASK)

        assert result.status == "success"
        assert result.message == ASSIGNED_MESSAGE
        assert await task_count(session_factory) == 1
        assert await load_of(session_factory, worker_id) == 0

    @pytest.mark.asyncio
    async def test_selector_failure_reports_no_worker(self, db, session_factory, monkeypatch):
        await make_user(db, "w@example.com")

        async def broken_selector(db):
            raise OperationalError("SELECT users", {}, Exception("connection reset"))

        monkeypatch.setattr(assignment, "get_worker_with_least_tasks", broken_selector)
        result = await add_task_action(db, VALID_TASK)

        assert result.model_dump() == {"status": "success", "message": NO_WORKER_MESSAGE}
        async with session_factory() as session:
            tasks = (await session.execute(select(Task))).scalars().all()
        assert len(tasks) == 1
        assert tasks[0].assigned_to_id is None

    @pytest.mark.asyncio
    async def test_cost_with_sub_cent_precision_rejected(self, db, session_factory):
        result = await add_task_action(db, {**VALID_TASK, "totalCost": "0.004"})

        assert result.status == "error"
        assert result.message == "Total cost can have at most 2 decimal places"
        assert await task_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_cost_beyond_column_range_rejected(self, db, session_factory):
        result = await add_task_action(db, {**VALID_TASK, "totalCost": 1e12})

        assert result.status == "error"
        assert result.message.startswith("Total cost cannot exceed")
        assert await task_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_invalidates_admin_dashboard(self, db):
        cache = get_cache()
        cache.set("admin-dashboard:summary", {"stale": True}, tags=(ADMIN_DASHBOARD_TAG,))

        await add_task_action(db, VALID_TASK)

        assert cache.get("admin-dashboard:summary") is None

    @pytest.mark.asyncio
    async def test_sequential_tasks_are_spread_across_workers(self, db, session_factory):
        workers = [await make_user(db, f"w{i}@example.com") for i in range(3)]

        for _ in range(6):
            await add_task_action(db, VALID_TASK)

        for worker in workers:
            assert await load_of(session_factory, worker.id) == 2
