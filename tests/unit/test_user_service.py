"""Unit tests for user_service module."""

import pytest

from llamaio.core.db_client import MalformedIdentifierError, generate_record_id
from llamaio.core.errors import NotFoundError, ValidationFailedError
from llamaio.core.query_parser import parse_read_query
from llamaio.services import user_service


async def _create_task(db, *, assigned_user: str = "", assigned_user_name: str = "unassigned", completed=False):
    return await db.create_record(
        collection="tasks",
        data={
            "name": "Task",
            "description": "",
            "deadline": "2030-01-01T00:00:00.000Z",
            "completed": completed,
            "assignedUser": assigned_user,
            "assignedUserName": assigned_user_name,
        },
    )


async def _add_pending(db, user_id: str, *task_ids: str) -> None:
    for task_id in task_ids:
        await db.add_to_set(collection="users", record_id=user_id, field="pendingTasks", value=task_id)


@pytest.mark.unit
class TestCreateUser:
    """Tests for create_user function."""

    async def test_create_user_success(self, patched_db):
        """Test user is stored with a generated id and normalized email."""
        result = await user_service.create_user(payload={"name": "Ada", "email": "  Ada@Example.COM "})

        assert result["name"] == "Ada"
        assert result["email"] == "ada@example.com"
        assert result["pendingTasks"] == []
        assert len(result["_id"]) == 24
        assert result["dateCreated"].endswith("Z")

    async def test_create_user_dedupes_pending_tasks(self, patched_db):
        task_id = generate_record_id()

        result = await user_service.create_user(
            payload={"name": "Ada", "email": "ada@example.com", "pendingTasks": [task_id, task_id]}
        )

        assert result["pendingTasks"] == [task_id]

    @pytest.mark.parametrize("payload", [{"name": "Ada"}, {"email": "ada@example.com"}, {"name": "", "email": "x@y"}])
    async def test_create_user_requires_name_and_email(self, patched_db, payload):
        with pytest.raises(ValidationFailedError, match="'name' and 'email' are required fields"):
            await user_service.create_user(payload=payload)

    async def test_create_user_duplicate_email(self, patched_db, sample_user):
        """Email uniqueness ignores case and surrounding whitespace."""
        with pytest.raises(ValidationFailedError, match="This email is already in use"):
            await user_service.create_user(payload={"name": "Other", "email": " ADA@example.com"})

        assert await patched_db.count_records(collection="users") == 1

    async def test_create_user_malformed_pending_task(self, patched_db):
        with pytest.raises(MalformedIdentifierError):
            await user_service.create_user(payload={"name": "Ada", "email": "a@b.c", "pendingTasks": ["nope"]})


@pytest.mark.unit
class TestGetAndListUsers:
    """Tests for get_user and list_users functions."""

    async def test_get_user(self, patched_db, sample_user):
        result = await user_service.get_user(user_id=sample_user["_id"])

        assert result == sample_user

    async def test_get_user_with_projection(self, patched_db, sample_user):
        result = await user_service.get_user(user_id=sample_user["_id"], projection={"email": True})

        assert result == {"_id": sample_user["_id"], "email": "ada@example.com"}

    async def test_get_user_not_found(self, patched_db):
        with pytest.raises(NotFoundError, match="User not found"):
            await user_service.get_user(user_id=generate_record_id())

    async def test_get_user_malformed_id(self, patched_db):
        with pytest.raises(MalformedIdentifierError):
            await user_service.get_user(user_id="123")

    async def test_list_users_is_unbounded_by_default(self, patched_db):
        for i in range(105):
            await patched_db.create_record(
                collection="users", data={"name": f"User {i}", "email": f"user{i}@example.com", "pendingTasks": []}
            )

        result = await user_service.list_users(query=parse_read_query({}))

        assert len(result) == 105

    async def test_list_users_count(self, patched_db, sample_user, other_user):
        result = await user_service.list_users(query=parse_read_query({"count": "true", "limit": "1"}))

        assert result == 2

    async def test_list_users_filter_and_sort(self, patched_db, sample_user, other_user):
        query = parse_read_query({"where": '{"name": {"$regex": "a"}}', "sort": '{"name": -1}'})

        result = await user_service.list_users(query=query)

        assert [user["name"] for user in result] == ["Grace Hopper", "Ada Lovelace"]

    async def test_list_users_ignores_backtracking_regex(self, patched_db, sample_user):
        """A nested-quantifier pattern is dropped instead of being run against stored names."""
        await patched_db.create_record(
            collection="users", data={"name": "a" * 27 + "!", "email": "slow@example.com", "pendingTasks": []}
        )
        query = parse_read_query({"where": '{"name": {"$regex": "^(a+)+$"}}'})

        result = await user_service.list_users(query=query)

        assert query.warnings
        assert len(result) == 2


@pytest.mark.unit
class TestReplaceUser:
    """Tests for replace_user function."""

    async def test_replace_assigns_added_and_unassigns_removed_tasks(self, patched_db, sample_user):
        kept = await _create_task(patched_db, assigned_user=sample_user["_id"], assigned_user_name="Ada Lovelace")
        dropped = await _create_task(patched_db, assigned_user=sample_user["_id"], assigned_user_name="Ada Lovelace")
        added = await _create_task(patched_db)
        await _add_pending(patched_db, sample_user["_id"], kept["_id"], dropped["_id"])

        result = await user_service.replace_user(
            user_id=sample_user["_id"],
            payload={"name": "Ada King", "email": "ada@example.com", "pendingTasks": [kept["_id"], added["_id"]]},
        )

        assert result["pendingTasks"] == [kept["_id"], added["_id"]]
        assert result["name"] == "Ada King"
        assert result["dateCreated"] == sample_user["dateCreated"]

        added_task = await patched_db.get_record(collection="tasks", record_id=added["_id"])
        assert added_task["assignedUser"] == sample_user["_id"]
        assert added_task["assignedUserName"] == "Ada King"

        dropped_task = await patched_db.get_record(collection="tasks", record_id=dropped["_id"])
        assert dropped_task["assignedUser"] == ""
        assert dropped_task["assignedUserName"] == "unassigned"

    async def test_replace_takes_task_from_previous_owner(self, patched_db, sample_user, other_user):
        task = await _create_task(patched_db, assigned_user=other_user["_id"], assigned_user_name="Grace Hopper")
        await _add_pending(patched_db, other_user["_id"], task["_id"])

        await user_service.replace_user(
            user_id=sample_user["_id"],
            payload={"name": "Ada Lovelace", "email": "ada@example.com", "pendingTasks": [task["_id"]]},
        )

        previous_owner = await patched_db.get_record(collection="users", record_id=other_user["_id"])
        assert previous_owner["pendingTasks"] == []

    async def test_replace_rejects_completed_tasks(self, patched_db, sample_user):
        """Completed tasks cannot be added; nothing is changed."""
        done = await _create_task(patched_db, completed=True)

        with pytest.raises(ValidationFailedError, match="already completed"):
            await user_service.replace_user(
                user_id=sample_user["_id"],
                payload={"name": "Ada Lovelace", "email": "ada@example.com", "pendingTasks": [done["_id"]]},
            )

        stored_user = await patched_db.get_record(collection="users", record_id=sample_user["_id"])
        stored_task = await patched_db.get_record(collection="tasks", record_id=done["_id"])
        assert stored_user == sample_user
        assert stored_task["assignedUser"] == ""

    async def test_replace_without_pending_tasks_clears_them(self, patched_db, sample_user):
        task = await _create_task(patched_db, assigned_user=sample_user["_id"], assigned_user_name="Ada Lovelace")
        await _add_pending(patched_db, sample_user["_id"], task["_id"])

        result = await user_service.replace_user(
            user_id=sample_user["_id"], payload={"name": "Ada Lovelace", "email": "ada@example.com"}
        )

        assert result["pendingTasks"] == []
        stored_task = await patched_db.get_record(collection="tasks", record_id=task["_id"])
        assert stored_task["assignedUser"] == ""

    async def test_replace_with_email_of_other_user(self, patched_db, sample_user, other_user):
        with pytest.raises(ValidationFailedError, match="This email is already in use"):
            await user_service.replace_user(
                user_id=sample_user["_id"], payload={"name": "Ada", "email": "grace@example.com"}
            )

    async def test_replace_keeping_own_email(self, patched_db, sample_user):
        result = await user_service.replace_user(
            user_id=sample_user["_id"], payload={"name": "Ada", "email": "ADA@example.com"}
        )

        assert result["email"] == "ada@example.com"

    async def test_replace_not_found(self, patched_db):
        with pytest.raises(NotFoundError, match="User not found"):
            await user_service.replace_user(user_id=generate_record_id(), payload={"name": "A", "email": "a@b.c"})


@pytest.mark.unit
class TestDeleteUser:
    """Tests for delete_user function."""

    async def test_delete_unassigns_pending_tasks(self, patched_db, sample_user):
        task = await _create_task(patched_db, assigned_user=sample_user["_id"], assigned_user_name="Ada Lovelace")
        await _add_pending(patched_db, sample_user["_id"], task["_id"])

        deleted = await user_service.delete_user(user_id=sample_user["_id"])

        assert deleted["_id"] == sample_user["_id"]
        assert await patched_db.count_records(collection="users") == 0
        stored_task = await patched_db.get_record(collection="tasks", record_id=task["_id"])
        assert stored_task["assignedUser"] == ""
        assert stored_task["assignedUserName"] == "unassigned"

    async def test_delete_not_found(self, patched_db):
        with pytest.raises(NotFoundError):
            await user_service.delete_user(user_id=generate_record_id())
