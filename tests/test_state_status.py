from datetime import timedelta

import pytest

from autodeploy.errors import ConflictError, InvalidTransition, NotFoundError
from autodeploy.events import LogLevel, append_entry, format_ts, is_time_ordered, utcnow
from autodeploy.ids import is_valid_deployment_id, new_deployment_id
from autodeploy.state import DeploymentRecord, FileDeploymentStore, MemoryDeploymentStore
from autodeploy.status import DeploymentStatus, can_transition, is_terminal


def _record(**kw):
    args = dict(id=new_deployment_id(), project_id="shop", provider="vercel", branch="main")
    args.update(kw)
    return DeploymentRecord(**args)


class TestStatus:
    def test_happy_path_edges(self):
        assert can_transition(DeploymentStatus.QUEUED, DeploymentStatus.VALIDATING_CREDENTIAL)
        assert can_transition(DeploymentStatus.VALIDATING_CREDENTIAL, DeploymentStatus.ATTEMPTING)
        assert can_transition(DeploymentStatus.ATTEMPTING, DeploymentStatus.ATTEMPTING)
        assert can_transition(DeploymentStatus.ATTEMPTING, DeploymentStatus.DEPLOYED)

    def test_no_shortcut_to_deployed(self):
        record = _record()
        with pytest.raises(InvalidTransition):
            record.transition(DeploymentStatus.DEPLOYED)

    def test_terminal_states_are_final(self):
        for status in (DeploymentStatus.DEPLOYED, DeploymentStatus.FAILED, DeploymentStatus.NEEDS_SETUP):
            assert is_terminal(status)
            for target in DeploymentStatus:
                assert not can_transition(status, target)


class TestLog:
    def test_backwards_clock_is_pinned(self):
        logs = []
        now = utcnow()
        append_entry(logs, LogLevel.INFO, "first", now=now)
        append_entry(logs, LogLevel.INFO, "second", now=now - timedelta(seconds=5))
        assert logs[1].timestamp == logs[0].timestamp
        assert is_time_ordered(logs)

    def test_record_log_redacts(self):
        record = _record()
        record.log(LogLevel.ERROR, "call failed with Authorization: Bearer abc.def.ghi")
        assert "abc.def.ghi" not in record.logs[0].message


class TestIds:
    def test_generated_ids_are_valid(self):
        assert is_valid_deployment_id(new_deployment_id())

    def test_invalid_ids(self):
        assert not is_valid_deployment_id("d-2024-1")
        assert not is_valid_deployment_id("x-20240101-120000-abcd")
        assert not is_valid_deployment_id("")


@pytest.fixture(params=["memory", "file"])
def record_store(request, tmp_path):
    if request.param == "memory":
        return MemoryDeploymentStore()
    return FileDeploymentStore(tmp_path / "deployments")


class TestStores:
    def test_create_get_save(self, record_store):
        record = _record()
        record.log(LogLevel.INFO, "queued")
        record_store.create(record)
        loaded = record_store.get(record.id)
        assert loaded.to_dict() == record.to_dict()

        loaded.transition(DeploymentStatus.VALIDATING_CREDENTIAL, "validating")
        record_store.save(loaded)
        assert record_store.get(record.id).status == DeploymentStatus.VALIDATING_CREDENTIAL

    def test_duplicate_create_conflicts(self, record_store):
        record = _record()
        record_store.create(record)
        with pytest.raises(ConflictError):
            record_store.create(record)

    def test_missing(self, record_store):
        with pytest.raises(NotFoundError):
            record_store.get(new_deployment_id())

    def test_cancel_flag_survives_stale_save(self, record_store):
        record = _record()
        record_store.create(record)
        stale = record_store.get(record.id)
        record_store.request_cancel(record.id)
        stale.log(LogLevel.INFO, "still running")
        record_store.save(stale)
        assert record_store.get(record.id).cancel_requested is True

    def test_log_cannot_shrink(self, record_store):
        record = _record()
        record.log(LogLevel.INFO, "one")
        record_store.create(record)
        record.logs.clear()
        with pytest.raises(ValueError):
            record_store.save(record)

    def test_list_for_project_newest_first(self, record_store):
        now = utcnow()
        older = _record(started_at=format_ts(now - timedelta(minutes=5)))
        newer = _record(started_at=format_ts(now))
        other = _record(project_id="blog")
        for r in (older, newer, other):
            record_store.create(r)
        listed = record_store.list_for_project("shop")
        assert [r.id for r in listed] == [newer.id, older.id]
