from billing_dashboard.domain.models import ActivityAction
from billing_dashboard.services.activity_service import ActivityLogger


class _BrokenRepository:
    def create_activity(self, *args, **kwargs):
        raise RuntimeError("database is locked")


def test_record_appends_entry(persistence, activity_logger, user):
    entry = activity_logger.record(user.id, ActivityAction.LOGIN, "User logged in", {"ip": "127.0.0.1"})

    assert entry.action == "LOGIN"
    assert entry.metadata == {"ip": "127.0.0.1"}
    assert persistence.count_activities_for_user(user.id) == 1


def test_record_without_user_is_dropped(persistence, activity_logger, user):
    assert activity_logger.record(None, ActivityAction.LOGIN, "anonymous") is None
    assert activity_logger.record(user.id, None, "no action") is None

    assert persistence.count_activities_for_user(user.id) == 0


def test_storage_failure_does_not_propagate(caplog):
    logger = ActivityLogger(_BrokenRepository())

    assert logger.record(1, ActivityAction.LOGIN, "User logged in") is None
    assert "Failed to record LOGIN activity" in caplog.text


def test_list_for_user_pages_newest_first(activity_logger, user):
    for index in range(5):
        activity_logger.record(user.id, ActivityAction.LOGIN, f"login {index}")

    items, total = activity_logger.list_for_user(user.id, page=2, limit=2)

    assert total == 5
    assert [item.description for item in items] == ["login 2", "login 1"]
