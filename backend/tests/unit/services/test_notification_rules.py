from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from cdc_admin.models.notification import NotificationPriority, TargetAudience
from cdc_admin.services.notification_service import default_expiry, is_visible_to

CREATED = datetime(2025, 1, 15, 9, 0)


@pytest.mark.parametrize("priority,days", [
    (NotificationPriority.URGENT, 7),
    (NotificationPriority.HIGH, 14),
    (NotificationPriority.MEDIUM, 30),
    (NotificationPriority.LOW, 60),
])
def test_expiry_follows_priority(priority, days):
    assert default_expiry(priority, CREATED) == CREATED + timedelta(days=days)


def _notification(audience, teachers=(), department=None):
    return SimpleNamespace(
        target_audience=audience, target_teachers=list(teachers), target_department_id=department
    )


def test_all_teachers_reaches_everyone():
    teacher = SimpleNamespace(id="t1", department_id=None)
    assert is_visible_to(_notification(TargetAudience.ALL_TEACHERS), teacher)


def test_specific_teachers_only_reaches_listed():
    notification = _notification(TargetAudience.SPECIFIC_TEACHERS, teachers=["t1"])
    assert is_visible_to(notification, SimpleNamespace(id="t1", department_id=None))
    assert not is_visible_to(notification, SimpleNamespace(id="t2", department_id=None))


def test_department_notifications_reach_department_members():
    notification = _notification(TargetAudience.DEPARTMENT, department="d1")
    assert is_visible_to(notification, SimpleNamespace(id="t1", department_id="d1"))
    assert not is_visible_to(notification, SimpleNamespace(id="t2", department_id="d2"))
    assert not is_visible_to(notification, SimpleNamespace(id="t3", department_id=None))
