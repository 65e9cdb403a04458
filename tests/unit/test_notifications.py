"""
Unit tests for the notification and navigation channels
"""

import pytest

from storefront.core.notifications import (
    LoggingNavigator,
    LoggingNotifier,
    Navigator,
    NoticeLevel,
    Notifier,
    RecordingNotifier,
)

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


class BrokenNotifier(Notifier):
    def show(self, level, message):
        raise RuntimeError("toast container unmounted")


class BrokenNavigator(Navigator):
    def navigate(self, path):
        raise RuntimeError("router not ready")


class TestChannels:
    def test_channels_are_abstract(self):
        with pytest.raises(TypeError):
            Notifier()
        with pytest.raises(TypeError):
            Navigator()

    def test_notifier_failure_is_swallowed(self, caplog):
        BrokenNotifier().error("Session expired. Please login again.")

        assert any("Notifier failed" in record.getMessage() for record in caplog.records)

    def test_navigator_failure_is_swallowed(self, caplog):
        BrokenNavigator().redirect("/login")

        assert any("failed to redirect to /login" in record.getMessage() for record in caplog.records)

    def test_recording_notifier_filters_by_level(self):
        notifier = RecordingNotifier()
        notifier.success("Cart cleared")
        notifier.error("Access denied.")

        assert notifier.texts() == ["Cart cleared", "Access denied."]
        assert notifier.texts(NoticeLevel.ERROR) == ["Access denied."]

    def test_logging_defaults(self, caplog):
        caplog.set_level("INFO")

        LoggingNotifier().success("Cart cleared")
        LoggingNavigator().redirect("/login")

        messages = [record.getMessage() for record in caplog.records]
        assert "[success] Cart cleared" in messages
        assert "Redirecting to /login" in messages
