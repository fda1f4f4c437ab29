"""
Test suite for EventChannel.

System role: Verification of typed publish/subscribe
"""

from chatsync.core.events import EventChannel, MessageAppended, SessionDeleted
from tests.conftest import make_message


class TestEventChannel:
    """Test suite for EventChannel publish/subscribe."""

    def test_publish_should_deliver_only_to_matching_type(self) -> None:
        """Test handlers receive events of their subscribed type only."""
        # Arrange
        channel = EventChannel()
        appended: list = []
        deleted: list = []
        channel.subscribe(MessageAppended, appended.append)
        channel.subscribe(SessionDeleted, deleted.append)
        event = MessageAppended(message=make_message())

        # Act
        channel.publish(event)

        # Assert
        assert appended == [event]
        assert deleted == []

    def test_unsubscribe_should_stop_delivery_and_be_idempotent(self) -> None:
        # Arrange
        channel = EventChannel()
        received: list = []
        unsubscribe = channel.subscribe(SessionDeleted, received.append)

        # Act
        unsubscribe()
        unsubscribe()
        channel.publish(SessionDeleted(owner_id="u1", session_id="s1"))

        # Assert
        assert received == []
        assert channel.subscriber_count() == 0

    def test_publish_should_continue_after_failing_handler(self) -> None:
        """Test one failing handler neither stops others nor raises."""
        # Arrange
        channel = EventChannel()
        received: list = []

        def broken(_event) -> None:
            raise RuntimeError("handler bug")

        channel.subscribe(SessionDeleted, broken)
        channel.subscribe(SessionDeleted, received.append)

        # Act
        channel.publish(SessionDeleted(owner_id="u1", session_id="s1"))

        # Assert
        assert len(received) == 1
        assert channel.subscriber_count(SessionDeleted) == 2
