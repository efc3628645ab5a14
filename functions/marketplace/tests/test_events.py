import json
import unittest
from unittest.mock import MagicMock, patch

from redis import exceptions as redis_exceptions

from marketplace.events import REQUESTS_CHANGED, InMemoryEventBus, RedisEventBus


class InMemoryEventBusTests(unittest.TestCase):
    def test_publish_dispatches_to_subscribers(self):
        bus = InMemoryEventBus()
        received = []
        bus.subscribe(REQUESTS_CHANGED, received.append)

        bus.publish(REQUESTS_CHANGED, {"requestId": "r1"})

        self.assertEqual(received, [{"requestId": "r1"}])
        self.assertEqual(bus.published, [(REQUESTS_CHANGED, {"requestId": "r1"})])

    def test_failing_handler_does_not_stop_others(self):
        bus = InMemoryEventBus()
        received = []
        bus.subscribe(REQUESTS_CHANGED, MagicMock(side_effect=RuntimeError("boom")))
        bus.subscribe(REQUESTS_CHANGED, received.append)

        bus.publish(REQUESTS_CHANGED, {"requestId": "r1"})

        self.assertEqual(received, [{"requestId": "r1"}])


class RedisEventBusTests(unittest.TestCase):
    @patch("marketplace.events.redis.Redis.from_url")
    def test_publish_uses_prefixed_channel(self, mock_from_url):
        client = MagicMock()
        mock_from_url.return_value = client
        bus = RedisEventBus(url="redis://localhost:6379/0", channel_prefix="test")

        bus.publish(REQUESTS_CHANGED, {"requestId": "r1"})

        client.publish.assert_called_once_with(
            "test:requests.changed", json.dumps({"requestId": "r1"})
        )

    @patch("marketplace.events.redis.Redis.from_url")
    def test_publish_reconnects_after_connection_error(self, mock_from_url):
        broken, fresh = MagicMock(), MagicMock()
        broken.publish.side_effect = redis_exceptions.ConnectionError("gone")
        mock_from_url.side_effect = [broken, fresh]
        bus = RedisEventBus(url="redis://localhost:6379/0")

        bus.publish(REQUESTS_CHANGED, {"requestId": "r1"})

        self.assertIs(bus.client, fresh)
        broken.close.assert_called_once()

    @patch("marketplace.events.redis.Redis.from_url")
    def test_listener_decodes_payload(self, mock_from_url):
        client = MagicMock()
        mock_from_url.return_value = client
        bus = RedisEventBus(url="redis://localhost:6379/0")
        received = []
        bus.subscribe(REQUESTS_CHANGED, received.append)

        [listener] = client.pubsub.return_value.subscribe.call_args.kwargs.values()
        listener({"data": json.dumps({"requestId": "r1"}).encode()})
        listener({"data": b"not json"})

        self.assertEqual(received, [{"requestId": "r1"}])
        client.pubsub.return_value.run_in_thread.assert_called_once()

        bus.close()
        client.pubsub.return_value.close.assert_called_once()
        client.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
