"""Unit tests for the correlation broker."""

import asyncio
import logging

import pytest

from stubtree.broker.broker import CorrelationBroker
from stubtree.broker.channel import create_channel_pair
from stubtree.core.errors import BrokerClosedError, RemoteHandlerError, RequestTimeoutError


@pytest.fixture
def channels():
    return create_channel_pair()


@pytest.fixture
def brokers(channels):
    ui_end, host_end = channels
    ui = CorrelationBroker(ui_end, name="ui")
    host = CorrelationBroker(host_end, name="host")
    yield ui, host
    ui.dispose()
    host.dispose()


class TestRequestResponse:
    @pytest.mark.asyncio
    async def test_round_trip(self, brokers):
        ui, host = brokers
        host.register_handler("echo", lambda payload: {"echo": payload})

        result = await ui.send_request("echo", "hello")

        assert result == {"echo": "hello"}
        assert ui.pending_count == 0

    @pytest.mark.asyncio
    async def test_async_handler(self, brokers):
        ui, host = brokers

        async def slow_double(payload):
            await asyncio.sleep(0.001)
            return payload * 2

        host.register_handler("double", slow_double)

        assert await ui.send_request("double", 21) == 42

    @pytest.mark.asyncio
    async def test_concurrent_requests_resolve_independently(self, brokers):
        ui, host = brokers

        async def delayed(payload):
            await asyncio.sleep(payload["delay"])
            return payload["tag"]

        host.register_handler("delayed", delayed)

        slow = ui.send_request("delayed", {"delay": 0.03, "tag": "slow"})
        fast = ui.send_request("delayed", {"delay": 0.0, "tag": "fast"})

        assert await fast == "fast"
        assert not slow.done()
        assert await slow == "slow"

    @pytest.mark.asyncio
    async def test_request_is_posted_before_returning(self, channels):
        ui_end, host_end = channels
        seen = []
        host_end.add_listener(seen.append)
        ui = CorrelationBroker(ui_end, default_timeout_ms=50)

        future = ui.send_request("anything", {"x": 1})
        await asyncio.sleep(0)

        assert seen[0]["type"] == "serverRequest"
        assert seen[0]["serverEndpoint"] == "anything"
        assert seen[0]["serverRequest"] == {"x": 1}
        future.cancel()
        ui.dispose()

    @pytest.mark.asyncio
    async def test_replacing_a_handler(self, brokers):
        ui, host = brokers
        host.register_handler("who", lambda _: "first")
        host.register_handler("who", lambda _: "second")

        assert await ui.send_request("who") == "second"


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_short_timeout_rejects_promptly(self, brokers):
        ui, _ = brokers
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(RequestTimeoutError) as exc_info:
            await ui.send_request("silent", None, timeout_ms=10)

        elapsed = loop.time() - started
        assert 0.005 <= elapsed < 0.5
        assert exc_info.value.endpoint == "silent"
        assert exc_info.value.timeout_ms == 10
        assert ui.pending_count == 0

    @pytest.mark.asyncio
    async def test_timeout_message(self, brokers):
        ui, _ = brokers

        with pytest.raises(RequestTimeoutError, match="timed out after 0.01 seconds"):
            await ui.send_request("silent", None, timeout_ms=10)

    @pytest.mark.asyncio
    async def test_unhandled_endpoint_surfaces_as_timeout(self, brokers, caplog):
        ui, _ = brokers

        with caplog.at_level(logging.WARNING):
            with pytest.raises(RequestTimeoutError):
                await ui.send_request("nobody-home", None, timeout_ms=20)

        assert "No handler for 'nobody-home'" in caplog.text

    @pytest.mark.asyncio
    async def test_late_response_after_timeout_is_dropped(self, brokers):
        ui, host = brokers

        async def too_slow(payload):
            await asyncio.sleep(0.05)
            return "late"

        host.register_handler("slow", too_slow)
        future = ui.send_request("slow", None, timeout_ms=10)

        with pytest.raises(RequestTimeoutError):
            await future

        # Let the late response arrive; it must not touch the settled future.
        await asyncio.sleep(0.08)
        assert isinstance(future.exception(), RequestTimeoutError)
        assert ui.pending_count == 0


class TestExactlyOnce:
    @pytest.mark.asyncio
    async def test_duplicate_response_is_ignored(self, channels):
        ui_end, host_end = channels
        ui = CorrelationBroker(ui_end)
        requests = []
        host_end.add_listener(requests.append)

        future = ui.send_request("dup", None)
        await asyncio.sleep(0)
        request_id = requests[0]["serverRequestId"]

        host_end.post({"type": "serverResponse", "serverRequestId": request_id, "serverResponse": "first"})
        host_end.post({"type": "serverResponse", "serverRequestId": request_id, "serverResponse": "second"})

        assert await future == "first"
        await asyncio.sleep(0)
        assert future.result() == "first"
        ui.dispose()

    @pytest.mark.asyncio
    async def test_unknown_response_id_is_dropped(self, channels, caplog):
        ui_end, host_end = channels
        ui = CorrelationBroker(ui_end)

        with caplog.at_level(logging.DEBUG, logger="stubtree.broker.broker"):
            host_end.post({"type": "serverResponse", "serverRequestId": "nope", "serverResponse": 1})
            await asyncio.sleep(0)

        assert "Dropping unmatched response nope" in caplog.text
        ui.dispose()

    @pytest.mark.asyncio
    async def test_response_cancels_timer(self, brokers):
        ui, host = brokers
        host.register_handler("quick", lambda _: "ok")

        assert await ui.send_request("quick", None, timeout_ms=20) == "ok"
        # Past the deadline: no timeout may fire for the settled request.
        await asyncio.sleep(0.04)
        assert ui.pending_count == 0

    @pytest.mark.asyncio
    async def test_cancelled_future_releases_bookkeeping(self, brokers):
        ui, _ = brokers
        future = ui.send_request("silent", None, timeout_ms=1000)
        assert ui.pending_count == 1

        future.cancel()
        await asyncio.sleep(0)

        assert ui.pending_count == 0


class TestHandlerFailures:
    @pytest.mark.asyncio
    async def test_handler_exception_becomes_remote_error(self, brokers):
        ui, host = brokers

        def broken(payload):
            raise RuntimeError("backend exploded")

        host.register_handler("broken", broken)

        with pytest.raises(RemoteHandlerError) as exc_info:
            await ui.send_request("broken", None)

        assert exc_info.value.endpoint == "broken"
        assert exc_info.value.message == "backend exploded"

    @pytest.mark.asyncio
    async def test_unserializable_result_becomes_remote_error(self, brokers):
        ui, host = brokers
        host.register_handler("opaque", lambda payload: object())
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(RemoteHandlerError) as exc_info:
            await ui.send_request("opaque", None, timeout_ms=1000)

        assert loop.time() - started < 0.5
        assert exc_info.value.endpoint == "opaque"
        assert "serialize" in exc_info.value.message
        assert ui.pending_count == 0

    @pytest.mark.asyncio
    async def test_broker_survives_handler_failure(self, brokers):
        ui, host = brokers

        async def flaky(payload):
            if payload == "fail":
                raise ValueError("nope")
            return "fine"

        host.register_handler("flaky", flaky)

        with pytest.raises(RemoteHandlerError):
            await ui.send_request("flaky", "fail")
        assert await ui.send_request("flaky", "ok") == "fine"

    @pytest.mark.asyncio
    async def test_unregister_is_idempotent(self, brokers):
        ui, host = brokers
        host.register_handler("temp", lambda _: 1)
        host.unregister_handler("temp")
        host.unregister_handler("temp")

        assert not host.has_handler("temp")
        with pytest.raises(RequestTimeoutError):
            await ui.send_request("temp", None, timeout_ms=10)


class TestPushNotifications:
    @pytest.mark.asyncio
    async def test_listeners_run_in_registration_order(self, brokers):
        ui, host = brokers
        calls = []
        ui.subscribe("ping", lambda m: calls.append(("a", m["n"])))
        ui.subscribe("ping", lambda m: calls.append(("b", m["n"])))

        host.notify("ping", {"n": 1})
        await asyncio.sleep(0)

        assert calls == [("a", 1), ("b", 1)]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self, brokers):
        ui, host = brokers
        calls = []

        def bad(message):
            raise KeyError("boom")

        ui.subscribe("ping", bad)
        ui.subscribe("ping", lambda m: calls.append(m["type"]))

        host.notify("ping")
        await asyncio.sleep(0)

        assert calls == ["ping"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, brokers):
        ui, host = brokers
        calls = []
        unsubscribe = ui.subscribe("ping", calls.append)
        unsubscribe()
        unsubscribe()

        host.notify("ping")
        await asyncio.sleep(0)

        assert calls == []

    def test_reserved_tags_cannot_be_subscribed(self, brokers):
        ui, _ = brokers

        with pytest.raises(ValueError):
            ui.subscribe("serverRequest", lambda m: None)
        with pytest.raises(ValueError):
            ui.subscribe("serverResponse", lambda m: None)

    @pytest.mark.asyncio
    async def test_message_without_type_is_dropped(self, channels, caplog):
        ui_end, host_end = channels
        ui = CorrelationBroker(ui_end)

        with caplog.at_level(logging.WARNING):
            host_end.post({"no": "type"})
            await asyncio.sleep(0)

        assert "without a type" in caplog.text
        ui.dispose()

    @pytest.mark.asyncio
    async def test_malformed_request_envelope_is_dropped(self, channels, caplog):
        ui_end, host_end = channels
        ui = CorrelationBroker(ui_end)

        with caplog.at_level(logging.WARNING):
            host_end.post({"type": "serverRequest", "serverEndpoint": "x"})
            await asyncio.sleep(0)

        assert "malformed 'serverRequest' envelope" in caplog.text
        ui.dispose()


class TestDispose:
    @pytest.mark.asyncio
    async def test_dispose_rejects_pending_requests(self, channels):
        ui = CorrelationBroker(channels[0])
        future = ui.send_request("never", None)

        ui.dispose()

        with pytest.raises(BrokerClosedError):
            await future
        assert ui.pending_count == 0

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent_and_detaches(self, channels):
        ui_end, host_end = channels
        ui = CorrelationBroker(ui_end)
        calls = []
        ui.subscribe("ping", calls.append)

        ui.dispose()
        ui.dispose()
        host_end.post({"type": "ping"})
        await asyncio.sleep(0)

        assert calls == []

    @pytest.mark.asyncio
    async def test_send_after_dispose_fails_fast(self, channels):
        ui = CorrelationBroker(channels[0])
        ui.dispose()

        with pytest.raises(BrokerClosedError):
            await ui.send_request("anything", None)
