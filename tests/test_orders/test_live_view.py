"""
Test suite for LiveOrdersView.

Tests cover the initial load, refresh on change events, keeping the previous
snapshot when a fetch fails, polling and releasing the subscription.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from cleanwash.core.exceptions import GatewayError
from cleanwash.realtime.change_feed import ChangeEvent, ChangeEventType, Subscription
from cleanwash.services.orders.live_view import LiveNotice, LiveOrdersView
from cleanwash.services.orders.repository import OrderRepository


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def repository(make_order_view) -> MagicMock:
    repo = MagicMock(spec=OrderRepository)
    repo.fetch_pending = AsyncMock(return_value=[make_order_view(status="pending")])
    repo.fetch_active = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def subscription() -> MagicMock:
    return MagicMock(spec=Subscription)


@pytest.fixture
def gateway(mock_gateway, subscription) -> MagicMock:
    mock_gateway.subscribe.return_value = subscription
    return mock_gateway


def captured_callback(gateway: MagicMock):
    return gateway.subscribe.await_args.args[1]


# ============================================================================
# Lifecycle Tests
# ============================================================================


class TestLifecycle:
    async def test_start_loads_then_subscribes(self, repository, gateway):
        view = LiveOrdersView(repository, gateway, poll_interval=0)

        await view.start()

        assert len(view.pending) == 1
        assert view.active == []
        assert view.loading == {"pending": False, "active": False}
        gateway.subscribe.assert_awaited_once()
        assert gateway.subscribe.await_args.args[0] == "orders"
        assert gateway.subscribe.await_args.kwargs["events"] == ("*",)
        await view.stop()

    async def test_context_manager_releases_subscription(
        self, repository, gateway, subscription
    ):
        async with LiveOrdersView(repository, gateway, poll_interval=0) as view:
            assert view.running

        gateway.unsubscribe.assert_awaited_once_with(subscription)
        assert not view.running

    async def test_stop_is_idempotent(self, repository, gateway):
        view = LiveOrdersView(repository, gateway, poll_interval=0)
        await view.start()

        await view.stop()
        await view.stop()

        assert gateway.unsubscribe.await_count == 1

    async def test_views_do_not_share_subscriptions(self, repository, gateway):
        first = LiveOrdersView(repository, gateway, poll_interval=0)
        second = LiveOrdersView(repository, gateway, poll_interval=0)

        await first.start()
        await second.start()
        await first.stop()

        assert gateway.subscribe.await_count == 2
        assert gateway.unsubscribe.await_count == 1
        assert second.running
        await second.stop()

    async def test_subscription_failure_reports_notice(self, repository, gateway):
        gateway.subscribe.side_effect = GatewayError("Change feed is not configured")
        notices = []
        view = LiveOrdersView(repository, gateway, poll_interval=0, on_error=notices.append)

        await view.start()

        assert len(view.pending) == 1
        assert notices[0].title == "Live updates unavailable"
        await view.stop()
        gateway.unsubscribe.assert_not_called()


# ============================================================================
# Refresh Tests
# ============================================================================


class TestRefresh:
    async def test_change_event_triggers_full_refresh(
        self, repository, gateway, make_order_view
    ):
        view = LiveOrdersView(repository, gateway, poll_interval=0)
        await view.start()
        accepted = make_order_view(status="accepted", worker_id="22222222-2222-4222-8222-222222222222")
        repository.fetch_pending.return_value = []
        repository.fetch_active.return_value = [accepted]

        await captured_callback(gateway)(
            ChangeEvent(
                collection="orders",
                event_type=ChangeEventType.UPDATE,
                record={"id": str(accepted.id), "status": "accepted"},
            )
        )

        assert view.pending == []
        assert view.active == [accepted]
        assert repository.fetch_pending.await_count == 2
        assert repository.fetch_active.await_count == 2
        await view.stop()

    async def test_failed_fetch_keeps_previous_snapshot(self, repository, gateway):
        notices: list[LiveNotice] = []
        view = LiveOrdersView(repository, gateway, poll_interval=0, on_error=notices.append)
        await view.start()
        previous = list(view.pending)

        repository.fetch_pending.side_effect = GatewayError("Query failed")
        repository.fetch_active.return_value = []
        await view.refresh()

        assert view.pending == previous
        assert len(notices) == 1
        assert notices[0].view == "pending"
        assert notices[0].description == (
            "Could not load pending orders. Please try again later."
        )
        await view.stop()

    async def test_one_view_failing_still_refreshes_other(
        self, repository, gateway, make_order_view
    ):
        view = LiveOrdersView(repository, gateway, poll_interval=0)
        await view.start()
        processing = make_order_view(
            status="processing", worker_id="22222222-2222-4222-8222-222222222222"
        )

        repository.fetch_pending.side_effect = GatewayError("Query failed")
        repository.fetch_active.return_value = [processing]
        await view.refresh()

        assert len(view.pending) == 1
        assert view.active == [processing]
        await view.stop()

    async def test_listeners_receive_snapshots(self, repository, gateway):
        snapshots = []

        async def listener(snapshot):
            snapshots.append(snapshot)

        view = LiveOrdersView(repository, gateway, poll_interval=0, on_update=listener)
        await view.start()
        await view.refresh()

        assert len(snapshots) == 2
        assert len(snapshots[-1].pending) == 1
        assert snapshots[-1].refreshed_at is not None
        await view.stop()

    async def test_listener_error_does_not_break_refresh(self, repository, gateway):
        def broken(snapshot):
            raise RuntimeError("socket closed")

        view = LiveOrdersView(repository, gateway, poll_interval=0, on_update=broken)

        await view.start()

        assert len(view.pending) == 1
        await view.stop()


# ============================================================================
# Polling Tests
# ============================================================================


class TestPolling:
    async def test_polling_refreshes_periodically(self, repository, gateway):
        view = LiveOrdersView(repository, gateway, poll_interval=0.01)

        await view.start()
        await asyncio.sleep(0.05)
        await view.stop()

        assert repository.fetch_pending.await_count >= 2

    async def test_stop_cancels_polling(self, repository, gateway):
        view = LiveOrdersView(repository, gateway, poll_interval=0.01)
        await view.start()
        await view.stop()
        calls = repository.fetch_pending.await_count

        await asyncio.sleep(0.03)

        assert repository.fetch_pending.await_count == calls

    async def test_unexpected_error_does_not_stop_polling(
        self, repository, gateway, make_order_view
    ):
        calls = {"count": 0}

        async def flaky_fetch():
            calls["count"] += 1
            if calls["count"] == 2:
                raise RuntimeError("row decoding bug")
            return [make_order_view()]

        repository.fetch_pending.side_effect = flaky_fetch
        view = LiveOrdersView(repository, gateway, poll_interval=0.01)

        await view.start()
        await asyncio.sleep(0.06)

        assert calls["count"] >= 3
        assert not view._poll_task.done()
        await view.stop()
