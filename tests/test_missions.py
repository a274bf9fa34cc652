"""Test the mission lifecycle engine."""

import asyncio
from decimal import Decimal

import pytest

from factories import make_mission, make_payment
from missionhub.errors import ExternalCapabilityError, InvalidStateError, NotAuthorizedError, NotFoundError
from missionhub.missions import STATUS_TRANSITIONS, MissionCreate, MissionService
from missionhub.models import MissionStatus, Role


@pytest.fixture
def service(fake_db, notifier, gateway):
    return MissionService(fake_db, notifier, gateway, commission_rate=Decimal("0.15"))


def _create_request(**overrides):
    values = {
        "title": "Paint the fence",
        "description": "20m of wooden fence",
        "category": "painting",
        "latitude": 48.85,
        "longitude": 2.35,
        "address": "Paris",
        "estimated_price": Decimal("33.33"),
    }
    values.update(overrides)
    return MissionCreate(**values)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_fixes_commission(self, service, users):
        mission = await service.create(users["client"]["id"], _create_request())
        assert mission["status"] == "PENDING"
        assert mission["provider_id"] is None
        assert Decimal(str(mission["commission"])) == Decimal("5.00")
        assert mission["client_id"] == users["client"]["id"]


class TestAccept:
    @pytest.mark.asyncio
    async def test_accept_assigns_provider(self, service, users, mission, notifier):
        accepted = await service.accept(mission["id"], users["provider"]["id"])
        assert accepted["status"] == "ACCEPTED"
        assert accepted["provider_id"] == users["provider"]["id"]
        assert accepted["accepted_at"] is not None
        notifier.notify.assert_awaited_once()
        assert notifier.notify.await_args.args[0] == "dev-client"

    @pytest.mark.asyncio
    async def test_accept_twice_is_rejected(self, service, users, mission):
        await service.accept(mission["id"], users["provider"]["id"])
        with pytest.raises(InvalidStateError):
            await service.accept(mission["id"], users["other_provider"]["id"])

    @pytest.mark.asyncio
    async def test_accept_unknown_mission(self, service, users):
        with pytest.raises(NotFoundError):
            await service.accept("missing", users["provider"]["id"])

    @pytest.mark.asyncio
    async def test_concurrent_accept_has_exactly_one_winner(self, service, users, mission, fake_db):
        providers = [users["provider"]["id"], users["other_provider"]["id"]] * 5
        results = await asyncio.gather(
            *(service.accept(mission["id"], pid) for pid in providers),
            return_exceptions=True,
        )
        winners = [r for r in results if isinstance(r, dict)]
        losers = [r for r in results if isinstance(r, InvalidStateError)]
        assert len(winners) == 1
        assert len(losers) == len(providers) - 1

        stored = fake_db.row("missions", mission["id"])
        assert stored["status"] == "ACCEPTED"
        assert stored["provider_id"] == winners[0]["provider_id"]


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_full_happy_path(self, service, users, mission, fake_db):
        provider_id = users["provider"]["id"]
        await service.accept(mission["id"], provider_id)
        started = await service.update_status(mission["id"], provider_id, MissionStatus.in_progress)
        assert started["started_at"] is not None
        completed = await service.update_status(mission["id"], provider_id, MissionStatus.completed)
        assert completed["status"] == "COMPLETED"
        assert completed["completed_at"] is not None
        assert fake_db.row("users", provider_id)["total_jobs"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested", list(MissionStatus))
    async def test_non_party_is_rejected_for_every_status(self, service, users, fake_db, requested):
        mission = make_mission(
            fake_db, users["client"], status="ACCEPTED", provider_id=users["provider"]["id"]
        )
        with pytest.raises(NotAuthorizedError):
            await service.update_status(mission["id"], users["other_provider"]["id"], requested)
        assert fake_db.row("missions", mission["id"])["status"] == "ACCEPTED"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("current", list(MissionStatus))
    @pytest.mark.parametrize("requested", list(MissionStatus))
    async def test_transition_table(self, service, users, fake_db, current, requested):
        provider_id = users["provider"]["id"]
        mission = make_mission(
            fake_db,
            users["client"],
            status=current.value,
            provider_id=None if current == MissionStatus.pending else provider_id,
        )
        allowed = STATUS_TRANSITIONS.get((current, requested))

        if allowed is None:
            with pytest.raises((InvalidStateError, NotAuthorizedError)):
                await service.update_status(mission["id"], provider_id, requested)
            assert fake_db.row("missions", mission["id"])["status"] == current.value
        else:
            assert Role.provider in allowed
            updated = await service.update_status(mission["id"], provider_id, requested)
            assert updated["status"] == requested.value

    @pytest.mark.asyncio
    async def test_client_cannot_start_work(self, service, users, fake_db):
        mission = make_mission(
            fake_db, users["client"], status="ACCEPTED", provider_id=users["provider"]["id"]
        )
        with pytest.raises(NotAuthorizedError):
            await service.update_status(mission["id"], users["client"]["id"], MissionStatus.in_progress)

    @pytest.mark.asyncio
    async def test_concurrent_completion_counts_job_once(self, service, users, fake_db):
        provider_id = users["provider"]["id"]
        mission = make_mission(fake_db, users["client"], status="IN_PROGRESS", provider_id=provider_id)

        results = await asyncio.gather(
            *(service.update_status(mission["id"], provider_id, MissionStatus.completed) for _ in range(5)),
            return_exceptions=True,
        )
        assert sum(1 for r in results if isinstance(r, dict)) == 1
        assert all(isinstance(r, (dict, InvalidStateError)) for r in results)
        assert fake_db.row("users", provider_id)["total_jobs"] == 1

    @pytest.mark.asyncio
    async def test_job_count_tracks_completed_history(self, service, users, fake_db):
        provider_id = users["provider"]["id"]
        make_mission(fake_db, users["client"], status="COMPLETED", provider_id=provider_id)
        make_mission(fake_db, users["client"], status="CANCELLED", provider_id=provider_id)
        mission = make_mission(fake_db, users["client"], status="IN_PROGRESS", provider_id=provider_id)

        await service.update_status(mission["id"], provider_id, MissionStatus.completed)
        assert fake_db.row("users", provider_id)["total_jobs"] == 2

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_transition(self, service, users, fake_db, notifier):
        notifier.notify.side_effect = None
        notifier.notify.return_value = False
        provider_id = users["provider"]["id"]
        mission = make_mission(fake_db, users["client"], status="ACCEPTED", provider_id=provider_id)
        updated = await service.update_status(mission["id"], provider_id, MissionStatus.in_progress)
        assert updated["status"] == "IN_PROGRESS"


class TestCancel:
    @pytest.mark.asyncio
    async def test_client_cancels_pending(self, service, users, mission):
        cancelled = await service.cancel(mission["id"], users["client"]["id"], "Changed my mind")
        assert cancelled["status"] == "CANCELLED"
        assert cancelled["cancellation_reason"] == "Changed my mind"
        assert cancelled["cancelled_at"] is not None

    @pytest.mark.asyncio
    async def test_provider_cannot_cancel_pending(self, service, users, mission):
        with pytest.raises(NotAuthorizedError):
            await service.cancel(mission["id"], users["provider"]["id"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["ACCEPTED", "IN_PROGRESS"])
    async def test_provider_cancels_assigned(self, service, users, fake_db, status):
        mission = make_mission(fake_db, users["client"], status=status, provider_id=users["provider"]["id"])
        cancelled = await service.cancel(mission["id"], users["provider"]["id"])
        assert cancelled["status"] == "CANCELLED"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["COMPLETED", "CANCELLED"])
    async def test_terminal_missions_cannot_be_cancelled(self, service, users, fake_db, status):
        mission = make_mission(fake_db, users["client"], status=status, provider_id=users["provider"]["id"])
        with pytest.raises(InvalidStateError, match=f"already {status}"):
            await service.cancel(mission["id"], users["client"]["id"])

    @pytest.mark.asyncio
    async def test_cancel_refunds_completed_payment(self, service, users, fake_db, gateway):
        mission = make_mission(fake_db, users["client"], status="IN_PROGRESS", provider_id=users["provider"]["id"])
        payment = make_payment(fake_db, mission, status="COMPLETED")

        await service.cancel(mission["id"], users["client"]["id"])

        gateway.refund.assert_awaited_once_with("pi_test_1", idempotency_key=f"refund-{payment['id']}")
        assert fake_db.row("payments", payment["id"])["status"] == "REFUNDED"

    @pytest.mark.asyncio
    async def test_cancel_voids_open_intent(self, service, users, fake_db, gateway):
        mission = make_mission(fake_db, users["client"], status="ACCEPTED", provider_id=users["provider"]["id"])
        payment = make_payment(fake_db, mission, status="PENDING")

        await service.cancel(mission["id"], users["client"]["id"])

        gateway.cancel_payment_intent.assert_awaited_once_with("pi_test_1")
        assert fake_db.row("payments", payment["id"])["status"] == "FAILED"

    @pytest.mark.asyncio
    async def test_refund_failure_surfaces_but_mission_stays_cancelled(self, service, users, fake_db, gateway):
        gateway.refund.side_effect = ExternalCapabilityError("payment", "Payment provider error")
        mission = make_mission(fake_db, users["client"], status="IN_PROGRESS", provider_id=users["provider"]["id"])
        payment = make_payment(fake_db, mission, status="COMPLETED")

        with pytest.raises(ExternalCapabilityError):
            await service.cancel(mission["id"], users["client"]["id"])

        assert fake_db.row("missions", mission["id"])["status"] == "CANCELLED"
        assert fake_db.row("payments", payment["id"])["status"] == "COMPLETED"


class TestListForUser:
    @pytest.mark.asyncio
    async def test_merges_both_sides(self, service, users, fake_db):
        provider = users["provider"]
        as_client = make_mission(fake_db, provider)
        as_provider = make_mission(fake_db, users["client"], status="ACCEPTED", provider_id=provider["id"])
        make_mission(fake_db, users["client"])

        both = await service.list_for_user(provider["id"], None)
        assert [m["id"] for m in both] == [as_provider["id"], as_client["id"]]
        only_provider = await service.list_for_user(provider["id"], "provider")
        assert [m["id"] for m in only_provider] == [as_provider["id"]]
