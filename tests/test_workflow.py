"""
Tests for the four-phase assignment workflow.

Tests cover:
- Phase gating and validation
- History entries per phase
- Debt-limit enforcement
- Rollback on store failures and best-effort history
"""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from homecare.booking_models import BookingStatus, HistoryAction, LedgerReason
from homecare.services import ledger, workflow
from homecare.services.errors import (
    InvalidTransition,
    PersistenceFailed,
    PhaseNotReady,
    ProviderNotEligible,
    ValidationFailed,
)
from homecare.services.history import list_history
from homecare.services.policy import PlatformPolicy


def actions(session, booking_id) -> list[HistoryAction]:
    return [e.action for e in list_history(session, booking_id)]


def workflow_actions(session, booking_id) -> list[HistoryAction]:
    return [a for a in actions(session, booking_id) if a != HistoryAction.CREATED]


class TestPhaseOne:
    def test_saves_price_and_confirms_deal(self, session, make_booking, staff) -> None:
        booking = make_booking()

        updated = workflow.save_client_agreement(
            session, booking.id, 40, staff, internal_note="Pays cash"
        )

        assert updated.agreed_price == 40
        assert updated.internal_note == "Pays cash"
        assert updated.deal_confirmed_at is not None
        assert updated.deal_confirmed_by == staff.id
        assert updated.status == BookingStatus.NEW
        assert workflow_actions(session, booking.id) == [HistoryAction.PRICED]

    @pytest.mark.parametrize("price", [0, -10, 0.001, 0.004, float("inf"), float("nan")])
    def test_non_positive_price_rejected(self, session, make_booking, staff, price) -> None:
        booking = make_booking()

        with pytest.raises(ValidationFailed):
            workflow.save_client_agreement(session, booking.id, price, staff)

        session.refresh(booking)
        assert booking.agreed_price is None
        assert booking.deal_confirmed_at is None
        assert workflow_actions(session, booking.id) == []

    def test_price_stored_in_cents(self, session, make_booking, staff) -> None:
        booking = make_booking()

        updated = workflow.save_client_agreement(session, booking.id, 40.005001, staff)

        assert updated.agreed_price == 40.01

    def test_resave_overwrites_and_logs_old_value(self, session, make_booking, staff) -> None:
        booking = make_booking()
        workflow.save_client_agreement(session, booking.id, 40, staff)
        confirmed_at = booking.deal_confirmed_at

        updated = workflow.save_client_agreement(session, booking.id, 45, staff)

        assert updated.agreed_price == 45
        assert updated.deal_confirmed_at == confirmed_at
        entries = list_history(session, booking.id)
        assert entries[-1].action == HistoryAction.PRICED
        assert "was 40" in entries[-1].note

    def test_confirm_deal_is_idempotent(self, session, make_booking, staff) -> None:
        booking = make_booking()

        first = workflow.confirm_deal(session, booking.id, staff)
        confirmed_at = first.deal_confirmed_at
        second = workflow.confirm_deal(session, booking.id, staff)

        assert second.deal_confirmed_at == confirmed_at
        assert workflow_actions(session, booking.id) == [HistoryAction.DEAL_CONFIRMED]

    def test_commit_failure_leaves_booking_untouched(self, session, make_booking, staff) -> None:
        booking = make_booking()
        booking_id = booking.id

        with patch.object(Session, "commit", side_effect=OperationalError("commit", {}, Exception("db down"))):
            with pytest.raises(PersistenceFailed):
                workflow.save_client_agreement(
                    session, booking_id, 40, staff, internal_note="note"
                )

        session.expire_all()
        stored = workflow.get_booking(session, booking_id)
        assert stored.agreed_price is None
        assert stored.internal_note is None
        assert stored.deal_confirmed_at is None
        assert workflow_actions(session, booking_id) == []


class TestPhaseTwo:
    def test_requires_client_agreement(self, session, make_booking) -> None:
        booking = make_booking()

        with pytest.raises(PhaseNotReady):
            workflow.open_provider_list(session, booking.id)

    def test_lists_candidates_without_state_change(
        self, session, make_booking, make_provider, staff
    ) -> None:
        booking = make_booking()
        make_provider("p1", lat=booking.client_lat, lng=booking.client_lng)
        workflow.save_client_agreement(session, booking.id, 40, staff)
        history_before = actions(session, booking.id)

        first = workflow.open_provider_list(session, booking.id)
        second = workflow.open_provider_list(session, booking.id)

        assert first == second
        assert [c.provider_id for c in first.nearest] == ["p1"]
        assert actions(session, booking.id) == history_before


class TestPhaseThree:
    def test_requires_agreed_price(self, session, make_booking, staff) -> None:
        booking = make_booking()

        with pytest.raises(PhaseNotReady):
            workflow.save_provider_share(session, booking.id, 10, staff)

    @pytest.mark.parametrize("share", [-1, -0.006, 40.01, 40.006, 100, float("inf"), float("nan")])
    def test_share_out_of_bounds(self, session, make_booking, staff, share) -> None:
        booking = make_booking()
        workflow.save_client_agreement(session, booking.id, 40, staff)

        with pytest.raises(ValidationFailed):
            workflow.save_provider_share(session, booking.id, share, staff)

        session.refresh(booking)
        assert booking.provider_share is None

    @pytest.mark.parametrize("share", [0, 25, 40])
    def test_share_within_bounds(self, session, make_booking, staff, share) -> None:
        booking = make_booking()
        workflow.save_client_agreement(session, booking.id, 40, staff)

        updated = workflow.save_provider_share(
            session, booking.id, share, staff, provider_id="p1", provider_agreed=True
        )

        assert updated.provider_share == share
        assert updated.status == BookingStatus.NEW
        entry = list_history(session, booking.id)[-1]
        assert entry.action == HistoryAction.PROVIDER_SHARE_SET
        assert "provider=p1" in entry.note

    def test_share_bounds_checked_after_rounding(self, session, make_booking, staff) -> None:
        booking = make_booking()
        workflow.save_client_agreement(session, booking.id, 40, staff)

        updated = workflow.save_provider_share(session, booking.id, 40.004, staff)

        assert updated.provider_share == 40


class TestPhaseFour:
    def test_round_trip(self, session, make_booking, make_provider, staff, policy) -> None:
        booking = make_booking()
        booking.subtotal = 60
        session.add(booking)
        session.commit()
        make_provider("P1")

        workflow.save_client_agreement(session, booking.id, 55, staff)
        workflow.save_provider_share(session, booking.id, 35, staff)
        result = workflow.assign_provider(session, booking.id, "P1", staff, policy)

        assert result.booking.status == BookingStatus.ASSIGNED
        assert result.booking.assigned_provider_id == "P1"
        assert result.booking.subtotal == 60
        assert result.booking.assigned_by == staff.id
        assert result.booking.assigned_at is not None
        assert workflow_actions(session, booking.id) == [
            HistoryAction.PRICED,
            HistoryAction.PROVIDER_SHARE_SET,
            HistoryAction.ASSIGNED,
        ]
        note = list_history(session, booking.id)[-1].note
        assert "agreed_price=55" in note
        assert "provider_share=35" in note

    def test_outreach_data(self, session, make_booking, make_provider, staff, policy, service) -> None:
        booking = make_booking()
        make_provider("p1", full_name="Sara Nurse", phone="0795555555")
        workflow.save_client_agreement(session, booking.id, 40, staff)
        workflow.save_provider_share(session, booking.id, 30, staff)

        outreach = workflow.assign_provider(session, booking.id, "p1", staff, policy).outreach

        assert outreach.provider_phone == "0795555555"
        assert outreach.provider_share == 30
        assert outreach.city == "Amman"
        assert outreach.service_name == (service.name_en or service.name)
        assert "30" in outreach.message
        assert booking.booking_number in outreach.message

    def test_requires_both_phases(self, session, make_booking, make_provider, staff, policy) -> None:
        booking = make_booking()
        make_provider("p1")

        with pytest.raises(PhaseNotReady):
            workflow.assign_provider(session, booking.id, "p1", staff, policy)

        workflow.save_client_agreement(session, booking.id, 40, staff)
        with pytest.raises(PhaseNotReady):
            workflow.assign_provider(session, booking.id, "p1", staff, policy)

        workflow.save_provider_share(session, booking.id, 30, staff)
        with pytest.raises(PhaseNotReady):
            workflow.assign_provider(session, booking.id, None, staff, policy)

        session.refresh(booking)
        assert booking.status == BookingStatus.NEW
        assert booking.assigned_provider_id is None

    def test_unapproved_provider_rejected(self, session, make_booking, make_provider, staff, policy) -> None:
        from homecare.booking_models import ProviderStatus

        booking = make_booking()
        make_provider("p1", provider_status=ProviderStatus.SUSPENDED)
        workflow.save_client_agreement(session, booking.id, 40, staff)
        workflow.save_provider_share(session, booking.id, 30, staff)

        with pytest.raises(ProviderNotEligible):
            workflow.assign_provider(session, booking.id, "p1", staff, policy)
        with pytest.raises(ProviderNotEligible):
            workflow.assign_provider(session, booking.id, "ghost", staff, policy)

    def test_debt_limit_blocks_assignment(self, session, make_booking, make_provider, staff) -> None:
        booking = make_booking()
        make_provider("p1")
        ledger.record_entry(session, "p1", -25, LedgerReason.PLATFORM_FEE)
        workflow.save_client_agreement(session, booking.id, 40, staff)
        workflow.save_provider_share(session, booking.id, 30, staff)

        with pytest.raises(ProviderNotEligible) as exc:
            workflow.assign_provider(
                session, booking.id, "p1", staff, PlatformPolicy(debt_limit=-20)
            )
        assert exc.value.code == "debt_limit_exceeded"

        # Disabled limit lets the assignment through
        result = workflow.assign_provider(
            session, booking.id, "p1", staff, PlatformPolicy(debt_limit=None)
        )
        assert result.booking.status == BookingStatus.ASSIGNED

    def test_balance_at_limit_is_allowed(self, session, make_booking, make_provider, staff) -> None:
        booking = make_booking()
        make_provider("p1")
        ledger.record_entry(session, "p1", -20, LedgerReason.PLATFORM_FEE)
        workflow.save_client_agreement(session, booking.id, 40, staff)
        workflow.save_provider_share(session, booking.id, 30, staff)

        result = workflow.assign_provider(
            session, booking.id, "p1", staff, PlatformPolicy(debt_limit=-20)
        )
        assert result.booking.assigned_provider_id == "p1"

    def test_reassignment(self, session, make_booking, make_provider, staff, policy) -> None:
        booking = make_booking()
        make_provider("p1")
        make_provider("p2")
        workflow.save_client_agreement(session, booking.id, 40, staff)
        workflow.save_provider_share(session, booking.id, 30, staff)
        workflow.assign_provider(session, booking.id, "p1", staff, policy)

        result = workflow.assign_provider(session, booking.id, "p2", staff, policy)

        assert result.booking.assigned_provider_id == "p2"
        assert "replaced p1" in list_history(session, booking.id)[-1].note

    def test_closed_booking_cannot_be_edited(self, session, make_booking, staff) -> None:
        from homecare.services.lifecycle import cancel_booking

        booking = make_booking()
        cancel_booking(session, booking.id, "customer changed plans", staff)

        with pytest.raises(InvalidTransition):
            workflow.save_client_agreement(session, booking.id, 40, staff)


class TestHistoryBestEffort:
    def test_history_failure_keeps_mutation(self, session, make_booking, staff) -> None:
        booking = make_booking()
        booking_id = booking.id
        real_commit = Session.commit
        calls = {"n": 0}

        def flaky_commit(self):
            calls["n"] += 1
            # First commit is the phase write, second the history entry
            if calls["n"] == 2:
                raise OperationalError("insert", {}, Exception("history table locked"))
            return real_commit(self)

        with patch.object(Session, "commit", flaky_commit):
            updated = workflow.save_client_agreement(session, booking_id, 40, staff)

        assert updated.agreed_price == 40
        session.expire_all()
        assert workflow.get_booking(session, booking_id).agreed_price == 40
        assert workflow_actions(session, booking_id) == []


class TestWorkflowState:
    def test_flags_follow_phases(self, session, make_booking, make_provider, staff, policy) -> None:
        booking = make_booking()
        make_provider("p1")

        state = workflow.workflow_state(booking)
        assert not state.deal_confirmed
        assert not state.client_agreement_done

        workflow.save_client_agreement(session, booking.id, 40, staff)
        workflow.save_provider_share(session, booking.id, 30, staff)
        state = workflow.workflow_state(booking)
        assert state.client_agreement_done
        assert state.provider_share_set
        assert state.profit == 10
        assert not state.profit_negative
        assert not state.assigned

        workflow.assign_provider(session, booking.id, "p1", staff, policy)
        assert workflow.workflow_state(booking).assigned

    def test_negative_profit_flag(self, session, make_booking, staff) -> None:
        booking = make_booking()
        workflow.save_client_agreement(session, booking.id, 40, staff)
        workflow.save_provider_share(session, booking.id, 35, staff)
        workflow.save_client_agreement(session, booking.id, 30, staff)

        state = workflow.workflow_state(booking)
        assert state.profit == -5
        assert state.profit_negative
