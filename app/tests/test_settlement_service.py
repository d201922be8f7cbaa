"""
Tests for the principal-facing settlement service.
"""
import pytest
from unittest.mock import Mock, patch
from pika.exceptions import AMQPConnectionError

from app.config import settings
from app.models.settlements import SettlementStatus
from app.rabbitmq.producer import RabbitMQProducer
from app.services.errors import Forbidden, NotFound, NotOnboarded, Unauthenticated, ValidationError
from app.services.settlement_service import (
    build_list_query,
    get_settlement_detail,
    get_settlement_stats,
    get_weekly_payout_summary,
    list_settlements,
    set_settlement_status,
)
from app.tests.conftest import NOW


@pytest.mark.unit
class TestBuildListQuery:

    def test_defaults(self):
        query = build_list_query()
        assert query.page == 1
        assert query.page_size == settings.default_page_size
        assert query.sort_by.value == "created_at"
        assert query.sort_order.value == "desc"

    @pytest.mark.parametrize("kwargs", [
        {"page": 0},
        {"page_size": 0},
        {"sort_by": "wholesaler_id"},
        {"sort_order": "sideways"},
        {"filter": {"status": "paid_out"}},
        {"filter": {"start_date": "2025-03-20", "end_date": "2025-03-10"}},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValidationError):
            build_list_query(**kwargs)

    def test_page_size_above_maximum(self):
        with pytest.raises(ValidationError):
            build_list_query(page_size=settings.max_page_size + 1)

    def test_filter_dict_is_parsed(self):
        query = build_list_query(filter={"status": "completed", "start_date": "2025-03-01"})
        assert query.filter.status == SettlementStatus.completed
        assert str(query.filter.start_date) == "2025-03-01"


@pytest.mark.integration
class TestListSettlements:

    def test_admin_lists_everything(self, db_session, mixed_settlements, admin_principal):
        result = list_settlements(db_session, admin_principal, page_size=100, now=NOW)
        assert result.total == 6

    def test_wholesaler_lists_own(self, db_session, mixed_settlements, other_wholesaler_principal):
        result = list_settlements(db_session, other_wholesaler_principal, now=NOW)
        assert result.total == 2
        assert {s.wholesaler_id for s in result.settlements} == {"w-2"}

    def test_default_sort_is_newest_first(self, db_session, mixed_settlements, admin_principal):
        result = list_settlements(db_session, admin_principal, now=NOW)
        created = [s.created_at for s in result.settlements]
        assert created == sorted(created, reverse=True)

    def test_retailer_forbidden(self, db_session, mixed_settlements, retailer_principal):
        with pytest.raises(Forbidden):
            list_settlements(db_session, retailer_principal, now=NOW)

    def test_unlinked_wholesaler(self, db_session, unlinked_wholesaler_principal):
        with pytest.raises(NotOnboarded):
            list_settlements(db_session, unlinked_wholesaler_principal, now=NOW)

    def test_anonymous(self, db_session):
        with pytest.raises(Unauthenticated):
            list_settlements(db_session, None, now=NOW)


@pytest.mark.integration
class TestDetailStatsAndStatus:

    def test_detail_of_other_tenant(self, db_session, mixed_settlements, wholesaler_principal):
        other = mixed_settlements[4]
        with pytest.raises(NotFound):
            get_settlement_detail(db_session, wholesaler_principal, other.id, now=NOW)

    def test_stats_for_wholesaler(self, db_session, mixed_settlements, other_wholesaler_principal):
        stats = get_settlement_stats(db_session, other_wholesaler_principal, now=NOW)
        assert stats.pending_amount == 66500
        assert stats.completed_amount == 9500

    def test_stats_for_retailer(self, db_session, retailer_principal):
        with pytest.raises(Forbidden):
            get_settlement_stats(db_session, retailer_principal, now=NOW)

    def test_weekly_summary_for_wholesaler(self, db_session, mixed_settlements, wholesaler_principal):
        summary = get_weekly_payout_summary(db_session, wholesaler_principal, now=NOW)

        assert summary.weekly_settlement_amount == 19000 + 28500
        assert summary.weekly_pending_amount == 28500
        assert summary.last_week_settlement_amount == 0
        assert summary.weekly_settlement_trend == 100.0

    def test_weekly_summary_for_retailer(self, db_session, retailer_principal):
        with pytest.raises(Forbidden):
            get_weekly_payout_summary(db_session, retailer_principal, now=NOW)

    def test_set_status_publishes_change(self, db_session, mixed_settlements, wholesaler_principal):
        publisher = Mock()
        settlement = mixed_settlements[0]

        view = set_settlement_status(
            db_session, wholesaler_principal, settlement.id, "completed", now=NOW, publisher=publisher
        )

        assert view.status == SettlementStatus.completed
        publisher.publish_settlement_status_changed.assert_called_once_with(view)

    def test_failed_status_change_publishes_nothing(self, db_session, mixed_settlements, wholesaler_principal):
        publisher = Mock()
        other = mixed_settlements[4]

        with pytest.raises(NotFound):
            set_settlement_status(db_session, wholesaler_principal, other.id, "completed", now=NOW, publisher=publisher)

        publisher.publish_settlement_status_changed.assert_not_called()

    def test_retailer_cannot_change_status(self, db_session, mixed_settlements, retailer_principal):
        with pytest.raises(Forbidden):
            set_settlement_status(db_session, retailer_principal, mixed_settlements[0].id, "completed", now=NOW)

    def test_unreachable_broker_does_not_block_status_change(self, db_session, mixed_settlements, wholesaler_principal):
        publisher = RabbitMQProducer()
        settlement = mixed_settlements[0]

        with patch.object(publisher.setup, "create_connection", side_effect=AMQPConnectionError("refused")):
            view = set_settlement_status(
                db_session, wholesaler_principal, settlement.id, "completed", now=NOW, publisher=publisher
            )

        assert view.status == SettlementStatus.completed
        db_session.refresh(settlement)
        assert settlement.status == SettlementStatus.completed
