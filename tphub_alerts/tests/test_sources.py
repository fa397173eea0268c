"""
Tests for the data source layer and the shared snapshot stage.

Covers the concurrent fetch with partial failures, the RPC parameters
sent to Postgres, row conversion, and collect_snapshot's summary.
"""

import asyncio
from decimal import Decimal
from typing import Any, Dict, List
from unittest.mock import AsyncMock, patch
from uuid import UUID

import pytest

from tphub_alerts.core.config import Settings
from tphub_alerts.core.database import record_to_dict
from tphub_alerts.services.anomaly_source import (
    ORDER_ANOMALIES_QUERY,
    PREFERENCES_QUERY,
    REVIEW_ANOMALIES_QUERY,
    fetch_alert_preferences,
    fetch_order_anomalies,
    fetch_review_anomalies,
    fetch_sources,
)
from tphub_alerts.services.grouping import UNASSIGNED_KEY
from tphub_alerts.services.pipeline import collect_snapshot
from tphub_alerts.tests.conftest import patch_fetchers


def returning(value):
    async def _fetch():
        return value
    return _fetch


def failing(message: str):
    async def _fetch():
        raise RuntimeError(message)
    return _fetch


# =============================================================================
# Test Class: TestFetchSources
# =============================================================================

class TestFetchSources:
    pytestmark = pytest.mark.asyncio

    async def test_failure_does_not_hide_other_results(self) -> None:
        results = await fetch_sources({
            'orders': returning([{'company_id': 'c1'}]),
            'reviews': failing('permission denied for function'),
            'ads': returning([]),
        })

        assert list(results) == ['orders', 'reviews', 'ads']
        assert results['orders'].ok and results['orders'].data == [{'company_id': 'c1'}]
        assert not results['reviews'].ok
        assert results['reviews'].data == []
        assert results['reviews'].error == 'permission denied for function'
        assert results['ads'].ok

    async def test_exception_without_message_uses_type_name(self) -> None:
        results = await fetch_sources({'orders': failing('')})

        assert results['orders'].error == 'RuntimeError'

    async def test_cancellation_propagates(self) -> None:
        async def cancelled():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await fetch_sources({'orders': cancelled})


# =============================================================================
# Test Class: TestQueries
# =============================================================================

class TestQueries:
    pytestmark = pytest.mark.asyncio

    async def test_order_rpc_uses_threshold(self, test_settings: Settings) -> None:
        with patch(
            'tphub_alerts.services.anomaly_source.execute_query',
            new=AsyncMock(return_value=[{'company_id': 'c1', 'orders_deviation_pct': Decimal('-31.5')}]),
        ) as query:
            rows = await fetch_order_anomalies(test_settings)

        query.assert_awaited_once_with(ORDER_ANOMALIES_QUERY, -20)
        assert rows == [{'company_id': 'c1', 'orders_deviation_pct': -31.5}]

    async def test_review_rpc_parameters(self, test_settings: Settings) -> None:
        with patch('tphub_alerts.services.anomaly_source.execute_query', new=AsyncMock(return_value=[])) as query:
            await fetch_review_anomalies(test_settings)

        query.assert_awaited_once_with(REVIEW_ANOMALIES_QUERY, 3, 3.5, 50)

    async def test_rows_read_through_pool(self, test_settings: Settings, mock_db_pool: AsyncMock) -> None:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.fetch.return_value = [{'company_id': 'c1', 'orders_deviation_pct': -40}]

        with patch('tphub_alerts.core.database.get_db_pool', new=AsyncMock(return_value=mock_db_pool)):
            rows = await fetch_order_anomalies(test_settings)

        assert rows == [{'company_id': 'c1', 'orders_deviation_pct': -40}]
        conn.fetch.assert_awaited_once()

    async def test_preferences_keyed_by_consultant_and_company(self) -> None:
        rows = [
            {'consultant_id': 'p1', 'company_id': 'c1', 'orders_enabled': False, 'email_enabled': True},
            {'consultant_id': 'p2', 'company_id': 'c1', 'orders_threshold': Decimal('-35')},
        ]
        with patch('tphub_alerts.services.anomaly_source.execute_query', new=AsyncMock(return_value=rows)) as query:
            prefs = await fetch_alert_preferences(['p1', 'p2'])

        query.assert_awaited_once_with(PREFERENCES_QUERY, ['p1', 'p2'])
        assert prefs[('p1', 'c1')].orders_enabled is False
        assert prefs[('p1', 'c1')].email_enabled is True
        assert prefs[('p2', 'c1')].orders_threshold == -35

    async def test_no_consultants_no_query(self) -> None:
        with patch('tphub_alerts.services.anomaly_source.execute_query', new=AsyncMock()) as query:
            assert await fetch_alert_preferences([]) == {}

        query.assert_not_awaited()


class TestRecordConversion:

    def test_json_friendly_values(self) -> None:
        record = {
            'company_id': UUID('12345678-1234-5678-1234-567812345678'),
            'yesterday_roas': Decimal('1.25'),
            'assigned_company_ids': [UUID('12345678-1234-5678-1234-567812345678')],
            'company_name': 'Alpha',
        }

        assert record_to_dict(record) == {
            'company_id': '12345678-1234-5678-1234-567812345678',
            'yesterday_roas': 1.25,
            'assigned_company_ids': ['12345678-1234-5678-1234-567812345678'],
            'company_name': 'Alpha',
        }


# =============================================================================
# Test Class: TestCollectSnapshot
# =============================================================================

class TestCollectSnapshot:
    pytestmark = pytest.mark.asyncio

    async def test_summary_and_grouping(
        self,
        test_settings: Settings,
        sample_profiles: List[Dict[str, Any]],
        sample_order_anomalies: List[Dict[str, Any]],
        sample_ads_anomalies: List[Dict[str, Any]],
    ) -> None:
        fetchers, profiles = patch_fetchers(
            orders=sample_order_anomalies,
            ads=sample_ads_anomalies,
            profiles=sample_profiles,
        )

        with fetchers, profiles:
            snapshot = await collect_snapshot(test_settings)

        assert snapshot.summary() == {
            'order_anomalies': 3,
            'review_anomalies': 0,
            'ads_anomalies': 1,
            'total': 4,
            'consultants': 2,
        }
        assert set(snapshot.bundles) == {'p1', 'p2', UNASSIGNED_KEY}
        assert snapshot.errors == []
        assert snapshot.profiles_error is None

    async def test_profile_failure_sends_everything_to_unassigned(
        self,
        test_settings: Settings,
        sample_order_anomalies: List[Dict[str, Any]],
    ) -> None:
        fetchers, profiles = patch_fetchers(
            orders=sample_order_anomalies,
            errors={'profiles': RuntimeError('profiles unavailable')},
        )

        with fetchers, profiles:
            snapshot = await collect_snapshot(test_settings)

        assert snapshot.profiles_error == 'profiles unavailable'
        assert snapshot.errors == [{'source': 'profiles', 'message': 'profiles unavailable'}]
        assert list(snapshot.bundles) == [UNASSIGNED_KEY]
        assert len(snapshot.bundles[UNASSIGNED_KEY].anomalies['orders']) == 3

    async def test_failed_category_counts_as_empty(
        self,
        test_settings: Settings,
        sample_profiles: List[Dict[str, Any]],
        sample_order_anomalies: List[Dict[str, Any]],
    ) -> None:
        fetchers, profiles = patch_fetchers(
            orders=sample_order_anomalies,
            profiles=sample_profiles,
            errors={'ads': RuntimeError('timeout')},
        )

        with fetchers, profiles:
            snapshot = await collect_snapshot(test_settings)

        assert snapshot.anomalies['ads'] == []
        assert snapshot.anomaly_errors() == [{'source': 'ads', 'message': 'timeout'}]
        assert snapshot.summary()['order_anomalies'] == 3
