import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from ingestion.scheduler import ReconciliationScheduler
from schemas.api import ReconcileResult


def make_session_factory():
    mock_session = AsyncMock()
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = mock_session
    return factory, mock_session


@pytest.mark.asyncio
async def test_scheduler_initialization():
    scheduler = ReconciliationScheduler(interval_minutes=15)
    assert scheduler.scheduler is not None
    assert scheduler.SessionLocal is not None
    assert scheduler.interval_minutes == 15


@pytest.mark.asyncio
async def test_scheduler_job_execution():
    factory, mock_session = make_session_factory()

    with patch("ingestion.scheduler.UnsoldItemReconciler") as mock_reconciler_cls:
        mock_reconciler = MagicMock()
        mock_reconciler.reconcile = AsyncMock(
            return_value=ReconcileResult(items_processed=3, new_matches=1)
        )
        mock_reconciler_cls.return_value = mock_reconciler

        scheduler = ReconciliationScheduler(session_factory=factory)
        result = await scheduler.run_reconcile_job()

        mock_reconciler_cls.assert_called_once_with(mock_session)
        assert mock_reconciler.reconcile.called
        assert result.new_matches == 1


@pytest.mark.asyncio
async def test_scheduler_job_failure_is_contained():
    factory, _ = make_session_factory()

    with patch("ingestion.scheduler.UnsoldItemReconciler") as mock_reconciler_cls:
        mock_reconciler = MagicMock()
        mock_reconciler.reconcile = AsyncMock(side_effect=RuntimeError("database gone"))
        mock_reconciler_cls.return_value = mock_reconciler

        scheduler = ReconciliationScheduler(session_factory=factory)
        result = await scheduler.run_reconcile_job()

        assert result is None


@pytest.mark.asyncio
async def test_scheduler_start_registers_job():
    scheduler = ReconciliationScheduler(interval_minutes=30)
    scheduler.scheduler = MagicMock()

    scheduler.start()

    _, kwargs = scheduler.scheduler.add_job.call_args
    assert kwargs["id"] == "reconcile_job"
    assert kwargs["replace_existing"] is True
    assert scheduler.scheduler.start.called


@pytest.mark.asyncio
async def test_scheduler_stop_when_running():
    scheduler = ReconciliationScheduler()
    scheduler.scheduler = MagicMock()
    scheduler.scheduler.running = True

    scheduler.stop()

    assert scheduler.scheduler.shutdown.called
