"""Scheduled relationship maintenance."""

import asyncio
import logging

from workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _sweep() -> int:
    # A fresh engine per run: pooled connections cannot cross event loops.
    from api.services.engine import RepresentationEngine
    from core.config import settings
    from database.engine import create_engine_for_url, create_session_factory

    db_engine = create_engine_for_url(settings.database_url)
    engine = RepresentationEngine.from_settings()
    engine.session_factory = create_session_factory(db_engine)
    try:
        return await engine.sweep_expired_relationships()
    finally:
        await engine.close()
        await db_engine.dispose()


@celery_app.task(name="workers.tasks.relationships.sweep_expired_relationships")
def sweep_expired_relationships() -> dict:
    """Expire active relationships whose end date has passed."""
    expired = asyncio.run(_sweep())
    logger.info(f"Relationship sweep expired {expired} relationship(s)")
    return {"status": "completed", "expired": expired}
