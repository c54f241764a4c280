"""
GPS tracking housekeeping tasks
"""
import asyncio
import logging
from logisync.core.celery_app import celery_app
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from logisync.core.config import settings

logger = logging.getLogger("celery")

# Create async engine for background tasks
async_engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

def run_async_task(coro):
    """Helper function to run async coroutines in Celery tasks"""
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coro)
    except Exception as e:
        logger.error(f"Error in async task: {e}")
        raise
    finally:
        loop.close()

async def close_stale_sessions(session_factory=None) -> int:
    """Close tracking sessions with no GPS sample inside the staleness window"""
    # Import inside function to avoid circular imports
    from logisync.services.logistics.tracking_session_service import TrackingSessionService

    async with (session_factory or async_session_maker)() as db:
        return await TrackingSessionService(db).expire_stale_sessions()

@celery_app.task(bind=True)
def expire_stale_tracking_sessions(self):
    """Every minute: end tracking for drivers whose app stopped reporting"""
    try:
        expired = run_async_task(close_stale_sessions())
        return f"✅ Closed {expired} stale tracking session(s)"
    except Exception as e:
        logger.error(f"❌ Error expiring stale tracking sessions: {e}")
        raise self.retry(exc=e, countdown=30, max_retries=3)
