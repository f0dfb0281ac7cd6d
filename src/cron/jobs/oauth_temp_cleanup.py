from src.clients.database import db_manager
from src.cron import cron
from src.database.oauth_temp import OAuthTempRepository
from src.utils.logging import get_logger

logger = get_logger(__name__)


@cron(id="oauth_temp_cleanup", crontab="17 * * * *", tags=["maintenance"])
async def oauth_temp_cleanup() -> None:
    """Delete OAuth handshake rows that expired without being consumed."""
    pool = await db_manager.get_pool()
    deleted = await OAuthTempRepository(pool).delete_expired()
    if deleted:
        logger.info(f"Deleted {deleted} expired OAuth handshake(s)")
