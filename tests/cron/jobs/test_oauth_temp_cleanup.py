from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.cron.jobs.oauth_temp_cleanup import oauth_temp_cleanup
from src.cron.registry import CRON_REGISTRY


def test_registered_hourly():
    job = CRON_REGISTRY["oauth_temp_cleanup"]
    assert job.crontab == "17 * * * *"
    assert job.tags == ["maintenance"]


@pytest.mark.asyncio
async def test_deletes_expired_rows():
    pool = MagicMock()
    repo = MagicMock()
    repo.delete_expired = AsyncMock(return_value=4)

    with (
        patch(
            "src.cron.jobs.oauth_temp_cleanup.db_manager.get_pool",
            AsyncMock(return_value=pool),
        ),
        patch(
            "src.cron.jobs.oauth_temp_cleanup.OAuthTempRepository", return_value=repo
        ) as repo_cls,
    ):
        await oauth_temp_cleanup()

    repo_cls.assert_called_once_with(pool)
    repo.delete_expired.assert_awaited_once()
