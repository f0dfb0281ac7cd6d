"""Short-lived storage for OAuth1 request tokens between authorize and callback."""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import asyncpg

from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_OAUTH_TEMP_TTL = timedelta(minutes=10)


class OAuthTempExpiredError(Exception):
    """Raised when a callback presents a token whose handshake has expired."""

    def __init__(self, oauth_token: str, expired_at: datetime):
        self.oauth_token = oauth_token
        self.expired_at = expired_at
        super().__init__(f"OAuth handshake expired at {expired_at.isoformat()}")


class OAuthTemp:
    def __init__(self, row: asyncpg.Record):
        self.id: UUID = row["id"]
        self.user_id: str = row["user_id"]
        self.provider: str = row["provider"]
        self.oauth_token: str = row["oauth_token"]
        self.oauth_token_secret: str = row["oauth_token_secret"]
        self.state: str | None = row["state"]
        self.expires_at: datetime = row["expires_at"]
        self.created_at: datetime = row["created_at"]

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at


class OAuthTempRepository:
    """Create, consume and expire in-flight OAuth handshakes.

    A record is consumed exactly once: consume() deletes it atomically, so a
    replayed callback finds nothing.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(
        self,
        user_id: str,
        provider: str,
        oauth_token: str,
        oauth_token_secret: str,
        state: str | None = None,
        ttl: timedelta = DEFAULT_OAUTH_TEMP_TTL,
    ) -> OAuthTemp:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO oauth_temp (user_id, provider, oauth_token, oauth_token_secret, state, expires_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id, user_id, provider, oauth_token, oauth_token_secret, state,
                          expires_at, created_at
                """,
                user_id,
                provider,
                oauth_token,
                oauth_token_secret,
                state,
                datetime.now(UTC) + ttl,
            )
            return OAuthTemp(row)

    async def consume(self, oauth_token: str) -> OAuthTemp | None:
        """Delete and return the handshake for a token.

        Returns None for an unknown (or already consumed) token. An expired record is
        deleted as well, then rejected with OAuthTempExpiredError.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                DELETE FROM oauth_temp
                WHERE oauth_token = $1
                RETURNING id, user_id, provider, oauth_token, oauth_token_secret, state,
                          expires_at, created_at
                """,
                oauth_token,
            )
        if row is None:
            return None

        record = OAuthTemp(row)
        if record.is_expired():
            logger.warning(
                "Rejected expired OAuth handshake",
                provider=record.provider,
                user_id=record.user_id,
            )
            raise OAuthTempExpiredError(oauth_token, record.expires_at)
        return record

    async def delete_expired(self) -> int:
        """Remove abandoned handshakes. Returns the number of rows deleted."""
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM oauth_temp WHERE expires_at <= NOW()")
        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(result.split()[-1])
