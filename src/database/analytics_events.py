"""Product analytics events (PostHog)."""

import json
from datetime import datetime
from uuid import UUID

import asyncpg


async def insert_analytics_event_if_absent(
    conn: asyncpg.Connection,
    organization_id: str,
    project_id: UUID | None,
    *,
    source_tool: str,
    external_id: str,
    event_type: str,
    distinct_id: str | None,
    occurred_at: datetime,
    fields: dict,
    attributes: dict,
) -> bool:
    """Insert once per (external_id, source_tool).

    `fields` holds the normalized top-level columns (pathname, referrer, geoip_*, ...);
    keys it does not carry are stored as NULL.
    """
    result = await conn.execute(
        """
        INSERT INTO analytics_events (
            organization_id, project_id, source_tool, external_id, event_type, distinct_id,
            pathname, referrer, referring_domain, device_type, browser_language_prefix,
            timezone, geoip_city_name, geoip_country_name, geoip_country_code,
            geoip_continent_name, geoip_continent_code, duration, attributes, occurred_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18, $19, $20)
        ON CONFLICT (external_id, source_tool) DO NOTHING
        """,
        organization_id,
        project_id,
        source_tool,
        external_id,
        event_type,
        distinct_id,
        fields.get("pathname"),
        fields.get("referrer"),
        fields.get("referring_domain"),
        fields.get("device_type"),
        fields.get("browser_language_prefix"),
        fields.get("timezone"),
        fields.get("geoip_city_name"),
        fields.get("geoip_country_name"),
        fields.get("geoip_country_code"),
        fields.get("geoip_continent_name"),
        fields.get("geoip_continent_code"),
        fields.get("duration"),
        json.dumps(attributes),
        occurred_at,
    )
    return result != "INSERT 0 0"
