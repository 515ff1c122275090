"""Execute interpreted list queries against the entity store."""

from typing import Any

from llamaio.core import db_client
from llamaio.core.query_parser import ReadQuery


async def run_read_query(*, collection: str, query: ReadQuery) -> list[dict[str, Any]] | int:
    """Return the matching records, or their count when the query is count-only.

    The count ignores skip and limit.
    """
    if query.count_only:
        return await db_client.count_records(collection=collection, where=query.where)

    return await db_client.list_records(
        collection=collection,
        where=query.where,
        sort=query.sort,
        projection=query.projection,
        skip=query.skip,
        limit=query.limit,
    )
