"""Remote fetching for sync sources"""

from synchub.ingestion.paginated_fetcher import FetchResult, LinkHeaderFetcher, PaginatedFetcher

__all__ = ["FetchResult", "LinkHeaderFetcher", "PaginatedFetcher"]
