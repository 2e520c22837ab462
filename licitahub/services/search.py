# licitahub/services/search.py
"""
Procurement search pipeline.

1. Expand the requested category into PNCP modality codes.
2. Page through each modality and merge everything in fetch order.
3. Apply the client's filters and cap the result list.
"""
import asyncio
import logging
from datetime import date, timedelta
from typing import Optional, Tuple

from fastapi import status

from licitahub.core.config import settings
from licitahub.core.errors import DetailError, SearchError, UpstreamError
from licitahub.models.schemas import DetailRequest, ProcurementRecord, SearchCriteria, SearchResponse
from licitahub.services.categories import resolve_category_codes
from licitahub.services.filters import apply_filters, cap_results, deduplicate, sort_by_opening_date
from licitahub.services.normalizer import normalize_record
from licitahub.services.pncp_client import PNCPClientService

logger = logging.getLogger(__name__)


class SearchService:
    def __init__(
        self,
        pncp_client: PNCPClientService,
        result_cap: Optional[int] = None,
        window_days: Optional[int] = None,
        dedupe: Optional[bool] = None,
        sort_by_date: Optional[bool] = None
    ):
        self.pncp_client = pncp_client
        self.result_cap = settings.SEARCH_RESULT_CAP if result_cap is None else result_cap
        self.window_days = settings.SEARCH_DEFAULT_WINDOW_DAYS if window_days is None else window_days
        self.dedupe = settings.SEARCH_DEDUPLICATE if dedupe is None else dedupe
        self.sort_by_date = settings.SEARCH_SORT_BY_OPENING_DATE if sort_by_date is None else sort_by_date

    def resolve_date_window(self, criteria: SearchCriteria, today: Optional[date] = None) -> Tuple[date, date]:
        """Inclusive publication window. Defaults to the trailing `window_days` days."""
        today = today or date.today()
        date_to = criteria.date_to
        date_from = criteria.date_from

        if date_to is None:
            date_to = today if date_from is None or date_from <= today else date_from
        if date_from is None:
            date_from = date_to - timedelta(days=self.window_days)

        if date_from > date_to:
            raise SearchError(
                f"dateFrom ({date_from.isoformat()}) is after dateTo ({date_to.isoformat()})",
                status_code=status.HTTP_400_BAD_REQUEST
            )
        return date_from, date_to

    async def search(self, criteria: SearchCriteria) -> SearchResponse:
        date_from, date_to = self.resolve_date_window(criteria)
        codes = resolve_category_codes(criteria.category)

        logger.info(
            f"Searching PNCP modalities {codes} from {date_from} to {date_to} "
            f"(keyword={criteria.keyword!r}, locality={criteria.locality!r}, "
            f"value_min={criteria.value_min}, value_max={criteria.value_max})"
        )

        # Modalities are independent; gather keeps results in `codes` order
        outcomes = await asyncio.gather(*(
            self.pncp_client.fetch_category(code, date_from, date_to) for code in codes
        ))

        merged = []
        failed_categories = []
        for code, (records, failed) in zip(codes, outcomes):
            merged.extend(records)
            if failed:
                failed_categories.append(code)

        if self.dedupe:
            merged = deduplicate(merged)
        if self.sort_by_date:
            merged = sort_by_opening_date(merged)

        filtered = apply_filters(merged, criteria)
        results = cap_results(filtered, self.result_cap)

        logger.info(
            f"✅ Search done: {len(merged)} fetched, {len(filtered)} matched, {len(results)} returned"
            + (f", failed modalities {failed_categories}" if failed_categories else "")
        )
        return SearchResponse(results=results, failed_categories=failed_categories)

    async def get_detail(self, request: DetailRequest) -> ProcurementRecord:
        """Fetch and normalize one procurement. Upstream failures become DetailError."""
        try:
            payload = await self.pncp_client.fetch_detail(
                request.tax_id, request.year, request.sequence_number
            )
        except UpstreamError as e:
            logger.error(f"Detail lookup failed for {request.tax_id}/{request.year}/{request.sequence_number}: {e}")
            status_code = (
                status.HTTP_404_NOT_FOUND if e.status_code == 404 else status.HTTP_502_BAD_GATEWAY
            )
            raise DetailError(f"Erro ao buscar detalhes: {e}", status_code=status_code) from e

        # The detail payload often omits the key fragments we already know
        enriched = dict(payload)
        orgao = enriched.get("orgaoEntidade")
        orgao = dict(orgao) if isinstance(orgao, dict) else {}
        if not orgao.get("cnpj"):
            orgao["cnpj"] = request.tax_id
        enriched["orgaoEntidade"] = orgao
        if enriched.get("anoCompra") is None:
            enriched["anoCompra"] = request.year
        if enriched.get("sequencialCompra") is None:
            enriched["sequencialCompra"] = request.sequence_number

        return normalize_record(enriched)
