# licitahub/services/pncp_client.py
import httpx
from typing import List, Dict, Any, Optional, Tuple
from datetime import date
import logging

from licitahub.core.config import settings
from licitahub.core.errors import UpstreamError
from licitahub.models.schemas import ProcurementRecord
from licitahub.services.normalizer import normalize_record

logger = logging.getLogger(__name__)


def format_pncp_date(value: date) -> str:
    """PNCP expects compact dates: YYYYMMDD"""
    return value.strftime("%Y%m%d")


def extract_items(payload: Any) -> Tuple[List[Dict[str, Any]], Optional[int]]:
    """
    Pull the records and the remaining-page count out of a search payload.
    Accepts the standard envelope ({"data": [...], "paginasRestantes": n}) or a bare list.
    """
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)], None
    if isinstance(payload, dict):
        data = payload.get("data") or []
        if not isinstance(data, list):
            data = []
        remaining = payload.get("paginasRestantes")
        if not isinstance(remaining, int) or isinstance(remaining, bool):
            remaining = None
        return [item for item in data if isinstance(item, dict)], remaining
    return [], None


class PNCPClientService:
    SEARCH_PATH = "/v1/contratacoes/publicacao"
    DETAIL_PATH = "/v1/orgaos/{tax_id}/compras/{year}/{sequence_number}"

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.base_url = settings.PNCP_BASE_URL.rstrip("/")
        self.page_size = settings.PNCP_PAGE_SIZE
        self.max_pages = settings.PNCP_MAX_PAGES
        self.client = client or httpx.AsyncClient(
            timeout=settings.PNCP_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"}
        )

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"PNCP request failed: {e.__class__.__name__}: {e}") from e

        if not response.is_success:
            raise UpstreamError(
                f"PNCP returned HTTP {response.status_code} {response.reason_phrase}".strip(),
                status_code=response.status_code
            )

        # 204 No Content is how PNCP says "nothing for this query"
        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("PNCP returned a body that is not valid JSON") from e

    async def fetch_page(
        self,
        category_code: int,
        date_from: date,
        date_to: date,
        page: int
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """
        Fetch one page of procurements published between the two dates (inclusive).
        Returns the raw items and, when PNCP reports it, how many pages remain.
        """
        params = {
            "dataInicial": format_pncp_date(date_from),
            "dataFinal": format_pncp_date(date_to),
            "codigoModalidadeContratacao": category_code,
            "pagina": page,
            "tamanhoPagina": self.page_size
        }
        logger.debug(f"Fetching PNCP page {page} for modality {category_code}")
        payload = await self._get_json(f"{self.base_url}{self.SEARCH_PATH}", params=params)
        return extract_items(payload)

    async def fetch_category(
        self,
        category_code: int,
        date_from: date,
        date_to: date
    ) -> Tuple[List[ProcurementRecord], bool]:
        """
        Page through one modality until an empty page, a failure or the page cap.
        Failures are logged and end this modality only. Returns (records, failed).
        """
        records: List[ProcurementRecord] = []

        for page in range(1, self.max_pages + 1):
            try:
                items, remaining = await self.fetch_page(category_code, date_from, date_to, page)
            except UpstreamError as e:
                logger.warning(f"⚠️ Skipping modality {category_code} from page {page}: {e}")
                return records, True

            if not items:
                logger.debug(f"Modality {category_code}: no more results after page {page - 1}")
                break

            records.extend(normalize_record(item) for item in items)

            if remaining == 0:
                break

        logger.info(f"Modality {category_code}: fetched {len(records)} procurements")
        return records, False

    async def fetch_detail(self, tax_id: str, year: int, sequence_number: int) -> Dict[str, Any]:
        """Fetch a single procurement by its natural key. Raises UpstreamError on any failure."""
        url = self.base_url + self.DETAIL_PATH.format(
            tax_id=tax_id, year=year, sequence_number=sequence_number
        )
        logger.info(f"Fetching PNCP detail {tax_id}/{year}/{sequence_number}")
        payload = await self._get_json(url)
        if payload is None:
            raise UpstreamError(f"PNCP has no procurement {tax_id}/{year}/{sequence_number}", status_code=404)
        if not isinstance(payload, dict):
            raise UpstreamError(f"PNCP returned a malformed procurement: expected an object, got {type(payload).__name__}")
        return payload
