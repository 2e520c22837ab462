import asyncio
from datetime import date, datetime

import httpx
import pytest

from licitahub.core.errors import DetailError, SearchError
from licitahub.models.schemas import DetailRequest, SearchCriteria
from licitahub.services.search import SearchService

TODAY = date(2024, 6, 15)


def run(service, coro_factory):
    async def _run():
        try:
            return await coro_factory(service)
        finally:
            await service.pncp_client.close()
    return asyncio.run(_run())


def code_of(request):
    return int(request.url.params["codigoModalidadeContratacao"])


# ========== DATE WINDOW ==========

@pytest.fixture
def window_service(pncp_service):
    return SearchService(pncp_service(lambda request: httpx.Response(204)))


def test_default_window_is_trailing_thirty_days(window_service):
    assert window_service.resolve_date_window(SearchCriteria(), today=TODAY) == (date(2024, 5, 16), TODAY)


def test_only_start_ends_today(window_service):
    criteria = SearchCriteria(date_from=date(2024, 6, 1))
    assert window_service.resolve_date_window(criteria, today=TODAY) == (date(2024, 6, 1), TODAY)


def test_future_start_ends_on_itself(window_service):
    criteria = SearchCriteria(date_from=date(2024, 7, 1))
    assert window_service.resolve_date_window(criteria, today=TODAY) == (date(2024, 7, 1), date(2024, 7, 1))


def test_only_end_starts_thirty_days_before(window_service):
    criteria = SearchCriteria(date_to=date(2024, 3, 31))
    assert window_service.resolve_date_window(criteria, today=TODAY) == (date(2024, 3, 1), date(2024, 3, 31))


def test_inverted_window_is_rejected(window_service):
    criteria = SearchCriteria(date_from=date(2024, 6, 10), date_to=date(2024, 6, 1))

    with pytest.raises(SearchError) as exc_info:
        window_service.resolve_date_window(criteria, today=TODAY)

    assert exc_info.value.status_code == 400
    assert exc_info.value.to_content()["results"] == []


# ========== AGGREGATION ==========

def test_default_categories_merge_in_fetch_order(pncp_service, pncp_item):
    async def handler(request):
        code = code_of(request)
        # The first modality answers last; output order must not depend on timing
        await asyncio.sleep(0.05 if code == 6 else 0)
        return httpx.Response(200, json={"data": [pncp_item(seq=code)], "paginasRestantes": 0})

    service = SearchService(pncp_service(handler))
    response = run(service, lambda s: s.search(SearchCriteria()))

    assert [r.sequence_number for r in response.results] == [6, 8, 4]
    assert response.failed_categories == []


def test_empty_page_stops_only_its_own_category(pncp_service, pncp_item):
    pages = {6: [], 8: [], 4: []}

    def handler(request):
        code = code_of(request)
        page = int(request.url.params["pagina"])
        pages[code].append(page)
        if code == 6:
            items = [pncp_item(seq=i) for i in range(50)] if page == 1 else []
            return httpx.Response(200, json={"data": items})
        if code == 8:
            return httpx.Response(200, json={"data": [pncp_item(seq=1000 + page)], "paginasRestantes": 10})
        return httpx.Response(204)

    service = SearchService(pncp_service(handler))
    response = run(service, lambda s: s.search(SearchCriteria()))

    assert pages == {6: [1, 2], 8: [1, 2, 3, 4, 5], 4: [1]}
    assert len(response.results) == 55
    assert response.failed_categories == []


def test_single_category_queries_one_modality(pncp_service, pncp_item):
    codes = []

    def handler(request):
        codes.append(code_of(request))
        return httpx.Response(200, json={"data": [pncp_item()], "paginasRestantes": 0})

    service = SearchService(pncp_service(handler))
    run(service, lambda s: s.search(SearchCriteria(category="auction")))

    assert codes == [1]


def test_failed_category_does_not_abort_search(pncp_service, pncp_item):
    def handler(request):
        if code_of(request) == 8:
            return httpx.Response(500)
        return httpx.Response(200, json={"data": [pncp_item(seq=code_of(request))], "paginasRestantes": 0})

    service = SearchService(pncp_service(handler))
    response = run(service, lambda s: s.search(SearchCriteria()))

    assert [r.sequence_number for r in response.results] == [6, 4]
    assert response.failed_categories == [8]


def test_results_capped_after_filtering(pncp_service, pncp_item):
    def handler(request):
        code = code_of(request)
        page = int(request.url.params["pagina"])
        items = [
            pncp_item(seq=code * 10000 + page * 100 + i, objeto="Medicamentos" if i % 2 else "Papel")
            for i in range(50)
        ]
        return httpx.Response(200, json={"data": items, "paginasRestantes": 10})

    service = SearchService(pncp_service(handler))
    everything = run(service, lambda s: s.search(SearchCriteria()))

    service = SearchService(pncp_service(handler))
    filtered = run(service, lambda s: s.search(SearchCriteria(keyword="medicamentos")))

    assert len(everything.results) == 200
    assert all(r.sequence_number // 10000 == 6 for r in everything.results)

    # 25 matches per page: 125 from modality 6, then 75 from modality 8
    assert len(filtered.results) == 200
    assert all(r.title == "Medicamentos" for r in filtered.results)
    assert sum(1 for r in filtered.results if r.sequence_number // 10000 == 8) == 75


def test_duplicates_kept_by_default(pncp_service, pncp_item):
    def handler(request):
        return httpx.Response(200, json={"data": [pncp_item(seq=1)], "paginasRestantes": 0})

    service = SearchService(pncp_service(handler))
    response = run(service, lambda s: s.search(SearchCriteria()))

    assert len(response.results) == 3


def test_deduplication_option(pncp_service, pncp_item):
    def handler(request):
        return httpx.Response(200, json={"data": [pncp_item(seq=1)], "paginasRestantes": 0})

    service = SearchService(pncp_service(handler), dedupe=True)
    response = run(service, lambda s: s.search(SearchCriteria()))

    assert len(response.results) == 1


def test_sort_option(pncp_service, pncp_item):
    openings = {6: "2024-05-01T10:00:00", 8: "2024-05-20T10:00:00", 4: "2024-05-10T10:00:00"}

    def handler(request):
        code = code_of(request)
        return httpx.Response(200, json={"data": [pncp_item(seq=code, opening=openings[code])], "paginasRestantes": 0})

    service = SearchService(pncp_service(handler), sort_by_date=True)
    response = run(service, lambda s: s.search(SearchCriteria()))

    assert [r.sequence_number for r in response.results] == [8, 4, 6]


# ========== DETAIL ==========

DETAIL_REQUEST = DetailRequest(tax_id="12.345.678/0001-99", year=2024, sequence_number=7)


def test_detail_request_keeps_digits_only():
    assert DETAIL_REQUEST.tax_id == "12345678000199"


def test_detail_fills_missing_key_fields(pncp_service):
    def handler(request):
        return httpx.Response(200, json={
            "numeroControlePNCP": "12345678000199-1-000007/2024",
            "objetoCompra": "Serviços de limpeza",
            "orgaoEntidade": {"razaoSocial": "Tribunal Regional"},
            "dataAberturaProposta": "2024-05-10T09:00:00",
        })

    service = SearchService(pncp_service(handler))
    record = run(service, lambda s: s.get_detail(DETAIL_REQUEST))

    assert record.title == "Serviços de limpeza"
    assert record.organization == "Tribunal Regional"
    assert record.opening_date == datetime(2024, 5, 10, 9, 0)
    assert record.detail_url == "https://pncp.gov.br/app/editais/12345678000199/2024/7"


@pytest.mark.parametrize("upstream, expected", [(500, 502), (404, 404), (204, 404)])
def test_detail_upstream_failures(pncp_service, upstream, expected):
    service = SearchService(pncp_service(lambda request: httpx.Response(upstream)))

    with pytest.raises(DetailError) as exc_info:
        run(service, lambda s: s.get_detail(DETAIL_REQUEST))

    assert exc_info.value.status_code == expected
    assert exc_info.value.to_content()["detail"] is None
    assert exc_info.value.message.startswith("Erro ao buscar detalhes")
