# licitahub/services/normalizer.py
"""
Turns raw PNCP procurement payloads into ProcurementRecord objects.

PNCP field names are an external, versioned schema, so every lookup here has a
fallback chain and a default: normalization never raises on a missing or
malformed field.
"""
import uuid
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from licitahub.core.config import settings
from licitahub.models.schemas import ProcurementRecord

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 150
SYNTHETIC_ID_PREFIX = "synthetic:"

DEFAULT_TITLE = "Sem título"
DEFAULT_ORGANIZATION = "Órgão não informado"
DEFAULT_CATEGORY_LABEL = "Não especificada"
DEFAULT_STATUS = "EM ANDAMENTO"
DEFAULT_DESCRIPTION = "Descrição não disponível"

OPENING_DATE_FIELDS = (
    "dataAberturaProposta",
    "dataAberturaPropostas",
    "dataInicioPropostas",
    "dataPublicacaoPncp",
)


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    """First value among `keys` that is neither None nor an empty string."""
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN and infinities are as useless as a missing value
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        return 0.0
    return parsed


def parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"Unparseable PNCP timestamp: {value!r}")
        return None


def _first_datetime(raw: Dict[str, Any], *keys: str) -> Optional[datetime]:
    """First of `keys` that parses as a timestamp. Unparseable values fall through to the next key."""
    for key in keys:
        parsed = parse_datetime(raw.get(key))
        if parsed is not None:
            return parsed
    return None


def synthetic_id() -> str:
    """Per-request random identifier for records without a control number. Not stable."""
    return f"{SYNTHETIC_ID_PREFIX}{uuid.uuid4().hex}"


def build_detail_url(tax_id: Optional[str], year: Optional[int], sequence_number: Optional[int]) -> Optional[str]:
    """PNCP portal page for a procurement"""
    if not tax_id or year is None or sequence_number is None:
        return None
    return f"{settings.PNCP_PORTAL_URL}/{tax_id}/{year}/{sequence_number}"


def build_lookup_url(tax_id: Optional[str], year: Optional[int], sequence_number: Optional[int]) -> Optional[str]:
    """PNCP consult API resource for a procurement"""
    if not tax_id or year is None or sequence_number is None:
        return None
    return f"{settings.PNCP_BASE_URL}/v1/orgaos/{tax_id}/compras/{year}/{sequence_number}"


def normalize_record(raw: Dict[str, Any]) -> ProcurementRecord:
    """Normalize one PNCP contratação payload."""
    raw = _as_dict(raw)
    orgao = _as_dict(raw.get("orgaoEntidade"))
    unidade = _as_dict(raw.get("unidadeOrgao"))

    control_number = _as_text(raw.get("numeroControlePNCP"))
    objeto = _as_text(raw.get("objetoCompra"))

    tax_id = _as_text(orgao.get("cnpj"))
    year = parse_int(raw.get("anoCompra"))
    sequence_number = parse_int(raw.get("sequencialCompra"))

    opening_date = _first_datetime(raw, *OPENING_DATE_FIELDS)

    return ProcurementRecord(
        id=control_number or synthetic_id(),
        id_is_synthetic=control_number is None,
        title=(objeto or DEFAULT_TITLE)[:TITLE_MAX_LENGTH],
        organization=_as_text(orgao.get("razaoSocial")) or _as_text(raw.get("nomeOrgao")) or DEFAULT_ORGANIZATION,
        category_label=_as_text(_first(raw, "modalidadeNome", "modalidadeCompra")) or DEFAULT_CATEGORY_LABEL,
        estimated_value=parse_float(_first(raw, "valorTotalEstimado", "valorEstimadoTotal")),
        # A missing opening date is reported as "now"; callers cannot tell it apart from a real one
        opening_date=opening_date or datetime.now(),
        status=_as_text(_first(raw, "situacaoCompraNome", "situacaoCompra")) or DEFAULT_STATUS,
        description=objeto or DEFAULT_DESCRIPTION,
        detail_url=build_detail_url(tax_id, year, sequence_number),
        lookup_url=build_lookup_url(tax_id, year, sequence_number),
        tax_id=tax_id,
        year=year,
        sequence_number=sequence_number,
        purchase_number=_as_text(raw.get("numeroCompra")),
        category_code=parse_int(_first(raw, "modalidadeId", "codigoModalidadeContratacao")),
        source_system_url=_as_text(raw.get("linkSistemaOrigem")),
        published_at=parse_datetime(raw.get("dataPublicacaoPncp")),
        updated_at=parse_datetime(raw.get("dataAtualizacao")),
        state=_as_text(unidade.get("ufSigla")),
        municipality=_as_text(unidade.get("municipioNome")),
    )
