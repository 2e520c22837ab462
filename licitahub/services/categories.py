# licitahub/services/categories.py
from types import MappingProxyType
from typing import List, Optional

from licitahub.models.schemas import ProcurementCategory

# PNCP modality codes (codigoModalidadeContratacao)
CATEGORY_CODES = MappingProxyType({
    ProcurementCategory.AUCTION.value: 1,          # Leilão eletrônico
    ProcurementCategory.OPEN_BID.value: 4,         # Concorrência eletrônica
    ProcurementCategory.COMPETITIVE_BID.value: 6,  # Pregão eletrônico
    ProcurementCategory.DIRECT_AWARD.value: 8,     # Dispensa de licitação
    ProcurementCategory.SINGLE_SOURCE.value: 9,    # Inexigibilidade
})

# Portuguese modality names accepted as aliases
CATEGORY_ALIASES = MappingProxyType({
    "leilao": ProcurementCategory.AUCTION.value,
    "concorrencia": ProcurementCategory.OPEN_BID.value,
    "pregao": ProcurementCategory.COMPETITIVE_BID.value,
    "dispensa": ProcurementCategory.DIRECT_AWARD.value,
    "inexigibilidade": ProcurementCategory.SINGLE_SOURCE.value,
})

# Pregão, dispensa and concorrência cover most of what PNCP publishes
DEFAULT_CATEGORY_CODES = (6, 8, 4)


def _canonical(category: str) -> str:
    key = category.strip().lower().replace("_", "-").replace(" ", "-")
    for accented, plain in (("ã", "a"), ("ê", "e"), ("ç", "c")):
        key = key.replace(accented, plain)
    return CATEGORY_ALIASES.get(key, key)


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Return the canonical category name, or None when it is absent or unknown."""
    if not category:
        return None
    key = _canonical(category)
    return key if key in CATEGORY_CODES else None


def resolve_category_codes(category: Optional[str]) -> List[int]:
    """
    Map an optional category to the upstream codes to query.
    Never returns an empty list: unknown or missing categories fall back to the defaults.
    """
    key = normalize_category(category)
    if key is None:
        return list(DEFAULT_CATEGORY_CODES)
    return [CATEGORY_CODES[key]]
