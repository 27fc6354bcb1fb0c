"""
Access-key decoding helpers.

The 44-digit access key of an electronic fiscal document is positional:

    cUF(2) AAMM(4) CNPJ(14) mod(2) serie(3) nNF(9) tpEmis(1) cNF(8) cDV(1)

Only the state code and the issuer tax id are needed here.  All functions
are pure and never raise for malformed input; they return None instead.
"""

import re

ACCESS_KEY_LENGTH = 44
TAX_ID_LENGTH = 14

_NON_DIGITS = re.compile(r"\D")

# IBGE numeric state code -> two-letter jurisdiction
STATE_CODES: dict[str, str] = {
    "11": "RO",
    "12": "AC",
    "13": "AM",
    "14": "RR",
    "15": "PA",
    "16": "AP",
    "17": "TO",
    "21": "MA",
    "22": "PI",
    "23": "CE",
    "24": "RN",
    "25": "PB",
    "26": "PE",
    "27": "AL",
    "28": "SE",
    "29": "BA",
    "31": "MG",
    "32": "ES",
    "33": "RJ",
    "35": "SP",
    "41": "PR",
    "42": "SC",
    "43": "RS",
    "50": "MS",
    "51": "MT",
    "52": "GO",
    "53": "DF",
}


def only_digits(value: object) -> str:
    """Strip every non-digit character; None becomes ''."""
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def is_valid_tax_id(value: object) -> bool:
    return len(only_digits(value)) == TAX_ID_LENGTH


def jurisdiction_from_access_key(access_key: str | None) -> str | None:
    """Two-letter state code encoded in the first two digits, if known."""
    key = only_digits(access_key)
    if len(key) != ACCESS_KEY_LENGTH:
        return None
    return STATE_CODES.get(key[:2])


def issuer_tax_id_from_access_key(access_key: str | None) -> str | None:
    """Issuer tax id at positions 7-20 (1-based) of the key, if well formed."""
    key = only_digits(access_key)
    if len(key) != ACCESS_KEY_LENGTH:
        return None
    tax_id = key[6:20]
    if len(tax_id) != TAX_ID_LENGTH or set(tax_id) == {"0"}:
        return None
    return tax_id


def mask_tax_id(value: object) -> str:
    """Mask a tax id for logs, keeping the first 2 and last 2 digits."""
    digits = only_digits(value)
    if len(digits) <= 4:
        return "*" * len(digits)
    return f"{digits[:2]}{'*' * (len(digits) - 4)}{digits[-2:]}"
