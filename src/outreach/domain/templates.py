from __future__ import annotations

import re
from collections.abc import Mapping

from outreach.domain.models import Personalization

PLACEHOLDERS = {
    "first_name": "[First Name]",
    "last_name": "[Last Name]",
    "city": "[City]",
    "company": "[Company]",
}

TOKEN_RE = re.compile(r"\{\{(first_name|last_name|city|company)\}\}")


def replace_template_variables(
    text: str | None, data: Personalization | Mapping[str, str | None] | None
) -> str:
    """Substitute ``{{first_name}}``, ``{{last_name}}``, ``{{city}}`` and ``{{company}}``.

    Missing or empty values become bracketed placeholders. Any other
    ``{{...}}`` token is left as written.
    """
    if not text:
        return ""
    values = _as_mapping(data)

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        return values.get(name) or PLACEHOLDERS[name]

    return TOKEN_RE.sub(_substitute, text)


def _as_mapping(data: Personalization | Mapping[str, str | None] | None) -> Mapping[str, str | None]:
    if data is None:
        return {}
    if isinstance(data, Personalization):
        return {
            "first_name": data.first_name,
            "last_name": data.last_name,
            "city": data.city,
            "company": data.company,
        }
    return data
