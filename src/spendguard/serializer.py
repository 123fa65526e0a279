# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Analysis report serialization: JSON and plain-text formats."""

from __future__ import annotations

import json
from typing import Any

from . import PageAnalysis
from .risk_scorer import RiskAssessment, explain_risk


def to_report(analysis: PageAnalysis, *, intervene: bool | None = None) -> dict[str, Any]:
    """Analysis wire form plus score, factors and (optionally) the policy verdict."""
    assessment = explain_risk(analysis)
    data = analysis.to_dict()
    data["riskScore"] = assessment.score
    data["riskFactors"] = [{"factor": name, "points": points} for name, points in assessment.factors]
    if intervene is not None:
        data["shouldIntervene"] = intervene
    return data


def to_json(analysis: PageAnalysis, *, intervene: bool | None = None, indent: int = 2) -> str:
    return json.dumps(to_report(analysis, intervene=intervene), indent=indent, ensure_ascii=False)


def _yes(flag: bool) -> str:
    return "yes" if flag else "no"


def to_text(analysis: PageAnalysis, *, intervene: bool | None = None, assessment: RiskAssessment | None = None) -> str:
    """Human-readable summary, one fact per line."""
    assessment = assessment or explain_risk(analysis)
    lines = [
        f"URL: {analysis.url}",
        f"Domain: {analysis.domain or '-'}",
        f"Title: {analysis.title or '-'}",
        f"Shopping site: {_yes(analysis.is_shopping_site)}",
        f"Checkout page: {_yes(analysis.is_checkout_page)}",
        f"Product page: {_yes(analysis.is_product_page)}",
        f"Cart items: {analysis.cart_items}",
    ]
    if analysis.prices:
        shown = ", ".join(f"${p:,.2f}" for p in analysis.prices[:5])
        more = f" (+{len(analysis.prices) - 5} more)" if len(analysis.prices) > 5 else ""
        lines.append(f"Prices: {shown}{more}")
    else:
        lines.append("Prices: none")
    if analysis.urgency_tactics:
        lines.append("Urgency tactics:")
        lines.extend(f"  - {t.type}: {t.phrase}" for t in analysis.urgency_tactics)
    else:
        lines.append("Urgency tactics: none")
    lines.append(f"Risk: {assessment.level} (score {assessment.score})")
    if intervene is not None:
        lines.append(f"Intervene: {_yes(intervene)}")
    return "\n".join(lines)
