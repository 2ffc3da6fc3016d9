# sitegen/core/feature_agent.py
"""
Feature Analysis Agent
- Exposes:
    async def extract_features(request, client, history=None) -> FeatureSpec
- One completion call; the reply is parsed with the tiered extractor and
  normalized into an immutable FeatureSpec.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sitegen.core.errors import MalformedOutput, RetriesExhausted
from sitegen.core.llm_client import CompletionClient
from sitegen.core.output_parser import extract
from sitegen.core.prompts import FEATURE_KEYS, TASK_FEATURES, build_feature_prompt
from sitegen.models import FeatureSpec, GenerationHistory
from sitegen.utils.config import AGENT_TEMPERATURES, AI_DEGRADED_PLANNING

logger = logging.getLogger(__name__)

MAX_HISTORY = 3

# model replies use several spellings for the same list
_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "features": ("features", "keyFeatures", "key_features"),
    "functional_requirements": ("functionality", "functionalRequirements", "functional_requirements"),
    "ui_surfaces": ("uiSurfaces", "ui_surfaces", "keyComponents", "key_components", "pages"),
    "data_requirements": ("dataRequirements", "data_requirements"),
    "user_types": ("userTypes", "user_types"),
    "business_logic": ("businessLogic", "business_logic"),
}


def _string_list(value: Any) -> Tuple[str, ...]:
    """Coerce a model-provided value into a tuple of non-empty strings."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if isinstance(value, dict):
        value = list(value.values())
    if not isinstance(value, (list, tuple)):
        return (str(value),)
    out: List[str] = []
    for item in value:
        if isinstance(item, str):
            text = item.strip()
        elif isinstance(item, dict):
            named = item.get("name") or item.get("title")
            text = str(named).strip() if named else ", ".join(str(v) for v in item.values() if v)
        elif item is None:
            continue
        else:
            text = str(item).strip()
        if text:
            out.append(text)
    return tuple(out)


def feature_spec_from_dict(data: Dict[str, Any], request: str) -> FeatureSpec:
    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        description = request.strip()
    fields = {}
    for field, aliases in _FIELD_ALIASES.items():
        for alias in aliases:
            if alias in data:
                fields[field] = _string_list(data[alias])
                break
    return FeatureSpec(description=description.strip(), **fields)


def default_feature_spec(request: str) -> FeatureSpec:
    """Best-effort spec built from the request text alone."""
    text = request.strip()
    pieces = [p.strip() for p in re.split(r"[.;\n]+|\band\b|,", text) if p.strip()]
    return FeatureSpec(
        description=text,
        features=tuple(pieces[:8]) or (text,),
        degraded=True,
    )


def _default_payload(request: str) -> Dict[str, Any]:
    return {"description": request.strip(), "degraded": True}


async def extract_features(request: str,
                           client: CompletionClient,
                           history: Optional[GenerationHistory] = None,
                           allow_degraded: bool = AI_DEGRADED_PLANNING) -> FeatureSpec:
    """
    Analyse the request into a FeatureSpec.

    With allow_degraded, an unparseable reply or an exhausted retry budget
    yields default_feature_spec(request) instead of an error.
    """
    recent = history.recent(MAX_HISTORY) if history is not None else None
    prompt = build_feature_prompt(request, recent)
    try:
        text = await client.complete(prompt, {
            "temperature": AGENT_TEMPERATURES.get("features"),
            "label": TASK_FEATURES,
        })
    except RetriesExhausted as e:
        if not allow_degraded:
            raise
        logger.warning("feature analysis unavailable, continuing with defaults: %s", e)
        return default_feature_spec(request)

    result = extract(text, FEATURE_KEYS, default=_default_payload(request) if allow_degraded else None)
    if result.degraded:
        return default_feature_spec(request)
    value = result.value
    if isinstance(value, list):
        value = {"features": value}
    if not isinstance(value, dict):
        raise MalformedOutput("feature analysis did not produce an object", raw=text)
    spec = feature_spec_from_dict(value, request)
    logger.info("feature analysis: %d features, %d ui surfaces (tier=%s)",
                len(spec.features), len(spec.ui_surfaces), result.tier)
    return spec
