"""
LLM client wrapper for formula relationship inference and explanations.

This module provides a clean interface to OpenAI's API for the optional
collaborators of the pipeline. It handles:
- Model-specific parameter handling (GPT-5 vs others)
- Error handling and retries
- Parsing JSON out of free-form model responses
"""

import json
import logging
import os
import re
import time
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv
from openai import APIConnectionError, APIError, OpenAI, RateLimitError

from .models import ComponentExplanation, Formula, FormulaExplanation

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
DEPENDENCY_PROMPT_LIMIT = 20
ROLE_FLOW_PROMPT_LIMIT = 30

DETAIL_INSTRUCTIONS = {
    "brief": "Provide a concise explanation in 2-3 sentences.",
    "detailed": "Provide a comprehensive explanation covering all aspects.",
    "educational": "Explain as if teaching to a graduate student, with examples.",
}

LANGUAGES = {"en": "English", "ko": "Korean"}


class LLMClient:
    """
    Wrapper around OpenAI API for formula analysis.

    Handles model-specific behavior (e.g., GPT-5 doesn't support temperature)
    and provides retry logic. The default is a single attempt: the pipeline
    treats the LLM as optional and never waits on retries.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.3,
        max_retries: int = 1,
        retry_delay: float = 2.0,
        client: Optional[Any] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the LLM client.

        Args:
            model: Model name (default: FORMULA_GRAPH_MODEL or "gpt-4o")
            api_key: OpenAI API key (if None, loads from environment)
            temperature: Temperature for generation (ignored for GPT-5 models)
            max_retries: Maximum number of attempts per request
            retry_delay: Initial delay between retries (seconds)
            client: Pre-built OpenAI-compatible client, mainly for tests
            timeout: Per-request timeout in seconds (default: the OpenAI client's own)
        """
        load_dotenv()

        self.model = model or os.getenv("FORMULA_GRAPH_MODEL") or DEFAULT_MODEL
        self.temperature = temperature
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout

        if client is not None:
            self.client = client
        else:
            self.api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not self.api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment variable "
                    "or pass api_key parameter."
                )
            self.client = OpenAI(api_key=self.api_key)

        self._is_gpt5 = self._is_gpt5_model(self.model)
        logger.info(
            "LLM client initialized (model=%s, temperature=%s)",
            self.model,
            "N/A" if self._is_gpt5 else self.temperature,
        )

    @staticmethod
    def _is_gpt5_model(model_name: str) -> bool:
        """GPT-5 models do not support the temperature parameter."""
        return model_name.lower().startswith("gpt-5") or model_name.lower().startswith("gpt5")

    def complete(self, system_prompt: str, user_prompt: str, json_mode: bool = False) -> str:
        """
        Send one chat completion request.

        Args:
            system_prompt: System message
            user_prompt: User message
            json_mode: Ask the model for a JSON object

        Returns:
            Stripped response text

        Raises:
            APIError: If the API call fails after all attempts
        """
        api_params: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if not self._is_gpt5:
            api_params["temperature"] = self.temperature
        if json_mode:
            api_params["response_format"] = {"type": "json_object"}
        if self.timeout is not None:
            api_params["timeout"] = self.timeout

        for attempt in range(self.max_retries):
            try:
                response = self.client.chat.completions.create(**api_params)
                content = response.choices[0].message.content or ""
                return content.strip()

            except RateLimitError:
                if attempt < self.max_retries - 1:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.warning("Rate limit hit. Retrying in %.1f seconds...", wait_time)
                    time.sleep(wait_time)
                else:
                    raise

            except APIConnectionError:
                if attempt < self.max_retries - 1:
                    logger.warning("Connection error. Retrying in %.1f seconds...", self.retry_delay)
                    time.sleep(self.retry_delay)
                else:
                    raise

            except APIError as e:
                if attempt < self.max_retries - 1:
                    logger.warning("API error: %s. Retrying...", e)
                    time.sleep(self.retry_delay)
                else:
                    raise

        # Unreachable: the last attempt either returns or re-raises
        raise RuntimeError("No completion attempt was made")

    def propose_dependencies(self, formulas: Sequence[Formula]) -> List[Dict[str, Any]]:
        """
        Ask the model for typed dependency edges between formulas.

        Usable directly as the dependency collaborator of
        build_dependencies. At most 20 formulas are sent.

        Returns:
            Raw proposals: dicts with "from", "to", "type", "description"

        Raises:
            APIError: If the API call fails
            ValueError: If the response holds no dependency list
        """
        if len(formulas) < 2:
            return []

        formula_list = "\n".join(
            f"- {f.id}: {f.latex[:100]} ({f.role})" for f in list(formulas)[:DEPENDENCY_PROMPT_LIMIT]
        )
        user_prompt = f"""Analyze dependencies between these formulas:

{formula_list}

Identify which formulas depend on others (uses variables defined in, derived from, substitutes into, combines).
Use only the formula IDs listed above. Allowed types: uses_variable, derives_from, substitutes, combines.

Return JSON:
{{
  "dependencies": [
    {{"from": "eq1", "to": "eq2", "type": "uses_variable", "description": "eq2 uses variable x defined in eq1"}}
  ]
}}"""

        text = self.complete(
            "You are an expert at analyzing mathematical formula dependencies.",
            user_prompt,
            json_mode=True,
        )
        parsed = parse_json_response(text)
        dependencies = parsed.get("dependencies") if isinstance(parsed, dict) else parsed
        if not isinstance(dependencies, list):
            raise ValueError("Response has no 'dependencies' list")
        return dependencies

    def describe_role_flow(self, formulas: Sequence[Formula], language: str = "en") -> str:
        """
        Ask the model for a short paragraph on how the formulas build on each other.

        Returns:
            The paragraph, or "" for fewer than two formulas

        Raises:
            APIError: If the API call fails
        """
        if len(formulas) < 2:
            return ""

        formula_list = "\n".join(
            f"- {f.id} [{f.role}]: {f.latex[:80]}" for f in list(formulas)[:ROLE_FLOW_PROMPT_LIMIT]
        )
        user_prompt = f"""Analyze the logical flow of these formulas in the paper:

{formula_list}

Describe how the formulas build upon each other:
1. What definitions are established first?
2. What is the main objective/theorem?
3. How do derivations connect them?

Return a concise paragraph (3-5 sentences) in {LANGUAGES.get(language, "English")} describing the logical flow."""

        return self.complete(
            "You are an expert at understanding the logical structure of mathematical papers.",
            user_prompt,
        )

    def explain_formula(
        self,
        formula: Formula,
        language: str = "en",
        detail_level: str = "detailed",
    ) -> FormulaExplanation:
        """
        Generate a structured explanation for one formula.

        Args:
            formula: Formula to explain
            language: "en" or "ko"
            detail_level: "brief", "detailed" or "educational"

        Returns:
            FormulaExplanation

        Raises:
            APIError: If the API call fails
            ValueError: If the response cannot be parsed as JSON
        """
        lang_name = LANGUAGES.get(language, "English")
        system_prompt = f"""You are an expert mathematician and academic paper analyst.
You explain mathematical formulas clearly and accurately in {lang_name}.

IMPORTANT GUIDELINES:
1. Keep mathematical symbols in LaTeX format
2. Explain both the mathematical meaning and intuitive understanding
3. Identify the formula's role in the paper (definition, objective, theorem, etc.)
4. Be precise but accessible"""

        user_prompt = f"""Analyze the following mathematical formula and explain it in {lang_name}.

Formula (LaTeX): {formula.latex}
Context: {formula.context}
Section: {formula.section}
Variables found: {", ".join(formula.symbols())}

{DETAIL_INSTRUCTIONS.get(detail_level, DETAIL_INSTRUCTIONS["detailed"])}

Return a JSON object with this exact structure:
{{
  "summary": "One-line summary of what this formula does",
  "components": [
    {{"symbol": "x", "latex": "x", "explanation": "Input variable", "type": "variable"}}
  ],
  "meaning": "Full explanation of the formula's meaning",
  "intuition": "Intuitive understanding / analogy",
  "role": "Role in the paper (e.g., defines the loss function)",
  "related_formulas": ["eq1", "eq2"]
}}"""

        parsed = parse_json_response(self.complete(system_prompt, user_prompt, json_mode=True))
        if not isinstance(parsed, dict):
            raise ValueError("Explanation response is not a JSON object")

        components = []
        for item in parsed.get("components") or []:
            if not isinstance(item, dict) or "symbol" not in item:
                continue
            components.append(
                ComponentExplanation(
                    symbol=str(item["symbol"]),
                    latex=str(item.get("latex", item["symbol"])),
                    explanation=str(item.get("explanation", "")),
                    type=str(item.get("type", "variable")),
                )
            )

        return FormulaExplanation(
            formula_id=formula.id,
            summary=str(parsed.get("summary", "")),
            components=components,
            meaning=str(parsed.get("meaning", "")),
            intuition=str(parsed.get("intuition", "")),
            role=str(parsed.get("role", formula.role)),
            related_formulas=[
                str(fid) for fid in parsed.get("related_formulas") or parsed.get("relatedFormulas") or []
            ],
        )


def fallback_explanation(formula: Formula) -> FormulaExplanation:
    """Explanation built from the formula's own data when no LLM is available."""
    return FormulaExplanation(
        formula_id=formula.id,
        summary=f"Formula {formula.id}: a {formula.role} formula",
        components=[
            ComponentExplanation(
                symbol=v.symbol,
                latex=v.latex,
                explanation=v.meaning or f"Variable ({v.type or 'unknown'})",
            )
            for v in formula.variables
        ],
        meaning="No LLM available, so no detailed explanation was generated.",
        role=formula.role,
    )


def parse_json_response(response_text: str) -> Any:
    """
    Parse JSON out of an LLM response.

    Attempts multiple strategies to extract JSON from the response,
    even if the model includes extra text.

    Args:
        response_text: Raw text response from the LLM

    Returns:
        Parsed JSON value

    Raises:
        ValueError: If no strategy yields valid JSON
    """
    text = response_text.strip()

    # Strategy 1: Try direct JSON parsing (ideal case)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Strategy 2: Remove markdown code blocks
    if "```" in text:
        stripped = re.sub(r"^```(?:json)?\s*", "", text)
        stripped = re.sub(r"\s*```$", "", stripped).strip()
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass

    # Strategy 3: Extract JSON object from text (find first { to last })
    start_idx = text.find("{")
    end_idx = text.rfind("}")
    if start_idx != -1 and end_idx != -1 and start_idx < end_idx:
        try:
            return json.loads(text[start_idx:end_idx + 1])
        except json.JSONDecodeError:
            pass

    raise ValueError(f"Failed to parse JSON response: {response_text[:200]}")
