"""Gemini model factory for the conformidade agents."""

import copy

import google.generativeai as genai

from conformidade_platform.app.config import get_settings


# Fields that Pydantic v2 adds to JSON Schema but Gemini's API rejects
_UNSUPPORTED_KEYS = {
    "$defs", "definitions", "title", "default", "examples",
    "additionalProperties", "maximum", "minimum", "exclusiveMaximum",
    "exclusiveMinimum", "maxLength", "minLength", "pattern",
    "maxItems", "minItems", "uniqueItems",
}


def clean_schema(schema: dict) -> dict:
    """Make a Pydantic JSON Schema acceptable to Gemini.

    Inlines $defs/$ref references and strips the keys the genai SDK
    refuses (title, default, ...).
    """
    schema = copy.deepcopy(schema)
    defs = schema.pop("$defs", None) or schema.pop("definitions", None)

    def _resolve(node):
        if isinstance(node, dict):
            if "$ref" in node:
                ref_name = node["$ref"].rsplit("/", 1)[-1]
                if defs and ref_name in defs:
                    resolved = copy.deepcopy(defs[ref_name])
                    return _resolve(resolved)
                return node
            for key in _UNSUPPORTED_KEYS:
                node.pop(key, None)
            for key, value in list(node.items()):
                node[key] = _resolve(value)
        elif isinstance(node, list):
            for i, item in enumerate(node):
                node[i] = _resolve(item)
        return node

    return _resolve(schema)


def function_declaration(name: str, description: str, parameters: dict) -> dict:
    """Build a function declaration dict from a JSON Schema for its arguments."""
    return {"name": name, "description": description, "parameters": clean_schema(parameters)}


def get_model(
    model_name: str | None = None,
    temperature: float = 0.2,
    json_mode: bool = False,
    response_schema: dict | None = None,
    system_instruction: str | None = None,
    function: dict | None = None,
):
    """Return a configured Gemini GenerativeModel instance.

    Args:
        model_name: Gemini model identifier. Defaults to ``text_model_name``.
        temperature: Generation temperature (0.0-2.0).
        json_mode: If True, constrain output to valid JSON.
        response_schema: Optional JSON Schema dict for structured output.
        system_instruction: Optional system-level instruction.
        function: Optional function declaration (see ``function_declaration``).
            When given, the model is forced to answer with a call to it.

    Returns:
        A ``google.generativeai.GenerativeModel`` ready for generation.
    """
    settings = get_settings()
    genai.configure(api_key=settings.gemini_api_key)

    generation_config = {"temperature": temperature}
    if json_mode:
        generation_config["response_mime_type"] = "application/json"
        if response_schema:
            generation_config["response_schema"] = clean_schema(response_schema)

    kwargs = {}
    if function is not None:
        kwargs["tools"] = [{"function_declarations": [function]}]
        kwargs["tool_config"] = {
            "function_calling_config": {
                "mode": "ANY",
                "allowed_function_names": [function["name"]],
            }
        }

    return genai.GenerativeModel(
        model_name=model_name or settings.text_model_name,
        generation_config=generation_config,
        system_instruction=system_instruction,
        **kwargs,
    )
