"""
Gemini-backed code generation for both engines.

Behavior:
- Builds the request as <engine system prompt> + newline + "<label>: <prompt>".
- Calls the model exactly once with the caller's API key (no retry).
- Strips markdown fences from the reply.
- Manim replies are scanned against a denylist of constructs that break the
  renderer; then both engines get a superficial shape check.
"""
import logging
import re
from typing import Any, Callable, Optional, Pattern, Tuple

from google import genai

from .config import DEFAULT_MODEL, check_engine
from .errors import BannedConstructError, CodeGenerationError, CodeValidationError
from .prompts import DESCRIPTION_LABELS, SYSTEM_PROMPTS

logger = logging.getLogger(__name__)

P5_SIGNATURE = "function setup()"
MANIM_SCENE_CLASS = "class GeneratedScene"

BANNED_MANIM_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r"Axes\s*\("),
    re.compile(r"Surface\s*\("),
    re.compile(r"ParametricFunction\s*\("),
    re.compile(r"np\.math"),  # deprecated numpy math submodule
    re.compile(r"set_shade_in_scene"),
    re.compile(r"MathTex\s*\("),
    re.compile(r"Tex\s*\("),
    re.compile(r"import\s+np"),
    re.compile(r"import\s+numpy"),
)

_LEADING_FENCE = re.compile(r"^```(?:\w+)?\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")


def clean_code(raw: Optional[str]) -> str:
    text = (raw or "").strip()
    text = _LEADING_FENCE.sub("", text, count=1)
    return _TRAILING_FENCE.sub("", text, count=1)


def validate_manim_code(code: str) -> None:
    for pattern in BANNED_MANIM_PATTERNS:
        if pattern.search(code):
            raise BannedConstructError(pattern.pattern)


def validate_generated_code(code: str, engine: str) -> None:
    trimmed = code.strip()
    if engine == "p5" and not trimmed.startswith(P5_SIGNATURE):
        raise CodeValidationError(f"Invalid p5.js generation: must start with '{P5_SIGNATURE}'")
    if engine == "manim" and MANIM_SCENE_CLASS not in trimmed:
        raise CodeValidationError(f"Invalid Manim generation: must contain '{MANIM_SCENE_CLASS}'")


def build_contents(prompt: str, engine: str) -> str:
    check_engine(engine)
    user_prompt = f"{DESCRIPTION_LABELS[engine]}: {prompt}"
    return "\n".join([SYSTEM_PROMPTS[engine], user_prompt])


class CodeGenerator:
    def __init__(self, model: str = DEFAULT_MODEL, client_factory: Callable[..., Any] = genai.Client):
        self.model = model
        self._client_factory = client_factory

    async def generate(self, prompt: str, engine: str, api_key: str) -> str:
        contents = build_contents(prompt, engine)
        if not api_key:
            raise CodeGenerationError("An API key is required for code generation")

        client = self._client_factory(api_key=api_key)
        logger.info("Requesting %s code from %s", engine, self.model)
        try:
            response = await client.aio.models.generate_content(model=self.model, contents=contents)
        except Exception as e:
            raise CodeGenerationError(f"Code generation request failed: {e}") from e

        code = clean_code(getattr(response, "text", None))
        if engine == "manim":
            validate_manim_code(code)
        validate_generated_code(code, engine)
        return code
