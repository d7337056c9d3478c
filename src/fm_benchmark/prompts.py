"""
Built-in benchmark prompts.
"""

from typing import Dict, List

from .models import BenchmarkPrompt


# Stresses long-form narrative and structured enumeration in a single response.
PRODUCT_DESIGN = BenchmarkPrompt(
    instructions="""
You are a senior product architect helping a multidisciplinary team evaluate a next-generation
productivity companion.
You think aloud, justify tradeoffs, and keep responses professional.
""",
    user_prompt="""
We are designing "Waypoint", a cross-platform productivity companion that runs on Mac, iPad, iPhone,
and Vision Pro.
In a single response, please:
1. Summarize the product vision in exactly 5 tight paragraphs.
2. Provide exactly 10 features in detail, including platform-specific affordances.
3. Describe exactly 5 target personas and 5 launches risks directly in prose.
"""
)

# Short exchange for smoke-testing a model without a long generation.
QUICK_CHECK = BenchmarkPrompt(
    instructions="You are a helpful assistant.",
    user_prompt="In two sentences, explain what a token is in a language model."
)

_PROMPTS: Dict[str, BenchmarkPrompt] = {
    "product-design": PRODUCT_DESIGN,
    "quick-check": QUICK_CHECK,
}

DEFAULT_PROMPT_NAME = "product-design"


def get_prompt(name: str) -> BenchmarkPrompt:
    """
    Look up a built-in prompt by name.

    Raises:
        KeyError: If no prompt has that name
    """
    try:
        return _PROMPTS[name]
    except KeyError:
        raise KeyError(
            f"Unknown prompt '{name}'. Available prompts: {', '.join(available_prompts())}"
        ) from None


def available_prompts() -> List[str]:
    """Names of all built-in prompts."""
    return sorted(_PROMPTS)
