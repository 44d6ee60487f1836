from .prompt import Prompt
from .prompts_library import TEMPLATES_DIR, PromptsLibrary

__all__ = [
    "Prompt",
    "PromptsLibrary",
    "TEMPLATES_DIR",
]
