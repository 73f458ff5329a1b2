"""Models offered for selection, with display names."""

DEFAULT_MODEL = "gpt-4o-mini"
DEEPSEEK_DEFAULT_MODEL = "deepseek-chat"
DEEPSEEK_CREDENTIAL_NAME = "DEEPSEEK_API_KEY"

KNOWN_MODELS: dict[str, str] = {
    "gpt-4o": "GPT-4o",
    "gpt-4o-mini": "GPT-4o mini",
    "gpt-4-turbo": "GPT-4 Turbo",
    "gpt-4": "GPT-4",
    "gpt-3.5-turbo": "GPT-3.5 Turbo",
    "deepseek-chat": "DeepSeek Chat",
    "deepseek-reasoner": "DeepSeek Reasoner",
}

MODEL_INFO_URL = "https://platform.openai.com/docs/models"

TEMPERATURE_TIP = (
    "Lower values for temperature result in more consistent outputs (e.g. 0.2), "
    "while higher values generate more diverse and creative results (e.g. 1.0). "
    "The temperature can range from 0 to 2."
)


def display_name(model: str) -> str:
    """Display name for a model id, falling back to the id itself."""
    return KNOWN_MODELS.get(model, model)
