import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "model_name": None,  # None = provider default
    "temperature": None,
    "max_tokens": 4096,
    "max_chars_per_file": 20000,
    "guidelines": None,  # optional path to extra review guidelines appended to the system prompt
    "include_extensions": [],
    "exclude_extensions": [],
    "include_paths": [],
    "exclude_paths": [],
    "granularity": "file",  # "file" | "hunk"
    "max_concurrency": 4,
    "unit_timeout_seconds": 300,
    "resolution_action": "delete",  # "delete" | "reply"
    "reconcile_human_comments": False,
    "anchor_mode": "position",  # "position" | "line"
    "bot_login": None,
    "summary_shortcode": "[AI-PR-SUMMARY]",
    "jira_base_url": None,
}

LIST_KEYS = ("include_extensions", "exclude_extensions", "include_paths", "exclude_paths")

_CHOICES = {
    "model": ("anthropic", "openai"),
    "granularity": ("file", "hunk"),
    "resolution_action": ("delete", "reply"),
    "anchor_mode": ("position", "line"),
}


def _as_list(value) -> list[str]:
    """Accept a YAML list or a comma-separated string ("*.py, *.ts")."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if str(v).strip()]


def load_config(config_path: str = ".prwarden.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prwarden.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG}
    for key in LIST_KEYS:
        config[key] = list(DEFAULT_CONFIG[key])

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    for key in LIST_KEYS:
        config[key] = _as_list(config.get(key))

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["jira_username"] = os.environ.get("JIRA_USERNAME")
    config["jira_token"] = os.environ.get("JIRA_TOKEN")
    if os.environ.get("JIRA_BASE_URL"):
        config["jira_base_url"] = os.environ["JIRA_BASE_URL"]

    return config


def validate_config(config: dict) -> None:
    for key, allowed in _CHOICES.items():
        if config.get(key) not in allowed:
            raise ValueError(f"Invalid {key}: {config.get(key)!r}. Choose one of: {', '.join(allowed)}.")
    if int(config.get("max_concurrency", 1)) < 1:
        raise ValueError("max_concurrency must be at least 1.")
    if float(config.get("unit_timeout_seconds", 1)) <= 0:
        raise ValueError("unit_timeout_seconds must be positive.")


def load_guidelines(config: dict) -> str:
    """
    Load optional review guidelines.

    If ``guidelines`` is set in config, loads from that path (relative to cwd).
    Otherwise no extra guidelines are added to the prompt.
    """
    custom_path = config.get("guidelines")
    if not custom_path:
        return ""
    p = Path(custom_path)
    if not p.exists():
        raise FileNotFoundError(f"Guidelines file not found: {custom_path}")
    return p.read_text()
