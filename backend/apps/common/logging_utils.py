from typing import Any, Dict


def truncate_for_log(value: Any, max_length: int = 120) -> str:
    text = value if isinstance(value, str) else repr(value)
    if len(text) > max_length:
        return text[:max_length] + "...(truncated)"
    return text


def build_log_extra(**kwargs: Any) -> Dict[str, Any]:
    """Drop None values so log records only carry fields that were set."""
    return {key: value for key, value in kwargs.items() if value is not None}
