import logging
from dataclasses import dataclass

import httpx
import sounddevice as sd

from live_assist.adapters.sounddevice_audio import find_input_device
from live_assist.config import LiveAssistConfig

logger = logging.getLogger(__name__)

CRITICAL_CHECKS = {"api_keys", "provider"}

GEMINI_MODELS_URL = "https://generativelanguage.googleapis.com/v1/models"
OPENAI_MODELS_URL = "https://api.openai.com/v1/models"


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: LiveAssistConfig) -> list[HealthCheckResult]:
    results = [
        _check_api_keys(config),
        _check_audio_device(config),
        _check_provider(config),
    ]

    passed = sum(1 for r in results if r.passed)
    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(not r.passed and r.name in CRITICAL_CHECKS for r in results)


def _check_api_keys(config: LiveAssistConfig) -> HealthCheckResult:
    name = "api_keys"
    missing = []

    if not config.read_secret(config.api_key_file):
        missing.append(f"{config.provider} ({config.api_key_file or 'not configured'})")

    if config.answer_engine == "anthropic" and not config.read_secret(config.anthropic_api_key_file):
        missing.append(f"anthropic ({config.anthropic_api_key_file or 'not configured'})")

    if missing:
        return HealthCheckResult(name=name, passed=False, detail=f"Missing: {', '.join(missing)}")
    return HealthCheckResult(name=name, passed=True, detail="All API keys loaded")


def _check_audio_device(config: LiveAssistConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        if config.capture_device:
            match = find_input_device(config.capture_device)
            if match is not None:
                return HealthCheckResult(name=name, passed=True, detail=f"Device '{match[1]}' found (#{match[0]})")

        default = sd.query_devices(kind="input")
        detail = f"Default input: {default['name']}"
        if config.capture_device:
            detail = f"'{config.capture_device}' not in PortAudio (will use PIPEWIRE_NODE), {detail}"
        return HealthCheckResult(name=name, passed=True, detail=detail)
    except sd.PortAudioError as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"No input devices available: {exc}")
    except Exception as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))


def _check_provider(config: LiveAssistConfig, timeout: float = 5.0) -> HealthCheckResult:
    name = "provider"
    api_key = config.read_secret(config.api_key_file)
    if not api_key:
        return HealthCheckResult(name=name, passed=False, detail="Skipped, no API key")

    if config.provider == "gemini":
        url, headers = GEMINI_MODELS_URL, {"x-goog-api-key": api_key}
    else:
        url, headers = OPENAI_MODELS_URL, {"Authorization": f"Bearer {api_key}"}

    try:
        response = httpx.get(url, headers=headers, timeout=timeout)
    except httpx.HTTPError as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"Unreachable: {exc}")

    if response.status_code in (401, 403):
        return HealthCheckResult(name=name, passed=False, detail=f"API key rejected ({response.status_code})")
    if response.status_code >= 400:
        return HealthCheckResult(name=name, passed=False, detail=f"Model list request failed ({response.status_code})")
    return HealthCheckResult(name=name, passed=True, detail=f"{config.provider} reachable, API key accepted")
