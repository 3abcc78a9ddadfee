"""
Clients for the text-classification service that turns article text into a
JSON earthquake summary.

Two backends share the ``classify(prompt) -> str`` contract: the hosted Gemini
REST API (default) and a local Hugging Face causal LM.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import requests

from src.services.errors import ClassifierError

LOGGER = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
DEFAULT_LOCAL_MODEL_ID = os.getenv("QUAKE_LOCAL_MODEL_ID", "Qwen/Qwen2.5-7B-Instruct")

PROMPT_TEMPLATE = """
output a json with the following format:
{"deaths": 0, "injured": 0, "magnitude": 4.7, "location": "City, State", "date": "YYYY-MM-DD"}
(int) deaths/injured value should come from term like "[number] people died/dead/killed/injured" or in words like "killing at least three" as deaths or "injuring ten" as injured value. 0 if int is missing.
(string) location must be in the format "City, State" or "City, Country" if outside the US. "unknown" if not confident in location.
(string) date must be in the format "YYYY-MM-DD", "unknown" if date is missing
"""


def build_prompt(article_text: str) -> str:
    return PROMPT_TEMPLATE + article_text


def _bool_env(name: str) -> bool:
    value = os.getenv(name, "").strip().lower()
    return value in {"1", "true", "yes", "on"}


class BaseClassifier:
    """Interface for classification backends."""

    name: str

    def classify(self, prompt: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        return None


class GeminiClassifier(BaseClassifier):
    """Thin wrapper over the Gemini ``generateContent`` REST endpoint."""

    endpoint = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ClassifierError("GEMINI_API_KEY is not configured")
        self.name = "gemini"
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def classify(self, prompt: str) -> str:
        url = self.endpoint.format(model=self.model)
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            response = self.session.post(url, json=body, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise ClassifierError(f"Gemini request failed: {exc}") from exc
        except ValueError as exc:
            raise ClassifierError(f"Gemini returned non-JSON response: {response.text[:300]}") from exc
        return self._response_text(payload)

    @staticmethod
    def _response_text(payload: Any) -> str:
        if not isinstance(payload, dict):
            raise ClassifierError(f"Gemini returned a non-object payload: {str(payload)[:300]}")
        candidates = payload.get("candidates") or []
        if not candidates:
            feedback = payload.get("promptFeedback")
            raise ClassifierError(f"Gemini returned no candidates (feedback={feedback})")
        candidate = candidates[0] if isinstance(candidates, list) else None
        content = candidate.get("content") if isinstance(candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            raise ClassifierError(f"Gemini returned an unexpected candidate shape: {str(candidates)[:300]}")
        return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))

    def close(self) -> None:
        self.session.close()


class LocalModelClassifier(BaseClassifier):
    """Local HF model wrapper for offline classification."""

    def __init__(
        self,
        model_id: str = DEFAULT_LOCAL_MODEL_ID,
        temperature: float = 0.0,
        repetition_penalty: float = 1.05,
        max_new_tokens: int = 120,
        max_chars: int = 8000,
    ) -> None:
        import torch
        from transformers import AutoModelForCausalLM, AutoTokenizer

        self.name = "local"
        dtype = torch.bfloat16 if torch.cuda.is_available() else torch.float32
        local_only = _bool_env("HF_HUB_OFFLINE") or _bool_env("TRANSFORMERS_OFFLINE")
        cache_dir = os.getenv("HF_HUB_CACHE") or None
        try:
            self.tokenizer = AutoTokenizer.from_pretrained(
                model_id,
                cache_dir=cache_dir,
                local_files_only=local_only,
            )
            self.model = AutoModelForCausalLM.from_pretrained(
                model_id,
                torch_dtype=dtype,
                device_map="auto",
                cache_dir=cache_dir,
                local_files_only=local_only,
            )
        except OSError as exc:
            raise ClassifierError(f"Unable to load local model {model_id}: {exc}") from exc
        self.temperature = temperature
        self.repetition_penalty = repetition_penalty
        self.max_new_tokens = max_new_tokens
        self.max_chars = max_chars

    def classify(self, prompt: str) -> str:
        text = prompt.strip()
        if len(text) > self.max_chars:
            text = text[: self.max_chars]
        try:
            inputs = self.tokenizer(text, return_tensors="pt").to(self.model.device)
            outputs = self.model.generate(
                **inputs,
                max_new_tokens=self.max_new_tokens,
                do_sample=self.temperature > 0,
                temperature=self.temperature if self.temperature > 0 else None,
                repetition_penalty=self.repetition_penalty,
                eos_token_id=self.tokenizer.eos_token_id,
                pad_token_id=self.tokenizer.pad_token_id,
            )
        except RuntimeError as exc:
            raise ClassifierError(f"Local generation failed: {exc}") from exc
        generated = outputs[0][inputs["input_ids"].shape[-1] :]
        return self.tokenizer.decode(generated, skip_special_tokens=True).strip()

    def close(self) -> None:
        import gc

        self.model = None
        self.tokenizer = None
        try:
            import torch

            if torch.cuda.is_available():
                torch.cuda.empty_cache()
        except ImportError:
            pass
        gc.collect()
