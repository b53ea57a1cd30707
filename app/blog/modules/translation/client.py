from __future__ import annotations

import json
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any


class TranslatorError(RuntimeError):
    pass


class TranslatorRateLimited(TranslatorError):
    pass


@dataclass(frozen=True)
class TranslatorClient:
    """Azure Translator (v3.0) over plain urllib."""

    api_key: str
    region: str = "eastus"
    endpoint: str = "https://api.cognitive.microsofttranslator.com"
    timeout_seconds: int = 30

    def request_json(
        self,
        path: str,
        *,
        method: str = "POST",
        params: dict[str, Any] | None = None,
        body: Any = None,
        retries: int = 3,
    ) -> Any:
        query = {"api-version": "3.0", **{k: v for k, v in (params or {}).items() if v is not None}}
        url = self.endpoint.rstrip("/") + path + "?" + urllib.parse.urlencode(query)
        data = json.dumps(body, ensure_ascii=False).encode("utf-8") if body is not None else None

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, data=data, method=method)
                req.add_header("Ocp-Apim-Subscription-Key", self.api_key)
                req.add_header("Ocp-Apim-Subscription-Region", self.region)
                req.add_header("Content-Type", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    try:
                        return json.loads(raw.decode("utf-8"))
                    except ValueError as e:
                        raise TranslatorError(f"Invalid JSON from translator ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = TranslatorRateLimited("Rate limited (429)")
                    continue
                try:
                    detail = e.read().decode("utf-8", errors="ignore")
                except OSError:
                    detail = ""
                raise TranslatorError(f"HTTP {e.code} from translator: {detail[:300]}") from e
            except OSError as e:
                # URLError, connect and read timeouts
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise TranslatorError(f"Translator request failed after retries: {last_err}") from last_err

    def translate(self, text: str, to: str, from_: str | None = None) -> str:
        if not text.strip() or (from_ and from_ == to):
            return text
        j = self.request_json("/translate", params={"to": to, "from": from_}, body=[{"text": text}])
        try:
            return j[0]["translations"][0]["text"]
        except (IndexError, KeyError, TypeError) as e:
            raise TranslatorError("Invalid translation response format") from e

    def detect(self, text: str) -> str:
        if not text.strip():
            return "unknown"
        j = self.request_json("/detect", body=[{"text": text}])
        try:
            return j[0].get("language") or "unknown"
        except (IndexError, AttributeError, TypeError):
            return "unknown"

    def languages(self) -> dict[str, Any]:
        j = self.request_json("/languages", method="GET")
        result = j.get("translation") if isinstance(j, dict) else None
        return result if isinstance(result, dict) else {}


def translator_from_config(config) -> TranslatorClient | None:
    key = (config.get("AZURE_TRANSLATOR_KEY") or "").strip()
    if not key:
        return None
    return TranslatorClient(
        api_key=key,
        region=(config.get("AZURE_TRANSLATOR_REGION") or "eastus").strip(),
        endpoint=(config.get("AZURE_TRANSLATOR_ENDPOINT") or "https://api.cognitive.microsofttranslator.com").strip(),
    )
