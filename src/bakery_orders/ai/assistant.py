from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

import httpx
from openai import APIError, OpenAI

from ..config import Settings
from ..domain.models import Number, OrderItem, Product
from ..errors import OrderParseError
from ..logging import get_logger
from .parser import decode_order_items, match_products, order_items_schema


LOG = get_logger("ai-assistant")


def _parse_prompt(text: str, product_names: str) -> str:
    return (
        "Analiza el siguiente pedido de panadería y extrae los productos y cantidades.\n"
        f"Los productos disponibles son: {product_names}.\n"
        "Si un producto no coincide exactamente, intenta mapearlo al más parecido.\n\n"
        f'Pedido: "{text}"'
    )


def _insights_prompt(production_data: str) -> str:
    return (
        "Como experto jefe de panadería, analiza este plan de producción semanal y da 3 consejos "
        "breves para optimizar el trabajo (tiempos de fermentación, uso de hornos, o preparación "
        "de masas).\n\n"
        f"Plan de producción: {production_data}"
    )


def _build_client(api_key: str, base_url: Optional[str]) -> OpenAI:
    http_client = httpx.Client(
        timeout=httpx.Timeout(connect=10.0, read=90.0, write=30.0, pool=10.0),
    )
    return OpenAI(api_key=api_key, base_url=base_url, http_client=http_client, max_retries=0)


class OrderAssistant:
    """Hosted language model used for order parsing and production advice.

    Pass ``client`` to reuse an existing OpenAI client; otherwise one is
    built from ``api_key``. Without either, every call degrades to its
    empty result.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.model = model
        if client is None and api_key:
            client = _build_client(api_key, base_url)
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrderAssistant":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.ai_model,
            base_url=settings.openai_base_url,
        )

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _complete(self, prompt: str, *, response_format: Optional[Dict[str, Any]] = None) -> Optional[str]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if response_format is not None:
            kwargs["response_format"] = response_format
        resp = self.client.chat.completions.create(**kwargs)
        choices = getattr(resp, "choices", None) or []
        if not choices:
            return None
        return choices[0].message.content

    def parse_order_strict(self, text: str, products: Sequence[Product]) -> List[OrderItem]:
        """Parse free text into order items or raise OrderParseError."""
        if not text or not text.strip():
            return []
        if not self.enabled:
            raise OrderParseError("AI parsing is not configured (OPENAI_API_KEY missing)")
        product_names = ", ".join(p.name for p in products)
        try:
            content = self._complete(
                _parse_prompt(text, product_names),
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": "order_items", "strict": True, "schema": order_items_schema()},
                },
            )
        except APIError as exc:
            raise OrderParseError(f"model request failed: {exc}") from exc
        parsed = decode_order_items(content)
        items = match_products(parsed, products)
        LOG.info("Parsed %d of %d item(s) into catalog products", len(items), len(parsed))
        return items

    def parse_order(self, text: str, products: Sequence[Product]) -> List[OrderItem]:
        """Like parse_order_strict, but any parse failure yields []."""
        try:
            return self.parse_order_strict(text, products)
        except OrderParseError as exc:
            LOG.warning("Error parsing AI response: %s", exc)
            return []

    def production_insights(self, totals: Dict[str, Number]) -> Optional[str]:
        """Return short production advice for a per-product totals mapping."""
        if not self.enabled:
            LOG.info("AI insights requested but no client is configured")
            return None
        production_data = json.dumps(totals, ensure_ascii=False)
        try:
            return self._complete(_insights_prompt(production_data))
        except APIError as exc:
            LOG.error("Insights request failed: %s", exc)
            return None
