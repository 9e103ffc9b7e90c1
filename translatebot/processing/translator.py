"""
Translation request construction and invocation.

Builds a Messages request from the fixed translation instruction and the
normalized user text, sends it once, and converts provider failures into
pipeline errors.
"""

import logging

import aiohttp

from ..anthropic.client import (
    AnthropicClient,
    AnthropicError,
    MessageRequest,
    MessageResponse,
    RequestMessage,
)
from ..logging.integration import log_async_operation
from .errors import EmptyReplyError, ProviderFailureError


DEFAULT_MODEL = "claude-3-haiku-20240307"
DEFAULT_MAX_TOKENS = 1024
TARGET_LANGUAGE = "he"

SYSTEM_PROMPT = """
אתה בוט מתרגם המתמחה בתרגום הודעות טלגרם מערבית או אוקראינית לעברית. עליך לפעול לפי ההנחיות הבאות:

1. תרגם את ההודעה במדויק מערבית או אוקראינית לעברית.
2. התחל את התרגום מיד, ללא כותרת או הקדמה.
3. שמור על המשמעות והטון המקוריים של ההודעה.
4. אל תוסיף פרשנות, הערות או שיפוט מוסרי לתוכן.
5. אם ההודעה מכילה תוכן אלים או בוטה, תרגם אותו כמות שהוא ללא צנזורה או ריכוך.
6. אם יש מונחים או ביטויים ייחודיים לתרבות המקור, תרגם אותם ככל האפשר והוסף הסבר קצר בסוגריים אם נדרש.
7. שמור על מבנה ההודעה המקורי, כולל פסקאות, רשימות וכו'.

דוגמה לפורמט התגובה:

```
[כאן יבוא התרגום המלא של ההודעה]
```

זכור: המטרה היא לספק תרגום מדויק ואובייקטיבי, ללא שום תוספות או השמטות, ולהתחיל את התרגום מיד ללא כותרת."""


class TranslationInvoker:
    """
    Issues one translation request per message.

    The system instruction and model are fixed for the lifetime of the
    invoker. The token budget is a fixed ceiling and does not depend on the
    length of the input.
    """

    def __init__(self,
                 client: AnthropicClient,
                 model: str = DEFAULT_MODEL,
                 max_tokens: int = DEFAULT_MAX_TOKENS,
                 system_prompt: str = SYSTEM_PROMPT):
        """
        Initialize the invoker.

        Args:
            client: Provider client used for the call
            model: Model identifier sent with every request
            max_tokens: Output token ceiling sent with every request
            system_prompt: Fixed translation instruction
        """
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.logger = logging.getLogger(__name__)

    def build_request(self, text: str) -> MessageRequest:
        """Build a fresh request carrying ``text`` as the only user block."""
        return MessageRequest(
            model=self.model,
            messages=[RequestMessage.user_text(text)],
            max_tokens=self.max_tokens,
            system=self.system_prompt,
        )

    @log_async_operation("translate")
    async def translate(self, text: str) -> MessageResponse:
        """
        Send ``text`` for translation.

        Args:
            text: Normalized message text

        Returns:
            Provider reply with at least one content block

        Raises:
            ProviderFailureError: On any transport, timeout or status failure
            EmptyReplyError: If the reply has no usable content blocks
        """
        request = self.build_request(text)

        try:
            response = await self.client.create_message(request)
        except (AnthropicError, aiohttp.ClientError) as e:
            raise ProviderFailureError(f"Error calling Anthropic API: {e}") from e

        if not response.content:
            raise EmptyReplyError("Empty response from Anthropic API")

        return response
