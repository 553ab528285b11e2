"""Helpers for filling out and submitting HTML forms."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .client import WebDriverClient
from .errors import MalformedResponse
from .handles import ElementHandle
from .models import Locator

LOGGER = logging.getLogger(__name__)

SUBMIT_BUTTONS = "input[type=submit],button[type=submit]"

# Sites that name their submit button "submit" shadow form.submit, so the
# handler is borrowed from a freshly created form instead.
_SUBMIT_DIRECT = "document.createElement('form').submit.call(arguments[0])"
_SET_VALUE = "arguments[0].value = arguments[1]"
_INJECT_HIDDEN = (
    "var h = document.createElement('input');"
    "h.setAttribute('type', 'hidden');"
    "h.setAttribute('name', arguments[1]);"
    "h.value = arguments[2];"
    "arguments[0].appendChild(h);"
)


@dataclass(frozen=True)
class Form:
    """An HTML form on the current page."""

    client: WebDriverClient
    element: ElementHandle

    @classmethod
    async def locate(cls, client: WebDriverClient, locator: Locator) -> "Form":
        return cls(client=client, element=await client.find(locator))

    async def set_by_name(self, field: str, value: str) -> None:
        """Set the ``value`` of the input named *field*."""

        locator = Locator.css(f"input[name={_css_string(field)}]")
        input_element = await self.client.find(locator, self.element)
        result = await self.client.execute(_SET_VALUE, [input_element, value])
        if result is not None:
            raise MalformedResponse("expected null from value assignment", result)

    async def submit(self) -> None:
        """Submit using the first available submit button."""

        await self.submit_with(Locator.css(SUBMIT_BUTTONS))

    async def submit_with(self, button: Locator) -> None:
        button_element = await self.client.find(button, self.element)
        await self.client.click(button_element)

    async def submit_using(self, button_label: str) -> None:
        """Submit using the submit button whose value is *button_label* (case-insensitive)."""

        label = _css_string(button_label)
        await self.submit_with(
            Locator.css(
                f"input[type=submit][value={label} i],"
                f"button[type=submit][value={label} i]"
            )
        )

    async def submit_direct(self) -> None:
        """Submit without clicking a button.

        The submit button's own ``name=value`` pair is not sent; use
        :meth:`submit_sneaky` to emulate it.
        """

        await self.client.execute(_SUBMIT_DIRECT, [self.element])

    async def submit_sneaky(self, field: str, value: str) -> None:
        """Inject a hidden ``field=value`` input, then submit without clicking."""

        LOGGER.debug("Injecting hidden field %s before submitting", field)
        await self.client.execute(_INJECT_HIDDEN, [self.element, field, value])
        await self.submit_direct()


def _css_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
