from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..integrations.discord.components import build_modal, build_text_input
from .models import InteractionEvent, InteractionKind, InteractionValidationError
from .registry import InteractionRegistration
from .session import Session
from .surface import RESPONSE_DEFERRED_UPDATE_MESSAGE, RESPONSE_MODAL

MAX_MODAL_FIELDS = 5
MAX_TEXT_INPUT_LENGTH = 4000
DEFAULT_MODAL_TITLE = "Modal"

OnSubmit = Callable[[dict[str, str]], Awaitable[None]]


class TextFieldStyle(enum.IntEnum):
    SHORT = 1
    PARAGRAPH = 2


@dataclass(frozen=True)
class TextField:
    custom_id: str
    label: str
    style: TextFieldStyle = TextFieldStyle.SHORT
    required: bool = True
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    placeholder: Optional[str] = None
    value: Optional[str] = None

    def validate(self) -> None:
        if not self.custom_id:
            raise InteractionValidationError("modal field needs a custom_id")
        if not self.label:
            raise InteractionValidationError(
                f"modal field {self.custom_id} needs a label"
            )
        bounds = (("min_length", self.min_length), ("max_length", self.max_length))
        for name, bound in bounds:
            if bound is not None and not 0 <= bound <= MAX_TEXT_INPUT_LENGTH:
                raise InteractionValidationError(
                    f"modal field {self.custom_id} {name} must be between "
                    f"0 and {MAX_TEXT_INPUT_LENGTH}"
                )
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise InteractionValidationError(
                f"modal field {self.custom_id} min_length exceeds max_length"
            )

    def render(self) -> dict[str, Any]:
        return build_text_input(
            self.custom_id,
            self.label,
            style=int(self.style),
            required=self.required,
            min_length=self.min_length,
            max_length=self.max_length,
            placeholder=self.placeholder,
            value=self.value,
        )


@dataclass(frozen=True)
class Modal:
    """A form of one to five text inputs delivered once as ``{custom_id: value}``.

    Length and required constraints are declared to the platform, which
    enforces them before the submission arrives; they are not re-checked.
    """

    custom_id: str
    fields: tuple[TextField, ...]
    on_submit: OnSubmit
    title: str = DEFAULT_MODAL_TITLE

    @classmethod
    def build(
        cls,
        *,
        custom_id: str,
        fields: list[TextField],
        on_submit: OnSubmit,
        title: str = DEFAULT_MODAL_TITLE,
    ) -> "Modal":
        if not custom_id or not custom_id.strip():
            raise InteractionValidationError("modal needs a custom_id")
        if not fields:
            raise InteractionValidationError("modal needs at least one field")
        if len(fields) > MAX_MODAL_FIELDS:
            raise InteractionValidationError(
                f"modal supports at most {MAX_MODAL_FIELDS} fields, got {len(fields)}"
            )
        for text_field in fields:
            text_field.validate()
        field_ids = [text_field.custom_id for text_field in fields]
        if len(set(field_ids)) != len(field_ids):
            raise InteractionValidationError("modal field custom_ids must be unique")
        return cls(
            custom_id=custom_id.strip(),
            fields=tuple(fields),
            on_submit=on_submit,
            title=(title or DEFAULT_MODAL_TITLE)[:45],
        )

    def render(self) -> dict[str, Any]:
        return build_modal(
            self.custom_id,
            self.title,
            [text_field.render() for text_field in self.fields],
        )

    async def listen(self, session: Session, event: InteractionEvent) -> None:
        """Open the modal as the first response to ``event``."""

        async def handle(incoming: InteractionEvent) -> None:
            await session.surface.respond(
                incoming, {"type": RESPONSE_DEFERRED_UPDATE_MESSAGE}
            )
            submitted = incoming.field_values
            values = {
                text_field.custom_id: submitted.get(text_field.custom_id, "")
                for text_field in self.fields
            }
            await self.on_submit(values)

        registration = InteractionRegistration(
            handler=handle,
            kind=InteractionKind.MODAL_SUBMIT,
            user_id=session.owner_id,
            custom_id=self.custom_id,
        )
        await session.present(
            event,
            {"type": RESPONSE_MODAL, "data": self.render()},
            [registration],
            replaces_view=False,
        )
