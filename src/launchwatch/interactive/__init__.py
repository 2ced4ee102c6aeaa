"""Stateful interactive messages: sessions, views, select menus and modals."""

from .modal import Modal, TextField
from .models import (
    ComponentKind,
    InteractionEvent,
    InteractionKind,
    InteractionValidationError,
)
from .registry import InteractionRegistration, InteractionRegistry, RegistrationState
from .select_menu import SelectMenu
from .session import Session, SessionClosedError, SessionState, SessionTable
from .time_picker import TimePickerPage
from .view import Page, StatefulView, ViewOption

__all__ = [
    "ComponentKind",
    "InteractionEvent",
    "InteractionKind",
    "InteractionRegistration",
    "InteractionRegistry",
    "InteractionValidationError",
    "Modal",
    "Page",
    "RegistrationState",
    "SelectMenu",
    "Session",
    "SessionClosedError",
    "SessionState",
    "SessionTable",
    "StatefulView",
    "TextField",
    "TimePickerPage",
    "ViewOption",
]
