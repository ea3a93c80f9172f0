"""
HOMESERVER Update Management System
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

from typing import Callable, Protocol

from .index import log_message

YES_ANSWERS = ("y", "yes")


class ConfirmationProvider(Protocol):
    """Source of operator answers for confirmation gates and menus."""

    def confirm(self, prompt: str) -> bool:
        ...

    def ask(self, prompt: str) -> str:
        ...


class ConsolePrompter:
    """Reads answers from the terminal. Empty input or EOF means no."""

    def __init__(self, input_func: Callable[[str], str] = input):
        self.input_func = input_func

    def ask(self, prompt: str) -> str:
        try:
            answer = self.input_func(prompt)
        except EOFError:
            answer = ""
        answer = answer.strip()
        log_message(f"{prompt.strip()} {answer or '(no answer)'}", "DEBUG")
        return answer

    def confirm(self, prompt: str) -> bool:
        return self.ask(f"{prompt} [y/N]: ").lower() in YES_ANSWERS
