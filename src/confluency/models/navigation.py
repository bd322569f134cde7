"""Navigation intent and route state."""

from dataclasses import dataclass, field
from enum import StrEnum


class NavigationIntent(StrEnum):
    AUTH = "auth"
    MAIN = "main"


def compute_navigation_intent(
    is_authenticated: bool, reset_password_flow_active: bool
) -> NavigationIntent:
    """Pick the root stack to show.

    A password-reset flow always keeps the user on the auth stack, whatever
    the authentication state.
    """
    if is_authenticated and not reset_password_flow_active:
        return NavigationIntent.MAIN
    return NavigationIntent.AUTH


@dataclass(frozen=True)
class RouteState:
    """Root route stack reported by the navigation runtime."""

    routes: list[str] = field(default_factory=list)
    index: int = 0

    @property
    def current_route(self) -> str | None:
        if not self.routes:
            return None
        index = min(max(self.index, 0), len(self.routes) - 1)
        return self.routes[index]


@dataclass(frozen=True)
class NavigationCommand:
    """A navigation command issued to the runtime."""

    intent: NavigationIntent
    route: str
    kind: str = "reset"
