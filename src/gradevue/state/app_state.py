from dataclasses import dataclass, field
from typing import Dict, Optional

from gradevue.services.portal_service import LoginResponse, PortalClient
from gradevue.state.gradebook import Gradebook
from gradevue.state.session_state import PortalSession, resolve_variant


@dataclass
class AppState:
    session: PortalSession = field(default_factory=PortalSession)
    client: Optional[PortalClient] = None
    gradebook: Optional[Gradebook] = None

    @classmethod
    def from_login(cls, host: str, client: PortalClient, response: LoginResponse) -> "AppState":
        variant = resolve_variant(host)
        session = PortalSession(
            host=host,
            token=response.token,
            student_id=response.student.id,
            student_name=response.student.name,
            variant=variant,
        )
        gradebook = Gradebook.from_response(client, response.gradebook, variant)
        return cls(session=session, client=client, gradebook=gradebook)


class SessionRegistry:
    """Authenticated app states keyed by portal token."""

    def __init__(self) -> None:
        self._states: Dict[str, AppState] = {}

    def register(self, state: AppState) -> None:
        if not state.session.token:
            raise ValueError("Cannot register an unauthenticated session")
        self._states[state.session.token] = state

    def get(self, token: str) -> Optional[AppState]:
        return self._states.get(token)

    def discard(self, token: str) -> None:
        state = self._states.pop(token, None)
        if state is not None:
            state.session.clear()
