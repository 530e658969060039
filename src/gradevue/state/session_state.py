from dataclasses import dataclass
from typing import Iterable, Optional

from gradevue.config.settings import settings
from gradevue.core.policy import PolicyVariant


def resolve_variant(host: Optional[str], mcps_hosts: Iterable[str] = settings.mcps_hosts) -> PolicyVariant:
    if host and any(known in host for known in mcps_hosts):
        return PolicyVariant.MCPS
    return PolicyVariant.GENERIC


@dataclass
class PortalSession:
    host: Optional[str] = None
    token: Optional[str] = None
    student_id: Optional[str] = None
    student_name: Optional[str] = None
    variant: PolicyVariant = PolicyVariant.GENERIC

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def clear(self) -> None:
        self.host = None
        self.token = None
        self.student_id = None
        self.student_name = None
        self.variant = PolicyVariant.GENERIC
