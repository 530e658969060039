from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import msgpack
from msgpack.exceptions import UnpackException
import requests
from requests import RequestException

from gradevue.app_logger import get_logger
from gradevue.config.settings import settings
from gradevue.core.policy import Course, CourseMetadata, GradingPeriod, GradingPolicy

logger = get_logger("portal")


PORTAL_UNAVAILABLE = "PORTAL_UNAVAILABLE"
INVALID_PORTAL_PAYLOAD = "INVALID_PORTAL_PAYLOAD"


class PortalServiceError(Exception):
    pass


@dataclass
class StudentInfo:
    id: str
    name: str
    school: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudentInfo":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            school=str(data.get("school", "")),
        )


@dataclass
class GradebookResponse:
    policy: GradingPolicy
    grading_periods: Dict[str, GradingPeriod]
    course_order: List[CourseMetadata]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GradebookResponse":
        periods = data.get("gradingPeriods") or {}
        return cls(
            policy=GradingPolicy.from_dict(data.get("policy") or {}),
            grading_periods={str(gu): GradingPeriod.from_dict(p) for gu, p in periods.items()},
            course_order=[CourseMetadata.from_dict(c) for c in data.get("courseOrder") or []],
        )


@dataclass
class LoginResponse:
    token: str
    student: StudentInfo
    gradebook: GradebookResponse

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoginResponse":
        token = str(data.get("token") or "")
        if not token:
            raise PortalServiceError("INVALID_PORTAL_SESSION")
        try:
            return cls(
                token=token,
                student=StudentInfo.from_dict(data.get("student") or {}),
                gradebook=GradebookResponse.from_dict(data.get("gradebook") or data),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Malformed gradebook in session payload: %r", exc)
            raise PortalServiceError(INVALID_PORTAL_PAYLOAD) from exc


@dataclass
class RequestResult:
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PortalClient:
    token: str
    student: StudentInfo
    base_url: str = field(default=settings.portal_base_url, repr=False)
    timeout: float = field(default=settings.request_timeout, repr=False)

    LOGIN_PATH = "/login"
    REFRESH_PATH = "/refresh"

    @classmethod
    def from_login(cls, host: str, username: str, password: str) -> "PortalClient":
        client, _ = cls.login(host, username, password)
        return client

    @classmethod
    def login(cls, host: str, username: str, password: str) -> "tuple[PortalClient, LoginResponse]":
        if not host.strip() or not username.strip() or not password:
            raise PortalServiceError("Host, username and password are required.")
        logger.info("Logging in to %s", host)
        data = cls._post(
            cls.LOGIN_PATH,
            json={"host": host.strip(), "username": username.strip(), "password": password},
        )
        response = LoginResponse.from_dict(data)
        return cls(token=response.token, student=response.student), response

    @classmethod
    def from_token(cls, token: str) -> "PortalClient":
        client, _ = cls.refresh(token)
        return client

    @classmethod
    def refresh(cls, token: str) -> "tuple[PortalClient, LoginResponse]":
        if not token:
            raise PortalServiceError("Missing session token.")
        data = cls._post(cls.REFRESH_PATH, headers={"Authorization": token})
        response = LoginResponse.from_dict({**data, "token": token})
        return cls(token=token, student=response.student), response

    @staticmethod
    def _post(path: str, json: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        url = f"{settings.portal_base_url}{path}"
        try:
            res = requests.post(url, json=json, headers=headers or {}, timeout=settings.request_timeout)
        except RequestException as exc:
            logger.warning("Portal %s failed: %s", path, exc)
            raise PortalServiceError(PORTAL_UNAVAILABLE) from exc
        if not res.ok:
            raise PortalServiceError(res.text)
        return _decode(res.content, dict)

    def request(
        self,
        path: str,
        method: str = "GET",
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> RequestResult:
        merged = {**(headers or {}), "Authorization": self.token}
        if json is not None:
            merged["Content-Type"] = "application/json"

        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, path)
        try:
            res = requests.request(method, url, json=json, headers=merged, timeout=self.timeout)
        except RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise PortalServiceError(PORTAL_UNAVAILABLE) from exc

        if not res.ok:
            return RequestResult(error=res.text)
        return RequestResult(data=_decode(res.content))

    def fetch_grading_period_courses(self, grading_period: str) -> List[Course]:
        result = self.request(f"/grades/{grading_period}/courses")
        if not result.ok:
            raise PortalServiceError(result.error)
        if not isinstance(result.data, (list, type(None))):
            raise PortalServiceError(INVALID_PORTAL_PAYLOAD)
        try:
            return [Course.from_dict(c) for c in result.data or []]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise PortalServiceError(INVALID_PORTAL_PAYLOAD) from exc


def _decode(content: bytes, expected: Optional[type] = None) -> Any:
    try:
        data = msgpack.unpackb(content, raw=False, strict_map_key=False)
    except (ValueError, UnpackException) as exc:
        raise PortalServiceError(INVALID_PORTAL_PAYLOAD) from exc
    if expected is not None and not isinstance(data, expected):
        raise PortalServiceError(INVALID_PORTAL_PAYLOAD)
    return data
