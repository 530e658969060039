import math
from typing import Dict, List, Optional, Tuple

from fastapi import FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from gradevue.app_logger import get_logger
from gradevue.config.settings import settings
from gradevue.core.policy import Assignment, CustomAssignment, PolicyLookupError
from gradevue.services.district_service import DistrictServiceError, fetch_districts
from gradevue.services.portal_service import (
    INVALID_PORTAL_PAYLOAD,
    PORTAL_UNAVAILABLE,
    LoginResponse,
    PortalClient,
    PortalServiceError,
)
from gradevue.state.app_state import AppState, SessionRegistry
from gradevue.state.gradebook import UNCHANGED, CourseLookupError, Gradebook


logger = get_logger("api")

app = FastAPI(title="GradeVue API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

registry = SessionRegistry()


class LoginPayload(BaseModel):
    host: str
    username: str
    password: str


class RefreshPayload(BaseModel):
    host: Optional[str] = None


class WhatIfPayload(BaseModel):
    # measure type id -> (extra earned, extra possible)
    adjustments: Dict[int, Tuple[float, float]] = Field(default_factory=dict)
    score_type_id: Optional[int] = None


class AssignmentPayload(BaseModel):
    name: str
    score: Optional[str] = None
    max_score: str
    due_date: str = ""
    measure_type_id: int
    is_for_grading: bool = True


class ScorePayload(BaseModel):
    score: Optional[str] = None
    max_score: Optional[str] = None


def _number(value: float) -> Optional[float]:
    # NaN/inf are not valid JSON; they mean "not enough data"
    return value if math.isfinite(value) else None


def _required_state(authorization: Optional[str]) -> AppState:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    state = registry.get(authorization)
    if state is None or state.gradebook is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or expired session")
    return state


def _session_error(exc: PortalServiceError) -> HTTPException:
    if str(exc) in (PORTAL_UNAVAILABLE, INVALID_PORTAL_PAYLOAD):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))


def _open_session(host: str, client: PortalClient, response: LoginResponse) -> AppState:
    try:
        state = AppState.from_login(host, client, response)
    except CourseLookupError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    registry.register(state)
    return state


def _session_payload(state: AppState) -> Dict:
    gradebook = state.gradebook
    return {
        "token": state.session.token,
        "student": {"id": state.session.student_id, "name": state.session.student_name},
        "variant": state.session.variant.value,
        "default_grading_period": gradebook.default_grading_period if gradebook else None,
    }


def _assignment_dict(assignment: CustomAssignment) -> Dict:
    return {
        "id": assignment.id,
        "name": assignment.name,
        "score": assignment.score,
        "max_score": assignment.max_score,
        "due_date": assignment.due_date,
        "measure_type_id": assignment.measure_type_id,
        "is_for_grading": assignment.is_for_grading,
        "is_custom": assignment.is_custom,
    }


def _grade_summary(gradebook: Gradebook, ratio: float, score_type_id: Optional[int] = None) -> Dict:
    if score_type_id is None:
        score_type_id = gradebook.policy.default_report_card_score_type_id
    try:
        style = gradebook.calculate_score_style(score_type_id, ratio)
    except PolicyLookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {
        "ratio": _number(ratio),
        "mark": gradebook.calculate_mark(score_type_id, ratio),
        "style": style,
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/login")
def login(payload: LoginPayload) -> Dict:
    try:
        client, response = PortalClient.login(payload.host, payload.username, payload.password)
    except PortalServiceError as exc:
        raise _session_error(exc) from exc
    state = _open_session(payload.host, client, response)
    logger.info("Session opened for student %s", state.session.student_id)
    return _session_payload(state)


@app.post("/auth/refresh")
def refresh(payload: RefreshPayload, authorization: Optional[str] = Header(default=None)) -> Dict:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    previous = registry.get(authorization)
    host = payload.host or (previous.session.host if previous else None) or ""
    try:
        client, response = PortalClient.refresh(authorization)
    except PortalServiceError as exc:
        error = _session_error(exc)
        if error.status_code == status.HTTP_401_UNAUTHORIZED:
            registry.discard(authorization)
        raise error from exc
    state = _open_session(host, client, response)
    return _session_payload(state)


@app.get("/districts/{zip_code}")
def districts(zip_code: int) -> List[Dict[str, str]]:
    try:
        found = fetch_districts(zip_code)
    except DistrictServiceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [{"name": d.name, "address": d.address, "host": d.host} for d in found]


@app.post("/grades/{grading_period}/courses")
def refresh_courses(grading_period: str, authorization: Optional[str] = Header(default=None)) -> Dict:
    gradebook = _required_state(authorization).gradebook
    try:
        gradebook.update_all_courses(grading_period)
    except PortalServiceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    prefix = f"{grading_period}:"
    return {"courses": [key.split(":", 1)[1] for key in gradebook.courses if key.startswith(prefix)]}


@app.get("/grades/{grading_period}/courses/{course_id}")
def get_course(grading_period: str, course_id: int, authorization: Optional[str] = Header(default=None)) -> Dict:
    gradebook = _required_state(authorization).gradebook
    try:
        modified = gradebook.get_modified_course(grading_period, course_id)
        ratio = gradebook.calculate_weighted_point_ratio(grading_period, course_id)
    except CourseLookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {
        "assignments": [_assignment_dict(a) for a in modified.assignments],
        "needs_rollback": modified.needs_rollback,
        **_grade_summary(gradebook, ratio),
    }


@app.post("/grades/{grading_period}/courses/{course_id}/what-if")
def what_if(
    grading_period: str,
    course_id: int,
    payload: WhatIfPayload,
    authorization: Optional[str] = Header(default=None),
) -> Dict:
    gradebook = _required_state(authorization).gradebook
    try:
        ratio = gradebook.calculate_weighted_point_ratio(grading_period, course_id, payload.adjustments)
    except CourseLookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _grade_summary(gradebook, ratio, payload.score_type_id)


@app.post("/grades/{grading_period}/courses/{course_id}/assignments")
def add_assignment(
    grading_period: str,
    course_id: int,
    payload: AssignmentPayload,
    authorization: Optional[str] = Header(default=None),
) -> Dict:
    gradebook = _required_state(authorization).gradebook
    assignment = Assignment(id="", **payload.model_dump())
    try:
        custom = gradebook.add_custom_assignment(grading_period, course_id, assignment)
    except CourseLookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _assignment_dict(custom)


@app.patch("/grades/{grading_period}/courses/{course_id}/assignments/{index}")
def update_assignment(
    grading_period: str,
    course_id: int,
    index: int,
    payload: ScorePayload,
    authorization: Optional[str] = Header(default=None),
) -> Dict:
    gradebook = _required_state(authorization).gradebook
    score = payload.score if "score" in payload.model_fields_set else UNCHANGED
    try:
        updated = gradebook.update_assignment_score(grading_period, course_id, index, score, payload.max_score)
    except CourseLookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _assignment_dict(updated)


@app.delete("/grades/{grading_period}/courses/{course_id}/assignments/{index}")
def delete_assignment(
    grading_period: str,
    course_id: int,
    index: int,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, str]:
    gradebook = _required_state(authorization).gradebook
    try:
        gradebook.remove_assignment(grading_period, course_id, index)
    except CourseLookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"status": "deleted"}


@app.post("/grades/{grading_period}/courses/{course_id}/rollback")
def rollback(grading_period: str, course_id: int, authorization: Optional[str] = Header(default=None)) -> Dict[str, str]:
    gradebook = _required_state(authorization).gradebook
    try:
        gradebook.rollback_course(grading_period, course_id)
    except CourseLookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"status": "rolled_back"}


@app.get("/grades/{grading_period}/gpa")
def gpa(grading_period: str, authorization: Optional[str] = Header(default=None)) -> Dict:
    gradebook = _required_state(authorization).gradebook
    try:
        result = gradebook.calculate_mcps_gpa(grading_period)
    except CourseLookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"weighted": _number(result.weighted), "unweighted": _number(result.unweighted)}
