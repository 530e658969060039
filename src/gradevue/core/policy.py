import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

UNSCORED_MAX = -1

_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class PolicyVariant(str, Enum):
    GENERIC = "generic"
    MCPS = "mcps"


class PolicyLookupError(LookupError):
    def __init__(self, kind: str, lookup_id: Any) -> None:
        super().__init__(f"Unknown {kind}: {lookup_id}")
        self.kind = kind
        self.lookup_id = lookup_id


def parse_float(value: Any) -> float:
    """
    Read the leading number of a score string ("93.5", "12 ", "7/10" -> 7.0).
    Anything without a numeric prefix is NaN.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if value is None:
        return float("nan")
    match = _FLOAT_PREFIX.match(str(value))
    if not match:
        return float("nan")
    return float(match.group(0))


def parse_due_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        for fmt in ("%m/%d/%Y", "%m/%d/%Y %I:%M:%S %p"):
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@dataclass(frozen=True)
class MeasureType:
    id: int
    name: str
    weight: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeasureType":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            weight=float(data.get("weight") or 0),
        )


@dataclass(frozen=True)
class ScoreBoundary:
    low_score: float
    score: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoreBoundary":
        return cls(low_score=float(data["lowScore"]), score=str(data["score"]))


@dataclass(frozen=True)
class ReportCardScoreType:
    id: int
    name: str
    max: float
    details: Tuple[ScoreBoundary, ...] = ()

    @property
    def is_unscored(self) -> bool:
        return self.max == UNSCORED_MAX

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportCardScoreType":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            max=float(data.get("max", UNSCORED_MAX)),
            details=tuple(ScoreBoundary.from_dict(d) for d in data.get("details") or []),
        )


@dataclass(frozen=True)
class GradingPolicy:
    measure_types: Tuple[MeasureType, ...]
    report_card_score_types: Tuple[ReportCardScoreType, ...]
    default_report_card_score_type_id: int

    def score_type(self, score_type_id: int) -> ReportCardScoreType:
        for score_type in self.report_card_score_types:
            if score_type.id == score_type_id:
                return score_type
        raise PolicyLookupError("report card score type", score_type_id)

    def measure_type(self, measure_type_id: int) -> MeasureType:
        for measure_type in self.measure_types:
            if measure_type.id == measure_type_id:
                return measure_type
        raise PolicyLookupError("measure type", measure_type_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GradingPolicy":
        return cls(
            measure_types=tuple(MeasureType.from_dict(m) for m in data.get("measureTypes") or []),
            report_card_score_types=tuple(
                ReportCardScoreType.from_dict(s) for s in data.get("reportCardScoreTypes") or []
            ),
            default_report_card_score_type_id=int(data.get("defaultReportCardScoreTypeId", 0)),
        )


@dataclass(frozen=True)
class GradingPeriod:
    GU: str
    name: str
    default_focus: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GradingPeriod":
        return cls(
            GU=str(data["GU"]),
            name=str(data.get("name", "")),
            default_focus=bool(data.get("defaultFocus", False)),
        )


@dataclass(frozen=True)
class CourseMetadata:
    id: int
    name: str
    mark_preview: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CourseMetadata":
        return cls(
            id=int(data["ID"]),
            name=str(data.get("Name", "")),
            mark_preview=str(data.get("markPreview") or ""),
        )


@dataclass
class Assignment:
    id: str
    name: str
    score: Optional[str]
    max_score: str
    due_date: str
    measure_type_id: int
    is_for_grading: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Assignment":
        score = data.get("score")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            score=None if score is None else str(score),
            max_score=str(data.get("maxScore", "")),
            due_date=str(data.get("dueDate", "")),
            measure_type_id=int(data["measureTypeId"]),
            is_for_grading=bool(data.get("isForGrading", True)),
        )


@dataclass
class CustomAssignment(Assignment):
    is_custom: bool = False


def create_assignment(base: Assignment, is_custom: bool) -> CustomAssignment:
    values = {f.name: getattr(base, f.name) for f in fields(Assignment)}
    return CustomAssignment(**values, is_custom=is_custom)


@dataclass(frozen=True)
class Course:
    class_id: int
    name: str
    assignments: Tuple[Assignment, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Course":
        return cls(
            class_id=int(data["classId"]),
            name=str(data.get("name", "")),
            assignments=tuple(Assignment.from_dict(a) for a in data.get("assignments") or []),
        )


@dataclass
class ModifiedCourse:
    assignments: List[CustomAssignment] = field(default_factory=list)
    needs_rollback: bool = False
