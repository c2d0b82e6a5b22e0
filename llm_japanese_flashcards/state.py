from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional


@dataclass
class StudyViewState:
    """What a study screen shows for the item the learner opened."""
    collection: Optional[str] = None
    selected: Optional[Dict[str, Any]] = None
    details: Optional[Dict[str, Any]] = None
    strokes: List[Any] = field(default_factory=list)
    related_words: List[Dict[str, Any]] = field(default_factory=list)
    modal_visible: bool = False
    loading: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def select_item(state: StudyViewState, collection: str, item: Any) -> StudyViewState:
    return replace(
        state,
        collection=collection,
        selected=item.to_dict(),
        details=None,
        strokes=[],
        related_words=[],
        modal_visible=True,
        loading=True,
        error=None,
    )


def with_details(state: StudyViewState,
                 details: Dict[str, Any],
                 strokes: Optional[List[Any]] = None,
                 related_words: Optional[List[Any]] = None) -> StudyViewState:
    return replace(
        state,
        details=details,
        strokes=list(strokes or []),
        related_words=[word.to_dict() for word in related_words or []],
        loading=False,
    )


def with_error(state: StudyViewState, message: str) -> StudyViewState:
    return replace(state, loading=False, error=message)


def close_item(state: StudyViewState) -> StudyViewState:
    return StudyViewState()
