"""Subjects taught per academic level."""
from typing import Dict, List, Tuple

ACADEMIC_LEVELS: Tuple[str, ...] = ("First Year", "Second Year", "Third Year", "Fourth Year")

SUBJECTS_BY_LEVEL: Dict[str, List[str]] = {
    "First Year": [
        "Western Rules & Solfege 1",
        "Western Rules & Solfege 2",
        "Rhythmic Movement 1"
    ],
    "Second Year": [
        "Western Rules & Solfege 3",
        "Western Rules & Solfege 4",
        "Hymn Singing",
        "Rhythmic Movement 2"
    ],
    "Third Year": [
        "Western Rules & Solfege 5",
        "Improvisation 1"
    ],
    "Fourth Year": [
        "Western Rules & Solfege 6",
        "Improvisation 2"
    ]
}


def is_known_level(academic_level: str) -> bool:
    return academic_level in SUBJECTS_BY_LEVEL


def subjects_for(academic_level: str) -> List[str]:
    return list(SUBJECTS_BY_LEVEL.get(academic_level, []))


def is_subject_offered(academic_level: str, subject: str) -> bool:
    return subject in SUBJECTS_BY_LEVEL.get(academic_level, [])
