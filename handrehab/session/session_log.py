from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union

from handrehab.session.round_scoring import SessionRoundRecord


TIME_FORMAT = '%Y-%m-%d %H:%M:%S'
FILE_TIME_FORMAT = '%Y%m%d_%H%M%S'
FILE_PREFIX = 'random'
CARD_FILE_PREFIX = 'card'
CARD_MODE = 'card'


def _file_name(prefix: str, session_start_time: str) -> str:
    try:
        started = datetime.strptime(session_start_time, TIME_FORMAT)
    except ValueError:
        started = datetime.now()
    return f"{prefix}_{started.strftime(FILE_TIME_FORMAT)}.json"


def _state_check_row(result: str, when: Optional[datetime]) -> Dict:
    return {'Time': (when or datetime.now()).strftime(TIME_FORMAT), 'Result': result}


@dataclass
class SessionLog:
    """Append-only round records plus the session header."""
    session_start_time: str = field(default_factory=lambda: datetime.now().strftime(TIME_FORMAT))
    rounds: List[SessionRoundRecord] = field(default_factory=list)
    state_checks: List[Dict] = field(default_factory=list)

    def append(self, record: SessionRoundRecord) -> None:
        self.rounds.append(record)

    def record_state_check(self, result: str, when: Optional[datetime] = None) -> None:
        self.state_checks.append(_state_check_row(result, when))

    def file_name(self) -> str:
        return _file_name(FILE_PREFIX, self.session_start_time)

    def to_dict(self) -> Dict:
        return {
            'SessionStartTime': self.session_start_time,
            'Rounds': [r.to_dict() for r in self.rounds],
            'StateChecks': list(self.state_checks),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'SessionLog':
        return cls(
            session_start_time=str(data.get('SessionStartTime', '')),
            rounds=[SessionRoundRecord.from_dict(r) for r in data.get('Rounds', [])],
            state_checks=list(data.get('StateChecks', [])),
        )


@dataclass
class CardSessionLog:
    """Card-mode rows: one per completed card, one per state-check result."""
    session_start_time: str = field(default_factory=lambda: datetime.now().strftime(TIME_FORMAT))
    cards: List[Dict] = field(default_factory=list)
    state_checks: List[Dict] = field(default_factory=list)

    def append_card(self, row: Dict) -> None:
        self.cards.append(dict(row))

    def record_state_check(self, result: str, when: Optional[datetime] = None) -> None:
        self.state_checks.append(_state_check_row(result, when))

    def file_name(self) -> str:
        return _file_name(CARD_FILE_PREFIX, self.session_start_time)

    def to_dict(self) -> Dict:
        return {
            'Mode': CARD_MODE,
            'SessionStartTime': self.session_start_time,
            'Cards': [dict(c) for c in self.cards],
            'StateChecks': list(self.state_checks),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'CardSessionLog':
        return cls(
            session_start_time=str(data.get('SessionStartTime', '')),
            cards=[dict(c) for c in data.get('Cards', [])],
            state_checks=list(data.get('StateChecks', [])),
        )


def log_from_dict(data: Dict) -> Union[SessionLog, CardSessionLog]:
    """Rebuild whichever log type a saved file holds."""
    if data.get('Mode') == CARD_MODE:
        return CardSessionLog.from_dict(data)
    return SessionLog.from_dict(data)


@dataclass
class SessionStats:
    total_rounds: int
    average_final_score: float
    average_time_taken: float


def summarize(log: SessionLog) -> SessionStats:
    """Chart header numbers for one session."""
    n = len(log.rounds)
    if n == 0:
        return SessionStats(0, 0.0, 0.0)
    return SessionStats(
        total_rounds=n,
        average_final_score=sum(r.final_score for r in log.rounds) / n,
        average_time_taken=sum(r.time_taken for r in log.rounds) / n,
    )


@dataclass
class SessionSummary:
    total_rounds: int
    duration: str
    message: str
    reason: str = ''

    def lines(self) -> List[str]:
        out = [f"Cards completed: {self.total_rounds}", f"Total time: {self.duration}"]
        if self.reason:
            out.append(f"Ended: {self.reason}")
        out.append(self.message)
        return out


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def encouragement(total_rounds: int) -> str:
    if total_rounds >= 10:
        return "Excellent work!"
    if total_rounds >= 5:
        return "Great job!"
    return "Good start!"


def end_summary(total_rounds: int, duration_s: float, reason=None) -> SessionSummary:
    reason_text = getattr(reason, 'value', reason) or ''
    return SessionSummary(
        total_rounds=total_rounds,
        duration=format_duration(duration_s),
        message=encouragement(total_rounds),
        reason=str(reason_text),
    )
