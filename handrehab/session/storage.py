"""
JSON persistence for session logs and recorded gesture templates.

Session files:  <log_dir>/random_YYYYmmdd_HHMMSS.json
                <log_dir>/card_YYYYmmdd_HHMMSS.json
Template files: <templates_dir>/gesture_<name>.json
"""

import json
import re
from pathlib import Path
from typing import Union

from handrehab.detectors.template_scorer import ReferenceTemplate, TemplateLibrary
from handrehab.session.session_log import CardSessionLog, SessionLog, log_from_dict


TEMPLATE_GLOB = 'gesture_*.json'

# Characters allowed in a template file name; anything else becomes '_'
_UNSAFE_NAME_RE = re.compile(r'[^A-Za-z0-9_\-]')

AnySessionLog = Union[SessionLog, CardSessionLog]


class SessionPersistenceError(OSError):
    """Writing or reading a session record failed; the caller decides what to do."""

    def __init__(self, path, cause: Exception):
        super().__init__(f"Could not persist session data at {path}: {cause}")
        self.path = Path(path)
        self.cause = cause


def save_session_log(log: AnySessionLog, directory: Union[str, Path], quiet: bool = False) -> Path:
    """Write `log` as JSON; saving the same log again overwrites its file."""
    directory = Path(directory)
    path = directory / log.file_name()
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(log.to_dict(), f, indent=2)
    except (OSError, TypeError, ValueError) as e:
        raise SessionPersistenceError(path, e) from e
    if not quiet:
        print(f"✓ Session saved to {path}")
    return path


def load_session_log(path: Union[str, Path]) -> AnySessionLog:
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise SessionPersistenceError(path, e) from e
    try:
        return log_from_dict(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise SessionPersistenceError(path, e) from e


def template_file_name(name: str) -> str:
    """'2peace' -> 'gesture_2peace.json'; path separators never reach the file name."""
    safe = _UNSAFE_NAME_RE.sub('_', name or '').strip('_')
    if not safe:
        raise ValueError(f"Gesture name {name!r} has no usable characters")
    return f"gesture_{safe}.json"


def save_template(template: ReferenceTemplate, directory: Union[str, Path]) -> Path:
    directory = Path(directory)
    try:
        path = directory / template_file_name(template.name)
    except ValueError as e:
        raise SessionPersistenceError(directory, e) from e
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(template.to_record(), f, indent=2)
    except OSError as e:
        raise SessionPersistenceError(path, e) from e
    print(f"✓ Template '{template.name}' saved to {path}")
    return path


def load_templates(directory: Union[str, Path], library: TemplateLibrary = None) -> TemplateLibrary:
    """Load every gesture_*.json under `directory`; bad files are skipped."""
    library = library if library is not None else TemplateLibrary()
    directory = Path(directory)
    if not directory.is_dir():
        print(f"⚠ Template directory not found: {directory}")
        return library

    skipped = 0
    for path in sorted(directory.glob(TEMPLATE_GLOB)):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                record = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"⚠ Skipping unreadable template {path.name}: {e}")
            skipped += 1
            continue
        template = ReferenceTemplate.from_record(record)
        if template is None:
            print(f"⚠ Skipping template {path.name}: expected 21 landmarks")
            skipped += 1
            continue
        library.add(template)

    print(f"✓ Loaded {len(library)} gesture templates from {directory}"
          + (f" ({skipped} skipped)" if skipped else ""))
    return library
