from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from play_publisher.errors import ConfigurationError
from play_publisher.models import (
    TRACK_NAME_INTERNAL_APP_SHARING,
    Destination,
    InternalAppSharingDestination,
    ReleaseNote,
    TrackDestination,
)

# BCP 47 language codes, as used by Google Play
REGEX_LANGUAGE = re.compile(r"[a-z]{2,3}([-_][0-9A-Z]{2,})?")

REGEX_VARIABLE = re.compile(r"\$([A-Za-z0-9_]+|\{[A-Za-z0-9_]+\}|\$)")

RELEASE_NAME_ENV_VAR = "CI_COMMIT_TAG"


@dataclass
class PublisherConfig:
    destination: Destination
    workspace: Path = field(default_factory=Path.cwd)
    credentials: Optional[str] = None
    application_id: Optional[str] = None
    files_pattern: Optional[str] = None
    deobfuscation_files_pattern: Optional[str] = None
    native_debug_symbol_files_pattern: Optional[str] = None
    expansion_files_pattern: Optional[str] = None
    use_previous_expansion_files_if_missing: bool = False
    release_name: Optional[str] = None
    in_app_update_priority: Optional[int] = None
    additional_version_codes: list[int] = field(default_factory=list)
    release_notes: list[ReleaseNote] = field(default_factory=list)


def expand(value: Optional[str], env: Mapping[str, str]) -> Optional[str]:
    """Expands $VAR and ${VAR} from the environment; returns None if the result is blank."""
    if value is None:
        return None

    def replace(m: re.Match) -> str:
        name = m.group(1)
        if name == "$":
            return "$"
        name = name.strip("{}")
        return env.get(name, m.group(0))

    expanded = REGEX_VARIABLE.sub(replace, value).strip()
    return expanded or None


def parse_rollout_percentage(value: Optional[str]) -> float:
    if value is None:
        raise ConfigurationError("Rollout percentage was not specified")
    try:
        percentage = float(value.strip().rstrip("%").strip())
    except ValueError:
        raise ConfigurationError(f"'{value}' is not a valid rollout percentage") from None
    if math.isnan(percentage) or not 0 <= percentage <= 100:
        raise ConfigurationError(f"'{value}' is not a valid rollout percentage; it must be between 0 and 100")
    return percentage


def parse_update_priority(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"'{value}' is not a valid update priority") from None


def parse_additional_version_codes(value: Optional[str]) -> list[int]:
    if value is None:
        return []
    parts = [p for p in re.split(r"[,\s]+", value) if p]
    try:
        return [int(p) for p in parts]
    except ValueError:
        raise ConfigurationError(
            f"Additional app files to include contains non-numeric values: '{value}'"
        ) from None


def parse_release_notes(
    values: Optional[Sequence[str]], workspace: Optional[Path] = None
) -> list[ReleaseNote]:
    """Parses `LANG=TEXT` values; `LANG=@path` reads the text from a file, relative to the workspace."""
    notes: list[ReleaseNote] = []
    for value in values or []:
        language, sep, text = value.partition("=")
        language = language.strip()
        if not sep:
            raise ConfigurationError(f"Release notes must be given as LANGUAGE=TEXT, but got '{value}'")
        if not REGEX_LANGUAGE.fullmatch(language):
            raise ConfigurationError(f"'{language}' is not a valid release notes language code")
        if any(n.language == language for n in notes):
            raise ConfigurationError(f"Release notes for '{language}' were given more than once")
        if text.startswith("@"):
            try:
                text = (workspace or Path.cwd()).joinpath(text[1:]).read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(f"Could not read release notes for '{language}': {e}") from e
        notes.append(ReleaseNote(language=language, text=text.strip()))
    return notes


def parse_destination(track_name: Optional[str], rollout_percentage: Optional[str]) -> Destination:
    if not track_name:
        raise ConfigurationError("Release track was not specified")
    if track_name.lower() == TRACK_NAME_INTERNAL_APP_SHARING:
        return InternalAppSharingDestination()
    return TrackDestination(track_name=track_name, rollout_percentage=parse_rollout_percentage(rollout_percentage))


def build_config(args, env: Optional[Mapping[str, str]] = None) -> PublisherConfig:
    """Validates the parsed command-line arguments, before anything talks to Google Play."""
    env = os.environ if env is None else env

    def x(value: Optional[str]) -> Optional[str]:
        return expand(value, env)

    release_name = x(args.release_name)
    if release_name is None:
        release_name = x(env.get(RELEASE_NAME_ENV_VAR))

    workspace = Path(x(args.workspace) or ".").resolve()

    return PublisherConfig(
        destination=parse_destination(x(args.track), x(args.rollout_percentage)),
        workspace=workspace,
        credentials=x(args.credentials),
        application_id=x(args.application_id),
        files_pattern=x(args.files_pattern),
        deobfuscation_files_pattern=x(args.deobfuscation_files_pattern),
        native_debug_symbol_files_pattern=x(args.native_debug_symbol_files_pattern),
        expansion_files_pattern=x(args.expansion_files_pattern),
        use_previous_expansion_files_if_missing=args.use_previous_expansion_files_if_missing,
        release_name=release_name,
        in_app_update_priority=parse_update_priority(x(args.in_app_update_priority)),
        additional_version_codes=parse_additional_version_codes(x(args.additional_version_codes)),
        release_notes=parse_release_notes(args.release_notes, workspace),
    )
