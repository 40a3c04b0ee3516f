"""
Business rule validation for registration payloads.

`validate_registration` never raises for an invalid payload: it returns a
`Failure` naming the first rule that was broken, or a
`ValidatedRegistration` ready for the registration engine. The only I/O is
the race lookup supplied by the caller.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from pydantic import ValidationError

from ..errors import ErrorKind, Failure, fail
from ..models import Race, RegistrationPayload
from ..types import FieldErrorDict


@dataclass(frozen=True)
class ValidatedRegistration:
    """A payload that passed every rule, with its race resolved."""

    payload: RegistrationPayload
    race: Race
    total_participants: int


def _field_errors(error: ValidationError) -> List[FieldErrorDict]:
    return [
        {
            "field": ".".join(str(part) for part in item["loc"]),
            "reason": item["msg"],
        }
        for item in error.errors()
    ]


def parse_payload(raw: Any) -> Union[RegistrationPayload, Failure]:
    """Structural validation only."""
    if not isinstance(raw, dict):
        return fail(ErrorKind.INVALID_PAYLOAD, fields=[{"field": "", "reason": "JSON object expected"}])
    try:
        return RegistrationPayload.model_validate(raw)
    except ValidationError as e:
        return fail(ErrorKind.INVALID_PAYLOAD, fields=_field_errors(e))


def validate_registration(
    raw: Any,
    find_race: Callable[[int], Optional[Race]],
    max_teams: int = 10,
    enforce_aggregate_max: bool = False,
) -> Union[ValidatedRegistration, Failure]:
    """
    Validate a candidate registration.

    Checks run in order and stop at the first failure:
    1. payload shape (INVALID_PAYLOAD)
    2. number of teams, then duplicate team names
       (INVALID_PAYLOAD / TOO_MANY_TEAMS)
    3. race exists (RACE_NOT_FOUND)
    4. each team size within the race bounds (PARTICIPANT_CONSTRAINT)
    5. optionally, total size within the race maximum (PARTICIPANT_CONSTRAINT)

    Args:
        raw: Decoded JSON body
        find_race: Lookup returning the race for an id, or None
        max_teams: Maximum number of teams in one registration
        enforce_aggregate_max: Also cap the sum of all teams at maxParticipants

    Returns:
        ValidatedRegistration or Failure
    """
    payload = parse_payload(raw)
    if isinstance(payload, Failure):
        return payload

    if not payload.teams:
        return fail(ErrorKind.INVALID_PAYLOAD, "Au moins une équipe est requise.",
                    fields=[{"field": "teams", "reason": "at least one team is required"}])
    if len(payload.teams) > max_teams:
        return fail(ErrorKind.TOO_MANY_TEAMS,
                    f"Une inscription ne peut pas contenir plus de {max_teams} équipes.",
                    maxTeams=max_teams, submitted=len(payload.teams))

    seen = set()
    for index, team in enumerate(payload.teams):
        key = team.team_name.casefold()
        if key in seen:
            return fail(ErrorKind.INVALID_PAYLOAD, "Deux équipes portent le même nom.",
                        fields=[{"field": f"teams.{index}.teamName", "reason": "duplicate team name"}])
        seen.add(key)

    race = find_race(payload.race_id)
    if race is None:
        return fail(ErrorKind.RACE_NOT_FOUND, raceId=payload.race_id)

    for index, team in enumerate(payload.teams):
        if team.participant_count <= 0 or not race.accepts(team.participant_count):
            return fail(
                ErrorKind.PARTICIPANT_CONSTRAINT,
                f"L'équipe « {team.team_name} » doit compter entre "
                f"{race.min_participants} et {race.max_participants} participants.",
                teamIndex=index,
                teamName=team.team_name,
                participantCount=team.participant_count,
                minParticipants=race.min_participants,
                maxParticipants=race.max_participants,
            )

    total = sum(team.participant_count for team in payload.teams)
    if enforce_aggregate_max and total > race.max_participants:
        return fail(
            ErrorKind.PARTICIPANT_CONSTRAINT,
            f"Le total des participants ({total}) dépasse le maximum de la course "
            f"({race.max_participants}).",
            totalParticipants=total,
            maxParticipants=race.max_participants,
        )

    return ValidatedRegistration(payload=payload, race=race, total_participants=total)
