"""
Registration Service - creates registrations as one atomic unit of work.

Validates the payload, reconciles the unit and its leader, computes totals
with fixed-point arithmetic and persists the registration with its teams.
Returns a confirmation snapshot or a Failure; storage errors are logged here
and surface to callers only as INTERNAL.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from ..config import Settings
from ..errors import ErrorKind, Failure, fail
from ..models import (
    ConfirmationSnapshot,
    Leader,
    LeaderInput,
    LeaderSummary,
    Pricing,
    Race,
    Registration,
    Team,
    TeamSummary,
    Unit,
    UnitSummary,
)
from ..storage import DatabaseError, DatabaseInterface, IntegrityConstraintError
from ..utils.money import to_cents, total_price
from .validator import ValidatedRegistration, validate_registration

logger = logging.getLogger(__name__)

# Column whose clash means another request created the unit first
UNIT_NAME_CONSTRAINT = "units.unit_name"


def _identity(first_name: str, last_name: str, email: str) -> tuple:
    return (
        email.strip().lower(),
        first_name.strip().casefold(),
        last_name.strip().casefold(),
    )


def same_leader(stored: Optional[Dict[str, Any]], submitted: LeaderInput) -> bool:
    """Compare the identifying fields of a stored and a submitted leader."""
    if stored is None:
        return False
    return _identity(stored['firstName'], stored['lastName'], stored['email']) == _identity(
        submitted.first_name, submitted.last_name, submitted.email
    )


def build_snapshot(details: Dict[str, Any], currency: str = "EUR") -> ConfirmationSnapshot:
    """Assemble a confirmation snapshot from stored registration details."""
    registration = Registration.model_validate(details['registration'])
    race = Race.model_validate(details['race'])
    unit = Unit.model_validate(details['unit'])
    leader = Leader.model_validate(details['leader'])
    teams = [Team.model_validate(t) for t in details['teams']]

    counted = sum(t.participant_count for t in teams)
    if counted != registration.total_participants:
        logger.error(
            f"Registration {registration.id} stores {registration.total_participants} "
            f"participants but its teams add up to {counted}"
        )

    return ConfirmationSnapshot(
        id=registration.id,
        payment_status=registration.payment_status,
        created_at=registration.created_at,
        paid_at=registration.paid_at,
        race=race,
        unit=UnitSummary(id=unit.id, unit_name=unit.unit_name, region=unit.region),
        leader=LeaderSummary(
            id=leader.id,
            first_name=leader.first_name,
            last_name=leader.last_name,
            email=leader.email,
            phone=leader.phone,
        ),
        teams=[
            TeamSummary(id=t.id, team_name=t.team_name, participant_count=t.participant_count)
            for t in teams
        ],
        pricing=Pricing(
            participation_price=race.participation_price,
            total_participants=registration.total_participants,
            total_price=registration.total_price,
            currency=currency,
        ),
    )


class RegistrationService:
    """
    Registration engine.

    Unit resolution and the registration insert share one write
    transaction. A concurrent first registration for the same unit name
    is settled by the unique constraint on units: the loser rolls back and
    retries, and then sees the winner's unit.
    """

    MAX_ATTEMPTS = 2

    def __init__(self, db: DatabaseInterface, settings: Settings):
        self.db = db
        self.settings = settings

    # =========================================================================
    # RACES
    # =========================================================================

    def find_race(self, race_id: int, conn: Any = None) -> Optional[Race]:
        """Look up a race by id."""
        data = self.db.get_race(race_id, conn=conn)
        return Race.model_validate(data) if data else None

    def list_races(self) -> Union[List[Dict[str, Any]], Failure]:
        """Race catalogue, JSON-ready."""
        try:
            return [
                Race.model_validate(r).model_dump(mode="json", by_alias=True)
                for r in self.db.get_races()
            ]
        except DatabaseError:
            logger.exception("Failed to list races")
            return fail(ErrorKind.INTERNAL)

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def validate(self, raw: Any) -> Union[ValidatedRegistration, Failure]:
        return validate_registration(
            raw,
            self.find_race,
            max_teams=self.settings.max_teams_per_request,
            enforce_aggregate_max=self.settings.enforce_aggregate_max,
        )

    def submit(self, raw: Any) -> Union[ConfirmationSnapshot, Failure]:
        """
        Validate and persist a registration.

        Args:
            raw: Decoded JSON request body

        Returns:
            ConfirmationSnapshot on success, otherwise a Failure
        """
        try:
            validated = self.validate(raw)
            if isinstance(validated, Failure):
                logger.info(f"Registration rejected: {validated.kind.value}")
                return validated

            result = self._persist(raw, validated)
            if isinstance(result, Failure):
                logger.info(f"Registration rejected: {result.kind.value}")
                return result

            details = self.db.get_registration_details(result)
            if details is None:
                logger.error(f"Registration {result} missing right after commit")
                return fail(ErrorKind.INTERNAL)

            snapshot = build_snapshot(details, self.settings.currency)
            logger.info(
                f"Registration {snapshot.id} created: unit='{snapshot.unit.unit_name}' "
                f"race={snapshot.race.id} participants={snapshot.pricing.total_participants} "
                f"total={snapshot.pricing.total_price}"
            )
            return snapshot
        except DatabaseError:
            logger.exception("Registration failed in storage")
            return fail(ErrorKind.INTERNAL)

    def _persist(self, raw: Any, validated: ValidatedRegistration) -> Union[int, Failure]:
        """Run the unit of work, retrying once after a unit-name collision."""
        payload = validated.payload

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                with self.db.transaction(immediate=True) as conn:
                    # Re-read the race under the write lock so the price and
                    # bounds used are the ones in force at commit time
                    race = self.find_race(payload.race_id, conn=conn)
                    if race is None:
                        return fail(ErrorKind.RACE_NOT_FOUND, raceId=payload.race_id)
                    if race != validated.race:
                        revalidated = validate_registration(
                            raw,
                            lambda _race_id: race,
                            max_teams=self.settings.max_teams_per_request,
                            enforce_aggregate_max=self.settings.enforce_aggregate_max,
                        )
                        if isinstance(revalidated, Failure):
                            return revalidated
                        validated = revalidated

                    unit = self.db.find_unit_by_name(payload.unit.unit_name, conn=conn)
                    if unit is None:
                        unit = self.db.create_unit_with_leader(
                            {
                                'unitName': payload.unit.unit_name,
                                'region': payload.unit.region,
                            },
                            {
                                'firstName': payload.leader.first_name,
                                'lastName': payload.leader.last_name,
                                'email': payload.leader.email,
                                'phone': payload.leader.phone,
                            },
                            conn=conn,
                        )
                    elif not same_leader(unit['leader'], payload.leader):
                        return fail(ErrorKind.UNIT_LEADER_CONFLICT, unitName=payload.unit.unit_name)

                    participants = validated.total_participants
                    price = total_price(race.participation_price, participants)

                    return self.db.insert_registration(
                        unit_id=unit['id'],
                        race_id=race.id,
                        teams=[
                            {'teamName': t.team_name, 'participantCount': t.participant_count}
                            for t in payload.teams
                        ],
                        total_participants=participants,
                        total_price_cents=to_cents(price),
                        conn=conn,
                    )
            except IntegrityConstraintError as e:
                if e.constraint != UNIT_NAME_CONSTRAINT or attempt == self.MAX_ATTEMPTS:
                    raise
                logger.warning(
                    f"Unit '{payload.unit.unit_name}' created concurrently, retrying lookup ({e})"
                )

        # Unreachable: the last attempt either returns or raises
        return fail(ErrorKind.INTERNAL)

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get_registration(self, registration_id: int) -> Union[ConfirmationSnapshot, Failure]:
        """Snapshot of an existing registration."""
        try:
            details = self.db.get_registration_details(registration_id)
        except DatabaseError:
            logger.exception(f"Failed to load registration {registration_id}")
            return fail(ErrorKind.INTERNAL)
        if details is None:
            return fail(ErrorKind.NOT_FOUND, registrationId=registration_id)
        return build_snapshot(details, self.settings.currency)
