"""Participation-rate queries over indexed data."""

from .exceptions import DivisionError, NotFoundError
from .store import Repositories


class ParticipationService:
    """Derives participation rates from stored attestation counts."""

    def __init__(self, repos: Repositories):
        self.repos = repos

    async def participation_rate_for_epoch(self, epoch: int) -> float:
        """Fraction of the epoch's active validators with a recorded attestation."""
        record = await self.repos.epochs.get(epoch)
        if record is None:
            raise NotFoundError(f"Epoch {epoch} has not been indexed")
        if record.active_validators == 0:
            raise DivisionError(f"Epoch {epoch} has no active validators")
        return record.attestations / record.active_validators

    async def participation_rate_for_validator(self, index: int) -> float:
        """Attestations per epoch the validator has been active.

        Active epochs run from the activation epoch to the latest indexed
        epoch, capped at the exit epoch for exited validators.
        """
        validator = await self.repos.validators.get(index)
        if validator is None:
            raise NotFoundError(f"Validator {index} is unknown")

        current_epoch = await self.repos.epochs.latest()
        if current_epoch is None:
            raise NotFoundError("No epochs have been indexed yet")

        active_epochs = current_epoch - validator.activation_epoch
        if validator.has_exited:
            active_epochs = min(active_epochs, validator.exit_epoch - validator.activation_epoch)
        if active_epochs <= 0:
            raise DivisionError(
                f"Validator {index} has no active epochs "
                f"(activation={validator.activation_epoch}, current={current_epoch})"
            )
        return validator.attestations / active_epochs
