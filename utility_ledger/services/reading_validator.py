"""Meter reading plausibility checks run before a cycle is created or corrected."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from utility_ledger.config import settings
from utility_ledger.errors import InvalidReadingError
from utility_ledger.services.money import to_decimal

logger = logging.getLogger(__name__)


class ReadingWarningKind(str, Enum):
    """Non-fatal reading findings shown to the operator."""

    HIGH_CONSUMPTION = "high_consumption"
    ZERO_CONSUMPTION = "zero_consumption"


@dataclass(frozen=True)
class ReadingWarning:
    """Informational warning; never blocks creation."""

    kind: ReadingWarningKind
    consumption: Decimal
    message: str


@dataclass
class ReadingCheck:
    """Result of a successful validation."""

    consumption: Decimal
    warnings: list[ReadingWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return True


class MeterReadingValidator:
    """Validate a (previous, current) reading pair.

    Backwards readings are transcription errors and raise InvalidReadingError.
    Unusually high or zero consumption only produces warnings: vacant units
    and stalled meters legitimately report zero.
    """

    def __init__(self, high_consumption_threshold: Decimal | None = None):
        """Initialize validator.

        Args:
            high_consumption_threshold: Units above which consumption is flagged
                (default: HIGH_CONSUMPTION_THRESHOLD setting, 50)
        """
        if high_consumption_threshold is None:
            high_consumption_threshold = settings.high_consumption_threshold
        self.high_consumption_threshold = to_decimal(high_consumption_threshold)

    def validate(self, previous_reading, current_reading) -> ReadingCheck:
        """Check a reading pair.

        Args:
            previous_reading: Meter reading at the start of the period
            current_reading: Meter reading at the end of the period

        Returns:
            ReadingCheck with consumption and any warnings

        Raises:
            InvalidReadingError: If a reading is negative or current < previous
        """
        previous = to_decimal(previous_reading)
        current = to_decimal(current_reading)

        if not previous.is_finite() or not current.is_finite():
            raise InvalidReadingError(previous, current, "Meter readings must be finite numbers")
        if previous < 0 or current < 0:
            raise InvalidReadingError(previous, current, "Meter readings cannot be negative")
        if current < previous:
            raise InvalidReadingError(previous, current)

        consumption = current - previous
        check = ReadingCheck(consumption=consumption)

        if consumption > self.high_consumption_threshold:
            check.warnings.append(
                ReadingWarning(
                    kind=ReadingWarningKind.HIGH_CONSUMPTION,
                    consumption=consumption,
                    message=(
                        f"High consumption detected: {consumption} units. "
                        f"Please verify the readings are correct."
                    ),
                )
            )
        elif consumption == 0:
            check.warnings.append(
                ReadingWarning(
                    kind=ReadingWarningKind.ZERO_CONSUMPTION,
                    consumption=consumption,
                    message="Zero consumption detected. Please verify the meter reading.",
                )
            )

        for warning in check.warnings:
            logger.warning(f"Reading check {previous} -> {current}: {warning.kind.value}")

        return check


__all__ = [
    "MeterReadingValidator",
    "ReadingCheck",
    "ReadingWarning",
    "ReadingWarningKind",
]
